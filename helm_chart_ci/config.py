"""Run configuration from the CI environment, overridable by command-line flags."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from . import constants
from .constants import Functionality
from .coordinator import ExecutionMode
from .errors import ConfigurationError

TRUE_VALUES = {"true", "1", "yes", "on"}
FALSE_VALUES = {"false", "0", "no", "off"}

# Unit tests run in parallel unless told otherwise, the other steps sequentially.
DEFAULT_PARALLEL = {
    Functionality.VALIDATION: False,
    Functionality.DEPENDENCY_UPDATE: False,
    Functionality.TEST: True,
}


def parse_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    normalized = str(value).strip().lower()
    if not normalized:
        return default
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    raise ConfigurationError(f"Expected a boolean, got `{value}`")


def _optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def require_workspace(env: Mapping[str, str]) -> Path:
    workspace = (env.get(constants.GITHUB_WORKSPACE) or "").strip()
    if not workspace:
        raise ConfigurationError(f"Missing env `{constants.GITHUB_WORKSPACE}`!")
    return Path(workspace)


@dataclass
class RunConfig:
    workspace: Path
    changed_only: bool = False
    branch: Optional[str] = None
    base_branch: str = constants.DEFAULT_BASE_BRANCH
    source_repo_url: Optional[str] = None
    target_repo_url: Optional[str] = None
    token: Optional[str] = None
    mode: ExecutionMode = ExecutionMode.SEQUENTIAL
    debug: bool = False
    summary_path: Optional[str] = None
    helm_binary: str = constants.DEFAULT_HELM_BINARY

    @classmethod
    def from_env(
        cls,
        functionality: Optional[Functionality] = None,
        env: Optional[Mapping[str, str]] = None,
        args=None,
    ) -> "RunConfig":
        """
        Build the configuration. The workspace is checked first and its
        absence aborts before anything else is read. Values present on
        `args` (an argparse namespace) win over the environment.
        """
        env = os.environ if env is None else env
        workspace = require_workspace(env)

        def pick(attr: str, var: str) -> Optional[str]:
            value = getattr(args, attr, None) if args is not None else None
            return value if value is not None else env.get(var)

        parallel = pick("parallel", constants.INPUT_PARALLEL)
        default_parallel = DEFAULT_PARALLEL.get(functionality, False)
        if isinstance(parallel, bool):
            is_parallel = parallel
        else:
            is_parallel = parse_bool(parallel, default_parallel)

        changed_only = pick("changed_only", constants.INPUT_VALIDATE_CHANGED_ONLY)
        debug = pick("debug", constants.INPUT_DEBUG)

        return cls(
            workspace=workspace,
            changed_only=changed_only if isinstance(changed_only, bool) else parse_bool(changed_only),
            branch=_optional(pick("branch", constants.INPUT_BRANCH_NAME)),
            base_branch=_optional(pick("base_branch", constants.INPUT_BASE_BRANCH_NAME))
            or constants.DEFAULT_BASE_BRANCH,
            source_repo_url=_optional(pick("source_repo_url", constants.INPUT_SOURCE_GIT_REPO_URL)),
            target_repo_url=_optional(pick("target_repo_url", constants.INPUT_TARGET_GIT_REPO_URL)),
            token=_optional(pick("token", constants.INPUT_TOKEN)),
            mode=ExecutionMode.PARALLEL if is_parallel else ExecutionMode.SEQUENTIAL,
            debug=debug if isinstance(debug, bool) else parse_bool(debug),
            summary_path=_optional(env.get(constants.GITHUB_STEP_SUMMARY)),
            helm_binary=_optional(pick("helm_binary", constants.INPUT_HELM_BINARY))
            or constants.DEFAULT_HELM_BINARY,
        )
