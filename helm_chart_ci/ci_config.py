"""
Per-chart feature configuration read from `.ci.config.yaml`.

Each functionality section may be a boolean or a mapping:

    helm-chart-validation:
      enabled: true
      options:
        --skip-crds: true
    helm-chart-test: false

Options are either a mapping of flag to bool or a list of flag names.
Nothing in here raises: bad input is logged and falls back to defaults.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .constants import CI_CONFIG_FILE, Functionality

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationOptions:
    skip_crds: bool = False
    skip_tests: bool = False
    include_crds: bool = False
    dependency_update: bool = True

    def flags(self) -> List[str]:
        flags = []
        if self.skip_crds:
            flags.append("--skip-crds")
        if self.skip_tests:
            flags.append("--skip-tests")
        if self.include_crds:
            flags.append("--include-crds")
        if self.dependency_update:
            flags.append("--dependency-update")
        return flags


@dataclass(frozen=True)
class DependencyUpdateOptions:
    def flags(self) -> List[str]:
        return []


@dataclass(frozen=True)
class UnitTestOptions:
    update_snapshot: bool = False

    def flags(self) -> List[str]:
        return ["--update-snapshot"] if self.update_snapshot else []


OPTION_TYPES = {
    Functionality.VALIDATION: ValidationOptions,
    Functionality.DEPENDENCY_UPDATE: DependencyUpdateOptions,
    Functionality.TEST: UnitTestOptions,
}


@dataclass(frozen=True)
class FeatureConfig:
    # None means the chart did not say; the caller's default applies.
    enabled: Optional[bool] = None
    options: Any = None


@dataclass
class ChartCiConfig:
    features: Dict[Functionality, FeatureConfig] = field(default_factory=dict)

    def feature(self, functionality: Functionality) -> FeatureConfig:
        return self.features.get(functionality, FeatureConfig())


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    return None


def _flag_name(flag: Any) -> str:
    return str(flag).strip().lstrip("-").replace("-", "_")


def _parse_options(functionality: Functionality, raw: Any, source: Path):
    option_type = OPTION_TYPES[functionality]
    if raw is None:
        return option_type()

    if isinstance(raw, list):
        values = {_flag_name(flag): True for flag in raw}
    elif isinstance(raw, dict):
        values = {}
        for flag, value in raw.items():
            flag_value = _as_bool(value)
            if flag_value is None:
                logger.warning(
                    f"{source}: option {flag} of {functionality.value} is not a boolean, ignoring"
                )
                continue
            values[_flag_name(flag)] = flag_value
    else:
        logger.warning(
            f"{source}: options of {functionality.value} must be a list or mapping, using defaults"
        )
        return option_type()

    known = set(option_type.__dataclass_fields__)
    for name in sorted(set(values) - known):
        logger.debug(f"{source}: unknown option --{name.replace('_', '-')} for {functionality.value}")
    return option_type(**{k: v for k, v in values.items() if k in known})


def _parse_feature(functionality: Functionality, raw: Any, source: Path) -> FeatureConfig:
    if raw is None:
        return FeatureConfig()
    if isinstance(raw, bool):
        return FeatureConfig(enabled=raw)
    if not isinstance(raw, dict):
        logger.warning(f"{source}: section {functionality.value} is malformed, using defaults")
        return FeatureConfig()

    enabled = None
    if "enabled" in raw:
        enabled = _as_bool(raw["enabled"])
        if enabled is None:
            logger.warning(f"{source}: {functionality.value}.enabled is not a boolean, using default")
    return FeatureConfig(
        enabled=enabled,
        options=_parse_options(functionality, raw.get("options"), source),
    )


def load_ci_config(chart_dir: Path) -> ChartCiConfig:
    """Read and validate a chart's .ci.config.yaml. Missing file means all defaults."""
    path = Path(chart_dir) / CI_CONFIG_FILE
    if not path.is_file():
        return ChartCiConfig()

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Could not read {path}, using defaults: {e}")
        return ChartCiConfig()

    if data is None:
        return ChartCiConfig()
    if not isinstance(data, dict):
        logger.warning(f"{path} is not a mapping, using defaults")
        return ChartCiConfig()

    features = {}
    for functionality in Functionality:
        if functionality.value in data:
            features[functionality] = _parse_feature(functionality, data[functionality.value], path)
    return ChartCiConfig(features=features)


class FeatureGate:
    """Answers whether a functionality runs for a chart, and with which helm flags."""

    def __init__(self, loader=load_ci_config):
        self._loader = loader

    def is_enabled(self, chart_dir: Path, functionality: Functionality, default: bool = True) -> bool:
        enabled = self._loader(chart_dir).feature(functionality).enabled
        return default if enabled is None else enabled

    def options(self, chart_dir: Path, functionality: Functionality) -> List[str]:
        options = self._loader(chart_dir).feature(functionality).options
        if options is None:
            options = OPTION_TYPES[functionality]()
        return options.flags()
