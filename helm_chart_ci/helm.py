"""Thin async wrapper around the helm CLI."""

import asyncio
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

import yaml

from .constants import (
    CHART_FILE,
    CI_VALUES_DIR,
    DEFAULT_HELM_BINARY,
    NO_TESTS_EXIT_CODE,
    NO_TESTS_MESSAGE,
    TEST_RESULTS_FILE,
    TESTS_DIR,
    VALUES_FILE,
)
from .errors import ToolInvocationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolResult:
    exit_code: int
    stdout: str
    stderr: str
    # Set only when helm was never run because the chart has no tests/
    no_tests: bool = False


async def run_command(cmd: Sequence[str], cwd: Optional[Path] = None) -> ToolResult:
    """
    Run a command to completion and capture its output.

    A non-zero exit code is returned, not raised. Failing to start the
    executable raises ToolInvocationError. If the awaiting task is cancelled
    the child process is killed first.
    """
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            cwd=str(cwd) if cwd else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise ToolInvocationError(f"Failed to run `{cmd[0]}`: {e}") from e

    try:
        stdout_bytes, stderr_bytes = await process.communicate()
    except asyncio.CancelledError:
        if process.returncode is None:
            process.kill()
            await process.wait()
        raise

    return ToolResult(
        exit_code=process.returncode,
        stdout=stdout_bytes.decode("utf-8", errors="ignore"),
        stderr=stderr_bytes.decode("utf-8", errors="ignore"),
    )


def _repo_alias(url: str) -> str:
    alias = re.sub(r"^[a-z]+://", "", url.strip().rstrip("/"))
    return re.sub(r"[^A-Za-z0-9]+", "-", alias).strip("-").lower()


def dependency_repositories(chart_dir: Path) -> List[str]:
    """HTTP(S) repositories referenced by the dependencies in Chart.yaml."""
    chart_file = Path(chart_dir) / CHART_FILE
    if not chart_file.is_file():
        return []
    try:
        with open(chart_file, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Could not read dependencies from {chart_file}: {e}")
        return []

    if not isinstance(data, dict):
        return []

    repositories = []
    for dependency in data.get("dependencies") or []:
        if not isinstance(dependency, dict):
            continue
        repository = str(dependency.get("repository") or "")
        if repository.startswith(("http://", "https://")) and repository not in repositories:
            repositories.append(repository)
    return repositories


class HelmClient:
    """
    Runs helm for one chart at a time.

    Construct one per run and hand it to the task runner; it holds no state
    besides the binary to call.
    """

    def __init__(self, binary: str = DEFAULT_HELM_BINARY):
        self.binary = binary

    async def _helm(self, *args: str, cwd: Optional[Path] = None) -> ToolResult:
        return await run_command([self.binary, *args], cwd=cwd)

    @staticmethod
    def value_files(chart_dir: Path) -> List[Path]:
        """values.yaml first, then ci/*-values.yaml in name order."""
        chart_dir = Path(chart_dir)
        files = []
        if (chart_dir / VALUES_FILE).is_file():
            files.append(chart_dir / VALUES_FILE)
        ci_dir = chart_dir / CI_VALUES_DIR
        if ci_dir.is_dir():
            files.extend(sorted(p for p in ci_dir.glob("*-values.yaml") if p.is_file()))
        return files

    async def template(
        self, chart_dir: Path, value_files: Sequence[Path], flags: Sequence[str]
    ) -> ToolResult:
        args = ["template", str(chart_dir)]
        for values_file in value_files:
            args.extend(["-f", str(values_file)])
        args.extend(flags)
        return await self._helm(*args)

    async def add_repositories(self, chart_dir: Path) -> None:
        for url in dependency_repositories(chart_dir):
            result = await self._helm("repo", "add", _repo_alias(url), url, "--force-update")
            if result.exit_code != 0:
                logger.warning(f"Failed to add helm repository {url}: {result.stderr.strip()}")

    async def dependency_update(self, chart_dir: Path) -> ToolResult:
        await self.add_repositories(chart_dir)
        return await self._helm("dependency", "update", str(chart_dir))

    async def unittest(
        self, chart_dir: Path, output_dir: Path, flags: Sequence[str]
    ) -> ToolResult:
        if not (Path(chart_dir) / TESTS_DIR).is_dir():
            return ToolResult(NO_TESTS_EXIT_CODE, "", NO_TESTS_MESSAGE, no_tests=True)

        Path(output_dir).mkdir(parents=True, exist_ok=True)
        return await self._helm(
            "unittest",
            str(chart_dir),
            "--output-type",
            "JUnit",
            "--output-file",
            str(Path(output_dir) / TEST_RESULTS_FILE),
            *flags,
        )
