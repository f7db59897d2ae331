"""Runs one functionality for one chart and classifies the outcome."""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from .ci_config import FeatureGate
from .constants import CI_CONFIG_FILE, TEST_OUTPUT_DIR, Functionality
from .helm import HelmClient, ToolResult
from .listing import ChartEntry

logger = logging.getLogger(__name__)


class ChartStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"
    DISABLED = "disabled"


@dataclass(frozen=True)
class ChartResult:
    chart: str
    relative_path: str
    status: ChartStatus
    reason: Optional[str] = None


def failure_reason(result: ToolResult) -> str:
    return result.stderr.strip() or result.stdout.strip() or "Unknown error"


class ChartTaskRunner:
    """
    Processes a single chart. Calls share nothing but the injected helm
    client and feature gate, so any number of them may run concurrently.
    """

    def __init__(self, helm: HelmClient, gate: FeatureGate, workspace: Path):
        self.helm = helm
        self.gate = gate
        self.output_dir = Path(workspace) / TEST_OUTPUT_DIR

    async def _invoke(self, entry: ChartEntry, functionality: Functionality) -> ToolResult:
        flags = self.gate.options(entry.directory, functionality)
        if functionality is Functionality.VALIDATION:
            return await self.helm.template(
                entry.directory, self.helm.value_files(entry.directory), flags
            )
        if functionality is Functionality.DEPENDENCY_UPDATE:
            return await self.helm.dependency_update(entry.directory)
        return await self.helm.unittest(
            entry.directory, self.output_dir / entry.identifier, flags
        )

    async def process(self, entry: ChartEntry, functionality: Functionality) -> ChartResult:
        if not self.gate.is_enabled(entry.directory, functionality, True):
            logger.info(f"{entry.identifier}: {functionality.value} disabled by {CI_CONFIG_FILE}")
            return ChartResult(
                chart=entry.identifier,
                relative_path=entry.relative_path,
                status=ChartStatus.DISABLED,
                reason=f"Disabled by {CI_CONFIG_FILE}",
            )

        result = await self._invoke(entry, functionality)

        if result.exit_code == 0:
            logger.info(f"{entry.identifier}: passed")
            return ChartResult(entry.identifier, entry.relative_path, ChartStatus.PASSED)

        if functionality is Functionality.TEST and result.no_tests:
            logger.info(f"{entry.identifier}: skipped, no tests directory")
            return ChartResult(
                entry.identifier, entry.relative_path, ChartStatus.SKIPPED, "No tests directory"
            )

        reason = failure_reason(result)
        logger.error(f"{entry.identifier}: failed with exit code {result.exit_code}\n{reason}")
        return ChartResult(entry.identifier, entry.relative_path, ChartStatus.FAILED, reason)
