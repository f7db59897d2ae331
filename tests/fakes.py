"""Test doubles shared by the test modules."""

import asyncio
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from helm_chart_ci.helm import HelmClient, ToolResult
from helm_chart_ci.listing import ChartEntry


class FakeHelm(HelmClient):
    """Records every call and answers with canned results keyed by chart folder name."""

    def __init__(self, results: Optional[Dict[str, ToolResult]] = None, delays=None, errors=None):
        super().__init__("helm")
        self.results = results or {}
        self.delays = delays or {}
        self.errors = errors or {}
        self.calls: List[tuple] = []

    async def _answer(self, operation: str, chart_dir: Path, *extra) -> ToolResult:
        name = Path(chart_dir).name
        self.calls.append((operation, name) + extra)
        await asyncio.sleep(self.delays.get(name, 0))
        if name in self.errors:
            raise self.errors[name]
        return self.results.get(name, ToolResult(0, "", ""))

    async def template(self, chart_dir, value_files, flags):
        return await self._answer("template", chart_dir, list(flags))

    async def dependency_update(self, chart_dir):
        return await self._answer("dependency_update", chart_dir)

    async def unittest(self, chart_dir, output_dir, flags):
        return await self._answer("unittest", chart_dir, list(flags))

    def charts_called(self) -> List[str]:
        return [call[1] for call in self.calls]


def make_chart(workspace: Path, name: str, ci_config: Optional[str] = None, tests: bool = False) -> Path:
    chart_dir = workspace / "charts" / name
    chart_dir.mkdir(parents=True)
    (chart_dir / "Chart.yaml").write_text(
        f"apiVersion: v2\nname: {name}\nversion: 0.1.0\n", encoding="utf-8"
    )
    (chart_dir / "values.yaml").write_text("replicaCount: 1\n", encoding="utf-8")
    if ci_config is not None:
        (chart_dir / ".ci.config.yaml").write_text(ci_config, encoding="utf-8")
    if tests:
        (chart_dir / "tests").mkdir()
    return chart_dir


def write_listing(workspace: Path, names: List[str]) -> None:
    document = {
        name: {
            "dir": str(workspace / "charts" / name),
            "name": name,
            "folderName": name,
            "relativePath": f"charts/{name}",
            "manifestPath": "charts",
        }
        for name in names
    }
    (workspace / "helm-chart-listing.yaml").write_text(
        yaml.safe_dump(document, sort_keys=False), encoding="utf-8"
    )


def entry(workspace: Path, name: str) -> ChartEntry:
    return ChartEntry(
        identifier=name,
        directory=workspace / "charts" / name,
        relative_path=f"charts/{name}",
        name=name,
        folder_name=name,
        manifest_path="charts",
    )
