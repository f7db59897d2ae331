import asyncio
import tempfile
import unittest
from pathlib import Path

from fakes import FakeHelm, entry, make_chart
from helm_chart_ci.ci_config import FeatureGate
from helm_chart_ci.constants import Functionality
from helm_chart_ci.coordinator import ExecutionMode, run_charts
from helm_chart_ci.errors import ToolInvocationError
from helm_chart_ci.helm import ToolResult
from helm_chart_ci.runner import ChartStatus, ChartTaskRunner

NAMES = ["alpha", "bravo", "charlie", "delta"]


class RunChartsTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.workspace = Path(self._tmp.name)
        for name in NAMES:
            make_chart(self.workspace, name)
        self.entries = [entry(self.workspace, name) for name in NAMES]

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def run_mode(self, helm: FakeHelm, mode: ExecutionMode, functionality=Functionality.VALIDATION):
        runner = ChartTaskRunner(helm, FeatureGate(), self.workspace)
        return asyncio.run(run_charts(self.entries, functionality, runner, mode))

    def test_parallel_results_keep_input_order(self) -> None:
        # Earlier charts finish last
        delays = {"alpha": 0.08, "bravo": 0.06, "charlie": 0.04, "delta": 0.0}
        helm = FakeHelm({"bravo": ToolResult(1, "", "bad")}, delays=delays)

        results = self.run_mode(helm, ExecutionMode.PARALLEL)

        self.assertEqual([r.chart for r in results], NAMES)
        self.assertEqual(results[1].status, ChartStatus.FAILED)

    def test_sequential_calls_helm_in_order(self) -> None:
        helm = FakeHelm()

        results = self.run_mode(helm, ExecutionMode.SEQUENTIAL)

        self.assertEqual(helm.charts_called(), NAMES)
        self.assertEqual([r.chart for r in results], NAMES)

    def test_modes_produce_identical_results(self) -> None:
        outcomes = {
            "alpha": ToolResult(0, "", ""),
            "bravo": ToolResult(1, "", "boom"),
            "charlie": ToolResult(-1, "", "No tests directory found"),
        }
        (self.workspace / "charts" / "delta" / ".ci.config.yaml").write_text(
            "helm-chart-test: false\n", encoding="utf-8"
        )

        sequential = self.run_mode(FakeHelm(outcomes), ExecutionMode.SEQUENTIAL, Functionality.TEST)
        parallel = self.run_mode(FakeHelm(outcomes), ExecutionMode.PARALLEL, Functionality.TEST)

        self.assertEqual(sequential, parallel)
        self.assertEqual(
            [r.status for r in parallel],
            [ChartStatus.PASSED, ChartStatus.FAILED, ChartStatus.SKIPPED, ChartStatus.DISABLED],
        )

    def test_empty_working_set(self) -> None:
        runner = ChartTaskRunner(FakeHelm(), FeatureGate(), self.workspace)
        for mode in ExecutionMode:
            self.assertEqual(asyncio.run(run_charts([], Functionality.TEST, runner, mode)), [])

    def test_sequential_error_stops_the_run(self) -> None:
        helm = FakeHelm(errors={"bravo": ToolInvocationError("helm not found")})

        with self.assertRaises(ToolInvocationError):
            self.run_mode(helm, ExecutionMode.SEQUENTIAL)
        self.assertEqual(helm.charts_called(), ["alpha", "bravo"])

    def test_parallel_error_cancels_siblings(self) -> None:
        finished = []

        class SlowHelm(FakeHelm):
            async def template(self, chart_dir, value_files, flags):
                result = await super().template(chart_dir, value_files, flags)
                finished.append(Path(chart_dir).name)
                return result

        helm = SlowHelm(
            errors={"alpha": ToolInvocationError("permission denied")},
            delays={"bravo": 5, "charlie": 5, "delta": 5},
        )

        with self.assertRaises(ToolInvocationError) as ctx:
            self.run_mode(helm, ExecutionMode.PARALLEL)

        self.assertIn("permission denied", str(ctx.exception))
        self.assertEqual(finished, [])


if __name__ == "__main__":
    unittest.main()
