"""Fans the task runner out over the working set."""

import asyncio
import logging
from enum import Enum
from typing import List, Sequence

from .constants import Functionality
from .listing import ChartEntry
from .runner import ChartResult, ChartTaskRunner

logger = logging.getLogger(__name__)


class ExecutionMode(str, Enum):
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


async def _run_sequential(
    entries: Sequence[ChartEntry], functionality: Functionality, runner: ChartTaskRunner
) -> List[ChartResult]:
    results = []
    for entry in entries:
        results.append(await runner.process(entry, functionality))
    return results


async def _run_parallel(
    entries: Sequence[ChartEntry], functionality: Functionality, runner: ChartTaskRunner
) -> List[ChartResult]:
    """
    Start every chart at once and wait for all of them.

    If any task raises, the tasks still running are cancelled (which kills
    their helm processes) and the error is re-raised. When several tasks
    failed together the one earliest in the listing wins. No partial
    results are returned in that case.
    """
    tasks = [
        asyncio.create_task(runner.process(entry, functionality), name=entry.identifier)
        for entry in entries
    ]
    if not tasks:
        return []

    done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    if pending:
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    for task in tasks:
        if task in done and not task.cancelled() and task.exception() is not None:
            raise task.exception()

    # Results follow input order, not completion order
    return [task.result() for task in tasks]


async def run_charts(
    entries: Sequence[ChartEntry],
    functionality: Functionality,
    runner: ChartTaskRunner,
    mode: ExecutionMode = ExecutionMode.SEQUENTIAL,
) -> List[ChartResult]:
    logger.info(
        f"Running {functionality.value} for {len(entries)} chart(s) in {mode.value} mode"
    )
    if mode is ExecutionMode.PARALLEL:
        return await _run_parallel(entries, functionality, runner)
    return await _run_sequential(entries, functionality, runner)
