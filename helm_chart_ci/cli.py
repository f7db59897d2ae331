#!/usr/bin/env python3
"""
Command-line entry point.

    helm-chart-ci validate            # helm template every chart
    helm-chart-ci dependency-update   # helm dependency update every chart
    helm-chart-ci test                # helm unittest every chart
    helm-chart-ci listing             # discover charts, write the listing file

Inputs come from the GitHub Actions environment (GITHUB_WORKSPACE, INPUT_*)
and can be overridden with flags.
"""

import argparse
import asyncio
import functools
import logging
import os
import sys
from typing import Callable, List, Optional

from . import __version__
from .actions import JobSummary, add_mask, group, set_failed, setup_logging
from .changes import detect_changed_charts, filter_working_set
from .ci_config import FeatureGate
from .config import TRUE_VALUES, RunConfig, require_workspace
from .constants import GITHUB_WORKSPACE, INPUT_DEBUG, Functionality
from .coordinator import run_charts
from .errors import HelmChartCiError
from .helm import HelmClient
from .listing import discover_charts, listing_as_yaml, load_listing, write_listing
from .report import TABLE_HEADER, TEXTS, build_report
from .runner import ChartTaskRunner

logger = logging.getLogger(__name__)

COMMANDS = {
    "validate": Functionality.VALIDATION,
    "dependency-update": Functionality.DEPENDENCY_UPDATE,
    "test": Functionality.TEST,
}


async def execute(
    functionality: Functionality,
    config: RunConfig,
    helm: Optional[HelmClient] = None,
    detect: Callable = detect_changed_charts,
    summary: Optional[JobSummary] = None,
) -> int:
    """Run one functionality over the listing and report. Returns the exit code."""
    helm = helm or HelmClient(config.helm_binary)
    summary = summary or JobSummary(config.summary_path)
    text = TEXTS[functionality]

    listing = load_listing(config.workspace)
    logger.info(f"Processing {len(listing)} chart(s) from listing.")

    changed = None
    if config.changed_only:
        if config.token:
            add_mask(config.token)
        # git and the GitHub API block, keep them off the event loop
        loop = asyncio.get_running_loop()
        changed = await loop.run_in_executor(
            None,
            functools.partial(
                detect,
                config.workspace,
                listing,
                config.branch,
                config.base_branch,
                config.source_repo_url,
                config.target_repo_url,
                config.token,
            ),
        )
        if not changed:
            logger.info(f"No Helm charts modified in this PR. Skipping {text.title.lower()}.")
            summary.add_heading(text.heading).add_raw(
                f"✅ No Helm charts were modified in this PR. {text.title} skipped."
            ).write()
            return 0
        logger.info(f"Found {len(changed)} changed Helm chart(s): {', '.join(sorted(changed))}")

    working_set = filter_working_set(list(listing), changed)
    entries = [listing[identifier] for identifier in working_set]

    runner = ChartTaskRunner(helm, FeatureGate(), config.workspace)
    with group(text.heading):
        results = await run_charts(entries, functionality, runner, config.mode)

    report = build_report(results, functionality, len(listing), filtered=changed is not None)

    summary.add_heading(report.heading).add_raw(
        "<details><summary>Found following Helm Charts...</summary>\n\n```yaml\n"
        + listing_as_yaml(listing)
        + "\n```\n\n</details>"
    )
    summary.add_raw(f"\n\nProcessed {len(results)} chart(s).\n\n")
    summary.add_table(TABLE_HEADER, report.rows)
    summary.add_break().add_details("Legend", report.legend)
    if report.scope_note:
        summary.add_raw(f"\n\n{report.scope_note}")
    summary.write()

    logger.info(f"Summary: {report.count_line()}")

    if not report.success:
        set_failed(report.failure_message())
        return 1
    return 0


def run_listing(args) -> int:
    env = os.environ if args.workspace is None else {GITHUB_WORKSPACE: args.workspace}
    workspace = require_workspace(env)
    listing = discover_charts(workspace)
    path = write_listing(workspace, listing)
    logger.info(f"Wrote {len(listing)} chart(s) to {path}")
    return 0


def _add_run_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--changed-only",
        action="store_const",
        const=True,
        default=None,
        help="Only process charts changed between --base-branch and --branch",
    )
    parser.add_argument("--branch", default=None, help="Branch with the changes")
    parser.add_argument("--base-branch", default=None, help="Branch to compare against (default: main)")
    parser.add_argument("--source-repo-url", default=None, help="Repository holding --branch")
    parser.add_argument("--target-repo-url", default=None, help="Repository holding --base-branch")
    parser.add_argument("--token", default=None, help="Access token for fetching and the GitHub API")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--parallel", dest="parallel", action="store_const", const=True, default=None,
        help="Process all charts concurrently",
    )
    mode.add_argument(
        "--sequential", dest="parallel", action="store_const", const=False,
        help="Process charts one at a time",
    )
    parser.add_argument("--helm-binary", default=None, help="helm executable to run")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="helm-chart-ci", description="CI steps for a monorepo of Helm charts."
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--debug", action="store_const", const=True, default=None, help="Enable debug output"
    )
    parser.add_argument("--log-file", default=None, help="Also write the log to this file")
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, functionality in COMMANDS.items():
        sub = subparsers.add_parser(name, help=TEXTS[functionality].title)
        _add_run_arguments(sub)

    listing = subparsers.add_parser("listing", help="Discover charts and write the listing file")
    listing.add_argument("--workspace", default=None, help="Repository root (default: $GITHUB_WORKSPACE)")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    debug = args.debug or os.environ.get(INPUT_DEBUG, "").strip().lower() in TRUE_VALUES
    setup_logging(debug, args.log_file)

    try:
        if args.command == "listing":
            return run_listing(args)
        functionality = COMMANDS[args.command]
        config = RunConfig.from_env(functionality, args=args)
        return asyncio.run(execute(functionality, config))
    except (HelmChartCiError, OSError) as e:
        set_failed(str(e))
        return 1
    except Exception as e:
        logger.debug("Unexpected error", exc_info=True)
        set_failed(f"{type(e).__name__}: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
