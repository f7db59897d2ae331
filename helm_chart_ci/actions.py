"""
GitHub Actions plumbing: workflow commands on stdout, the job summary file,
and a logging handler that routes records through both.
"""

import html
import logging
import os
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import List, Optional, Sequence

from .constants import GITHUB_STEP_SUMMARY

logger = logging.getLogger(__name__)


def _escape_data(value: str) -> str:
    return value.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


def issue_command(command: str, message: str = "", stream=None) -> None:
    stream = stream or sys.stdout
    stream.write(f"::{command}::{_escape_data(message)}\n")
    stream.flush()


def add_mask(value: str) -> None:
    if value:
        issue_command("add-mask", value)


@contextmanager
def group(title: str):
    issue_command("group", title)
    try:
        yield
    finally:
        issue_command("endgroup")


def set_failed(message: str) -> None:
    """Report the run as failed. The caller decides the exit code."""
    logger.error(message)


class WorkflowCommandHandler(logging.StreamHandler):
    """Writes DEBUG/WARNING/ERROR records as workflow commands, INFO as plain lines."""

    COMMANDS = {
        logging.DEBUG: "debug",
        logging.WARNING: "warning",
        logging.ERROR: "error",
        logging.CRITICAL: "error",
    }

    def __init__(self, stream=None):
        super().__init__(stream or sys.stdout)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        command = self.COMMANDS.get(record.levelno)
        if command is None:
            return message
        return f"::{command}::{_escape_data(message)}"


def setup_logging(debug: bool = False, log_file: Optional[Path] = None) -> None:
    handlers: List[logging.Handler] = [WorkflowCommandHandler()]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        handlers.append(file_handler)

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(message)s",
        handlers=handlers,
        force=True,
    )


class JobSummary:
    """
    Buffers markdown/HTML for the job summary page.

    Mirrors the toolkit's summary builder: add_* calls chain, write() appends
    the buffer to $GITHUB_STEP_SUMMARY and clears it.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path if path is not None else os.environ.get(GITHUB_STEP_SUMMARY)
        self._buffer: List[str] = []

    def add_raw(self, text: str, add_eol: bool = False) -> "JobSummary":
        self._buffer.append(text + ("\n" if add_eol else ""))
        return self

    def add_eol(self) -> "JobSummary":
        return self.add_raw("\n")

    def add_heading(self, text: str, level: int = 1) -> "JobSummary":
        level = min(max(level, 1), 6)
        return self.add_raw(f"<h{level}>{html.escape(text)}</h{level}>", add_eol=True)

    def add_break(self) -> "JobSummary":
        return self.add_raw("<br>", add_eol=True)

    def add_details(self, label: str, content: str) -> "JobSummary":
        return self.add_raw(
            f"<details><summary>{html.escape(label)}</summary>\n\n{content}\n\n</details>",
            add_eol=True,
        )

    def add_table(self, header: Sequence[str], rows: Sequence[Sequence[str]]) -> "JobSummary":
        def cell(value: str) -> str:
            return str(value).replace("|", "\\|").replace("\n", " ")

        lines = [
            "| " + " | ".join(cell(h) for h in header) + " |",
            "| " + " | ".join("---" for _ in header) + " |",
        ]
        lines.extend("| " + " | ".join(cell(c) for c in row) + " |" for row in rows)
        return self.add_raw("\n" + "\n".join(lines) + "\n", add_eol=True)

    def stringify(self) -> str:
        return "".join(self._buffer)

    def is_empty(self) -> bool:
        return not self._buffer

    def clear(self) -> "JobSummary":
        self._buffer = []
        return self

    def write(self) -> "JobSummary":
        content = self.stringify()
        if self.path:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(content)
        else:
            logger.info(f"{GITHUB_STEP_SUMMARY} not set, summary follows:\n{content}")
        return self.clear()
