"""
Chart listing: the mapping of chart identifiers to their directories.

The listing file lives at the workspace root and looks like:

    my-chart:
      dir: /workspace/charts/my-chart
      name: my-chart
      folderName: my-chart
      relativePath: charts/my-chart
      manifestPath: charts
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from .constants import CHART_FILE, LISTING_FILE, TEST_OUTPUT_DIR, ListingKeys
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

# Directories never searched for charts
SKIP_DIRS = {".git", "node_modules", TEST_OUTPUT_DIR}
# Inside a chart this holds vendored sub-charts
SUBCHART_DIR = "charts"


@dataclass(frozen=True)
class ChartEntry:
    identifier: str
    directory: Path
    relative_path: str
    name: str = ""
    folder_name: str = ""
    manifest_path: str = ""

    def to_listing_item(self) -> Dict[str, str]:
        return {
            ListingKeys.dir: str(self.directory),
            ListingKeys.name: self.name or self.identifier,
            ListingKeys.folder_name: self.folder_name or self.directory.name,
            ListingKeys.relative_path: self.relative_path,
            ListingKeys.manifest_path: self.manifest_path,
        }


def listing_path(workspace: Path) -> Path:
    return Path(workspace) / LISTING_FILE


def parse_listing(data: Optional[dict], workspace: Path) -> Dict[str, ChartEntry]:
    """Build chart entries from an already parsed listing document."""
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Listing must be a mapping of chart identifiers, got {type(data).__name__}"
        )

    entries: Dict[str, ChartEntry] = {}
    for identifier, item in data.items():
        identifier = str(identifier)
        if not isinstance(item, dict) or not item.get(ListingKeys.dir):
            raise ConfigurationError(
                f"Listing entry `{identifier}` has no `{ListingKeys.dir}`"
            )
        directory = Path(str(item[ListingKeys.dir]))
        if not directory.is_absolute():
            directory = Path(workspace) / directory
        relative_path = str(item.get(ListingKeys.relative_path) or "")
        if not relative_path:
            try:
                relative_path = directory.relative_to(workspace).as_posix()
            except ValueError:
                relative_path = str(directory)
        entries[identifier] = ChartEntry(
            identifier=identifier,
            directory=directory,
            relative_path=relative_path,
            name=str(item.get(ListingKeys.name) or identifier),
            folder_name=str(item.get(ListingKeys.folder_name) or directory.name),
            manifest_path=str(item.get(ListingKeys.manifest_path) or ""),
        )
    return entries


def load_listing(workspace: Path) -> Dict[str, ChartEntry]:
    """Load the listing file from the workspace root, preserving file order."""
    path = listing_path(workspace)
    if not path.is_file():
        raise ConfigurationError(f"Helm chart listing not found: {path}")
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Helm chart listing {path} is not valid YAML: {e}") from e
    except UnicodeDecodeError as e:
        raise ConfigurationError(f"Helm chart listing {path} is not valid UTF-8: {e}") from e

    entries = parse_listing(data, Path(workspace))
    logger.debug(f"Loaded {len(entries)} chart(s) from {path}")
    return entries


def listing_as_yaml(listing: Dict[str, ChartEntry]) -> str:
    document = {identifier: entry.to_listing_item() for identifier, entry in listing.items()}
    return yaml.safe_dump(document, sort_keys=False, default_flow_style=False)


def _read_chart_name(chart_file: Path) -> Optional[str]:
    try:
        with open(chart_file, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Skipping {chart_file}: {e}")
        return None
    if not isinstance(data, dict):
        logger.warning(f"Skipping {chart_file}: not a mapping")
        return None
    return str(data.get("name") or chart_file.parent.name)


def discover_charts(workspace: Path) -> Dict[str, ChartEntry]:
    """Walk the workspace for Chart.yaml files and build a listing from them."""
    workspace = Path(workspace)
    found: List[ChartEntry] = []

    for root, dirs, files in os.walk(workspace):
        is_chart = CHART_FILE in files
        dirs[:] = sorted(
            d for d in dirs if d not in SKIP_DIRS and not (is_chart and d == SUBCHART_DIR)
        )
        if not is_chart:
            continue
        chart_dir = Path(root)
        name = _read_chart_name(chart_dir / CHART_FILE)
        if name is None:
            continue
        relative_path = chart_dir.relative_to(workspace).as_posix()
        found.append(
            ChartEntry(
                identifier=name,
                directory=chart_dir,
                relative_path=relative_path,
                name=name,
                folder_name=chart_dir.name,
                manifest_path=Path(relative_path).parent.as_posix(),
            )
        )

    name_counts: Dict[str, int] = {}
    for entry in found:
        name_counts[entry.name] = name_counts.get(entry.name, 0) + 1

    listing: Dict[str, ChartEntry] = {}
    for entry in found:
        identifier = entry.name
        if name_counts[entry.name] > 1:
            identifier = f"{entry.name}-{entry.relative_path.replace('/', '-')}"
        listing[identifier] = ChartEntry(
            identifier=identifier,
            directory=entry.directory,
            relative_path=entry.relative_path,
            name=entry.name,
            folder_name=entry.folder_name,
            manifest_path=entry.manifest_path,
        )

    logger.info(f"Discovered {len(listing)} chart(s) under {workspace}")
    return listing


def write_listing(workspace: Path, listing: Dict[str, ChartEntry]) -> Path:
    path = listing_path(workspace)
    with open(path, "w", encoding="utf-8") as f:
        f.write(listing_as_yaml(listing))
    return path
