"""
Change detection: which charts did this change touch.

Changed files come from `git diff` between the base and compare refs, or from
the GitHub compare API when the two refs live in different GitHub
repositories (fork pull requests), so the fork never has to be fetched.
"""

import logging
import re
import subprocess
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple
from urllib.parse import quote, urlsplit, urlunsplit

import requests
from ratelimit import limits, sleep_and_retry

from .constants import LISTING_FILE
from .errors import ChangeDetectionError, ToolInvocationError
from .listing import ChartEntry

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
COMPARE_PAGE_SIZE = 100
# The compare API stops listing files after this many
COMPARE_MAX_FILES = 3000
LOCAL_REF_PREFIX = "refs/remotes/helm-chart-ci"

GITHUB_URL_PATTERN = re.compile(
    r"^(?:https?://(?:[^@/]+@)?github\.com/|git@github\.com:)"
    r"(?P<owner>[^/]+)/(?P<repo>[^/]+?)(?:\.git)?/?$"
)


def filter_working_set(all_ids: Sequence[str], changed: Optional[Set[str]]) -> List[str]:
    """Charts to process, in listing order. None means no filtering."""
    if changed is None:
        return list(all_ids)
    return [chart for chart in all_ids if chart in changed]


def charts_for_files(files: Iterable[str], listing: Dict[str, ChartEntry]) -> Set[str]:
    """Map changed repository files onto the charts whose folder contains them."""
    changed: Set[str] = set()
    for file in files:
        path = Path(file).as_posix().lstrip("/")
        if not path or path == LISTING_FILE:
            continue
        for identifier, entry in listing.items():
            prefix = entry.relative_path.strip("/")
            if prefix in ("", ".") or path == prefix or path.startswith(prefix + "/"):
                changed.add(identifier)
    return changed


def parse_github_url(url: Optional[str]) -> Optional[Tuple[str, str]]:
    if not url:
        return None
    match = GITHUB_URL_PATTERN.match(url.strip())
    if not match:
        return None
    return match.group("owner"), match.group("repo")


def authenticated_url(url: str, token: Optional[str]) -> str:
    """Embed a token into an HTTPS remote URL. Other URLs are returned unchanged."""
    if not token or not url.startswith("https://"):
        return url
    parts = urlsplit(url)
    host = parts.netloc.rsplit("@", 1)[-1]
    netloc = f"x-access-token:{quote(token, safe='')}@{host}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


def _mask(text: str, token: Optional[str]) -> str:
    if token:
        text = text.replace(token, "***").replace(quote(token, safe=""), "***")
    return text


# --- git ---


def _git(args: List[str], cwd: Path, token: Optional[str] = None) -> str:
    cmd = ["git", *args]
    logger.debug(f"Running: {_mask(' '.join(cmd), token)}")
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            check=True,
        )
    except OSError as e:
        raise ToolInvocationError(f"Failed to run `git`: {e}") from e
    except subprocess.CalledProcessError as e:
        raise ChangeDetectionError(
            _mask(f"`git {args[0]}` failed: {(e.stderr or e.stdout or '').strip()}", token)
        ) from None
    return result.stdout


def _fetch(workspace: Path, remote: str, branch: str, local_ref: str, token: Optional[str]) -> str:
    _git(
        ["fetch", "--no-tags", authenticated_url(remote, token), f"+refs/heads/{branch}:{local_ref}"],
        workspace,
        token,
    )
    return local_ref


def git_changed_files(
    workspace: Path,
    branch: Optional[str],
    base_branch: str,
    source_repo_url: Optional[str] = None,
    target_repo_url: Optional[str] = None,
    token: Optional[str] = None,
) -> List[str]:
    base_ref = _fetch(
        workspace, target_repo_url or "origin", base_branch, f"{LOCAL_REF_PREFIX}/base", token
    )
    if branch:
        compare_ref = _fetch(
            workspace, source_repo_url or "origin", branch, f"{LOCAL_REF_PREFIX}/compare", token
        )
    else:
        compare_ref = "HEAD"

    output = _git(["diff", "--name-only", f"{base_ref}...{compare_ref}"], workspace, token)
    return [line.strip() for line in output.splitlines() if line.strip()]


# --- GitHub compare API ---


@sleep_and_retry
@limits(calls=5, period=1)
def _get_compare_page(
    session: requests.Session, url: str, page: int, token: Optional[str]
) -> dict:
    headers = {
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": "2022-11-28",
    }
    if token:
        headers["Authorization"] = f"Bearer {token}"
    response = session.get(
        url, headers=headers, params={"per_page": COMPARE_PAGE_SIZE, "page": page}, timeout=30
    )
    response.raise_for_status()
    return response.json()


def github_changed_files(
    target: Tuple[str, str],
    source: Tuple[str, str],
    branch: str,
    base_branch: str,
    token: Optional[str] = None,
    session: Optional[requests.Session] = None,
) -> List[str]:
    """Files changed on `source:branch` relative to `target:base_branch`."""
    target_owner, target_repo = target
    source_owner, source_repo = source
    head = f"{source_owner}:{source_repo}:{branch}"
    url = f"{GITHUB_API_URL}/repos/{target_owner}/{target_repo}/compare/{base_branch}...{head}"
    session = session or requests.Session()

    files: List[str] = []
    page = 1
    while True:
        try:
            data = _get_compare_page(session, url, page, token)
        except requests.RequestException as e:
            raise ChangeDetectionError(_mask(f"GitHub compare request failed: {e}", token)) from None
        except ValueError as e:
            raise ChangeDetectionError(f"GitHub compare response is not JSON: {e}") from None
        page_files = data.get("files") or []
        for item in page_files:
            if not isinstance(item, dict) or not item.get("filename"):
                raise ChangeDetectionError(
                    f"GitHub compare response lists a file without a name: {item!r}"
                )
            files.append(item["filename"])
            # Renames touch the chart the file came from as well
            if item.get("previous_filename"):
                files.append(item["previous_filename"])
        if len(page_files) < COMPARE_PAGE_SIZE:
            break
        if page * COMPARE_PAGE_SIZE >= COMPARE_MAX_FILES:
            logger.warning(f"Compare result may be truncated at {COMPARE_MAX_FILES} files")
            break
        page += 1
    return files


def detect_changed_charts(
    workspace: Path,
    listing: Dict[str, ChartEntry],
    branch: Optional[str],
    base_branch: str,
    source_repo_url: Optional[str] = None,
    target_repo_url: Optional[str] = None,
    token: Optional[str] = None,
    session: Optional[requests.Session] = None,
) -> Set[str]:
    """Identifiers of the listed charts touched between base_branch and branch."""
    source = parse_github_url(source_repo_url)
    target = parse_github_url(target_repo_url)

    if branch and source and target and source != target:
        logger.info(
            f"Comparing {target[0]}/{target[1]}:{base_branch} with "
            f"{source[0]}/{source[1]}:{branch} via the GitHub API"
        )
        files = github_changed_files(target, source, branch, base_branch, token, session)
    else:
        logger.info(f"Comparing {base_branch} with {branch or 'HEAD'} via git")
        files = git_changed_files(
            Path(workspace), branch, base_branch, source_repo_url, target_repo_url, token
        )

    logger.debug(f"{len(files)} changed file(s)")
    return charts_for_files(files, listing)
