"""Git state polling for the dashboard header.

Git state belongs to the working tree, not to the agent session, so the
lifecycle manager never resets it. It is polled on its own interval and
handed straight to the rendering layer.
"""

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

GIT_TIMEOUT = 10


@dataclass(frozen=True)
class GitSnapshot:
    """Working tree summary."""

    is_repo: bool = False
    branch: str = ""
    commit_oid: str = ""
    upstream: str = ""
    ahead: int = 0
    behind: int = 0
    staged: int = 0
    modified: int = 0
    untracked: int = 0
    conflicted: int = 0

    @property
    def dirty(self) -> bool:
        """True when anything is staged, modified, untracked or conflicted."""
        return bool(self.staged or self.modified or self.untracked or self.conflicted)

    @property
    def branch_display(self) -> str:
        """Branch name, or a short oid when detached."""
        if self.branch and self.branch != "(detached)":
            return self.branch
        if self.commit_oid:
            return f"(detached @ {self.commit_oid[:8]})"
        return "(detached)"


def _ahead_behind(value: str) -> tuple[int, int]:
    # "+N -M"
    parts = value.split()
    if len(parts) != 2:
        return 0, 0
    try:
        return int(parts[0]), abs(int(parts[1]))
    except ValueError:
        return 0, 0


def parse_porcelain_status(output: str) -> GitSnapshot:
    """Summarize ``git status --porcelain=v2 --branch`` output.

    Only counts are kept: ordinary and renamed entries count once toward
    staged when their index column is set and once toward modified when
    their worktree column is set.
    """
    headers: dict[str, str] = {}
    counts = {"staged": 0, "modified": 0, "untracked": 0, "conflicted": 0}

    for line in output.splitlines():
        kind, _, rest = line.partition(" ")
        if kind == "#":
            key, _, value = rest.partition(" ")
            headers[key] = value
        elif kind in ("1", "2"):
            xy = rest[:2]
            if len(xy) == 2:
                counts["staged"] += xy[0] != "."
                counts["modified"] += xy[1] != "."
        elif kind == "u":
            counts["conflicted"] += 1
        elif kind == "?":
            counts["untracked"] += 1

    ahead, behind = _ahead_behind(headers.get("branch.ab", ""))
    return GitSnapshot(
        is_repo=True,
        branch=headers.get("branch.head", ""),
        commit_oid=headers.get("branch.oid", ""),
        upstream=headers.get("branch.upstream", ""),
        ahead=ahead,
        behind=behind,
        **counts,
    )


def _run_git_command(args: list[str], repo_path: Path) -> str | None:
    """Run ``git -C repo_path *args``.

    Returns:
        stdout, or None when git is missing, times out or exits non-zero.
    """
    try:
        result = subprocess.run(
            ["git", "-C", str(repo_path), *args],
            capture_output=True,
            text=True,
            timeout=GIT_TIMEOUT,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug("git %s failed: %s", " ".join(args), e)
        return None
    if result.returncode != 0:
        return None
    return result.stdout


def collect_git_snapshot(repo_path: Path) -> GitSnapshot:
    """Collect the working tree summary for a repository.

    Args:
        repo_path: Directory inside the repository.

    Returns:
        GitSnapshot; ``is_repo`` is False when git fails or the path is not a repo.
    """
    output = _run_git_command(["status", "--porcelain=v2", "--branch"], repo_path)
    if output is None:
        return GitSnapshot()
    return parse_porcelain_status(output)
