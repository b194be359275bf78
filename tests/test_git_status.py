"""Tests for cchud.git_status module."""

import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

from cchud.git_status import (
    GitSnapshot,
    _run_git_command,
    collect_git_snapshot,
    parse_porcelain_status,
)

HEADER = "# branch.oid 0123456789abcdef\n# branch.head main\n"


class TestParsePorcelainStatus:
    """Tests for parsing git status --porcelain=v2 --branch output."""

    def test_clean_repo(self) -> None:
        output = HEADER + "# branch.upstream origin/main\n# branch.ab +0 -0\n"
        snapshot = parse_porcelain_status(output)
        assert snapshot.is_repo
        assert snapshot.branch == "main"
        assert snapshot.upstream == "origin/main"
        assert snapshot.ahead == 0
        assert snapshot.behind == 0
        assert not snapshot.dirty

    def test_ahead_behind(self) -> None:
        snapshot = parse_porcelain_status(HEADER + "# branch.ab +3 -2\n")
        assert snapshot.ahead == 3
        assert snapshot.behind == 2

    def test_modified_and_staged(self) -> None:
        output = (
            HEADER
            + "1 .M N... 100644 100644 100644 abc123 def456 src/a.py\n"
            + "1 M. N... 100644 100644 100644 abc123 def456 src/b.py\n"
            + "1 MM N... 100644 100644 100644 abc123 def456 src/c.py\n"
        )
        snapshot = parse_porcelain_status(output)
        assert snapshot.staged == 2
        assert snapshot.modified == 2
        assert snapshot.dirty

    def test_renamed_counts_as_staged(self) -> None:
        output = HEADER + "2 R. N... 100644 100644 100644 abc123 def456 R100 new.py\told.py\n"
        assert parse_porcelain_status(output).staged == 1

    def test_untracked_and_conflicted(self) -> None:
        output = HEADER + "? new_file.py\n? other.py\nu UU N... 100644 100644 100644 100644 a b c conflict.py\n"
        snapshot = parse_porcelain_status(output)
        assert snapshot.untracked == 2
        assert snapshot.conflicted == 1

    def test_ignored_lines_skipped(self) -> None:
        snapshot = parse_porcelain_status(HEADER + "! build/\n")
        assert not snapshot.dirty

    def test_empty_output(self) -> None:
        snapshot = parse_porcelain_status("")
        assert snapshot.is_repo
        assert snapshot.branch == ""


class TestBranchDisplay:
    """Tests for GitSnapshot.branch_display."""

    def test_named_branch(self) -> None:
        assert GitSnapshot(branch="feature/x").branch_display == "feature/x"

    def test_detached(self) -> None:
        snapshot = GitSnapshot(branch="(detached)", commit_oid="0123456789abcdef")
        assert snapshot.branch_display == "(detached @ 01234567)"

    def test_unknown(self) -> None:
        assert GitSnapshot().branch_display == "(detached)"


class TestRunGitCommand:
    """Tests for _run_git_command helper."""

    def test_successful_command(self, tmp_path: Path) -> None:
        with patch("cchud.git_status.subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0, stdout="output\n", stderr="")
            assert _run_git_command(["status"], tmp_path) == "output\n"

    def test_failed_command_returns_none(self, tmp_path: Path) -> None:
        with patch("cchud.git_status.subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=128, stdout="", stderr="fatal: not a git repo")
            assert _run_git_command(["status"], tmp_path) is None

    def test_missing_git_returns_none(self, tmp_path: Path) -> None:
        with patch("cchud.git_status.subprocess.run") as mock_run:
            mock_run.side_effect = FileNotFoundError("git not found")
            assert _run_git_command(["status"], tmp_path) is None

    def test_timeout_returns_none(self, tmp_path: Path) -> None:
        with patch("cchud.git_status.subprocess.run") as mock_run:
            mock_run.side_effect = subprocess.TimeoutExpired(cmd="git", timeout=10)
            assert _run_git_command(["status"], tmp_path) is None


class TestCollectGitSnapshot:
    """Tests for collect_git_snapshot function."""

    def test_not_a_repo(self, tmp_path: Path) -> None:
        with patch("cchud.git_status._run_git_command", return_value=None):
            assert collect_git_snapshot(tmp_path) == GitSnapshot()

    def test_parses_status(self, tmp_path: Path) -> None:
        with patch("cchud.git_status._run_git_command", return_value=HEADER + "? a.txt\n") as mock_run:
            snapshot = collect_git_snapshot(tmp_path)
        mock_run.assert_called_once_with(["status", "--porcelain=v2", "--branch"], tmp_path)
        assert snapshot.branch == "main"
        assert snapshot.untracked == 1
