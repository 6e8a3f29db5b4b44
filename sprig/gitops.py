from __future__ import annotations

import logging
import re
from pathlib import Path

import git

from .errors import SprigError

log = logging.getLogger(__name__)

DIFF_FILE_HEADER = re.compile(r"^diff --git a/(.+?) b/", re.MULTILINE)


def repo_from_dir(base_dir: Path) -> git.Repo | None:
    current = base_dir.resolve()
    while True:
        if (current / ".git").exists():
            return git.Repo(current)
        if current == current.parent:
            return None
        current = current.parent


def require_repo(base_dir: Path) -> git.Repo:
    repo = repo_from_dir(base_dir)
    if repo is None:
        raise SprigError("Not a git repository")
    return repo


def relative_paths(repo: git.Repo, paths: list[Path]) -> list[str]:
    repo_root = Path(repo.working_tree_dir or ".").resolve()
    relpaths = list(map(lambda p: str(p.resolve().relative_to(repo_root)), paths or []))
    return list(filter(lambda s: bool(s and s.strip()), relpaths))


def stage_changes(repo: git.Repo, new_files: list[Path] | None = None) -> None:
    """Stage modified tracked files plus any files sprig created."""
    repo.git.add("--update")
    relpaths = relative_paths(repo, new_files or [])
    if relpaths:
        repo.git.add("--", *relpaths)


def staged_diff(repo: git.Repo) -> str:
    return repo.git.diff("--cached")


def diff_against(repo: git.Repo, base: str = "HEAD") -> str:
    """Diff the working tree against `base` (a branch, tag or commit)."""
    if not repo.head.is_valid():
        raise SprigError("No commits to compare against")
    try:
        return repo.git.diff(base, "--")
    except git.GitCommandError as e:
        raise SprigError(f"git diff {base} failed: {e.stderr.strip() or e}") from e


def changed_files(diff: str) -> list[str]:
    return list(dict.fromkeys(DIFF_FILE_HEADER.findall(diff or "")))


def commit_staged(repo: git.Repo, message: str) -> str:
    try:
        commit = repo.index.commit(message)
    except (git.GitError, ValueError) as e:
        raise SprigError(f"git commit failed: {e}") from e
    log.debug("Committed %s", commit.hexsha[:8])
    return commit.hexsha


def undo_last_commit(base_dir: Path) -> str:
    repo = require_repo(base_dir)
    if not repo.head.is_valid():
        raise SprigError("No commits to undo")
    if not repo.head.commit.parents:
        raise SprigError("No parent commit to reset to")

    repo.git.reset("--hard", "HEAD~1")
    return repo.head.commit.hexsha


def redo_last_commit(base_dir: Path) -> str | None:
    repo = require_repo(base_dir)
    if not repo.head.is_valid():
        raise SprigError("No commits to redo")
    if not (Path(repo.git_dir) / "ORIG_HEAD").exists():
        raise SprigError("No ORIG_HEAD found to redo to")

    orig_head = repo.commit("ORIG_HEAD")
    if orig_head.hexsha == repo.head.commit.hexsha:
        return None

    repo.git.reset("--hard", orig_head.hexsha)
    return orig_head.hexsha
