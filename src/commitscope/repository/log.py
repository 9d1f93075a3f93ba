"""Commit log assembly with per-commit changed files."""

from typing import List, Optional

from git import Repo
from git.objects.commit import Commit
from git.util import Actor
from loguru import logger

from commitscope.repository.access import GitAccess, validate_ref
from commitscope.repository.store import normalize_path
from commitscope.repository.tree_diff import list_changed_files
from commitscope.types.git import ChangedFile, CommitRecord, LogResult, Signature, clamp_depth


def _signature(actor: Actor, timestamp: int) -> Signature:
    return Signature(name=actor.name or "", email=actor.email or None, timestamp=timestamp)


def _changed_files(repo: Repo, commit: Commit) -> List[ChangedFile]:
    """Files changed against the first parent; merges are summarized against that parent only."""
    parent_oid = commit.parents[0].hexsha if commit.parents else None
    try:
        return list_changed_files(repo, parent_oid, commit.hexsha)
    except Exception as e:
        logger.warning(f"Could not list changed files for {commit.hexsha[:8]}: {e}")
        return []


def _create_commit_record(repo: Repo, commit: Commit) -> CommitRecord:
    """Create a CommitRecord from a GitPython Commit."""
    return CommitRecord(
        oid=commit.hexsha,
        message=commit.message,
        author=_signature(commit.author, commit.authored_date),
        committer=_signature(commit.committer, commit.committed_date),
        parents=[p.hexsha for p in commit.parents],
        files=_changed_files(repo, commit),
    )


def read_log_with_files(
    access: GitAccess,
    target_dir: str,
    ref: str = "HEAD",
    depth: Optional[int] = None,
) -> LogResult:
    """Read up to ``depth`` commits reachable from ``ref`` with their changed files.

    An unknown ref is an ordinary outcome: the result is empty and carries a
    note naming the ref. A commit whose tree cannot be compared keeps its
    place in the result with an empty file list.
    """
    ref = validate_ref(ref or "HEAD")
    window = clamp_depth(depth if depth is not None else access.default_depth)
    target_dir = normalize_path(target_dir)

    repo = access.repo(target_dir)
    try:
        resolved = access.resolve_ref_safe(repo, ref)
        if resolved is None:
            logger.info(f"Ref {ref} not found in {target_dir}")
            return LogResult(commits=[], note=f"Ref {ref} not found in {target_dir}")

        access.deepen_if_needed(repo, ref, window)

        commits = [_create_commit_record(repo, c) for c in repo.iter_commits(resolved, max_count=window)]
        logger.info(f"Read {len(commits)} commits from {target_dir} at {ref}")
        return LogResult(commits=commits)
    finally:
        repo.close()
