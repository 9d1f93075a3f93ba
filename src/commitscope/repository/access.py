"""GitPython-backed access to local repositories: clone, open, list and ref resolution."""

import os
import re
from pathlib import Path
from typing import List, Optional

from git import Repo
from git.exc import BadName, BadObject, GitCommandError, InvalidGitRepositoryError, NoSuchPathError
from loguru import logger

from commitscope.errors import InvalidRef, MissingInput, NotADirectory, NotARepository, RepositoryNotFound
from commitscope.repository.store import normalize_path, resolve_target_dir
from commitscope.types.git import DEFAULT_DEPTH

_OBJECT_ID = re.compile(r"[0-9a-fA-F]{7,}")
_UNSAFE_REF = re.compile(r"[\s\x00-\x1f\x7f:?*\[\\]|\.\.|@\{|^-")
# Ancestry suffixes such as ~2 or ^ that follow a ref name
_REV_SUFFIX = re.compile(r"[~^].*$")


def validate_ref(ref: str) -> str:
    """Reject ref names that git would read as an option, a range or a reflog selector.

    Ancestry suffixes (``main~2``, ``HEAD^``) are accepted; a revision that
    does not resolve is reported by the log as not found.
    """
    if not ref or _UNSAFE_REF.search(ref):
        raise InvalidRef(f"Invalid ref: {ref!r}")
    return ref


def head_resolves(repo: Repo) -> bool:
    """Whether ``HEAD`` points at an existing commit."""
    try:
        repo.head.commit
    except (ValueError, BadName, BadObject, GitCommandError):
        return False
    return True


class GitAccess:
    """Entry point for every operation the service performs against a repository directory."""

    def __init__(self, repos_base: str = "repos", default_depth: int = DEFAULT_DEPTH):
        self.repos_base = normalize_path(repos_base)
        self.default_depth = default_depth

    def clone(
        self,
        url: str,
        target_dir: Optional[str] = None,
        depth: Optional[int] = None,
        ref: Optional[str] = None,
    ) -> str:
        """Clone ``url`` as a single-branch, shallow copy and return its directory.

        Cloning into an existing non-empty directory is left to git, which
        refuses it.
        """
        if not url or not url.strip():
            raise MissingInput("Missing url")
        url = url.strip()
        target = resolve_target_dir(url, target_dir, self.repos_base)
        Path(target).mkdir(parents=True, exist_ok=True)

        options = {"depth": depth or self.default_depth, "single_branch": True}
        if ref:
            options["branch"] = validate_ref(ref)

        logger.info(f"Cloning {url} into {target}")
        Repo.clone_from(url, target, **options)
        return target

    def open(self, url: Optional[str] = None, target_dir: Optional[str] = None) -> str:
        """Validate an existing clone and return its directory."""
        has_url = bool(url and url.strip())
        has_dir = bool(target_dir and target_dir.strip())
        if not has_url and not has_dir:
            raise MissingInput("Missing url or dir")

        target = resolve_target_dir(url, target_dir, self.repos_base) if has_url else normalize_path(target_dir.strip())
        self.repo(target)
        return target

    def repo(self, target_dir: str) -> Repo:
        """Open ``target_dir`` as a repository, failing closed if ``HEAD`` does not resolve."""
        path = Path(target_dir)
        if not path.exists():
            raise RepositoryNotFound(f"Directory {target_dir} does not exist")
        if not path.is_dir():
            raise NotADirectory(f"{target_dir} is not a directory")

        try:
            repo = Repo(target_dir)
        except (InvalidGitRepositoryError, NoSuchPathError):
            raise NotARepository(f"{target_dir} is not a valid git repository")
        if not head_resolves(repo):
            repo.close()
            raise NotARepository(f"{target_dir} is not a valid git repository")
        return repo

    def list_repos(self, base_dir: Optional[str] = None) -> List[str]:
        """Names of the immediate subdirectories of ``base_dir`` that are usable repositories."""
        base = normalize_path(base_dir) if base_dir else self.repos_base
        try:
            entries = sorted(os.scandir(base), key=lambda e: e.name)
        except FileNotFoundError:
            return []

        repos = []
        for entry in entries:
            if not entry.is_dir():
                continue
            try:
                self.repo(f"{base}/{entry.name}").close()
            except (NotARepository, RepositoryNotFound, NotADirectory):
                continue
            repos.append(entry.name)
        return repos

    def resolve_ref_safe(self, repo: Repo, ref: str) -> Optional[str]:
        """Resolve ``ref`` to a commit id, or ``None`` when it does not exist."""
        try:
            return repo.commit(ref).hexsha
        except (BadName, BadObject, ValueError, GitCommandError):
            return None

    def deepen_if_needed(self, repo: Repo, ref: str, depth: int) -> None:
        """Best-effort fetch so that at least ``depth`` commits of history exist locally.

        Only shallow clones with an ``origin`` remote are fetched, and only when
        fewer than ``depth`` commits are reachable from ``ref``. A fetch never
        asks for less history than is present, so local history never shrinks.
        A failed fetch is logged and ignored; the caller reads whatever history
        is already present.
        """
        if depth <= 0 or not os.path.exists(os.path.join(repo.git_dir, "shallow")):
            return

        try:
            available = sum(1 for _ in repo.iter_commits(ref or "HEAD", max_count=depth))
            if available >= depth:
                return

            branch = _REV_SUFFIX.sub("", ref or "")
            if not branch or branch == "HEAD" or _OBJECT_ID.fullmatch(branch):
                # Shallow fetches need a branch name, not a detached pointer.
                branch = None if repo.head.is_detached else repo.active_branch.name

            origin = repo.remote("origin")
            if branch:
                origin.fetch(refspec=branch, depth=depth, no_tags=True)
            else:
                origin.fetch(depth=depth, no_tags=True)
            logger.debug(f"Deepened {repo.working_dir} to {depth} commits on {branch or 'default branch'}")
        except Exception as e:
            logger.debug(f"Skipping deepen of {repo.working_dir}: {e}")
