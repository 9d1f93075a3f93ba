"""Mapping of repository URLs and paths onto local clone directories."""

import re
from typing import Optional
from urllib.parse import urlsplit

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]")
_MAX_FALLBACK_LENGTH = 50


def looks_like_url(value: str) -> bool:
    """Whether ``value`` parses as a URL with a real scheme.

    Single-letter schemes are rejected so Windows drive paths such as
    ``C:/work/repo`` are treated as paths.
    """
    try:
        parts = urlsplit(value.strip())
    except ValueError:
        return False
    return len(parts.scheme) > 1


def sanitize_repo_name(url: str) -> str:
    """Derive a stable, filesystem-safe directory name from a repository URL.

    ``https://host/user/repo.git`` becomes ``user-repo``. Input that is not a
    URL is sanitized as a whole and truncated to 50 characters.
    """
    if looks_like_url(url):
        segments = [s for s in urlsplit(url.strip()).path.split("/") if s]
        tail = segments[-2:]
        if tail and tail[-1].endswith(".git"):
            tail[-1] = tail[-1][: -len(".git")]
        name = "-".join(s for s in tail if s) or "repo"
        return _UNSAFE_CHARS.sub("-", name)

    return _UNSAFE_CHARS.sub("-", url)[:_MAX_FALLBACK_LENGTH] or "repo"


def normalize_path(path: str) -> str:
    """Unify separators to ``/`` and drop duplicate and trailing slashes."""
    normalized = re.sub(r"/+", "/", path.replace("\\", "/"))
    if len(normalized) > 1:
        normalized = normalized.rstrip("/")
    return normalized


def resolve_target_dir(url: str, explicit_dir: Optional[str], repos_base: str) -> str:
    """Pick the directory a repository lives in.

    An explicit, non-blank directory always wins; otherwise the sanitized URL
    is placed under ``repos_base``.
    """
    if explicit_dir and explicit_dir.strip():
        return normalize_path(explicit_dir.strip())
    return f"{normalize_path(repos_base)}/{sanitize_repo_name(url)}"
