"""Types describing commit history as returned by the log endpoint."""

import math
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

FileStatus = Literal["added", "modified", "deleted"]

DEFAULT_DEPTH = 25
MAX_DEPTH = 1000


class ChangedFile(BaseModel):
    """A single leaf path that differs between a commit and its first parent."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., description="Path of the blob relative to the repository root")
    status: FileStatus = Field(..., description="How the path changed")


class Signature(BaseModel):
    """Author or committer identity attached to a commit."""

    model_config = ConfigDict(frozen=True)

    name: str
    email: Optional[str] = None
    timestamp: int = Field(..., description="Seconds since the epoch")


class CommitRecord(BaseModel):
    """Structured representation of a Git commit with its changed files."""

    model_config = ConfigDict(frozen=True)

    oid: str = Field(..., description="The commit hash")
    message: str = Field(..., description="The full commit message")
    author: Signature
    committer: Signature
    parents: List[str] = Field(default_factory=list, description="Parent commit hashes, first parent first")
    files: List[ChangedFile] = Field(default_factory=list, description="Files changed against the first parent")


class LogResult(BaseModel):
    """Commits read from a repository, with an optional explanation when empty."""

    commits: List[CommitRecord] = Field(default_factory=list)
    note: Optional[str] = None


class LogQuery(BaseModel):
    """Ref and window size for a single log request."""

    ref: str = "HEAD"
    depth: int = DEFAULT_DEPTH

    @classmethod
    def from_params(
        cls,
        ref: Optional[str] = None,
        depth: Optional[str] = None,
        limit: Optional[str] = None,
        default_depth: int = DEFAULT_DEPTH,
    ) -> "LogQuery":
        """Build a query from raw query-string values.

        ``limit`` wins over ``depth``. Values that are missing or not numeric
        fall back to ``default_depth``; numeric values are clamped to
        ``[1, MAX_DEPTH]``.
        """
        window = _parse_depth(limit)
        if window is None:
            window = _parse_depth(depth)
        if window is None:
            window = default_depth
        return cls(ref=ref or "HEAD", depth=clamp_depth(window))


def clamp_depth(depth: int) -> int:
    return max(1, min(MAX_DEPTH, int(depth)))


def _parse_depth(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return int(number)
