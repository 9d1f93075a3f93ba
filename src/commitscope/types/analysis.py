"""Types for commit analysis requests sent to an AI provider."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from commitscope.types.git import ChangedFile


class CompactCommit(BaseModel):
    """A size-bounded summary of one commit for inclusion in a prompt."""

    index: int
    oid: str = Field(..., description="Commit hash truncated for display")
    author: str
    email: Optional[str] = None
    date: Optional[str] = Field(default=None, description="ISO-8601 author date in UTC")
    subject: str
    message: str
    files: List[ChangedFile] = Field(default_factory=list)


class CommitAnalysisPayload(BaseModel):
    """User-facing wrapper around the compacted commits."""

    task: str
    note: str
    commits: List[CompactCommit]


@dataclass
class AnalysisRequest:
    """Everything needed to ask a provider for a commit review."""

    model: str
    system_prompt: str
    payload: CommitAnalysisPayload
    messages: List[Dict[str, Any]] = field(default_factory=list)
