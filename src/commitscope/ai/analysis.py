"""Commit analysis request building: normalization, compaction and prompt rendering."""

import json
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Sequence

from langchain_core.prompts import ChatPromptTemplate
from loguru import logger

from commitscope.config import AIConfig, DEFAULT_LOCAL_MODEL
from commitscope.errors import MissingInput
from commitscope.types.analysis import AnalysisRequest, CommitAnalysisPayload, CompactCommit
from commitscope.types.git import ChangedFile, CommitRecord, Signature

DEFAULT_MAX_COMMITS = 100
MAX_COMMITS_CEILING = 1000
MAX_MESSAGE_CHARS = 4000
MAX_FILES_PER_COMMIT = 200
OID_DISPLAY_LENGTH = 12

ANALYSIS_TASK = "Analyze the following commits"
DEFAULT_INSTRUCTIONS = "Focus on changes, risks, and tests. Use clear bullet points."

ANALYSIS_SYSTEM_PROMPT = """You are a senior engineer assisting with Git history review. Analyze the following commits and provide:
1) A concise summary of key changes
2) Grouping by area/module if apparent
3) Potential risks/breaking changes
4) Suggested tests and verification steps
5) Notable contributors and hotspots.
Keep it structured with short sections and bullet points."""

ANALYSIS_PROMPT = ChatPromptTemplate.from_messages(
    [
        ("system", ANALYSIS_SYSTEM_PROMPT),
        ("human", "{analysis_request}"),
    ]
)

_ROLE_BY_MESSAGE_TYPE = {"system": "system", "human": "user", "ai": "assistant"}

CommitShape = Literal["flat", "nested"]


def commit_shape(raw: Dict[str, Any]) -> CommitShape:
    """Tell log-assembler output (``flat``) from records that also carry a ``commit`` sub-object."""
    return "nested" if isinstance(raw.get("commit"), dict) else "flat"


def _first(values: Sequence[Any]) -> Any:
    for value in values:
        if value:
            return value
    return None


def _signature(parts: Sequence[Any]) -> Optional[Signature]:
    """Build a signature from candidate dicts, taking each field from the first that has it."""
    parts = [p for p in parts if isinstance(p, dict)]
    if not parts:
        return None
    timestamp = next((p["timestamp"] for p in parts if isinstance(p.get("timestamp"), (int, float)) and p["timestamp"]), 0)
    return Signature(
        name=str(_first([p.get("name") for p in parts]) or "Unknown"),
        email=_first([p.get("email") for p in parts]),
        timestamp=int(timestamp),
    )


def _files(raw: Any) -> List[ChangedFile]:
    if not isinstance(raw, list):
        return []
    files = []
    for entry in raw[:MAX_FILES_PER_COMMIT]:
        if not isinstance(entry, dict):
            continue
        status = entry.get("status")
        if status not in ("added", "modified", "deleted"):
            status = "modified"
        files.append(ChangedFile(path=str(entry.get("path") or ""), status=status))
    return files


def normalize_commit(raw: Dict[str, Any]) -> CommitRecord:
    """Turn either accepted commit shape into a canonical :class:`CommitRecord`.

    For the nested shape, every field missing at the top level is read from
    the ``commit`` sub-object, down to single author and committer fields.
    Missing authors become ``Unknown`` with a zero timestamp, which is
    reported as an absent date.
    """
    sources = [raw]
    if commit_shape(raw) == "nested":
        sources.append(raw["commit"])

    def pick(key: str) -> Any:
        return _first([source.get(key) for source in sources])

    unknown = Signature(name="Unknown", timestamp=0)
    author = _signature([source.get("author") for source in sources]) or unknown
    return CommitRecord(
        oid=str(pick("oid") or ""),
        message=str(pick("message") or ""),
        author=author,
        committer=_signature([source.get("committer") for source in sources]) or author,
        files=_files(raw.get("files")),
    )


def _iso_date(timestamp: int) -> Optional[str]:
    if not timestamp:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.000Z")


def compact_commit(index: int, record: CommitRecord) -> CompactCommit:
    return CompactCommit(
        index=index,
        oid=record.oid[:OID_DISPLAY_LENGTH],
        author=record.author.name or "Unknown",
        email=record.author.email,
        date=_iso_date(record.author.timestamp),
        subject=record.message.split("\n")[0],
        message=record.message[:MAX_MESSAGE_CHARS],
        files=record.files[:MAX_FILES_PER_COMMIT],
    )


def clamp_max_commits(value: Any) -> int:
    """Clamp a requested cap to ``[1, 1000]``; anything non-numeric means the default of 100."""
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        return DEFAULT_MAX_COMMITS
    return min(max(1, int(value)), MAX_COMMITS_CEILING)


def build_analysis_request(
    commits: Sequence[Any],
    config: AIConfig,
    model: Optional[str] = None,
    max_commits: Any = None,
    instructions: Optional[str] = None,
) -> AnalysisRequest:
    """Compact ``commits`` into a bounded review request for ``model``.

    Limits are applied silently: the list is cut to the cap, each message to
    4000 characters, each file list to 200 entries and each oid to 12
    characters.
    """
    if not isinstance(commits, (list, tuple)) or not commits:
        raise MissingInput("Missing commits array")
    if any(not isinstance(c, dict) for c in commits):
        raise MissingInput("Every commit must be a JSON object")

    cap = clamp_max_commits(max_commits)
    compacted = [compact_commit(i, normalize_commit(raw)) for i, raw in enumerate(commits[:cap])]
    if len(commits) > cap:
        logger.debug(f"Analysis request truncated from {len(commits)} to {cap} commits")

    payload = CommitAnalysisPayload(
        task=ANALYSIS_TASK,
        note=instructions if isinstance(instructions, str) and instructions.strip() else DEFAULT_INSTRUCTIONS,
        commits=compacted,
    )
    selected_model = model.strip() if isinstance(model, str) and model.strip() else None

    rendered = ANALYSIS_PROMPT.format_messages(
        analysis_request=json.dumps(payload.model_dump(mode="json", exclude_none=True))
    )
    messages = [{"role": _ROLE_BY_MESSAGE_TYPE[m.type], "content": m.content} for m in rendered]

    return AnalysisRequest(
        model=selected_model or config.default_model or DEFAULT_LOCAL_MODEL,
        system_prompt=ANALYSIS_SYSTEM_PROMPT,
        payload=payload,
        messages=messages,
    )
