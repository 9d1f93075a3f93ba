"""Shared fixtures: throwaway Git repositories and a scripted AI provider."""

from pathlib import Path
from types import SimpleNamespace
from typing import Dict, Iterable, List, Optional

import pytest
from git import Actor, Repo

from commitscope.ai.providers import AIProvider, as_wire_messages
from commitscope.config import ENV_KEYS
from commitscope.types.chat import ChatChunk

AUTHOR = Actor("Ada Lovelace", "ada@example.com")


def create_commit(
    repo: Repo,
    message: str,
    files: Optional[Dict[str, str]] = None,
    delete: Iterable[str] = (),
):
    """Write ``files``, remove ``delete`` and commit the result."""
    root = Path(repo.working_dir)
    for rel_path, content in (files or {}).items():
        path = root / rel_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    if files:
        repo.index.add(list(files))
    delete = list(delete)
    if delete:
        repo.index.remove(delete, working_tree=True)
    return repo.index.commit(message, author=AUTHOR, committer=AUTHOR)


@pytest.fixture
def commit_files():
    return create_commit


@pytest.fixture
def history_repo(tmp_path):
    """Repository with three commits: A (root), B adds x.txt, C modifies x.txt."""
    repo = Repo.init(tmp_path / "fixture")
    a = create_commit(repo, "A: initial layout", {"README.md": "# Fixture\n", "src/app.py": "print('hi')\n"})
    b = create_commit(repo, "B: add x", {"x.txt": "one\n"})
    c = create_commit(repo, "C: change x", {"x.txt": "two\n"})
    return SimpleNamespace(repo=repo, path=Path(repo.working_dir), A=a, B=b, C=c)


@pytest.fixture
def clean_ai_env(monkeypatch):
    """Remove AI_* variables for the test and restore them afterwards."""
    for key in ENV_KEYS.values():
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)


class FakeProvider(AIProvider):
    """Provider that replays scripted chunks and records every call."""

    name = "fake"

    def __init__(self, chunks: Iterable[str] = (), models: Optional[List[str]] = None, error: Exception = None):
        super().__init__()
        self.chunks = list(chunks)
        self.models = models or []
        self.error = error
        self.calls = []

    async def chat(self, model, messages, stream=True):
        self.calls.append({"model": model, "messages": as_wire_messages(messages), "stream": stream})
        if self.error is not None:
            raise self.error
        for text in self.chunks:
            yield ChatChunk.of(text)

    async def list_models(self):
        return list(self.models)


@pytest.fixture
def fake_provider():
    return FakeProvider(chunks=["Hello ", "", "World"], models=["codellama:latest", "llama3"])
