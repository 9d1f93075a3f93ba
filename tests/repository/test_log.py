"""Tests for assembling commit logs with changed files."""

import shutil

import pytest

from commitscope.errors import InvalidRef, RepositoryNotFound
from commitscope.repository import log as log_module
from commitscope.repository.access import GitAccess
from commitscope.repository.log import read_log_with_files
from commitscope.types.git import ChangedFile


@pytest.fixture
def access(tmp_path):
    return GitAccess(repos_base=str(tmp_path / "repos"), default_depth=25)


def files_of(commit):
    return [(f.path, f.status) for f in commit.files]


def test_log_lists_commits_with_changed_files(access, history_repo):
    result = read_log_with_files(access, str(history_repo.path), depth=10)

    assert result.note is None
    assert [c.oid for c in result.commits] == [history_repo.C.hexsha, history_repo.B.hexsha, history_repo.A.hexsha]

    c, b, a = result.commits
    assert files_of(c) == [("x.txt", "modified")]
    assert files_of(b) == [("x.txt", "added")]
    assert files_of(a) == [("README.md", "added"), ("src/app.py", "added")]


def test_log_records_authors_and_parents(access, history_repo):
    c = read_log_with_files(access, str(history_repo.path)).commits[0]

    assert c.message.strip() == "C: change x"
    assert c.author.name == "Ada Lovelace"
    assert c.author.email == "ada@example.com"
    assert c.author.timestamp == history_repo.C.authored_date
    assert c.committer.timestamp == history_repo.C.committed_date
    assert c.parents == [history_repo.B.hexsha]


def test_log_respects_depth(access, history_repo):
    result = read_log_with_files(access, str(history_repo.path), depth=2)
    assert [c.oid for c in result.commits] == [history_repo.C.hexsha, history_repo.B.hexsha]


def test_log_from_named_ref(access, history_repo):
    history_repo.repo.create_head("older", history_repo.B)
    result = read_log_with_files(access, str(history_repo.path), ref="older")
    assert [c.oid for c in result.commits] == [history_repo.B.hexsha, history_repo.A.hexsha]


def test_unknown_ref_returns_note(access, history_repo):
    result = read_log_with_files(access, str(history_repo.path), ref="no-such-branch")

    assert result.commits == []
    assert "no-such-branch" in result.note


def test_invalid_ref_is_rejected(access, history_repo):
    with pytest.raises(InvalidRef):
        read_log_with_files(access, str(history_repo.path), ref="--output=/tmp/x")


def test_missing_directory_fails(access, tmp_path):
    with pytest.raises(RepositoryNotFound):
        read_log_with_files(access, str(tmp_path / "missing"))


def test_failing_diff_degrades_to_empty_file_list(access, history_repo, monkeypatch):
    real = log_module.list_changed_files
    broken = history_repo.B.hexsha

    def flaky(repo, old_oid, new_oid):
        if new_oid == broken:
            raise ValueError("corrupt tree")
        return real(repo, old_oid, new_oid)

    monkeypatch.setattr(log_module, "list_changed_files", flaky)
    c, b, a = read_log_with_files(access, str(history_repo.path)).commits

    assert b.oid == broken
    assert b.files == []
    assert c.files == [ChangedFile(path="x.txt", status="modified")]
    assert files_of(a) == [("README.md", "added"), ("src/app.py", "added")]


def test_merge_commit_is_diffed_against_first_parent(access, history_repo):
    repo = history_repo.repo
    merge = repo.index.commit(
        "Merge A into C",
        parent_commits=[history_repo.C, history_repo.A],
        author=history_repo.C.author,
        committer=history_repo.C.committer,
    )

    first = read_log_with_files(access, str(history_repo.path)).commits[0]

    assert first.oid == merge.hexsha
    assert first.parents == [history_repo.C.hexsha, history_repo.A.hexsha]
    assert first.files == []


def test_deepen_runs_before_reading(access, history_repo, monkeypatch):
    calls = []
    monkeypatch.setattr(access, "deepen_if_needed", lambda repo, ref, depth: calls.append((ref, depth)))

    read_log_with_files(access, str(history_repo.path), depth=5000)

    assert calls == [("HEAD", 1000)]


def test_log_from_ancestry_ref(access, history_repo):
    result = read_log_with_files(access, str(history_repo.path), ref="HEAD~1")
    assert [c.oid for c in result.commits] == [history_repo.B.hexsha, history_repo.A.hexsha]


def test_short_log_keeps_shallow_history(access, history_repo, commit_files, tmp_path):
    commit_files(history_repo.repo, "D: add y", {"y.txt": "y\n"})
    commit_files(history_repo.repo, "E: change y", {"y.txt": "yy\n"})
    target = access.clone(f"file://{history_repo.path}", str(tmp_path / "shallow"), depth=3)

    assert len(read_log_with_files(access, target, depth=1).commits) == 1

    shutil.rmtree(history_repo.path)
    assert len(read_log_with_files(access, target, depth=3).commits) == 3
