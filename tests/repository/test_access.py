"""Tests for the GitPython access layer."""

import shutil

import pytest
from git import Repo

from commitscope.errors import InvalidRef, MissingInput, NotADirectory, NotARepository, RepositoryNotFound
from commitscope.repository.access import GitAccess, head_resolves, validate_ref


@pytest.fixture
def access(tmp_path):
    return GitAccess(repos_base=str(tmp_path / "repos"), default_depth=25)


def test_clone_requires_url(access):
    with pytest.raises(MissingInput):
        access.clone("")
    with pytest.raises(MissingInput):
        access.clone("   ")


def test_clone_into_explicit_dir(access, history_repo, tmp_path):
    target = access.clone(f"file://{history_repo.path}", str(tmp_path / "clones" / "fixture"))

    assert target == f"{tmp_path}/clones/fixture"
    clone = Repo(target)
    assert clone.head.commit.hexsha == history_repo.C.hexsha
    assert len(list(clone.iter_commits())) == 3


def test_clone_derives_dir_from_url(access, history_repo, tmp_path):
    target = access.clone(f"file://{history_repo.path}")

    assert target == f"{tmp_path}/repos/{tmp_path.name}-fixture"
    assert head_resolves(Repo(target))


def test_shallow_clone_respects_depth(access, history_repo, tmp_path):
    target = access.clone(f"file://{history_repo.path}", str(tmp_path / "shallow"), depth=1)
    assert len(list(Repo(target).iter_commits())) == 1


def test_open_requires_url_or_dir(access):
    with pytest.raises(MissingInput):
        access.open()
    with pytest.raises(MissingInput):
        access.open(url=" ", target_dir="")


def test_open_missing_directory(access, tmp_path):
    with pytest.raises(RepositoryNotFound):
        access.open(target_dir=str(tmp_path / "nope"))


def test_open_file_is_not_a_directory(access, tmp_path):
    path = tmp_path / "file.txt"
    path.write_text("data")
    with pytest.raises(NotADirectory):
        access.open(target_dir=str(path))


def test_open_plain_directory_is_not_a_repository(access, tmp_path):
    (tmp_path / "plain").mkdir()
    with pytest.raises(NotARepository):
        access.open(target_dir=str(tmp_path / "plain"))


def test_open_repository_without_commits_fails_closed(access, tmp_path):
    Repo.init(tmp_path / "empty")
    with pytest.raises(NotARepository):
        access.open(target_dir=str(tmp_path / "empty"))


def test_open_existing_repository(access, history_repo):
    assert access.open(target_dir=f"{history_repo.path}/") == str(history_repo.path)


def test_open_by_url_uses_repos_base(access, commit_files, tmp_path):
    repo = Repo.init(tmp_path / "repos" / "user-repo")
    commit_files(repo, "init", {"a.txt": "a"})

    assert access.open(url="https://github.com/user/repo.git") == f"{tmp_path}/repos/user-repo"


def test_list_repos_skips_non_repositories(access, commit_files, tmp_path):
    base = tmp_path / "repos"
    commit_files(Repo.init(base / "good"), "init", {"a.txt": "a"})
    Repo.init(base / "empty")
    (base / "plain").mkdir()
    (base / "notes.txt").write_text("not a directory")

    assert access.list_repos() == ["good"]
    assert access.list_repos(str(base)) == ["good"]


def test_list_repos_missing_base_is_empty(access, tmp_path):
    assert access.list_repos(str(tmp_path / "missing")) == []


def test_resolve_ref_safe(access, history_repo):
    repo = history_repo.repo
    assert access.resolve_ref_safe(repo, "HEAD") == history_repo.C.hexsha
    assert access.resolve_ref_safe(repo, repo.active_branch.name) == history_repo.C.hexsha
    assert access.resolve_ref_safe(repo, "no-such-branch") is None


@pytest.mark.parametrize("ref", ["HEAD", "main", "feature/login", "v1.2.3", "abc1234", "HEAD~1", "main^", "v1.2.3~2"])
def test_validate_ref_accepts_names(ref):
    assert validate_ref(ref) == ref


@pytest.mark.parametrize("ref", ["", "-x", "--upload-pack=evil", "a..b", "has space", "HEAD@{1}", "HEAD:README.md"])
def test_validate_ref_rejects_unsafe_names(ref):
    with pytest.raises(InvalidRef):
        validate_ref(ref)


def test_deepen_fetches_missing_history(access, history_repo, tmp_path):
    target = access.clone(f"file://{history_repo.path}", str(tmp_path / "shallow"), depth=1)
    clone = Repo(target)

    access.deepen_if_needed(clone, "HEAD", 3)

    assert len(list(clone.iter_commits())) == 3


def test_deepen_swallows_fetch_failures(access, history_repo, tmp_path):
    target = access.clone(f"file://{history_repo.path}", str(tmp_path / "shallow"), depth=1)
    shutil.rmtree(history_repo.path)
    clone = Repo(target)

    access.deepen_if_needed(clone, clone.head.commit.hexsha, 3)

    assert len(list(clone.iter_commits())) == 1


def test_deepen_skips_complete_history(access, history_repo, monkeypatch):
    calls = []
    monkeypatch.setattr(Repo, "remote", lambda self, name="origin": calls.append(name))

    access.deepen_if_needed(history_repo.repo, "HEAD", 10)

    assert calls == []


def test_deepen_never_shortens_history(access, history_repo, commit_files, tmp_path):
    commit_files(history_repo.repo, "D: add y", {"y.txt": "y\n"})
    commit_files(history_repo.repo, "E: change y", {"y.txt": "yy\n"})
    target = access.clone(f"file://{history_repo.path}", str(tmp_path / "shallow"), depth=3)
    clone = Repo(target)

    access.deepen_if_needed(clone, "HEAD", 1)

    assert len(list(clone.iter_commits())) == 3


def test_deepen_follows_branch_of_ancestry_ref(access, history_repo, tmp_path):
    target = access.clone(f"file://{history_repo.path}", str(tmp_path / "shallow"), depth=1)
    clone = Repo(target)

    access.deepen_if_needed(clone, "HEAD~0", 3)

    assert len(list(clone.iter_commits())) == 3
