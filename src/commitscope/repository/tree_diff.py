"""Path-level comparison of two tree snapshots."""

from typing import Dict, List, Optional

from git import Repo
from git.objects import Tree
from git.objects.base import IndexObject

from commitscope.types.git import ChangedFile


def resolve_tree(repo: Repo, oid: Optional[str]) -> Optional[Tree]:
    """Return the tree named by a commit, tag or tree id; ``None`` stands for the empty tree."""
    if oid is None:
        return None

    obj = repo.rev_parse(oid)
    while obj.type == "tag":
        obj = obj.object
    if obj.type == "commit":
        return obj.tree
    if obj.type == "tree":
        return obj
    raise ValueError(f"{oid} does not name a commit or tree")


def list_changed_files(repo: Repo, old_oid: Optional[str], new_oid: Optional[str]) -> List[ChangedFile]:
    """List the leaf paths that differ between two snapshots.

    Either side may be ``None``, which compares against the empty tree (a
    root commit has no parent). Directories are never reported and unchanged
    blobs are omitted. Subtrees with the same object id on both sides are not
    visited, so the cost follows the entries that actually changed.
    """
    changes: List[ChangedFile] = []
    _walk(resolve_tree(repo, old_oid), resolve_tree(repo, new_oid), changes)
    return changes


def _entries(tree: Optional[Tree]) -> Dict[str, IndexObject]:
    if tree is None:
        return {}
    return {item.path: item for item in tree}


def _is_tree(item: Optional[IndexObject]) -> bool:
    return item is not None and item.type == "tree"


def _walk(old: Optional[Tree], new: Optional[Tree], changes: List[ChangedFile]) -> None:
    old_entries = _entries(old)
    new_entries = _entries(new)

    for path in sorted(old_entries.keys() | new_entries.keys()):
        a = old_entries.get(path)
        b = new_entries.get(path)

        if a is not None and b is not None and a.binsha == b.binsha:
            continue

        # A directory on either side is descended into but never reported itself.
        if _is_tree(a) or _is_tree(b):
            _walk(a if _is_tree(a) else None, b if _is_tree(b) else None, changes)
            continue

        if a is None:
            changes.append(ChangedFile(path=path, status="added"))
        elif b is None:
            changes.append(ChangedFile(path=path, status="deleted"))
        else:
            changes.append(ChangedFile(path=path, status="modified"))
