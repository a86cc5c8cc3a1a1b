"""Tests for garbage collection of unreachable objects."""

import pytest

from kvcs import Repository
from kvcs.gc import collect_garbage, reachable_objects
from kvcs.objects import Blob


@pytest.fixture
def repo():
    return Repository()


class TestReachable:
    def test_includes_history(self, repo):
        c1 = repo.commit("main", author="t", message="1", updates={"a": b"one"})
        c2 = repo.commit("main", author="t", message="2", updates={"a": b"two"})
        marked = reachable_objects(repo.objects, [c2])
        assert c1 in marked
        assert repo.objects.store_object(Blob(b"one")) in marked

    def test_missing_roots_ignored(self, repo):
        assert reachable_objects(repo.objects, ["0" * 64]) == set()


class TestCollect:
    def test_removes_loose_objects(self, repo):
        loose = repo.objects.store_object(Blob(b"never committed"))
        result = collect_garbage(repo.objects, repo.refs)
        assert result.removed == (loose,)
        assert result.removed_count == 1
        assert loose not in repo.objects

    def test_history_survives(self, repo):
        repo.commit("main", author="t", message="1", updates={"a": b"one"})
        repo.commit("main", author="t", message="2", updates={"a": b"two"})
        repo.gc()
        assert [repo.objects.load_commit(c).message for c in repo.log()][:2] == ["2", "1"]
        first = list(repo.log())[1]
        assert repo.read_file(first, "a") == b"one"

    def test_tags_are_roots(self, repo):
        repo.create_branch("dev")
        repo.commit("dev", author="t", message="d", updates={"d": b"dev"})
        repo.create_tag("keep", "dev")
        repo.delete_branch("dev")
        repo.gc()
        assert repo.read_file("keep", "d") == b"dev"

    def test_extra_roots(self, repo):
        tree = repo.write_snapshot({"pending": b"p"})
        result = repo.gc(extra_roots=[tree])
        assert result.removed == ()
        assert repo.read_snapshot(tree) == {"pending": b"p"}

    def test_pending_merge_survives(self, repo):
        repo.commit("main", author="t", message="a", updates={"f": b"A"})
        repo.create_branch("dev")
        repo.commit("main", author="t", message="b", updates={"f": b"B"})
        repo.commit("dev", author="t", message="c", updates={"f": b"C"})
        result = repo.merge("main", "dev", author="t")
        repo.gc(extra_roots=[result.pending.result.tree])
        c = repo.finalize_merge(result.pending, {"f": b"BC"}, author="t")
        assert repo.read_file(c, "f") == b"BC"
