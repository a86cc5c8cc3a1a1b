"""Tests for Workspace: staged edits, refresh and in-progress merges."""

import pytest

from kvcs import Repository
from kvcs.diff import Added, Modified, Removed
from kvcs.errors import ConcurrentUpdate, MergeConflict


@pytest.fixture
def repo():
    r = Repository()
    r.commit("main", author="setup", message="init", updates={"a": b"1", "b": b"2"})
    return r


@pytest.fixture
def ws(repo):
    return repo.checkout()


class TestReadWrite:
    def test_reads_committed(self, ws):
        assert ws["a"] == b"1"
        assert ws.get("missing") is None
        assert sorted(ws) == ["a", "b"]
        assert len(ws) == 2

    def test_staged_overrides(self, ws):
        ws["a"] = b"changed"
        assert ws["a"] == b"changed"

    def test_remove(self, ws):
        del ws["a"]
        assert "a" not in ws
        assert ws.get("a") is None
        with pytest.raises(KeyError):
            ws["a"]

    def test_remove_then_set(self, ws):
        ws.remove("a")
        ws.set("a", b"back")
        assert ws["a"] == b"back"

    def test_delete_missing(self, ws):
        with pytest.raises(KeyError):
            del ws["nope"]

    def test_rejects_non_bytes(self, ws):
        with pytest.raises(TypeError):
            ws.set("a", "text")

    def test_rejects_bad_path(self, ws):
        with pytest.raises(ValueError):
            ws.set("/abs", b"x")

    def test_snapshot(self, ws):
        ws["c"] = b"3"
        assert ws.snapshot() == {"a": b"1", "b": b"2", "c": b"3"}


class TestStatus:
    def test_clean(self, ws):
        assert not ws.has_changes
        assert not ws.status()

    def test_changes(self, ws):
        ws["a"] = b"new"
        ws["c"] = b"3"
        ws.remove("b")
        status = ws.status()
        assert [type(c) for c in status] == [Modified, Removed, Added]
        assert status.paths == {"a", "b", "c"}

    def test_rewrite_same_content_is_no_change(self, ws):
        ws["a"] = b"1"
        assert not ws.has_changes


class TestCommit:
    def test_commit(self, repo, ws):
        base = ws.base_commit
        ws["a"] = b"new"
        c = ws.commit(author="t", message="edit a")
        assert repo.head() == c
        assert ws.base_commit == c
        assert not ws.has_changes
        assert repo.objects.load_commit(c).parents == (base,)
        assert repo.read_file("main", "a") == b"new"

    def test_nothing_to_commit(self, ws):
        assert ws.commit(author="t", message="noop") == ws.base_commit

    def test_message_required(self, ws):
        ws["a"] = b"x"
        with pytest.raises(ValueError):
            ws.commit(author="t")

    def test_reset(self, ws):
        ws["a"] = b"x"
        ws.reset()
        assert ws["a"] == b"1"
        assert not ws.has_changes


class TestRefresh:
    def test_stale_commit_then_refresh(self, repo, ws):
        other = repo.checkout()
        other["b"] = b"theirs"
        other.commit(author="other", message="b")

        ws["a"] = b"mine"
        with pytest.raises(ConcurrentUpdate):
            ws.commit(author="t", message="a")

        assert ws.refresh() == frozenset()
        assert ws["a"] == b"mine"
        assert ws["b"] == b"theirs"
        c = ws.commit(author="t", message="a")
        assert repo.read_snapshot("main") == {"a": b"mine", "b": b"theirs"}
        assert repo.objects.load_commit(c).parents == (other.base_commit,)

    def test_refresh_conflict_needs_message(self, repo, ws):
        repo.commit("main", author="x", message="x", updates={"a": b"upstream"})
        ws["a"] = b"local"
        ws.refresh()
        ws.resolve("a", b"both")
        with pytest.raises(ValueError):
            ws.commit(author="t")
        assert ws.merging
        ws.commit(author="t", message="keep both")
        assert repo.objects.load_commit(repo.head()).message == "keep both"

    def test_refresh_without_changes(self, repo, ws):
        head = repo.commit("main", author="x", message="x", updates={"c": b"3"})
        assert ws.refresh() == frozenset()
        assert ws.base_commit == head
        assert ws["c"] == b"3"

    def test_refresh_conflict(self, repo, ws):
        head = repo.commit("main", author="x", message="x", updates={"a": b"upstream"})
        ws["a"] = b"local"
        assert ws.refresh() == {"a"}
        assert ws.merging
        assert b"upstream" in ws["a"] and b"local" in ws["a"]

        with pytest.raises(MergeConflict):
            ws.commit(author="t")
        ws.resolve("a", b"both")
        c = ws.commit(author="t", message="resolved")
        assert repo.objects.load_commit(c).parents == (head,)
        assert repo.read_file("main", "a") == b"both"


class TestMerge:
    @pytest.fixture
    def diverged(self, repo):
        repo.create_branch("dev")
        repo.commit("main", author="m", message="B", updates={"file.txt": b"B"})
        repo.commit("dev", author="d", message="C", updates={"file.txt": b"C"})
        return repo

    def test_clean_merge_moves_workspace(self, repo, ws):
        repo.create_branch("dev")
        repo.commit("dev", author="d", message="c", updates={"c": b"3"})
        result = ws.merge("dev", author="t")
        assert result.strategy == "fast_forward"
        assert ws.base_commit == repo.head()
        assert ws["c"] == b"3"

    def test_conflicted_merge(self, diverged):
        ws = diverged.checkout()
        ours = diverged.head()
        theirs = diverged.head("dev")
        result = ws.merge("dev", author="t")
        assert not result
        assert ws.merging
        assert ws.unresolved == {"file.txt"}
        assert b"<<<<<<<" in ws["file.txt"]

        with pytest.raises(MergeConflict):
            ws.commit(author="t")
        with pytest.raises(MergeConflict):
            ws.resolve("file.txt")

        ws["file.txt"] = b"BC"
        ws.resolve("file.txt")
        assert ws.unresolved == frozenset()
        c = ws.commit(author="t")
        commit = diverged.objects.load_commit(c)
        assert commit.parents == (ours, theirs)
        assert commit.message == "Merge dev into main"
        assert not ws.merging

    def test_file_directory_resolution(self, repo):
        repo.create_branch("dev")
        repo.commit("main", author="m", message="file", updates={"x": b"file"})
        repo.commit("dev", author="d", message="dir", updates={"x/inner": b"dir"})
        ws = repo.checkout()
        ws.merge("dev", author="t")
        assert ws.unresolved == {"x"}

        ws.resolve("x", b"file")
        with pytest.raises(MergeConflict):
            ws.commit(author="t")

        ws.remove("x")
        ws.commit(author="t")
        assert repo.read_snapshot("main")["x/inner"] == b"dir"
        assert "x" not in repo.read_snapshot("main")

    def test_resolve_unconflicted_path(self, diverged):
        ws = diverged.checkout()
        ws.merge("dev", author="t")
        with pytest.raises(KeyError):
            ws.resolve("a", b"x")

    def test_abort(self, diverged):
        ws = diverged.checkout()
        ws.merge("dev", author="t")
        ws.abort_merge()
        assert not ws.merging
        assert not ws.has_changes
        assert ws["file.txt"] == b"B"

    def test_merge_requires_clean_workspace(self, diverged):
        ws = diverged.checkout()
        ws["a"] = b"dirty"
        with pytest.raises(ValueError):
            ws.merge("dev", author="t")

    def test_refresh_during_merge(self, diverged):
        ws = diverged.checkout()
        ws.merge("dev", author="t")
        diverged.commit("main", author="x", message="x", updates={"z": b"z"})
        with pytest.raises(MergeConflict):
            ws.refresh()
