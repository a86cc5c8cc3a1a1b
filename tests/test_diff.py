"""Tests for tree diffs, tree building and text diffs."""

import pytest

from kvcs.diff import (
    Added,
    Modified,
    Removed,
    build_tree,
    check_path,
    diff_trees,
    flatten_tree,
    is_binary,
    unified_diff,
)
from kvcs.kv.memory import Memory
from kvcs.objects import Blob
from kvcs.objectstore import ObjectStore


@pytest.fixture
def objects():
    return ObjectStore(Memory())


def snapshot(objects, files):
    return build_tree(
        objects, {p: objects.store_object(Blob(d)) for p, d in files.items()}
    )


class TestBuildAndFlatten:
    def test_nested_paths(self, objects):
        tree = snapshot(objects, {"a.txt": b"a", "src/main.py": b"m", "src/lib/u.py": b"u"})
        flat = flatten_tree(objects, tree)
        assert set(flat) == {"a.txt", "src/main.py", "src/lib/u.py"}
        assert objects.load_blob(flat["src/lib/u.py"]).data == b"u"

    def test_same_content_same_tree(self, objects):
        t1 = snapshot(objects, {"x": b"1", "d/y": b"2"})
        t2 = snapshot(objects, {"d/y": b"2", "x": b"1"})
        assert t1 == t2

    def test_empty(self, objects):
        assert flatten_tree(objects, snapshot(objects, {})) == {}
        assert flatten_tree(objects, None) == {}

    def test_file_and_directory_clash(self, objects):
        blob = objects.store_object(Blob(b"x"))
        with pytest.raises(ValueError):
            build_tree(objects, {"a": blob, "a/b": blob})

    @pytest.mark.parametrize("path", ["", "/abs", "a//b", "a/./b", "../up", "dir/"])
    def test_bad_paths(self, path):
        with pytest.raises(ValueError):
            check_path(path)


class TestDiffTrees:
    def test_identical(self, objects):
        t = snapshot(objects, {"a": b"1"})
        assert not diff_trees(objects, t, t)

    def test_add_remove_modify(self, objects):
        t1 = snapshot(objects, {"keep": b"k", "change": b"old", "gone": b"g"})
        t2 = snapshot(objects, {"keep": b"k", "change": b"new", "fresh": b"f"})
        d = diff_trees(objects, t1, t2)
        assert d.added == {"fresh"}
        assert d.removed == {"gone"}
        assert d.modified == {"change"}
        assert [c.path for c in d] == ["change", "fresh", "gone"]

    def test_change_carries_hashes(self, objects):
        t1 = snapshot(objects, {"f": b"old"})
        t2 = snapshot(objects, {"f": b"new"})
        (change,) = diff_trees(objects, t1, t2)
        assert change == Modified(
            "f",
            objects.store_object(Blob(b"old")),
            objects.store_object(Blob(b"new")),
        )

    def test_nested(self, objects):
        t1 = snapshot(objects, {"src/a.py": b"1", "src/b.py": b"2"})
        t2 = snapshot(objects, {"src/a.py": b"1", "src/b.py": b"3"})
        assert diff_trees(objects, t1, t2).modified == {"src/b.py"}

    def test_from_empty(self, objects):
        t = snapshot(objects, {"a": b"1", "d/b": b"2"})
        d = diff_trees(objects, None, t)
        assert d.added == {"a", "d/b"}
        assert len(d) == 2

    def test_file_replaced_by_directory(self, objects):
        t1 = snapshot(objects, {"x": b"file"})
        t2 = snapshot(objects, {"x/inner": b"dir"})
        d = diff_trees(objects, t1, t2)
        assert d.removed == {"x"}
        assert d.added == {"x/inner"}

    def test_directory_removed(self, objects):
        t1 = snapshot(objects, {"d/a": b"1", "d/b": b"2", "top": b"t"})
        t2 = snapshot(objects, {"top": b"t"})
        d = diff_trees(objects, t1, t2)
        assert d.removed == {"d/a", "d/b"}
        assert all(isinstance(c, Removed) for c in d)


class TestUnifiedDiff:
    def test_modified(self, objects):
        old = objects.store_object(Blob(b"one\ntwo\nthree\n"))
        new = objects.store_object(Blob(b"one\n2\nthree\n"))
        text = unified_diff(objects, Modified("f.txt", old, new))
        assert "--- a/f.txt" in text
        assert "+++ b/f.txt" in text
        assert "-two\n" in text
        assert "+2\n" in text

    def test_added(self, objects):
        h = objects.store_object(Blob(b"hello"))
        text = unified_diff(objects, Added("new.txt", h))
        assert "--- /dev/null" in text
        assert "+hello\n" in text

    def test_binary(self, objects):
        h = objects.store_object(Blob(b"\x00\x01"))
        text = unified_diff(objects, Removed("img.bin", h))
        assert text.startswith("Binary files")

    def test_is_binary(self):
        assert is_binary(b"a\0b")
        assert not is_binary(b"plain text\n")
