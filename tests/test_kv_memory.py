"""Tests for the Memory KV store."""

import threading

import pytest

from kvcs.kv.memory import Memory


class TestMemoryBasic:
    def test_set_get(self):
        m = Memory()
        m.set_many(k=b"v")
        assert m.get("k") == b"v"

    def test_get_missing(self):
        m = Memory()
        assert m.get("nope") is None

    def test_contains(self):
        m = Memory()
        m.set_many(k=b"v")
        assert "k" in m
        assert "nope" not in m

    def test_keys(self):
        m = Memory()
        m.set_many(a=b"1", b=b"2")
        assert set(m.keys()) == {"a", "b"}

    def test_type_error_on_non_bytes(self):
        m = Memory()
        with pytest.raises(TypeError, match="Expected bytes"):
            m.set_many(k="not bytes")  # type: ignore
        assert "k" not in m

    def test_remove_many(self):
        m = Memory()
        m.set_many(a=b"1", b=b"2", c=b"3")
        m.remove_many("a", "c", "missing")
        assert m.get("a") is None
        assert m.get("b") == b"2"


class TestMemoryCAS:
    def test_cas_success(self):
        m = Memory()
        m.set_many(k=b"old")
        assert m.cas("k", b"new", expected=b"old")
        assert m.get("k") == b"new"

    def test_cas_failure(self):
        m = Memory()
        m.set_many(k=b"old")
        assert not m.cas("k", b"new", expected=b"wrong")
        assert m.get("k") == b"old"

    def test_cas_create_fails_if_exists(self):
        m = Memory()
        m.set_many(k=b"existing")
        assert not m.cas("k", b"new", expected=None)
        assert m.get("k") == b"existing"

    def test_cas_thread_safety(self):
        m = Memory()
        m.set_many(counter=b"0")
        wins = []

        def try_cas(thread_id):
            if m.cas("counter", f"thread-{thread_id}".encode(), expected=b"0"):
                wins.append(thread_id)

        threads = [threading.Thread(target=try_cas, args=(i,)) for i in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(wins) == 1


class TestMemoryCASDelete:
    def test_cas_delete_success(self):
        m = Memory()
        m.set_many(k=b"v")
        assert m.cas_delete("k", expected=b"v")
        assert "k" not in m

    def test_cas_delete_stale(self):
        m = Memory()
        m.set_many(k=b"v2")
        assert not m.cas_delete("k", expected=b"v1")
        assert m.get("k") == b"v2"

    def test_cas_delete_missing(self):
        m = Memory()
        assert not m.cas_delete("k", expected=b"v")
