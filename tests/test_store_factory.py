"""Tests for the kvcs.repository() factory function."""

import pytest

from kvcs import Repository, line_merge, repository
from kvcs.kv.disk import Disk
from kvcs.kv.memory import Memory
from kvcs.kv.write_behind import WriteBehind


class TestRepositoryFactory:
    def test_default_memory(self):
        repo = repository()
        assert isinstance(repo, Repository)
        assert isinstance(repo.store, Memory)
        assert repo.branches() == ["main"]

    def test_branch(self):
        assert repository(branch="trunk").default_branch == "trunk"

    def test_invalid_storage(self):
        with pytest.raises(ValueError, match="Unknown storage"):
            repository(storage="redis")

    def test_disk_requires_path(self):
        with pytest.raises(ValueError, match="path is required"):
            repository(storage="disk")

    def test_size_limit_only_for_disk(self):
        with pytest.raises(ValueError, match="size_limit"):
            repository(size_limit=1000)

    def test_write_behind(self):
        repo = repository(write_behind=True)
        assert isinstance(repo.store, WriteBehind)
        c = repo.commit("main", author="t", message="m", updates={"a": b"1"})
        assert repo.head() == c
        repo.store.close()

    def test_merge_drivers(self):
        repo = repository(merge_drivers={"*.txt": line_merge()})
        assert "*.txt" in repo.merger.drivers


class TestDiskRepository:
    def test_persists(self, tmp_path):
        repo = repository(storage="disk", path=str(tmp_path))
        assert isinstance(repo.store, Disk)
        c = repo.commit("main", author="t", message="m", updates={"a": b"1"})
        repo.store.close()

        reopened = repository(storage="disk", path=str(tmp_path))
        assert reopened.head() == c
        assert reopened.read_file("main", "a") == b"1"
        reopened.store.close()

    def test_size_limit(self, tmp_path):
        repo = repository(storage="disk", path=str(tmp_path), size_limit=10 * 1024 * 1024)
        assert repo.store.store.size_limit == 10 * 1024 * 1024
        repo.store.close()
