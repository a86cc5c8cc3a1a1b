"""Commit graph queries: ancestry, merge bases, and history order."""

import heapq
from collections import deque
from typing import Iterator

from .errors import Unrelated
from .objectstore import ObjectStore


class CommitGraph:
    """Read-only view of the DAG formed by commit parent links.

    Parent tuples are cached: commits are immutable, so a cached entry
    can never go stale.
    """

    def __init__(self, objects: ObjectStore) -> None:
        self.objects = objects
        self._parents: dict[str, tuple[str, ...]] = {}

    def parents(self, commit_hash: str) -> tuple[str, ...]:
        """Parent hashes of a commit, first parent first."""
        parents = self._parents.get(commit_hash)
        if parents is None:
            parents = self.objects.load_commit(commit_hash).parents
            self._parents[commit_hash] = parents
        return parents

    def first_parent_chain(self, commit_hash: str) -> Iterator[str]:
        """Yield a commit and its first-parent ancestors, newest first."""
        current: str | None = commit_hash
        while current is not None:
            yield current
            parents = self.parents(current)
            current = parents[0] if parents else None

    def history(
        self, commit_hash: str, *, first_parent: bool = True
    ) -> Iterator[str]:
        """Yield the commit chain from newest to oldest.

        Args:
            commit_hash: Starting commit.
            first_parent: If True, follow first parents only (linear).
                If False, BFS over all parents (full DAG).
        """
        if first_parent:
            yield from self.first_parent_chain(commit_hash)
            return
        visited: set[str] = set()
        queue: deque[str] = deque([commit_hash])
        while queue:
            current = queue.popleft()
            if current in visited:
                continue
            visited.add(current)
            yield current
            for p in self.parents(current):
                if p not in visited:
                    queue.append(p)

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        """True if ``ancestor`` is reachable from ``descendant`` (reflexive)."""
        visited: set[str] = set()
        queue: deque[str] = deque([descendant])
        while queue:
            current = queue.popleft()
            if current == ancestor:
                return True
            if current in visited:
                continue
            visited.add(current)
            for p in self.parents(current):
                if p not in visited:
                    queue.append(p)
        return False

    def merge_base(self, commit_a: str, commit_b: str) -> str:
        """Find the lowest common ancestor of two commits.

        Walks backward breadth-first from both commits in lockstep,
        recording the depth at which each side reaches a commit. Every
        commit reached by both sides is a common ancestor; the merge
        base is one that is not itself an ancestor of another common
        ancestor. When several qualify (criss-cross histories), prefer
        the one on the first-parent lineage of ``commit_a``, then the
        smallest combined depth, then the smallest hash.

        Raises:
            Unrelated: The histories are disjoint.
        """
        self.parents(commit_a)
        if commit_a == commit_b:
            return commit_a

        depth_a: dict[str, int] = {commit_a: 0}
        depth_b: dict[str, int] = {commit_b: 0}
        frontier_a = [commit_a]
        frontier_b = [commit_b]
        while frontier_a or frontier_b:
            frontier_a = self._expand(frontier_a, depth_a)
            frontier_b = self._expand(frontier_b, depth_b)

        common = depth_a.keys() & depth_b.keys()
        if not common:
            raise Unrelated(
                f"commits {commit_a[:12]} and {commit_b[:12]} share no history"
            )

        # Common ancestors are closed under ancestry, so any that is a
        # parent of another is not lowest.
        dominated = {p for c in common for p in self.parents(c)}
        bases = common - dominated
        lineage = set(self.first_parent_chain(commit_a))
        return min(
            bases,
            key=lambda c: (c not in lineage, depth_a[c] + depth_b[c], c),
        )

    def _expand(self, frontier: list[str], depth: dict[str, int]) -> list[str]:
        """Advance one BFS level, recording first-visit depths."""
        next_frontier = []
        for current in frontier:
            for p in self.parents(current):
                if p not in depth:
                    depth[p] = depth[current] + 1
                    next_frontier.append(p)
        return next_frontier

    def topological_order(self, start: str) -> Iterator[str]:
        """Yield commits reachable from ``start``, newest first.

        A commit is yielded only after every reachable child of it.
        Among commits that are ready at the same time, the newest
        timestamp goes first, then the smallest hash. The generator is
        single-pass; call again to restart.

        Counting children reads every reachable commit before the first
        yield, so the cost of the first item grows with the history.
        ``first_parent_chain`` reads one commit per item and suits
        incremental display.
        """
        pending_children: dict[str, int] = {start: 0}
        stack = [start]
        while stack:
            current = stack.pop()
            for p in self.parents(current):
                if p in pending_children:
                    pending_children[p] += 1
                else:
                    pending_children[p] = 1
                    stack.append(p)

        ready = [(-self._timestamp(start), start)]
        while ready:
            _, current = heapq.heappop(ready)
            yield current
            for p in self.parents(current):
                pending_children[p] -= 1
                if pending_children[p] == 0:
                    heapq.heappush(ready, (-self._timestamp(p), p))

    def _timestamp(self, commit_hash: str) -> float:
        return self.objects.load_commit(commit_hash).timestamp
