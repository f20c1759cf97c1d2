# src/taskmaster/tasks/graph.py

"""
Dependency graph validation.

Depth-first traversal from each proposed dependency, following each visited
task's own dependency set. Two sets are kept:
- visited: nodes already fully explored (shared across sibling roots)
- on_path: nodes on the active traversal path (the "recursion stack")

A cycle exists if the walk reaches the candidate itself or a node already
on the active path. The walk uses an explicit stack, so deep chains do not
hit the interpreter recursion limit, and each distinct node is fetched from
the store at most once per call.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator

from ..core.ports import TaskRepo
from ..errors import CycleDetectedError

logger = logging.getLogger(__name__)


class DependencyGraphValidator:
    def __init__(self, store: TaskRepo) -> None:
        self._store = store

    def validate(self, candidate_id: str, proposed_dependency_ids: Iterable[str]) -> None:
        """Raise CycleDetectedError if candidate -> proposed edges would close a cycle."""
        proposed = sorted({str(d) for d in proposed_dependency_ids})
        if not proposed:
            return

        cache: dict[str, frozenset[str]] = {}

        def deps_of(node: str) -> Iterator[str]:
            if node not in cache:
                task = self._store.get_task(node)
                # Missing nodes end the walk; existence is checked by the caller.
                cache[node] = task.depends_on if task is not None else frozenset()
            return iter(sorted(cache[node]))

        visited: set[str] = set()

        for root in proposed:
            if root == candidate_id:
                raise CycleDetectedError(candidate_id, [root])
            if root in visited:
                continue

            path: list[str] = [root]
            on_path: set[str] = {root}
            visited.add(root)
            stack: list[Iterator[str]] = [deps_of(root)]

            while stack:
                nxt = next(stack[-1], None)
                if nxt is None:
                    stack.pop()
                    on_path.discard(path.pop())
                    continue

                if nxt == candidate_id or nxt in on_path:
                    logger.debug("Cycle found for %s via %s", candidate_id, path + [nxt])
                    raise CycleDetectedError(candidate_id, path + [nxt])
                if nxt in visited:
                    continue

                visited.add(nxt)
                on_path.add(nxt)
                path.append(nxt)
                stack.append(deps_of(nxt))

        logger.debug(
            "No cycle for %s (deps=%s, explored=%d)", candidate_id, proposed, len(visited)
        )
