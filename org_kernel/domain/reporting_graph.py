"""
Reporting-line graph algorithms.

Responsibility:
    Upward walks over the parent-pointer graph formed by
    ``Position.reports_to_position_id``.  Used for cycle detection before a
    new edge is written and for reporting-chain queries.

Architecture position:
    Kernel > Domain.  Pure: the caller supplies ``parent_of``, a lookup that
    returns a position's supervisor id (or None when the position has no
    supervisor or does not exist).  Services back it with database reads.

Invariants enforced:
    - A walk never visits the same id twice.  Stored data that already
      contains a loop terminates the walk (``loop_detected``) instead of
      hanging, and is not blamed on the edit being validated.
    - The walk is bounded by the depth of the hierarchy, not its breadth.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterator, TypeVar

K = TypeVar("K")


class AncestorWalk:
    """
    Iterable over the ancestors of ``start`` (immediate supervisor first).

    The start node itself is not yielded.  After iteration, ``loop_detected``
    tells whether the walk stopped on a revisited id.
    """

    def __init__(self, start: K, parent_of: Callable[[K], K | None]):
        self._start = start
        self._parent_of = parent_of
        self.loop_detected = False

    def __iter__(self) -> Iterator[K]:
        visited = {self._start}
        current = self._start
        while True:
            parent = self._parent_of(current)
            if parent is None:
                return
            if parent in visited:
                self.loop_detected = True
                return
            visited.add(parent)
            yield parent
            current = parent


@dataclass(frozen=True)
class EdgeCheck:
    """Outcome of validating a proposed ``position -> supervisor`` edge."""

    creates_cycle: bool
    path: tuple = ()
    preexisting_loop: bool = False


def check_reporting_edge(
    position_id: K,
    reports_to_id: K,
    parent_of: Callable[[K], K | None],
) -> EdgeCheck:
    """
    Decide whether making ``position_id`` report to ``reports_to_id`` closes a cycle.

    Walks upward from ``reports_to_id``.  Reaching ``position_id`` means the
    new edge would close a cycle; ``path`` then lists the loop starting and
    ending at ``position_id``.  Self-reference is the caller's O(1) check and
    is reported here as a cycle of length one for completeness.
    """
    if position_id == reports_to_id:
        return EdgeCheck(creates_cycle=True, path=(position_id, position_id))

    walk = AncestorWalk(reports_to_id, parent_of)
    trail = [position_id, reports_to_id]
    for ancestor in walk:
        trail.append(ancestor)
        if ancestor == position_id:
            return EdgeCheck(creates_cycle=True, path=tuple(trail))
    return EdgeCheck(creates_cycle=False, preexisting_loop=walk.loop_detected)


def reporting_chain(start: K, parent_of: Callable[[K], K | None]) -> tuple[list[K], bool]:
    """Ancestor ids of ``start`` plus whether a stored loop cut the walk short."""
    walk = AncestorWalk(start, parent_of)
    chain = list(walk)
    return chain, walk.loop_detected
