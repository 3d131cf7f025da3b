"""Scoped suppression of collection-change notifications.

A loader writes fetched rows into its backing store; those writes raise
change notifications, and a "reset" notification is exactly what makes a
loader fetch.  The guard marks the loader's own bulk writes so that the
reset they produce is recognised and ignored instead of starting another
fetch.

The guard is a depth counter rather than a flag: regions may nest, and
two overlapping async refreshes may each hold a region without the first
one to finish lifting suppression for the other.
"""

from collections.abc import Iterator
from contextlib import contextmanager


class ChangeSuppressionGuard:
    """Counter-based suppression region.

    Usage::

        guard = ChangeSuppressionGuard()
        with guard.bulk_update():
            store.clear()
            store.write_many(0, rows)
            # guard.active is True here
        # released, even if the writes raised
    """

    def __init__(self) -> None:
        self._depth = 0

    @property
    def active(self) -> bool:
        return self._depth > 0

    @property
    def depth(self) -> int:
        return self._depth

    def begin_bulk_update(self) -> None:
        self._depth += 1

    def end_bulk_update(self) -> None:
        if self._depth == 0:
            raise RuntimeError("end_bulk_update() called without a matching begin_bulk_update()")
        self._depth -= 1

    @contextmanager
    def bulk_update(self) -> Iterator["ChangeSuppressionGuard"]:
        self.begin_bulk_update()
        try:
            yield self
        finally:
            self.end_bulk_update()

    def __repr__(self) -> str:
        return f"ChangeSuppressionGuard(depth={self._depth})"
