"""Computed values — derived state that is itself observable.

A Computed is a reaction whose effect stores the derived value in a
wrapped single-field cache. Reading the computed reads that cache field,
so anything tracking the read is re-run when the value is recomputed.
Computeds can read other computeds, forming a graph where each node only
recomputes when something it actually read last time changed.

Computed values are eager — they recompute as soon as a dependency changes,
not on next read.
"""

from __future__ import annotations

from typing import Callable, Generic, TypeVar

from crowdx import _anchor
from crowdx.observable import wrap
from crowdx.reaction import Reaction, reaction

T = TypeVar("T")


class Computed(Generic[T]):
    """A derived value that auto-tracks dependencies and caches the result.

    Call it (or use .get()) to read the current value.
    """

    __slots__ = ("_cache", "_reaction")

    def __init__(self, fn: Callable[[], T]) -> None:
        self._cache = wrap({"value": None})
        self._reaction: Reaction = reaction(fn, self._store)

    def _store(self, value: T) -> None:
        self._cache["value"] = value

    def get(self) -> T:
        """Read the cached value. Inside a tracked function, registers the dependency."""
        return self._cache["value"]

    def __call__(self) -> T:
        return self.get()

    @property
    def disposed(self) -> bool:
        return self._reaction.disposed

    def dispose(self) -> None:
        """Stop recomputing. The last cached value stays readable."""
        self._reaction.dispose()

    def __repr__(self) -> str:
        state = "disposed" if self.disposed else "active"
        cached = _anchor.values[self._cache._id]["value"]
        return f"Computed({cached!r}, {state})"


def computed(fn: Callable[[], T]) -> Computed[T]:
    """Decorator/factory to create a Computed from a function.

    Usage:
        state = wrap({"price": 10, "quantity": 3})

        @computed
        def total():
            return state["price"] * state["quantity"]

        total()  # 30
        state["quantity"] = 4
        total()  # 40
    """
    return Computed(fn)
