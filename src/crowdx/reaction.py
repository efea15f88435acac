"""Reactions — side effects triggered by observable state changes.

A reaction pairs a tracked function with an effect function. The tracked
function runs inside a tracking frame, so every observable field it reads
is recorded; its result is handed to the effect. Whenever any of those
fields is published, both run again and the set of recorded fields is
rebuilt from scratch.

Two flavors:
- reaction(tracked_fn, effect_fn): effect_fn(tracked_fn()) now and on every change.
- autorun(fn): fn() now and on every change.

All state lives in _anchor — instances are thin handles holding an _id.
"""

from __future__ import annotations

from typing import Any, Callable, TypeVar

from crowdx import _anchor, _tracking
from crowdx._tracking import begin_batch, begin_tracking, complete_tracking, end_batch

T = TypeVar("T")


class Reaction:
    """A tracked function plus an effect. Doubles as its own disposal handle."""

    __slots__ = ("_id", "_effect_fn")

    def __init__(self, tracked_fn: Callable[[], T], effect_fn: Callable[[T], Any]) -> None:
        self._id = _anchor.new_id()
        _anchor.derivation_fns[self._id] = tracked_fn
        _anchor.active.add(self._id)
        self._effect_fn = effect_fn

    @property
    def disposed(self) -> bool:
        return self._id not in _anchor.active

    def _run(self) -> None:
        """Re-run the tracked function, re-tracking dependencies, then the effect."""
        if self.disposed:
            return

        tracked_fn = _anchor.derivation_fns[self._id]
        begin_tracking(self)
        try:
            result = tracked_fn()
        finally:
            complete_tracking()
        self._effect_fn(result)

    def dispose(self) -> None:
        """Stop this reaction. Disconnects from all dependencies."""
        _tracking.dispose(self)

    def __repr__(self) -> str:
        fn = _anchor.derivation_fns.get(self._id)
        name = getattr(fn, "__name__", "?")
        state = "disposed" if self.disposed else "active"
        return f"Reaction({name}, {state})"


def reaction(tracked_fn: Callable[[], T], effect_fn: Callable[[T], Any]) -> Reaction:
    """Run effect_fn(tracked_fn()) now, and again whenever tracked_fn's reads change.

    Returns the Reaction (pass it to dispose() to stop).

    Usage:
        state = wrap({"user": {"name": "Alice"}})
        names = []

        r = reaction(lambda: state["user"]["name"], names.append)
        # names == ["Alice"] — ran immediately

        state["user"]["name"] = "Bob"
        # names == ["Alice", "Bob"]

        dispose(r)
        state["user"]["name"] = "Carol"
        # names == ["Alice", "Bob"] — stopped
    """
    r = Reaction(tracked_fn, effect_fn)
    # Writes made during the first run are deferred until it has finished.
    begin_batch()
    try:
        r._run()
    except BaseException:
        # The caller never receives the handle, so nobody could dispose it later.
        r.dispose()
        raise
    finally:
        end_batch()
    return r


def _ignore(_result: Any) -> None:
    pass


def autorun(fn: Callable[[], Any]) -> Reaction:
    """Run fn immediately, then re-run whenever any observable field it reads changes.

    Usage:
        counter = wrap({"count": 0})
        log = []

        r = autorun(lambda: log.append(counter["count"]))
        # log == [0]

        counter["count"] = 1
        # log == [0, 1]
    """
    return reaction(fn, _ignore)


def dispose(handle) -> None:
    """Permanently stop a Reaction or Computed. Disposing twice is a no-op."""
    handle.dispose()
