"""Dependency tracking engine — the heart of CrowdX.

A tracking frame records which field handles a reaction reads while its
tracked function runs. When the frame closes, the reaction joins the
reaction-set of every handle it read, replacing whatever it subscribed to
on its previous run.

Batching: publications inside an @action or `with transaction()` accumulate
handles and flush them once at the end, ensuring glitch-free updates.
Publications outside any batch open an implicit one, so every flush goes
through the same deduplicating loop.
"""

from __future__ import annotations

import contextvars
import logging
from typing import TYPE_CHECKING, Iterable

from crowdx import _anchor
from crowdx.errors import ReactionCycleError, TrackingError

if TYPE_CHECKING:
    from crowdx.reaction import Reaction

logger = logging.getLogger("crowdx.tracking")


class _Frame:
    __slots__ = ("reaction", "handles")

    def __init__(self, reaction: Reaction) -> None:
        self.reaction = reaction
        self.handles: set[int] = set()


# The currently-running tracked function, if any.
# When set, every tracked field read registers its handle here.
current_frame: contextvars.ContextVar[_Frame | None] = contextvars.ContextVar(
    "current_frame", default=None
)

# Batch depth counter. When > 0, publications are deferred.
_batch_depth: int = 0

# Handles published during a batch, awaiting flush. A dict keeps insertion order.
_pending: dict[int, None] = {}

# Upper bound on flush rounds before a reaction cycle is assumed.
_max_flush_rounds: int = 100


def set_max_flush_rounds(rounds: int) -> None:
    """Configure how many flush rounds may run before ReactionCycleError."""
    global _max_flush_rounds
    if rounds < 1:
        raise ValueError(f"rounds must be at least 1, got {rounds}")
    _max_flush_rounds = rounds


# ─── Tracking ────────────────────────────────────────────────────────────────


def begin_tracking(reaction: Reaction) -> None:
    """Open a tracking frame for reaction. Frames never nest."""
    frame = current_frame.get()
    if frame is not None:
        raise TrackingError(
            f"cannot start tracking {reaction!r} while {frame.reaction!r} is running"
        )
    _unsubscribe(reaction)
    current_frame.set(_Frame(reaction))


def complete_tracking() -> None:
    """Subscribe the frame's reaction to every handle it read, then close the frame."""
    frame = current_frame.get()
    if frame is None:
        return
    current_frame.set(None)

    reaction = frame.reaction
    if reaction._id not in _anchor.active:
        return
    deps = _anchor.dependencies.setdefault(reaction._id, set())
    for handle in frame.handles:
        reactions = _anchor.reaction_sets.get(handle)
        if reactions is not None:
            reactions.add(reaction)
            deps.add(handle)


def track(handle: int) -> None:
    """Record a field read. Reads outside any tracked function are ignored."""
    frame = current_frame.get()
    if frame is not None:
        frame.handles.add(handle)


def is_tracking() -> bool:
    return current_frame.get() is not None


def _unsubscribe(reaction: Reaction) -> None:
    for handle in _anchor.dependencies.pop(reaction._id, ()):
        reactions = _anchor.reaction_sets.get(handle)
        if reactions is not None:
            reactions.discard(reaction)


def dispose(reaction: Reaction) -> None:
    """Remove reaction from every reaction-set for good. Idempotent."""
    if reaction._id not in _anchor.active:
        return
    _anchor.active.discard(reaction._id)
    _unsubscribe(reaction)
    _anchor.derivation_fns.pop(reaction._id, None)
    logger.debug("Disposed %r", reaction)


# ─── Batching ────────────────────────────────────────────────────────────────


def begin_batch() -> None:
    """Enter a batching scope. Nested batches flatten into the outermost one."""
    global _batch_depth
    _batch_depth += 1


def end_batch() -> None:
    """Exit a batching scope. When the outermost scope exits, flush pending handles."""
    global _batch_depth
    _batch_depth -= 1
    if _batch_depth == 0:
        _flush_pending()


begin_action = begin_batch
complete_action = end_batch


def publish(handle: int) -> None:
    """Notify everything subscribed to handle, now or at the end of the batch."""
    publish_all((handle,))


def publish_all(handles: Iterable[int]) -> None:
    """Like publish(), but a reaction subscribed to several handles runs once."""
    for handle in handles:
        _pending[handle] = None
    if _batch_depth == 0:
        _flush_pending()


def _collect(handles: list[int]) -> list[Reaction]:
    """Union the reaction-sets of handles, first-seen order, no duplicates."""
    reactions: dict[Reaction, None] = {}
    for handle in handles:
        for reaction in _anchor.reaction_sets.get(handle, ()):
            reactions[reaction] = None
    return list(reactions)


def _flush_pending() -> None:
    """Run every reaction subscribed to a pending handle, round by round.

    The batch stays open while reactions run, so anything they publish
    lands in the next round instead of re-entering this one. A reaction
    therefore runs at most once per round.
    """
    global _batch_depth
    _batch_depth += 1
    try:
        rounds = 0
        while _pending:
            rounds += 1
            if rounds > _max_flush_rounds:
                logger.error(
                    "Flush did not settle after %d rounds, %d handles still pending",
                    _max_flush_rounds,
                    len(_pending),
                )
                raise ReactionCycleError(
                    f"reactions did not settle after {_max_flush_rounds} rounds"
                )
            # Snapshot and clear — reactions may publish new handles during run.
            handles = list(_pending)
            _pending.clear()
            for reaction in _collect(handles):
                # Skip reactions disposed by an earlier reaction in this round.
                if reaction._id in _anchor.active:
                    reaction._run()
    except BaseException:
        if _pending:
            logger.debug("Flush aborted, dropping %d pending handles", len(_pending))
            _pending.clear()
        raise
    finally:
        _batch_depth -= 1


def get_pending_count() -> int:
    """Number of handles waiting to be flushed. Useful for testing."""
    return len(_pending)
