"""Actions and transactions — batched state mutations.

Writes made inside an action or a `with transaction():` block are held back
until the outermost scope exits. Reactions then run once each, over the
union of everything that changed, so none of them ever sees a
partially-applied update. An exception raised inside the scope still
publishes the writes that happened before it.
"""

from __future__ import annotations

import functools
from contextlib import contextmanager
from typing import Callable, Iterator, ParamSpec, TypeVar

from crowdx._tracking import begin_action, complete_action

P = ParamSpec("P")
R = TypeVar("R")


@contextmanager
def transaction() -> Iterator[None]:
    """Batch every write made inside the block.

    Usage:
        with transaction():
            state["a"] = 1
            state["b"] = 2
        # reactions reading a and b ran once, here
    """
    begin_action()
    try:
        yield
    finally:
        complete_action()


def action(fn: Callable[P, R]) -> Callable[P, R]:
    """Wrap fn so each call runs inside a transaction.

    The wrapper returns whatever fn returns. Calling one action from another
    joins the caller's batch; only the outermost call flushes.

    Usage:
        state = wrap({"a": 0, "b": 0})

        @action
        def swap():
            state["a"], state["b"] = state["b"], state["a"]
    """

    @functools.wraps(fn)
    def run_in_transaction(*args: P.args, **kwargs: P.kwargs) -> R:
        with transaction():
            return fn(*args, **kwargs)

    return run_in_transaction
