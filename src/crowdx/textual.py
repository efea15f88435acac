"""Textual integration for CrowdX. Opt-in — requires textual.

Reactions that touch widgets need three guards: the app must be running,
the widget tree must not be mid-replacement, and a widget query may find
nothing while screens change. Effects triggered from a worker thread must
also be handed back to the app's thread.

// [LAW:single-enforcer] Guard + NoMatches + thread-marshal enforced here, not at callsites.
// [LAW:locality-or-seam] Textual coupling isolated in this module — core CrowdX stays agnostic.
"""

import threading
from contextlib import contextmanager

from textual.css.query import NoMatches

from crowdx import autorun as _autorun, reaction as _reaction, wrap

# Module-owned pause state — keyed by id(app) so multiple apps work in tests.
# Observable, so guarded autoruns skipped during a pause re-run when it ends.
_paused_apps = wrap({})


@contextmanager
def pause(app):
    """Suspend guarded effects during widget replacement."""
    key = id(app)
    _paused_apps[key] = True
    try:
        yield
    finally:
        _paused_apps.pop(key, None)


def is_safe(app) -> bool:
    """Is the widget tree in a queryable state?"""
    return app.is_running and id(app) not in _paused_apps


def _guard(app, fn):
    """Wrap fn so it only runs while app is safe, on the app's thread."""
    main = threading.get_ident()

    def _safe(*args):
        try:
            fn(*args)
        except NoMatches:
            pass

    def _guarded(*args):
        if not is_safe(app):
            return
        if threading.get_ident() != main:
            app.call_from_thread(_safe, *args)
        else:
            _safe(*args)

    return _guarded


def reaction(app, tracked_fn, effect_fn):
    """reaction() whose effect safely updates Textual widgets.

    The tracked function always runs, so dependencies stay current while
    the app is paused; only the effect is skipped.
    """
    return _reaction(tracked_fn, _guard(app, effect_fn))


def autorun(app, fn):
    """autorun() that only runs fn while the app is safe to query.

    A run skipped during pause() is made up when the pause ends.
    """
    return _autorun(_guard(app, fn))
