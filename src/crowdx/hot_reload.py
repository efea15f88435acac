"""Hot-reload-aware store. Opt-in — import only if you need hot-reload support.

After a module reload the functions that built a store's reactions are new
objects, while the wrapped state should carry on. HotReloadStore keeps the
state, swaps the reactions, and refuses to let a broken setup function take
the application down with it.
"""

import logging

from crowdx.store import Store

logger = logging.getLogger("crowdx.hot_reload")


class HotReloadStore(Store):
    """Store whose reconcile() logs instead of raising.

    - New schema keys are added before anything else, so they survive a
      failed setup.
    - Failing setup functions are logged with their traceback, and the
      store carries on with no reactions (degraded, values intact).
    """

    def reconcile(self, schema, setup_fn):
        new_keys = self._add_keys(schema)
        if new_keys:
            logger.debug("Added keys: %s", ", ".join(new_keys))

        retired = len(self._reaction_disposers)
        self._dispose_reactions()

        try:
            self._reaction_disposers = setup_fn(self) or []
        except Exception:
            logger.exception("Failed to register reactions during reconcile")
            self._reaction_disposers = []
            return

        logger.info(
            "Reconciled: %d new keys, %d->%d reactions",
            len(new_keys), retired, len(self._reaction_disposers),
        )
