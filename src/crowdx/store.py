"""Store — schema-backed observable state with reaction lifecycle.

A Store wraps a dict of named fields and manages reaction disposers.
reconcile() supports schema evolution: add new keys and re-register reactions
without losing existing values.
"""

from __future__ import annotations

from crowdx.action import action, transaction
from crowdx.observable import ObservableDict, wrap


class Store:
    """Key-based observable container with reaction lifecycle."""

    def __init__(self, schema: dict[str, object], initial: dict | None = None) -> None:
        values = {}
        for key, default in schema.items():
            values[key] = initial.get(key, default) if initial else default
        self._state: ObservableDict = wrap(values)
        self._reaction_disposers: list = []

    @property
    def state(self) -> ObservableDict:
        """The wrapped root dict. Nested reads and writes go straight through it."""
        return self._state

    def get(self, key: str) -> object:
        return self._state.get(key)

    def set(self, key: str, value: object) -> None:
        """Assign a schema key. Keys outside the schema are ignored."""
        if key in self._state:
            self._state[key] = value

    @action
    def update(self, values: dict) -> None:
        for key, value in values.items():
            self.set(key, value)

    def _add_keys(self, schema: dict[str, object]) -> list[str]:
        new_keys = [key for key in schema if key not in self._state]
        with transaction():
            for key in new_keys:
                self._state[key] = schema[key]
        return new_keys

    def reconcile(self, schema: dict[str, object], setup_fn) -> None:
        """Schema evolution: add new keys, re-register reactions.

        Existing values are untouched. New keys get defaults.
        Old reactions are disposed. setup_fn(store) -> list[disposer] registers new ones.
        """
        self._add_keys(schema)
        self._dispose_reactions()
        self._reaction_disposers = setup_fn(self) or []

    def _dispose_reactions(self):
        for d in self._reaction_disposers:
            d.dispose()
        self._reaction_disposers.clear()

    def dispose(self):
        self._dispose_reactions()
