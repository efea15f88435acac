"""Data anchor — plain Python structures that hold all reactive state.

This module stores the raw data for every wrapped object, field handle and
reaction. Everything is keyed by integer ids minted from a single counter,
so a field handle is just an int and a child's link to its parent is an id
lookup, never an owning reference.
"""

import itertools

# Wrapped object state, keyed by object id
values: dict[int, object] = {}  # obj_id -> underlying dict/list storage
field_handles: dict[int, dict] = {}  # obj_id -> {field: handle}
parents: dict[int, int] = {}  # obj_id -> handle published on whole-object change
shape_handles: dict[int, int] = {}  # obj_id -> handle minted for a root object
parent_refs: dict[int, int] = {}  # handle -> number of live objects naming it as parent
orphaned: set[int] = set()  # handles whose owner was released while still referenced

# Subscriptions
reaction_sets: dict[int, set] = {}  # handle -> set of Reaction

# Reaction state
dependencies: dict[int, set] = {}  # reaction_id -> set of handles
derivation_fns: dict[int, object] = {}  # reaction_id -> tracked callable
active: set[int] = set()  # ids of reactions that have not been disposed

# ID generation — itertools.count is thread-safe (C-level GIL atomic)
_id_counter = itertools.count(1)


def new_id() -> int:
    return next(_id_counter)


def new_handle() -> int:
    """Mint a field handle with an empty reaction-set."""
    handle = new_id()
    reaction_sets[handle] = set()
    return handle


def set_parent(obj_id: int, handle: int) -> None:
    """Point a wrapped object at the handle published when it changes shape."""
    old = parents.get(obj_id)
    if old == handle:
        return
    parents[obj_id] = handle
    parent_refs[handle] = parent_refs.get(handle, 0) + 1
    if old is not None:
        _unref(old)


def _unref(handle: int) -> None:
    count = parent_refs[handle] - 1
    if count:
        parent_refs[handle] = count
        return
    del parent_refs[handle]
    if handle in orphaned:
        orphaned.discard(handle)
        reaction_sets.pop(handle, None)


def _drop_handle(handle: int) -> None:
    # A live object still naming this handle as its parent keeps it subscribable.
    if handle in parent_refs:
        orphaned.add(handle)
    else:
        reaction_sets.pop(handle, None)


def release(obj_id: int) -> None:
    """Drop every row owned by a wrapped object. Called when it is collected."""
    storage = values.pop(obj_id, None)
    parent = parents.pop(obj_id, None)
    if parent is not None:
        _unref(parent)
    owned = list(field_handles.pop(obj_id, {}).values())
    shape = shape_handles.pop(obj_id, None)
    if shape is not None:
        owned.append(shape)
    for handle in owned:
        _drop_handle(handle)
    # Children held only by storage are collected here, after their handles are marked.
    del storage
