"""Observable values — nested state that tracks its readers.

wrap() turns a JSON-like tree of dicts and lists into ObservableDict and
ObservableList wrappers, all the way down. Each field gets its own handle
the first time it is assigned. Reading a field inside a tracked function
subscribes that function to the field's handle; writing the field publishes
it.

Every wrapped object also knows one "parent" handle, published when the
object as a whole changes shape (a key is added or removed, a list is
mutated in bulk). For a nested object that is the handle of the field
holding it; a root object mints its own.

All state lives in _anchor — instances are thin handles holding an _id.
"""

from __future__ import annotations

import weakref
from typing import Any, Callable, Generic, Iterable, Iterator, TypeVar

from crowdx import _anchor
from crowdx._tracking import begin_batch, end_batch, publish, publish_all, track

T = TypeVar("T")
KT = TypeVar("KT")
VT = TypeVar("VT")

_PRIMITIVES = (str, bytes, int, float, complex, bool, type(None))


def _unchanged(old: Any, new: Any) -> bool:
    """Identity, or equal primitives of the same type. Never deep comparison."""
    if old is new:
        return True
    return type(old) is type(new) and isinstance(old, _PRIMITIVES) and old == new


def _wrap(value: Any, parent: int | None) -> Any:
    if isinstance(value, _ObservableContainer):
        if parent is not None:
            _anchor.set_parent(value._id, parent)
        return value
    if isinstance(value, dict):
        return ObservableDict(value, _parent=parent)
    if isinstance(value, (list, tuple)):
        return ObservableList(value, _parent=parent)
    return value


def wrap(value: Any) -> Any:
    """Return an observable view of value.

    Dicts become ObservableDict, lists and tuples become ObservableList,
    recursively. Anything else, including an already-wrapped value, is
    returned unchanged. The input is never mutated.

    Usage:
        state = wrap({"todos": [{"title": "write docs", "done": False}]})
        state["todos"][0]["done"] = True
    """
    return _wrap(value, None)


def is_observable(value: Any) -> bool:
    return isinstance(value, _ObservableContainer)


def to_plain(value: Any) -> Any:
    """Copy a wrapped tree back into plain dicts and lists.

    Every field is read through the tracked path, so calling this inside a
    reaction subscribes it to the whole subtree.
    """
    if isinstance(value, ObservableDict):
        return {key: to_plain(item) for key, item in value.items()}
    if isinstance(value, ObservableList):
        return [to_plain(item) for item in value]
    return value


class _ObservableContainer:
    """Shared bookkeeping for ObservableDict and ObservableList."""

    __slots__ = ("_id", "__weakref__")

    def __init__(self, storage: dict | list, parent: int | None) -> None:
        self._id = _anchor.new_id()
        _anchor.values[self._id] = storage
        _anchor.field_handles[self._id] = {}
        if parent is None:
            parent = _anchor.new_handle()
            _anchor.shape_handles[self._id] = parent
        _anchor.set_parent(self._id, parent)
        weakref.finalize(self, _anchor.release, self._id)

    @property
    def _handles(self) -> dict:
        return _anchor.field_handles[self._id]

    @property
    def _parent(self) -> int:
        return _anchor.parents[self._id]

    def _handle_for(self, key) -> int:
        """Return the handle for key, minting it on first use."""
        handles = self._handles
        handle = handles.get(key)
        if handle is None:
            handle = handles[key] = _anchor.new_handle()
        return handle

    def _track_shape(self) -> None:
        track(self._parent)

    def _publish_shape(self) -> None:
        publish(self._parent)


class ObservableDict(_ObservableContainer, Generic[KT, VT]):
    """A wrapped dict. Item reads track, item writes publish.

    Reading a key that is present tracks that key's handle. Reading a
    missing key, testing membership, or enumerating tracks the dict's
    shape instead, since only adding or removing keys can change those.
    """

    __slots__ = ()

    def __init__(self, data: dict[KT, VT] | None = None, *, _parent: int | None = None) -> None:
        super().__init__({}, _parent)
        for key, value in (data or {}).items():
            self._write(key, value, notify=False)

    @property
    def _data(self) -> dict[KT, VT]:
        return _anchor.values[self._id]

    def _track(self, key) -> None:
        if key in self._data:
            track(self._handles[key])
        else:
            self._track_shape()

    def _write(self, key, value, *, notify: bool = True) -> None:
        data = self._data
        if key in data and _unchanged(data[key], value):
            return
        is_new = key not in data
        handle = self._handle_for(key)
        data[key] = _wrap(value, handle)
        if notify:
            # A new key changes the dict's shape, which readers of the
            # individual (not yet existing) handle could never have seen.
            publish(self._parent if is_new else handle)

    def _remove(self, key) -> Any:
        value = self._data.pop(key)
        publish_all((self._handles[key], self._parent))
        return value

    # --- Read operations (track) ---

    def __getitem__(self, key: KT) -> VT:
        self._track(key)
        return self._data[key]

    def get(self, key: KT, default: VT | None = None) -> VT | None:
        self._track(key)
        return self._data.get(key, default)

    def __contains__(self, key) -> bool:
        self._track_shape()
        return key in self._data

    def __len__(self) -> int:
        self._track_shape()
        return len(self._data)

    def __iter__(self) -> Iterator[KT]:
        self._track_shape()
        return iter(list(self._data))

    def __bool__(self) -> bool:
        self._track_shape()
        return bool(self._data)

    def keys(self) -> list[KT]:
        self._track_shape()
        return list(self._data)

    def values(self) -> list[VT]:
        return [self[key] for key in self.keys()]

    def items(self) -> list[tuple[KT, VT]]:
        return [(key, self[key]) for key in self.keys()]

    # --- Write operations (publish) ---

    def __setitem__(self, key: KT, value: VT) -> None:
        self._write(key, value)

    def __delitem__(self, key: KT) -> None:
        self._remove(key)

    def pop(self, key, *default):
        if key not in self._data:
            if default:
                return default[0]
            raise KeyError(key)
        return self._remove(key)

    def popitem(self) -> tuple:
        if not self._data:
            raise KeyError("popitem(): dictionary is empty")
        key = next(reversed(self._data))
        return key, self._remove(key)

    def setdefault(self, key, default=None):
        if key not in self._data:
            self._write(key, default)
        return self[key]

    def update(self, other=None, **kwargs) -> None:
        begin_batch()
        try:
            for key, value in dict(other or {}, **kwargs).items():
                self._write(key, value)
        finally:
            end_batch()

    def clear(self) -> None:
        if not self._data:
            return
        handles = [self._handles[key] for key in self._data]
        self._data.clear()
        publish_all([*handles, self._parent])

    def __repr__(self) -> str:
        return f"ObservableDict({self._data!r})"


class ObservableList(_ObservableContainer, Generic[T]):
    """A wrapped list. Index reads track, index writes publish.

    Mutating methods (append, pop, sort, slice assignment, ...) can move
    any number of items at once, so they publish the list's shape together
    with every index handle rather than guessing which indices changed.
    """

    __slots__ = ()

    def __init__(self, items: Iterable[T] | None = None, *, _parent: int | None = None) -> None:
        super().__init__([], _parent)
        for index, value in enumerate(items or ()):
            self._write(index, value, notify=False)

    @property
    def _items(self) -> list[T]:
        return _anchor.values[self._id]

    def _index(self, index: int) -> int:
        """Normalize a negative index. Out-of-range indices are left alone."""
        if index < 0:
            return index + len(self._items)
        return index

    def _write(self, index: int, value, *, notify: bool = True) -> None:
        items = self._items
        if index < len(items) and _unchanged(items[index], value):
            return
        is_new = index == len(items)
        handle = self._handle_for(index)
        wrapped = _wrap(value, handle)
        if is_new:
            items.append(wrapped)
        else:
            items[index] = wrapped
        if notify:
            publish(self._parent if is_new else handle)

    def _mutate(self, op: Callable, *args) -> Any:
        """Apply a bulk operation to the storage, then publish the whole list."""
        items = self._items
        result = op(items, *args)
        for index, item in enumerate(items):
            handle = self._handle_for(index)
            if isinstance(item, _ObservableContainer):
                _anchor.set_parent(item._id, handle)
        publish_all([*self._handles.values(), self._parent])
        return result

    def _wrap_items(self, values: Iterable) -> list:
        return [_wrap(value, self._parent) for value in values]

    # --- Read operations (track) ---

    def __getitem__(self, index):
        if isinstance(index, slice):
            return [self[i] for i in range(*index.indices(len(self)))]
        position = self._index(index)
        if 0 <= position < len(self._items):
            track(self._handles[position])
        else:
            self._track_shape()
        return self._items[index]

    def __len__(self) -> int:
        self._track_shape()
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        for index in range(len(self)):
            yield self[index]

    def __contains__(self, value) -> bool:
        return any(item is value or item == value for item in self)

    def __bool__(self) -> bool:
        return len(self) > 0

    def index(self, value) -> int:
        for position, item in enumerate(self):
            if item is value or item == value:
                return position
        raise ValueError(f"{value!r} is not in list")

    def count(self, value) -> int:
        return sum(1 for item in self if item is value or item == value)

    # --- Write operations (publish) ---

    def __setitem__(self, index, value) -> None:
        if isinstance(index, slice):
            self._mutate(list.__setitem__, index, self._wrap_items(value))
            return
        position = self._index(index)
        if not 0 <= position < len(self._items):
            raise IndexError("list assignment index out of range")
        self._write(position, value)

    def __delitem__(self, index) -> None:
        self._mutate(list.__delitem__, index)

    def __iadd__(self, values: Iterable[T]) -> ObservableList[T]:
        self.extend(values)
        return self

    def append(self, value: T) -> None:
        self._mutate(list.append, _wrap(value, self._parent))

    def extend(self, values: Iterable[T]) -> None:
        self._mutate(list.extend, self._wrap_items(values))

    def insert(self, index: int, value: T) -> None:
        self._mutate(list.insert, index, _wrap(value, self._parent))

    def pop(self, index: int = -1) -> T:
        return self._mutate(list.pop, index)

    def remove(self, value) -> None:
        self._mutate(list.remove, value)

    def clear(self) -> None:
        self._mutate(list.clear)

    def sort(self, *, key=None, reverse: bool = False) -> None:
        self._mutate(lambda items: items.sort(key=key, reverse=reverse))

    def reverse(self) -> None:
        self._mutate(list.reverse)

    def fill(self, value, start: int = 0, stop: int | None = None) -> None:
        """Assign value to every index in [start, stop)."""

        def _fill(items: list) -> None:
            wrapped = _wrap(value, self._parent)
            for index in range(*slice(start, stop).indices(len(items))):
                items[index] = wrapped

        self._mutate(_fill)

    def __repr__(self) -> str:
        return f"ObservableList({self._items!r})"
