"""Tests for wrap(), ObservableDict and ObservableList."""

import gc
import json

import pytest

from crowdx import (
    ObservableDict,
    ObservableList,
    autorun,
    is_observable,
    reaction,
    to_plain,
    wrap,
)
from crowdx import _anchor


class TestWrap:
    def test_flat_object(self):
        obs = wrap({"foo1": "bar", "foo2": 12, "foo3": True})
        assert isinstance(obs, ObservableDict)
        assert obs["foo1"] == "bar"
        assert obs["foo2"] == 12
        assert obs["foo3"] is True

    def test_nested_objects_are_wrapped(self):
        obs = wrap({"foo": {"bar": "stuff"}, "items": [{"n": 1}]})
        assert isinstance(obs["foo"], ObservableDict)
        assert obs["foo"]["bar"] == "stuff"
        assert isinstance(obs["items"], ObservableList)
        assert isinstance(obs["items"][0], ObservableDict)

    def test_tuple_becomes_list(self):
        obs = wrap((1, 2))
        assert isinstance(obs, ObservableList)
        assert list(obs) == [1, 2]

    def test_primitives_pass_through(self):
        assert wrap(5) == 5
        assert wrap("text") == "text"
        assert wrap(None) is None

    def test_idempotent(self):
        obs = wrap({"a": 1})
        assert wrap(obs) is obs
        assert is_observable(obs)
        assert not is_observable({"a": 1})

    def test_does_not_mutate_input(self):
        source = {"a": {"b": [1]}}
        obs = wrap(source)
        obs["a"]["b"].append(2)
        obs["a"]["c"] = 3
        assert source == {"a": {"b": [1]}}

    def test_to_plain(self):
        obs = wrap({"a": [1, {"b": 2}], "c": None})
        plain = to_plain(obs)
        assert plain == {"a": [1, {"b": 2}], "c": None}
        assert type(plain["a"][1]) is dict

    def test_containers_are_generic(self):
        counts: ObservableDict[str, int] = ObservableDict[str, int]({"a": 1})
        names = ObservableList[str](["x"])
        assert counts["a"] == 1
        assert names[0] == "x"

    def test_repr(self):
        assert "ObservableDict" in repr(wrap({"a": 1}))
        assert "ObservableList" in repr(wrap([1]))


class TestObservableDict:
    def test_change_propagation(self):
        s = wrap({"foo": {"bar": "stuff"}})
        seen = []
        reaction(lambda: s["foo"]["bar"], seen.append)
        s["foo"]["bar"] = "otherstuff"
        assert seen == ["stuff", "otherstuff"]

    def test_same_value_is_noop(self):
        s = wrap({"a": 1, "child": {"x": 1}})
        log = []
        autorun(lambda: log.append((s["a"], s["child"])))
        child = s["child"]
        s["a"] = 1
        s["child"] = child
        assert len(log) == 1

    def test_equal_but_distinct_object_publishes(self):
        """Change detection is by identity, never deep comparison."""
        s = wrap({"child": {"x": 1}})
        log = []
        autorun(lambda: log.append(to_plain(s["child"])))
        s["child"] = {"x": 1}
        assert log == [{"x": 1}, {"x": 1}]

    def test_primitive_of_other_type_publishes(self):
        s = wrap({"a": 1})
        log = []
        autorun(lambda: log.append(s["a"]))
        s["a"] = True
        assert log == [1, True]

    def test_new_field_escalates_to_parent(self):
        s = wrap({"foo": {"bar": 12}})
        seen = []
        reaction(lambda: json.dumps(to_plain(s["foo"])), seen.append)
        s["foo"]["stuff"] = 4
        assert seen == ['{"bar": 12}', '{"bar": 12, "stuff": 4}']

    def test_new_field_on_root_notifies_enumeration(self):
        s = wrap({})
        log = []
        autorun(lambda: log.append(len(s)))
        s["x"] = 1
        assert log == [0, 1]

    def test_unread_field_does_not_trigger(self):
        s = wrap({"a": 1, "b": 2})
        log = []
        autorun(lambda: log.append(s["a"]))
        s["b"] = 3
        assert log == [1]

    def test_same_name_on_different_objects(self):
        first = wrap({"name": "a"})
        second = wrap({"name": "b"})
        log = []
        autorun(lambda: log.append(first["name"]))
        second["name"] = "c"
        assert log == ["a"]

    def test_missing_key_read_tracks_shape(self):
        s = wrap({})
        log = []
        autorun(lambda: log.append(s.get("x")))
        s["x"] = 1
        assert log == [None, 1]

    def test_membership_tracks_shape(self):
        s = wrap({"a": 1})
        log = []
        autorun(lambda: log.append("b" in s))
        s["b"] = 2
        del s["b"]
        assert log == [False, True, False]

    def test_delete_notifies_field_readers(self):
        s = wrap({"a": 1, "b": 2})
        log = []
        autorun(lambda: log.append(s.get("a")))
        del s["a"]
        s["a"] = 3
        assert log == [1, None, 3]

    def test_deleted_key_reuses_handle(self):
        s = wrap({"a": 1})
        handle = s._handles["a"]
        del s["a"]
        s["a"] = 2
        assert s._handles["a"] == handle

    def test_pop_popitem_clear(self):
        s = wrap({"a": 1, "b": 2, "c": 3})
        log = []
        autorun(lambda: log.append(sorted(s.keys())))
        assert s.pop("a") == 1
        assert s.pop("missing", 0) == 0
        assert s.popitem() == ("c", 3)
        s.clear()
        assert log == [["a", "b", "c"], ["b", "c"], ["b"], []]

    def test_update_is_batched(self):
        s = wrap({"x": 0, "y": 0})
        log = []
        autorun(lambda: log.append((s["x"], s["y"])))
        s.update({"x": 1}, y=2)
        assert log == [(0, 0), (1, 2)]

    def test_setdefault(self):
        s = wrap({"a": 1})
        assert s.setdefault("a", 99) == 1
        result = s.setdefault("b", [1])
        assert isinstance(result, ObservableList)
        assert list(result) == [1]

    def test_keys_values_items(self):
        s = wrap({"a": 1, "b": 2})
        assert s.keys() == ["a", "b"]
        assert s.values() == [1, 2]
        assert s.items() == [("a", 1), ("b", 2)]
        assert list(s) == ["a", "b"]
        assert bool(s) is True

    def test_reassigned_wrapped_value_moves_parent(self):
        inner = wrap({"a": 1})
        outer = wrap({"slot": None})
        outer["slot"] = inner
        assert outer["slot"] is inner

        log = []
        autorun(lambda: log.append(len(outer["slot"])))
        inner["b"] = 2
        assert log == [1, 2]

    def test_replacing_subtree(self):
        s = wrap({"user": {"name": "a"}})
        log = []
        autorun(lambda: log.append(s["user"]["name"]))
        s["user"] = {"name": "b"}
        assert log == ["a", "b"]
        s["user"]["name"] = "c"
        assert log == ["a", "b", "c"]


class TestObservableList:
    def test_basic_operations(self):
        lst = wrap([1, 2, 3])
        assert len(lst) == 3
        assert lst[0] == 1
        assert lst[-1] == 3
        assert lst[1:] == [2, 3]
        assert list(lst) == [1, 2, 3]
        assert 2 in lst
        assert lst.index(3) == 2
        assert lst.count(1) == 1

    def test_mutations_notify(self):
        lst = wrap([1, 2])
        log = []
        autorun(lambda: log.append(list(lst)))
        lst.append(3)
        lst.pop()
        lst[0] = 10
        assert log == [[1, 2], [1, 2, 3], [1, 2], [10, 2]]

    def test_index_read_only_tracks_that_index(self):
        lst = wrap([1, 2])
        log = []
        autorun(lambda: log.append(lst[0]))
        lst[1] = 20
        assert log == [1]
        lst.insert(0, 9)
        assert log == [1, 9]

    def test_bulk_operations(self):
        lst = wrap([3, 1, 2])
        log = []
        autorun(lambda: log.append(list(lst)))
        lst.sort()
        lst.reverse()
        lst.extend([0])
        lst.remove(3)
        lst.fill(7, 1)
        del lst[0]
        lst[0:1] = [5, 6]
        lst += [8]
        lst.clear()
        assert log == [
            [3, 1, 2],
            [1, 2, 3],
            [3, 2, 1],
            [3, 2, 1, 0],
            [2, 1, 0],
            [2, 7, 7],
            [7, 7],
            [5, 6, 7],
            [5, 6, 7, 8],
            [],
        ]

    def test_shift_and_unshift(self):
        lst = wrap(["a", "b"])
        log = []
        autorun(lambda: log.append(lst[0]))
        lst.pop(0)
        lst.insert(0, "z")
        assert log == ["a", "b", "z"]

    def test_setitem_out_of_range(self):
        lst = wrap([1])
        with pytest.raises(IndexError):
            lst[5] = 2

    def test_appended_composites_are_wrapped(self):
        lst = wrap([])
        lst.append({"n": 1})
        assert isinstance(lst[0], ObservableDict)

    def test_nested_item_changes(self):
        s = wrap({"items": [{"n": 1}]})
        log = []
        autorun(lambda: log.append(s["items"][0]["n"]))
        s["items"][0]["n"] = 2
        assert log == [1, 2]

    def test_children_follow_their_index_after_reorder(self):
        items = wrap([{"n": 1}, {"n": 2}])
        items.reverse()
        log = []
        autorun(lambda: log.append(sorted(items[0].keys())))
        items[0]["extra"] = True
        assert log == [["n"], ["extra", "n"]]


class TestLifecycle:
    def test_collected_wrapper_releases_its_rows(self):
        s = wrap({"a": {"b": 1}})
        obj_id = s._id
        handle = s._handles["a"]
        del s
        gc.collect()
        assert obj_id not in _anchor.values
        assert obj_id not in _anchor.field_handles
        assert handle not in _anchor.reaction_sets

    def test_surviving_child_notifies_after_parent_collected(self):
        child = wrap({"a": {"b": 1}})["a"]
        gc.collect()
        log = []
        autorun(lambda: log.append(len(child)))
        child["c"] = 2
        assert log == [1, 2]

    def test_parent_handle_released_with_last_child(self):
        child = wrap({"a": {"b": 1}})["a"]
        gc.collect()
        handle = child._parent
        assert handle in _anchor.reaction_sets
        del child
        gc.collect()
        assert handle not in _anchor.reaction_sets
        assert handle not in _anchor.parent_refs

    def test_moved_child_drops_old_parent_reference(self):
        first = wrap({"slot": {"x": 1}})
        second = wrap({})
        old_handle = first._handles["slot"]
        second["slot"] = first["slot"]
        assert second["slot"]._parent == second._handles["slot"]
        assert old_handle not in _anchor.parent_refs
