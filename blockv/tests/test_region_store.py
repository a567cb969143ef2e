"""
Tests for the in-memory object store embedded in Region:
add / update / remove semantics, event batching, and mapped reads.
"""

from __future__ import annotations

import unittest

from blockv.const import (
    EVENT_OBJECT_ADDED,
    EVENT_OBJECT_REMOVED,
    EVENT_OBJECT_UPDATED,
    EVENT_UPDATED,
)
from blockv.datapool.data_object import DataObject, DataObjectUpdateRecord

from .test_common import EventRecorder, make_object, make_region


class TestAdd(unittest.TestCase):

    def test_new_objects_stored(self):
        region = make_region()
        region.add([make_object("A"), make_object("B")])
        self.assertEqual(set(region.objects), {"A", "B"})

    def test_existing_object_data_replaced_not_merged(self):
        region = make_region()
        region.add([make_object("A", title="one", extra=1)])
        region.add([make_object("A", title="two")])
        self.assertEqual(region.objects["A"].data, {"title": "two"})

    def test_replace_invalidates_cached_view(self):
        region = make_region()
        region.add([make_object("A")])
        region.get("A")
        self.assertIsNotNone(region.objects["A"].cached_view)
        region.add([make_object("A", title="changed")])
        self.assertIsNone(region.objects["A"].cached_view)

    def test_objects_without_data_skipped(self):
        region = make_region()
        recorder = EventRecorder(region)
        region.add([DataObject(id="A", type="vatom", data=None)])
        self.assertEqual(region.objects, {})
        self.assertEqual(recorder.events, [])

    def test_events_per_object_and_one_aggregate(self):
        region = make_region()
        region.add([make_object("A")])
        recorder = EventRecorder(region)

        region.add([make_object("A", title="x"), make_object("B")])

        self.assertEqual(recorder.ids_for(EVENT_OBJECT_UPDATED), ["A", "B"])
        self.assertEqual(recorder.ids_for(EVENT_OBJECT_ADDED), ["B"])
        self.assertEqual(recorder.names().count(EVENT_UPDATED), 1)


class TestUpdate(unittest.TestCase):

    def test_deep_merge_preserves_siblings(self):
        region = make_region()
        region.add([make_object("X", p={"q": 0, "r": 2})])
        region.update([DataObjectUpdateRecord(id="X", changes={"p": {"q": 1}})])
        self.assertEqual(region.objects["X"].data, {"p": {"q": 1, "r": 2}})

    def test_update_invalidates_cached_view(self):
        region = make_region()
        region.add([make_object("X", p={"q": 0})])
        region.get("X")
        region.update([DataObjectUpdateRecord(id="X", changes={"p": {"q": 1}})])
        self.assertIsNone(region.objects["X"].cached_view)

    def test_same_id_twice_in_batch_notifies_once(self):
        region = make_region()
        region.add([make_object("X", n=0)])
        recorder = EventRecorder(region)

        region.update([
            DataObjectUpdateRecord(id="X", changes={"n": 1}),
            DataObjectUpdateRecord(id="X", changes={"n": 2}),
        ])

        self.assertEqual(region.objects["X"].data, {"n": 2})
        self.assertEqual(recorder.ids_for(EVENT_OBJECT_UPDATED), ["X"])
        self.assertEqual(recorder.names().count(EVENT_UPDATED), 1)

    def test_object_without_data_not_updated(self):
        region = make_region()
        region.objects["X"] = DataObject(id="X", type="vatom", data=None)
        recorder = EventRecorder(region)
        region.update([DataObjectUpdateRecord(id="X", changes={"n": 1})])
        self.assertIsNone(region.objects["X"].data)
        self.assertEqual(recorder.events, [])


class TestRemove(unittest.TestCase):

    def test_remove_existing(self):
        region = make_region()
        region.add([make_object("A"), make_object("B")])
        recorder = EventRecorder(region)

        region.remove(["A"])

        self.assertEqual(set(region.objects), {"B"})
        self.assertEqual(recorder.ids_for(EVENT_OBJECT_REMOVED), ["A"])
        self.assertEqual(recorder.names().count(EVENT_UPDATED), 1)


class TestUnknownIds(unittest.TestCase):

    def test_unknown_ids_are_silently_ignored(self):
        region = make_region()
        region.add([make_object("A")])
        recorder = EventRecorder(region)

        region.remove(["nonexistent"])
        region.update([DataObjectUpdateRecord(id="nonexistent", changes={})])

        self.assertEqual(set(region.objects), {"A"})
        self.assertEqual(recorder.events, [])
        self.assertFalse(region.save_pending)


class TestReads(unittest.TestCase):

    def test_default_mapper_returns_stored_data_object(self):
        region = make_region()
        obj = make_object("A")
        region.add([obj])
        self.assertIs(region.get("A"), region.objects["A"])
        self.assertEqual(region.get("A").data, obj.data)

    def test_added_data_is_copied(self):
        region = make_region()
        obj = make_object("A")
        region.add([obj])

        region.preemptive_change("A", "properties.owner", "u2")

        self.assertEqual(obj.data["properties"]["owner"], "u1")
        self.assertIsNot(region.objects["A"], obj)

    def test_get_unknown_returns_none(self):
        self.assertIsNone(make_region().get("missing"))

    def test_mapper_result_memoized(self):
        calls = []

        def mapper(obj):
            calls.append(obj.id)
            return {"id": obj.id, "title": obj.data["title"]}

        region = make_region(mapper=mapper)
        region.add([make_object("A", title="t")])

        first = region.get("A")
        second = region.get("A")

        self.assertIs(first, second)
        self.assertEqual(calls, ["A"])

    def test_mapper_none_filters_object(self):
        region = make_region(mapper=lambda obj: None if obj.data.get("hidden") else obj.id)
        region.add([make_object("A", hidden=True), make_object("B", hidden=False)])

        self.assertEqual(region.get_all(), ["B"])
        self.assertIsNone(region.get("A"))
