"""Offline tests for the room/shelf/slot location tree.

Scenarios:
- CRUD at every level with cascading deletes
- Duplicates get fresh ids and stay independent of their source
- Unknown ids are silent no-ops that schedule nothing
- Mutations persist snapshots in order; persist failures keep memory state
- location_string and location_options for item forms
"""

from __future__ import annotations

import logging

import pytest
from custom_components.edukit.exceptions import ValidationError
from custom_components.edukit.location_tree import LocationTree
from custom_components.edukit.models import LocationRoom


class RecordingPersist:
    def __init__(self, fail: bool = False) -> None:
        self.calls: list[tuple[str, list[LocationRoom]]] = []
        self.fail = fail

    async def __call__(self, code: str, rooms: list[LocationRoom]) -> None:
        self.calls.append((code, rooms))
        if self.fail:
            raise RuntimeError("registry unreachable")


def _ids(tree: LocationTree) -> set[str]:
    found: set[str] = set()
    for room in tree.rooms:
        found.add(room.id)
        for shelf in room.shelves:
            found.add(shelf.id)
            found.update(slot.id for slot in shelf.slots)
    return found


def _build(tree: LocationTree) -> tuple[str, str, str]:
    room = tree.add_room("전산1")
    shelf = tree.add_shelf(room.id, "선반A")
    slot = tree.add_slot(room.id, shelf.id, "1칸")
    return room.id, shelf.id, slot.id


@pytest.mark.asyncio
async def test_crud_and_cascade() -> None:
    tree = LocationTree("DEMO001")
    room_id, shelf_id, slot_id = _build(tree)

    tree.update_room(room_id, " 전산실 ")
    tree.update_shelf(room_id, shelf_id, "선반B")
    tree.update_slot(room_id, shelf_id, slot_id, "2칸")
    assert tree.location_string(room_id, shelf_id, slot_id) == "전산실/선반B-2칸"

    tree.delete_slot(room_id, shelf_id, slot_id)
    assert tree.rooms[0].shelves[0].slots == []

    tree.add_slot(room_id, shelf_id, "3칸")
    tree.delete_shelf(room_id, shelf_id)
    assert tree.rooms[0].shelves == []

    tree.add_shelf(room_id, "선반C")
    tree.delete_room(room_id)
    assert tree.rooms == []


@pytest.mark.asyncio
async def test_duplicate_room_is_independent() -> None:
    tree = LocationTree("DEMO001")
    room_id, shelf_id, slot_id = _build(tree)

    copy = tree.duplicate_room(room_id, "X")
    assert copy is not None
    assert copy.name == "X"
    assert [s.name for s in copy.shelves] == ["선반A"]
    assert [s.name for s in copy.shelves[0].slots] == ["1칸"]

    source_ids = {room_id, shelf_id, slot_id}
    copy_ids = {copy.id, copy.shelves[0].id, copy.shelves[0].slots[0].id}
    assert source_ids.isdisjoint(copy_ids)

    # Rename under the copy; the source is untouched, and vice versa
    tree.update_shelf(copy.id, copy.shelves[0].id, "선반Z")
    tree.update_slot(copy.id, copy.shelves[0].id, copy.shelves[0].slots[0].id, "9칸")
    source = tree.rooms[0]
    assert source.shelves[0].name == "선반A"
    assert source.shelves[0].slots[0].name == "1칸"

    tree.update_slot(room_id, shelf_id, slot_id, "5칸")
    assert copy.shelves[0].slots[0].name == "9칸"


@pytest.mark.asyncio
async def test_duplicate_shelf_copies_slots_with_new_ids() -> None:
    tree = LocationTree("DEMO001")
    room_id, shelf_id, slot_id = _build(tree)

    copy = tree.duplicate_shelf(room_id, shelf_id, "선반A-복사")

    assert copy is not None
    assert [s.name for s in tree.rooms[0].shelves] == ["선반A", "선반A-복사"]
    assert copy.slots[0].name == "1칸"
    assert copy.slots[0].id != slot_id


@pytest.mark.asyncio
async def test_unknown_ids_are_silent_noops() -> None:
    persist = RecordingPersist()
    tree = LocationTree("DEMO001", persist=persist)
    room_id, shelf_id, _ = _build(tree)
    await tree.async_flush()
    before = _ids(tree)
    calls_before = len(persist.calls)

    assert tree.add_shelf("missing", "선반") is None
    assert tree.add_slot(room_id, "missing", "칸") is None
    assert tree.duplicate_room("missing", "X") is None
    assert tree.duplicate_shelf(room_id, "missing", "X") is None
    tree.update_room("missing", "X")
    tree.update_slot(room_id, shelf_id, "missing", "X")
    tree.delete_room("missing")
    tree.delete_shelf("missing", shelf_id)
    tree.delete_slot(room_id, shelf_id, "missing")
    await tree.async_flush()

    assert _ids(tree) == before
    assert len(persist.calls) == calls_before


def test_invalid_names_raise() -> None:
    tree = LocationTree("DEMO001")
    with pytest.raises(ValidationError):
        tree.add_room("   ")
    with pytest.raises(ValidationError):
        tree.add_room("x" * 121)


@pytest.mark.asyncio
async def test_each_mutation_persists_a_snapshot_in_order() -> None:
    persist = RecordingPersist()
    tree = LocationTree("DEMO001", persist=persist)

    room = tree.add_room("전산1")
    tree.add_shelf(room.id, "선반A")
    tree.update_room(room.id, "전산2")
    await tree.async_flush()

    assert [code for code, _ in persist.calls] == ["DEMO001"] * 3
    snapshots = [rooms for _, rooms in persist.calls]
    assert snapshots[0][0].name == "전산1"
    assert snapshots[0][0].shelves == []
    assert [s.name for s in snapshots[1][0].shelves] == ["선반A"]
    assert snapshots[2][0].name == "전산2"
    # Snapshots are copies, not the live tree
    assert snapshots[2][0] is not tree.rooms[0]


@pytest.mark.asyncio
async def test_failed_persist_keeps_in_memory_tree(caplog) -> None:
    persist = RecordingPersist(fail=True)
    tree = LocationTree("DEMO001", persist=persist)
    caplog.set_level(logging.WARNING)

    room = tree.add_room("전산1")
    await tree.async_flush()

    assert [r.id for r in tree.rooms] == [room.id]
    assert any(
        r.levelname == "WARNING" and "Failed to persist location tree" in r.message
        for r in caplog.records
    )


def test_location_options_and_strings() -> None:
    tree = LocationTree("DEMO001")
    room_id, shelf_id, slot_id = _build(tree)

    options = tree.location_options()

    assert [o["value"] for o in options] == ["전산1", "전산1/선반A", "전산1/선반A-1칸"]
    assert options[2]["label"] == "전산1 > 선반A > 1칸"
    assert options[2]["slot_id"] == slot_id
    assert "shelf_id" not in options[0]
    assert tree.location_string(room_id) == "전산1"
    assert tree.location_string(room_id, shelf_id) == "전산1/선반A"
    assert tree.location_string("missing") == ""
