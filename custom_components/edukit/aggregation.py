"""Reporting views built from flat inventory lists.

``build_location_report`` groups items into a room → shelf → slot tree by
parsing each item's stored location text. Grouping is keyed purely by the
decoded names, so items entered by hand (never picked from the location tree)
are reported alongside everything else.

``build_dashboard_summary`` produces the totals, per-category quantities and
recent-items list shown on the dashboard.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from .const import ALL_SLOTS, OTHER_SHELF
from .location_codec import parse_location
from .models import InventoryItem, collation_key, item_to_wire, sort_items_recent

MAX_SLOT_EXAMPLES = 3


@dataclass
class SlotSummary:
    name: str
    item_count: int = 0
    total_quantity: int = 0
    examples: list[str] = field(default_factory=list)


@dataclass
class ShelfSummary:
    name: str
    item_count: int = 0
    total_quantity: int = 0
    slots: list[SlotSummary] = field(default_factory=list)


@dataclass
class RoomSummary:
    name: str
    item_count: int = 0
    total_quantity: int = 0
    shelves: list[ShelfSummary] = field(default_factory=list)


def build_location_report(items: Iterable[InventoryItem]) -> list[RoomSummary]:
    """Aggregate counts and quantities per room, shelf and slot.

    Items with several locations are counted under their first one only.
    """

    rooms: dict[str, RoomSummary] = {}
    shelves: dict[tuple[str, str], ShelfSummary] = {}
    slots: dict[tuple[str, str, str], SlotSummary] = {}

    for item in items:
        parsed = parse_location(item.location)
        shelf_name = parsed.shelf or OTHER_SHELF
        slot_name = parsed.slot or ALL_SLOTS
        quantity = int(item.quantity)

        room = rooms.get(parsed.room)
        if room is None:
            room = rooms[parsed.room] = RoomSummary(name=parsed.room)
        shelf_key = (parsed.room, shelf_name)
        shelf = shelves.get(shelf_key)
        if shelf is None:
            shelf = shelves[shelf_key] = ShelfSummary(name=shelf_name)
            room.shelves.append(shelf)
        slot_key = (parsed.room, shelf_name, slot_name)
        slot = slots.get(slot_key)
        if slot is None:
            slot = slots[slot_key] = SlotSummary(name=slot_name)
            shelf.slots.append(slot)

        for node in (room, shelf, slot):
            node.item_count += 1
            node.total_quantity += quantity
        if len(slot.examples) < MAX_SLOT_EXAMPLES:
            slot.examples.append(item.name)

    ordered = sorted(rooms.values(), key=lambda r: collation_key(r.name))
    for room in ordered:
        room.shelves.sort(key=lambda s: collation_key(s.name))
        for shelf in room.shelves:
            shelf.slots.sort(key=lambda s: collation_key(s.name))
    return ordered


def report_as_dict(report: list[RoomSummary]) -> list[dict[str, Any]]:
    """Plain-data form of a location report for service responses."""

    return [
        {
            "name": room.name,
            "item_count": room.item_count,
            "total_quantity": room.total_quantity,
            "shelves": [
                {
                    "name": shelf.name,
                    "item_count": shelf.item_count,
                    "total_quantity": shelf.total_quantity,
                    "slots": [
                        {
                            "name": slot.name,
                            "item_count": slot.item_count,
                            "total_quantity": slot.total_quantity,
                            "examples": list(slot.examples),
                        }
                        for slot in shelf.slots
                    ],
                }
                for shelf in room.shelves
            ],
        }
        for room in report
    ]


def build_dashboard_summary(
    items: Iterable[InventoryItem], *, recent_limit: int = 5
) -> dict[str, Any]:
    """Totals, quantity per category tag and the most recently updated items."""

    materialized = list(items)
    by_category: dict[str, int] = {}
    for item in materialized:
        # Multi-tag items contribute their full quantity to each tag
        for category in item.categories:
            by_category[category] = by_category.get(category, 0) + int(item.quantity)

    recent = sort_items_recent(materialized)[: max(0, recent_limit)]
    return {
        "total_items": len(materialized),
        "total_quantity": sum(int(i.quantity) for i in materialized),
        "by_category": [{"name": k, "value": v} for k, v in by_category.items()],
        "recent": [item_to_wire(i) for i in recent],
    }
