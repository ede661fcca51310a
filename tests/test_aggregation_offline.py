"""Offline tests for the location report and the dashboard summary."""

from __future__ import annotations

import random

from custom_components.edukit.aggregation import (
    build_dashboard_summary,
    build_location_report,
    report_as_dict,
)
from custom_components.edukit.models import InventoryItem


def _item(item_id: str, location: str, quantity: int, **kwargs) -> InventoryItem:  # type: ignore[no-untyped-def]
    return InventoryItem(
        id=item_id,
        name=kwargs.pop("name", f"item-{item_id}"),
        school=kwargs.pop("school", "대건고"),
        quantity=quantity,
        locations=[p.strip() for p in location.split(",") if p.strip()],
        **kwargs,
    )


def test_scenario_two_slots_under_one_shelf() -> None:
    items = [_item("1", "전산1/선반A-2칸", 3), _item("2", "전산1/선반A-1칸", 5)]

    report = build_location_report(items)

    assert len(report) == 1
    room = report[0]
    assert (room.name, room.total_quantity, room.item_count) == ("전산1", 8, 2)
    assert len(room.shelves) == 1
    shelf = room.shelves[0]
    assert (shelf.name, shelf.total_quantity) == ("선반A", 8)
    assert [(s.name, s.total_quantity) for s in shelf.slots] == [("1칸", 5), ("2칸", 3)]


def test_missing_shelf_and_slot_use_defaults() -> None:
    items = [_item("1", "창고", 2), _item("2", "", 1), _item("3", "과학실/캐비닛1", 4)]

    report = {r.name: r for r in build_location_report(items)}

    assert report["창고"].shelves[0].name == "기타"
    assert report["창고"].shelves[0].slots[0].name == "전체"
    assert report["미지정"].item_count == 1
    assert report["과학실"].shelves[0].name == "캐비닛1"
    assert report["과학실"].shelves[0].slots[0].name == "전체"


def test_only_first_location_is_counted() -> None:
    items = [_item("1", "전산1/선반A-1칸, 과학실/캐비닛1", 7)]

    report = build_location_report(items)

    assert [r.name for r in report] == ["전산1"]


def test_conservation_over_random_items() -> None:
    rng = random.Random(7)
    rooms = ["전산1", "과학실", "미술실", "창고", ""]
    shelves = ["", "선반A", "선반B"]
    slots = ["", "1칸", "2칸"]
    items = []
    for index in range(60):
        location = "/".join(p for p in (rng.choice(rooms), rng.choice(shelves)) if p)
        slot = rng.choice(slots)
        if slot and "/" in location:
            location = f"{location}-{slot}"
        items.append(_item(str(index), location, rng.randint(0, 20)))

    report = build_location_report(items)

    assert sum(r.item_count for r in report) == len(items)
    assert sum(r.total_quantity for r in report) == sum(i.quantity for i in items)
    for room in report:
        assert sum(s.item_count for s in room.shelves) == room.item_count
        for shelf in room.shelves:
            assert sum(s.total_quantity for s in shelf.slots) == shelf.total_quantity


def test_examples_are_capped_and_order_is_collated() -> None:
    items = [_item(str(i), "전산1/선반A-1칸", 1, name=f"키트{i}") for i in range(5)]
    items += [_item("b", "Beta", 1), _item("a", "alpha", 1), _item("h", "과학실", 1)]
    items += [_item("u", "A", 1), _item("l", "a", 1)]

    report = build_location_report(items)

    assert [r.name for r in report] == ["과학실", "전산1", "a", "A", "alpha", "Beta"]
    slot = report[1].shelves[0].slots[0]
    assert slot.examples == ["키트0", "키트1", "키트2"]
    assert slot.item_count == 5


def test_report_as_dict_shape() -> None:
    data = report_as_dict(build_location_report([_item("1", "전산1/선반A-2칸", 3)]))

    assert data == [
        {
            "name": "전산1",
            "item_count": 1,
            "total_quantity": 3,
            "shelves": [
                {
                    "name": "선반A",
                    "item_count": 1,
                    "total_quantity": 3,
                    "slots": [
                        {"name": "2칸", "item_count": 1, "total_quantity": 3, "examples": ["item-1"]}
                    ],
                }
            ],
        }
    ]


def test_dashboard_summary() -> None:
    items = [
        _item("1", "전산1", 3, categories=["로봇", "키트"], last_updated="2024-03-01T00:00:00.000Z"),
        _item("2", "전산1", 5, categories=["로봇"], last_updated="2024-03-03T00:00:00.000Z"),
        _item("3", "전산1", 2, categories=["드론"], last_updated="2024-03-02T00:00:00.000Z"),
    ]

    summary = build_dashboard_summary(items, recent_limit=2)

    assert summary["total_items"] == 3
    assert summary["total_quantity"] == 10
    assert summary["by_category"] == [
        {"name": "로봇", "value": 8},
        {"name": "키트", "value": 3},
        {"name": "드론", "value": 2},
    ]
    assert [r["id"] for r in summary["recent"]] == ["2", "3"]
