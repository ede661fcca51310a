"""Typed models and wire helpers for EduKit.

This module defines the in-memory shapes for inventory items, the three-level
location tree (room → shelf → slot) and school records, along with the
helpers that translate them to and from the flat, spreadsheet-shaped wire
format used by the Apps Script backends.

Multi-value fields (item categories and locations) are lists in memory. The
comma-joined string form only exists at the wire boundary, via
``split_multi_value``/``join_multi_value``.

The intent is to keep these models framework-agnostic and free of I/O.
"""

from __future__ import annotations

import unicodedata
import uuid
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Protocol, TypedDict

from .const import LOCATION_SEPARATOR
from .exceptions import ParseFailure, ValidationError

NAME_MAX_LENGTH = 120


class ItemStatus(StrEnum):
    """Stock status as stored in the spreadsheet (Korean labels)."""

    IN_STOCK = "재고 있음"
    LOW_STOCK = "재고 부족"
    OUT_OF_STOCK = "품절"

    @classmethod
    def parse(cls, value: Any) -> ItemStatus:
        """Parse a label or member name; unknown values fall back to IN_STOCK."""

        if isinstance(value, ItemStatus):
            return value
        text = str(value or "").strip()
        for member in cls:
            if text in (member.value, member.name):
                return member
        return cls.IN_STOCK


@dataclass
class InventoryItem:
    """One unit-of-tracking record."""

    id: str
    name: str
    school: str
    quantity: int = 0
    categories: list[str] = field(default_factory=list)
    locations: list[str] = field(default_factory=list)
    status: ItemStatus = ItemStatus.IN_STOCK
    last_updated: str = field(default_factory=lambda: iso_utc_now())
    notes: str = ""
    image_url: str = ""
    # Upload-only field; never read back from the backend
    image_base64: str | None = None

    @property
    def category(self) -> str:
        return join_multi_value(self.categories)

    @property
    def location(self) -> str:
        return join_multi_value(self.locations)


class ItemDraft(TypedDict, total=False):
    """Creation input for an item. Only 'name' is required."""

    name: str
    school: str
    quantity: int
    categories: list[str]
    locations: list[str]
    status: str
    notes: str
    image_url: str
    image_base64: str | None


@dataclass
class LocationSlot:
    id: str
    name: str


@dataclass
class LocationShelf:
    id: str
    name: str
    slots: list[LocationSlot] = field(default_factory=list)


@dataclass
class LocationRoom:
    id: str
    name: str
    shelves: list[LocationShelf] = field(default_factory=list)


@dataclass
class SchoolConfig:
    """Admin-owned school record."""

    name: str
    code: str
    script_url: str = ""
    created_at: str | None = None
    sheet_url: str = ""
    drive_folder_url: str = ""
    categories: list[str] = field(default_factory=list)
    locations: list[LocationRoom] = field(default_factory=list)


# -----------------------------
# Scopes and lookup results
# -----------------------------


@dataclass(frozen=True)
class AdminScope:
    """Resolved scope for the administrator role."""


@dataclass(frozen=True)
class SchoolScope:
    """Resolved scope for a school user."""

    code: str
    name: str
    script_url: str = ""
    categories: tuple[str, ...] = ()
    locations: tuple[LocationRoom, ...] = ()


Scope = AdminScope | SchoolScope


@dataclass(frozen=True)
class SingleSchool:
    school: SchoolConfig


@dataclass(frozen=True)
class ManySchools:
    schools: list[SchoolConfig]


SchoolLookupResult = SingleSchool | ManySchools


# -----------------------------
# Persistence contracts
# -----------------------------


class TransactionalPersist(Protocol):
    """Remote persistence whose failures roll back local state."""

    async def add_item(self, item: InventoryItem) -> InventoryItem: ...

    async def update_item(self, item: InventoryItem) -> InventoryItem: ...

    async def delete_item(self, item_id: str, school: str) -> None: ...


# Fire-and-forget persistence of a school's location tree; failures are only logged
BestEffortPersist = Callable[[str, list[LocationRoom]], Awaitable[None]]


# -----------------------------
# Utility helpers
# -----------------------------


def iso_utc_now() -> str:
    """Return ISO-8601 UTC timestamp string with 'Z' and millisecond precision."""

    now = datetime.now(tz=UTC)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def new_id() -> str:
    """Generate an opaque identifier (hyphenated UUID v4)."""

    return str(uuid.uuid4())


def _script_rank(char: str) -> int:
    code = ord(char)
    category = unicodedata.category(char)
    if category[0] in "ZPSC":
        return 0
    if category[0] == "N":
        return 1
    if 0xAC00 <= code <= 0xD7A3 or 0x1100 <= code <= 0x11FF or 0x3130 <= code <= 0x318F:
        return 2
    if 0x4E00 <= code <= 0x9FFF or 0x3400 <= code <= 0x4DBF or 0xF900 <= code <= 0xFAFF:
        return 3
    return 4


def collation_key(text: str) -> tuple[tuple[tuple[int, str], ...], tuple[int, ...], str]:
    """Sort key following Korean locale collation.

    Letters compare first, case-insensitively: punctuation, then digits, then
    Hangul, then Han, then every other script. Case only breaks ties, with
    lowercase before uppercase, and the raw text makes the order total.
    """

    normalized = unicodedata.normalize("NFC", text or "")
    primary = tuple((_script_rank(ch), ch.casefold()) for ch in normalized)
    tertiary = tuple(1 if ch.isupper() else 0 for ch in normalized)
    return primary, tertiary, normalized


def split_multi_value(value: Any) -> list[str]:
    """Split a comma-joined wire field into trimmed, non-empty parts."""

    if value is None:
        return []
    if isinstance(value, list | tuple):
        parts = [str(v) for v in value]
    else:
        parts = str(value).split(",")
    return [p.strip() for p in parts if p and p.strip()]


def join_multi_value(values: Iterable[str]) -> str:
    """Join values into the comma-and-space form stored by the backend."""

    return LOCATION_SEPARATOR.join(v for v in values if v)


def validate_name(name: Any, *, field_name: str = "name") -> str:
    """Validate a display name and return a trimmed value."""

    if not isinstance(name, str) or len(name.strip()) == 0:
        raise ValidationError(f"{field_name} is required and must be a non-empty string")
    trimmed = name.strip()
    if len(trimmed) > NAME_MAX_LENGTH:
        raise ValidationError(f"{field_name} must be at most {NAME_MAX_LENGTH} characters")
    return trimmed


def validate_quantity(quantity: Any) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
        raise ValidationError("quantity must be an integer >= 0")
    return quantity


def _coerce_quantity(value: Any) -> int:
    """Coerce a loosely-typed spreadsheet cell into a non-negative int."""

    if value is None or value == "":
        return 0
    try:
        return max(0, int(float(value)))
    except (TypeError, ValueError):
        return 0


# -----------------------------
# Creation helpers
# -----------------------------


def create_item_from_draft(
    draft: ItemDraft, *, item_id: str, school: str, timestamp: str | None = None
) -> InventoryItem:
    """Create a validated InventoryItem from a draft payload."""

    name = validate_name(draft.get("name"))
    quantity = validate_quantity(draft.get("quantity", 0))
    return InventoryItem(
        id=item_id,
        name=name,
        school=school,
        quantity=quantity,
        categories=split_multi_value(draft.get("categories")),
        locations=split_multi_value(draft.get("locations")),
        status=ItemStatus.parse(draft.get("status")),
        last_updated=timestamp or iso_utc_now(),
        notes=str(draft.get("notes") or ""),
        image_url=str(draft.get("image_url") or ""),
        image_base64=draft.get("image_base64"),
    )


# -----------------------------
# Wire (de)serialization
# -----------------------------


def item_from_wire(data: Any, *, school: str | None = None) -> InventoryItem:
    """Build an item from a backend row dict.

    ``school`` is the partition that was queried and fills in rows that do
    not carry their own school column.
    """

    if not isinstance(data, dict):
        raise ParseFailure("inventory row must be an object")
    raw_id = data.get("id")
    if raw_id is None or str(raw_id).strip() == "":
        raise ParseFailure("inventory row is missing an id")
    return InventoryItem(
        id=str(raw_id),
        name=str(data.get("name") or ""),
        school=str(data.get("school") or school or ""),
        quantity=_coerce_quantity(data.get("quantity")),
        categories=split_multi_value(data.get("category")),
        locations=split_multi_value(data.get("location")),
        status=ItemStatus.parse(data.get("status")),
        last_updated=str(data.get("lastUpdated") or ""),
        notes=str(data.get("notes") or ""),
        image_url=str(data.get("imageUrl") or ""),
    )


def item_to_wire(item: InventoryItem) -> dict[str, Any]:
    """Serialize an item to the backend row shape (without inline image)."""

    return {
        "id": item.id,
        "name": item.name,
        "category": item.category,
        "quantity": int(item.quantity),
        "location": item.location,
        "status": item.status.value,
        "lastUpdated": item.last_updated,
        "school": item.school,
        "notes": item.notes,
        "imageUrl": item.image_url,
    }


def rooms_to_wire(rooms: Iterable[LocationRoom]) -> list[dict[str, Any]]:
    return [
        {
            "id": room.id,
            "name": room.name,
            "shelves": [
                {
                    "id": shelf.id,
                    "name": shelf.name,
                    "slots": [{"id": slot.id, "name": slot.name} for slot in shelf.slots],
                }
                for shelf in room.shelves
            ],
        }
        for room in rooms
    ]


def rooms_from_wire(data: Any) -> list[LocationRoom]:
    """Parse a persisted location tree; malformed nodes are skipped."""

    if not isinstance(data, list):
        return []
    rooms: list[LocationRoom] = []
    for raw_room in data:
        if not isinstance(raw_room, dict) or not raw_room.get("id"):
            continue
        shelves: list[LocationShelf] = []
        for raw_shelf in raw_room.get("shelves") or []:
            if not isinstance(raw_shelf, dict) or not raw_shelf.get("id"):
                continue
            slots = [
                LocationSlot(id=str(s["id"]), name=str(s.get("name") or ""))
                for s in raw_shelf.get("slots") or []
                if isinstance(s, dict) and s.get("id")
            ]
            shelves.append(
                LocationShelf(
                    id=str(raw_shelf["id"]), name=str(raw_shelf.get("name") or ""), slots=slots
                )
            )
        rooms.append(
            LocationRoom(id=str(raw_room["id"]), name=str(raw_room.get("name") or ""), shelves=shelves)
        )
    return rooms


def school_from_wire(data: Any) -> SchoolConfig:
    if not isinstance(data, dict):
        raise ParseFailure("school record must be an object")
    categories = data.get("categories")
    return SchoolConfig(
        name=str(data.get("name") or ""),
        code=str(data.get("code") or ""),
        script_url=str(data.get("scriptUrl") or ""),
        created_at=data.get("createdAt") or None,
        sheet_url=str(data.get("sheetUrl") or ""),
        drive_folder_url=str(data.get("driveFolderUrl") or ""),
        categories=[str(c) for c in categories if c] if isinstance(categories, list) else [],
        locations=rooms_from_wire(data.get("locations")),
    )


def school_to_wire(school: SchoolConfig) -> dict[str, Any]:
    return {
        "name": school.name,
        "code": school.code,
        "scriptUrl": school.script_url,
        "createdAt": school.created_at,
        "sheetUrl": school.sheet_url,
        "driveFolderUrl": school.drive_folder_url,
        "categories": list(school.categories),
        "locations": rooms_to_wire(school.locations),
    }


def lookup_result_from_data(data: Any) -> SchoolLookupResult:
    """Resolve the registry's ``data`` field into a tagged lookup result."""

    if isinstance(data, list):
        return ManySchools(schools=[school_from_wire(d) for d in data])
    if isinstance(data, dict):
        return SingleSchool(school=school_from_wire(data))
    raise ParseFailure("school response data must be an object or a list")


def scope_for_school(school: SchoolConfig) -> SchoolScope:
    return SchoolScope(
        code=school.code,
        name=school.name,
        script_url=school.script_url,
        categories=tuple(school.categories),
        locations=tuple(school.locations),
    )


def sort_items_recent(items: Iterable[InventoryItem]) -> list[InventoryItem]:
    """Sort by ``last_updated`` descending with id asc tie-break."""

    result = sorted(items, key=lambda x: x.id)
    result.sort(key=lambda x: _timestamp_sort_value(x.last_updated), reverse=True)
    return result


def _timestamp_sort_value(ts: str) -> float:
    # Unparseable timestamps sort last
    try:
        return datetime.fromisoformat(ts.replace("Z", "+00:00")).timestamp()
    except (AttributeError, ValueError):
        return float("-inf")
