"""In-memory location tree (room → shelf → slot) for one school.

Mutations apply immediately and then schedule a fire-and-forget persist of the
whole tree through a ``BestEffortPersist`` callable. Persist failures are
logged and never roll back the in-memory tree; inventory items get the
stronger rollback guarantee in ``sync``.

Unknown ids turn an operation into a silent no-op, matching the behavior of
the location manager UI this store backs.
"""

from __future__ import annotations

import asyncio
import logging
from copy import deepcopy
from typing import Any

from .const import DOMAIN
from .location_codec import encode_location
from .models import (
    BestEffortPersist,
    LocationRoom,
    LocationShelf,
    LocationSlot,
    new_id,
    validate_name,
)

LOGGER = logging.getLogger(__name__)


class LocationTree:
    """Location hierarchy for a single school partition."""

    def __init__(
        self,
        school_code: str,
        rooms: list[LocationRoom] | None = None,
        *,
        persist: BestEffortPersist | None = None,
    ) -> None:
        self._school_code = school_code
        self._rooms: list[LocationRoom] = deepcopy(list(rooms or []))
        self._persist = persist
        self._persist_lock = asyncio.Lock()
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def school_code(self) -> str:
        return self._school_code

    @property
    def rooms(self) -> list[LocationRoom]:
        return self._rooms

    # -----------------------------
    # Internal helpers
    # -----------------------------

    def _find_room(self, room_id: str) -> LocationRoom | None:
        return next((r for r in self._rooms if r.id == room_id), None)

    def _find_shelf(self, room_id: str, shelf_id: str) -> LocationShelf | None:
        room = self._find_room(room_id)
        if room is None:
            return None
        return next((s for s in room.shelves if s.id == shelf_id), None)

    def _changed(self, op: str, **context: Any) -> None:
        LOGGER.debug(
            "Location tree changed",
            extra={"domain": DOMAIN, "op": op, "school_code": self._school_code, **context},
        )
        self._schedule_persist(op)

    def _schedule_persist(self, op: str) -> None:
        if self._persist is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            LOGGER.warning(
                "No running event loop; location persist skipped",
                extra={"domain": DOMAIN, "op": op, "school_code": self._school_code},
            )
            return
        snapshot = deepcopy(self._rooms)
        task = loop.create_task(self._persist_snapshot(op, snapshot))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _persist_snapshot(self, op: str, snapshot: list[LocationRoom]) -> None:
        # Serialize so the backend sees snapshots in mutation order
        async with self._persist_lock:
            try:
                await self._persist(self._school_code, snapshot)  # type: ignore[misc]
            except Exception:
                LOGGER.warning(
                    "Failed to persist location tree; keeping in-memory changes",
                    extra={"domain": DOMAIN, "op": op, "school_code": self._school_code},
                    exc_info=True,
                )

    async def async_flush(self) -> None:
        """Wait for all scheduled persists to finish."""

        while self._pending:
            await asyncio.gather(*list(self._pending))

    # -----------------------------
    # Rooms
    # -----------------------------

    def add_room(self, name: str) -> LocationRoom:
        room = LocationRoom(id=new_id(), name=validate_name(name))
        self._rooms.append(room)
        self._changed("room_add", room_id=room.id)
        return room

    def update_room(self, room_id: str, name: str) -> None:
        name = validate_name(name)
        room = self._find_room(room_id)
        if room is None:
            return
        room.name = name
        self._changed("room_update", room_id=room_id)

    def delete_room(self, room_id: str) -> None:
        room = self._find_room(room_id)
        if room is None:
            return
        # Shelves and slots are owned by the room and go with it
        self._rooms.remove(room)
        self._changed("room_delete", room_id=room_id)

    def duplicate_room(self, source_id: str, new_name: str) -> LocationRoom | None:
        """Deep-copy a room with all shelves and slots under fresh ids."""

        new_name = validate_name(new_name)
        source = self._find_room(source_id)
        if source is None:
            return None
        room = LocationRoom(
            id=new_id(),
            name=new_name,
            shelves=[_copy_shelf(shelf, shelf.name) for shelf in source.shelves],
        )
        self._rooms.append(room)
        self._changed("room_duplicate", room_id=room.id, source_id=source_id)
        return room

    # -----------------------------
    # Shelves
    # -----------------------------

    def add_shelf(self, room_id: str, name: str) -> LocationShelf | None:
        name = validate_name(name)
        room = self._find_room(room_id)
        if room is None:
            return None
        shelf = LocationShelf(id=new_id(), name=name)
        room.shelves.append(shelf)
        self._changed("shelf_add", room_id=room_id, shelf_id=shelf.id)
        return shelf

    def update_shelf(self, room_id: str, shelf_id: str, name: str) -> None:
        name = validate_name(name)
        shelf = self._find_shelf(room_id, shelf_id)
        if shelf is None:
            return
        shelf.name = name
        self._changed("shelf_update", room_id=room_id, shelf_id=shelf_id)

    def delete_shelf(self, room_id: str, shelf_id: str) -> None:
        room = self._find_room(room_id)
        shelf = self._find_shelf(room_id, shelf_id)
        if room is None or shelf is None:
            return
        room.shelves.remove(shelf)
        self._changed("shelf_delete", room_id=room_id, shelf_id=shelf_id)

    def duplicate_shelf(self, room_id: str, shelf_id: str, new_name: str) -> LocationShelf | None:
        new_name = validate_name(new_name)
        room = self._find_room(room_id)
        source = self._find_shelf(room_id, shelf_id)
        if room is None or source is None:
            return None
        shelf = _copy_shelf(source, new_name)
        room.shelves.append(shelf)
        self._changed("shelf_duplicate", room_id=room_id, shelf_id=shelf.id, source_id=shelf_id)
        return shelf

    # -----------------------------
    # Slots
    # -----------------------------

    def add_slot(self, room_id: str, shelf_id: str, name: str) -> LocationSlot | None:
        name = validate_name(name)
        shelf = self._find_shelf(room_id, shelf_id)
        if shelf is None:
            return None
        slot = LocationSlot(id=new_id(), name=name)
        shelf.slots.append(slot)
        self._changed("slot_add", room_id=room_id, shelf_id=shelf_id, slot_id=slot.id)
        return slot

    def update_slot(self, room_id: str, shelf_id: str, slot_id: str, name: str) -> None:
        name = validate_name(name)
        shelf = self._find_shelf(room_id, shelf_id)
        slot = next((s for s in shelf.slots if s.id == slot_id), None) if shelf else None
        if slot is None:
            return
        slot.name = name
        self._changed("slot_update", room_id=room_id, shelf_id=shelf_id, slot_id=slot_id)

    def delete_slot(self, room_id: str, shelf_id: str, slot_id: str) -> None:
        shelf = self._find_shelf(room_id, shelf_id)
        slot = next((s for s in shelf.slots if s.id == slot_id), None) if shelf else None
        if shelf is None or slot is None:
            return
        shelf.slots.remove(slot)
        self._changed("slot_delete", room_id=room_id, shelf_id=shelf_id, slot_id=slot_id)

    # -----------------------------
    # Lookups for item forms
    # -----------------------------

    def location_string(
        self, room_id: str, shelf_id: str | None = None, slot_id: str | None = None
    ) -> str:
        """Encode the named path of the given node ids; unknown ids are dropped."""

        room = self._find_room(room_id)
        if room is None:
            return ""
        shelf = self._find_shelf(room_id, shelf_id) if shelf_id else None
        slot = None
        if shelf is not None and slot_id:
            slot = next((s for s in shelf.slots if s.id == slot_id), None)
        return encode_location(
            room.name,
            shelf.name if shelf else None,
            slot.name if slot else None,
        )

    def location_options(self) -> list[dict[str, str]]:
        """Flat picker options for every room, room/shelf and room/shelf/slot."""

        options: list[dict[str, str]] = []
        for room in self._rooms:
            options.append({"value": room.name, "label": room.name, "room_id": room.id})
            for shelf in room.shelves:
                options.append(
                    {
                        "value": encode_location(room.name, shelf.name),
                        "label": f"{room.name} > {shelf.name}",
                        "room_id": room.id,
                        "shelf_id": shelf.id,
                    }
                )
                for slot in shelf.slots:
                    options.append(
                        {
                            "value": encode_location(room.name, shelf.name, slot.name),
                            "label": f"{room.name} > {shelf.name} > {slot.name}",
                            "room_id": room.id,
                            "shelf_id": shelf.id,
                            "slot_id": slot.id,
                        }
                    )
        return options


def _copy_shelf(source: LocationShelf, name: str) -> LocationShelf:
    return LocationShelf(
        id=new_id(),
        name=name,
        slots=[LocationSlot(id=new_id(), name=slot.name) for slot in source.slots],
    )
