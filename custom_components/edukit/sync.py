"""Optimistic synchronization of inventory lists.

``SyncController`` owns two in-memory lists: the items of the selected school
and the items of every school (the dashboard's aggregate view). Mutations
land in both lists before the gateway call and are undone when the call
fails, so after a failed round-trip both lists are back to their pre-call
content and the error is re-raised.

Refreshes carry a per-list request token; a completion that is not the most
recent request for its list is discarded.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from .const import ALL_SCHOOLS_KEY, DEFAULT_SCHOOL, DOMAIN
from .exceptions import NotFoundError
from .gateway import InventoryGateway
from .models import (
    InventoryItem,
    ItemDraft,
    create_item_from_draft,
    iso_utc_now,
    validate_name,
    validate_quantity,
)

LOGGER = logging.getLogger(__name__)


class SyncController:
    """Selected-school and all-schools item lists with optimistic writes."""

    def __init__(self, gateway: InventoryGateway, *, selected_school: str = ALL_SCHOOLS_KEY) -> None:
        self._gateway = gateway
        self._selected_school = selected_school or ALL_SCHOOLS_KEY
        self._items: list[InventoryItem] = []
        self._all_items: list[InventoryItem] = []
        self._items_token = 0
        self._all_items_token = 0
        self._in_flight = 0
        self.error: str | None = None

    @property
    def items(self) -> list[InventoryItem]:
        return list(self._items)

    @property
    def all_items(self) -> list[InventoryItem]:
        return list(self._all_items)

    @property
    def selected_school(self) -> str:
        return self._selected_school

    @property
    def is_loading(self) -> bool:
        return self._in_flight > 0

    def set_selected_school(self, school: str) -> None:
        self._selected_school = school or ALL_SCHOOLS_KEY

    def school_for_new_item(self, school: str | None = None) -> str:
        """Draft school, else the selected school; the aggregate scope maps to the default."""

        target = school or self._selected_school
        if not target or target == ALL_SCHOOLS_KEY:
            return DEFAULT_SCHOOL
        return target

    def find_item(self, item_id: str) -> InventoryItem | None:
        for source in (self._items, self._all_items):
            for item in source:
                if item.id == item_id:
                    return item
        return None

    def _fail(self, op: str, exc: Exception, **context: str) -> None:
        self.error = str(exc) or type(exc).__name__
        LOGGER.warning(
            "Inventory %s failed: %s",
            op,
            self.error,
            extra={"domain": DOMAIN, "op": op, **context},
        )

    # -----------------------------
    # Optimistic mutations
    # -----------------------------

    async def add_item(self, draft: ItemDraft) -> InventoryItem:
        school = self.school_for_new_item(draft.get("school"))
        item = create_item_from_draft(
            draft, item_id=self._gateway.new_item_id(school), school=school
        )
        self._items.insert(0, item)
        self._all_items.insert(0, item)

        try:
            confirmed = await self._gateway.add_item(item)
        except Exception as exc:
            self._items = [i for i in self._items if i.id != item.id]
            self._all_items = [i for i in self._all_items if i.id != item.id]
            self._fail("add_item", exc, item_id=item.id, school=school)
            raise

        self._items = [confirmed if i.id == item.id else i for i in self._items]
        self._all_items = [confirmed if i.id == item.id else i for i in self._all_items]
        self.error = None
        LOGGER.debug(
            "Item added",
            extra={"domain": DOMAIN, "op": "add_item", "item_id": confirmed.id, "school": school},
        )
        return confirmed

    async def update_item(self, item: InventoryItem) -> InventoryItem:
        if self.find_item(item.id) is None:
            raise NotFoundError(f"item not found: {item.id}")
        validate_name(item.name)
        validate_quantity(item.quantity)

        items_snapshot = list(self._items)
        all_snapshot = list(self._all_items)
        updated = replace(item, last_updated=iso_utc_now())
        self._items = [updated if i.id == item.id else i for i in self._items]
        self._all_items = [updated if i.id == item.id else i for i in self._all_items]

        try:
            confirmed = await self._gateway.update_item(updated)
        except Exception as exc:
            self._items = items_snapshot
            self._all_items = all_snapshot
            self._fail("update_item", exc, item_id=item.id)
            raise

        self._items = [confirmed if i.id == item.id else i for i in self._items]
        self._all_items = [confirmed if i.id == item.id else i for i in self._all_items]
        self.error = None
        return confirmed

    async def delete_item(self, item_id: str, school: str | None = None) -> None:
        existing = self.find_item(item_id)
        if school is None:
            if existing is None:
                raise NotFoundError(f"item not found: {item_id}")
            school = existing.school

        items_snapshot = list(self._items)
        all_snapshot = list(self._all_items)
        self._items = [i for i in self._items if i.id != item_id]
        self._all_items = [i for i in self._all_items if i.id != item_id]

        try:
            await self._gateway.delete_item(item_id, school)
        except Exception as exc:
            self._items = items_snapshot
            self._all_items = all_snapshot
            self._fail("delete_item", exc, item_id=item_id)
            raise
        self.error = None

    # -----------------------------
    # Refresh
    # -----------------------------

    async def refresh_items(self, school_override: str | None = None) -> list[InventoryItem]:
        """Re-fetch the selected (or given) school; the aggregate scope also replaces all_items."""

        target = school_override or self._selected_school
        aggregate = target == ALL_SCHOOLS_KEY
        self._items_token += 1
        items_token = self._items_token
        all_token = None
        if aggregate:
            self._all_items_token += 1
            all_token = self._all_items_token

        self._in_flight += 1
        self.error = None
        try:
            fetched = await self._gateway.fetch_items(target)
        except Exception as exc:
            if items_token == self._items_token:
                self._fail("refresh_items", exc, school=target)
            raise
        finally:
            self._in_flight -= 1

        if items_token == self._items_token:
            self._items = list(fetched)
        else:
            LOGGER.debug(
                "Discarding stale refresh",
                extra={"domain": DOMAIN, "op": "refresh_items", "school": target},
            )
        if all_token is not None and all_token == self._all_items_token:
            self._all_items = list(fetched)
        return fetched

    async def refresh_dashboard(self) -> list[InventoryItem]:
        """Re-fetch the aggregate scope into all_items only."""

        self._all_items_token += 1
        token = self._all_items_token
        self._in_flight += 1
        self.error = None
        try:
            fetched = await self._gateway.fetch_items(ALL_SCHOOLS_KEY)
        except Exception as exc:
            if token == self._all_items_token:
                self._fail("refresh_dashboard", exc)
            raise
        finally:
            self._in_flight -= 1

        if token == self._all_items_token:
            self._all_items = list(fetched)
        else:
            LOGGER.debug(
                "Discarding stale dashboard refresh",
                extra={"domain": DOMAIN, "op": "refresh_dashboard"},
            )
        return fetched
