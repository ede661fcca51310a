"""Remote inventory gateway for EduKit.

Reads and writes inventory rows through a school's Apps Script endpoint, or,
in demo mode, through a per-school list kept in the local key/value store.

Live-mode specifics:
    - The aggregate scope ("모두") is requested in one call first. When that
      yields nothing the gateway asks every known school in parallel and
      merges rows by id in completion order (last completed wins).
    - Writes stamp a fresh ``lastUpdated`` at send time.
    - Inline images above ``Settings.max_inline_image_bytes`` are dropped from
      the request; the write proceeds with the existing ``imageUrl``.

Nothing is retried; every failure is raised to the caller.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any

from .const import ALL_SCHOOLS_KEY, DEFAULT_SCHOOL, DOMAIN
from .exceptions import EdukitError, ParseFailure, PayloadTooLarge
from .models import (
    InventoryItem,
    ItemStatus,
    item_from_wire,
    item_to_wire,
    iso_utc_now,
    new_id,
)
from .settings import Settings
from .storage import KeyValueStore
from .transport import AppsScriptTransport

LOGGER = logging.getLogger(__name__)

DEMO_KEY_PREFIX = "demo_items_"

# (name, categories, quantity, location, status)
_SEED_ROWS: tuple[tuple[str, str, int, str, ItemStatus], ...] = (
    ("마이크로비트 V2", "마이크로보드", 30, "전산1/선반A-1칸", ItemStatus.IN_STOCK),
    ("아두이노 우노", "마이크로보드, 키트", 24, "전산1/선반A-2칸", ItemStatus.IN_STOCK),
    ("햄스터 로봇", "로봇", 12, "전산1/선반B-1칸", ItemStatus.IN_STOCK),
    ("코딩 드론", "드론", 4, "과학실/캐비닛1", ItemStatus.LOW_STOCK),
    ("초음파 센서", "센서", 0, "창고", ItemStatus.OUT_OF_STOCK),
    ("3D펜 세트", "3D펜", 15, "미술실/선반A-3칸", ItemStatus.IN_STOCK),
)
_SEED_TIMESTAMP = "2024-03-02T09:00:00.000Z"


def demo_key(school: str) -> str:
    return f"{DEMO_KEY_PREFIX}{school}"


def seed_items(school: str) -> list[InventoryItem]:
    """Deterministic mock inventory for one school; ids carry the school name."""

    return [
        InventoryItem(
            id=f"{school}-demo-{index:02d}",
            name=name,
            school=school,
            quantity=quantity,
            categories=[c.strip() for c in categories.split(",")],
            locations=[location],
            status=status,
            last_updated=_SEED_TIMESTAMP,
        )
        for index, (name, categories, quantity, location, status) in enumerate(_SEED_ROWS, 1)
    ]


class DemoInventoryStore:
    """Per-school demo inventories kept in the local key/value store."""

    def __init__(self, kv: KeyValueStore) -> None:
        self._kv = kv

    def load(self, school: str) -> list[InventoryItem]:
        stored = self._kv.get(demo_key(school))
        if not isinstance(stored, list):
            return seed_items(school)
        items: list[InventoryItem] = []
        for row in stored:
            try:
                items.append(item_from_wire(row, school=school))
            except ParseFailure:
                LOGGER.warning(
                    "Skipping malformed demo row",
                    extra={"domain": DOMAIN, "op": "demo_load", "school": school},
                )
        return items

    def save(self, school: str, items: list[InventoryItem]) -> None:
        self._kv.set(demo_key(school), [item_to_wire(i) for i in items])


class InventoryGateway:
    """Fetch/create/update/delete of inventory rows for any school."""

    def __init__(
        self,
        transport: AppsScriptTransport,
        settings: Settings,
        demo_store: DemoInventoryStore,
    ) -> None:
        self._transport = transport
        self._settings = settings
        self._demo = demo_store

    @property
    def settings(self) -> Settings:
        return self._settings

    def configure(self, settings: Settings) -> None:
        """Swap settings (e.g., after the school roster or script URL changed)."""

        self._settings = settings

    @property
    def is_demo(self) -> bool:
        return not self._settings.inventory_live

    def new_item_id(self, school: str) -> str:
        """Client-side id for an optimistic insert; namespaced by school in demo mode."""

        if self.is_demo:
            return f"{school}-{new_id()}"
        return new_id()

    # -----------------------------
    # Reads
    # -----------------------------

    async def fetch_items(self, school: str) -> list[InventoryItem]:
        school = school or DEFAULT_SCHOOL
        if self.is_demo:
            return self._demo_fetch(school)
        if school != ALL_SCHOOLS_KEY:
            return await self._fetch_school(school)

        try:
            combined = await self._fetch_school(ALL_SCHOOLS_KEY)
        except EdukitError:
            LOGGER.debug(
                "Aggregate fetch unsupported; falling back to per-school fetch",
                extra={"domain": DOMAIN, "op": "fetch_all"},
                exc_info=True,
            )
            combined = []
        if combined:
            return combined
        return await self._fetch_each_school()

    def _demo_fetch(self, school: str) -> list[InventoryItem]:
        if school != ALL_SCHOOLS_KEY:
            return self._demo.load(school)
        items: list[InventoryItem] = []
        for name in self._settings.known_schools:
            items.extend(self._demo.load(name))
        return items

    async def _fetch_school(self, school: str) -> list[InventoryItem]:
        payload = await self._transport.get(
            self._settings.script_url, {"school": school}, op="fetch_items"
        )
        data = payload.get("data")
        if data is None:
            data = []
        if not isinstance(data, list):
            raise ParseFailure("inventory response data must be a list")
        fallback_school = None if school == ALL_SCHOOLS_KEY else school
        return [item_from_wire(row, school=fallback_school) for row in data]

    async def _fetch_each_school(self) -> list[InventoryItem]:
        schools = list(self._settings.known_schools)
        merged: dict[str, InventoryItem] = {}
        last_error: EdukitError | None = None
        succeeded = 0

        async def _one(name: str) -> tuple[str, list[InventoryItem] | EdukitError]:
            try:
                return name, await self._fetch_school(name)
            except EdukitError as exc:
                return name, exc

        # Merge in completion order: a later completion overwrites a duplicate id
        for next_done in asyncio.as_completed([_one(name) for name in schools]):
            name, result = await next_done
            if isinstance(result, EdukitError):
                last_error = result
                LOGGER.warning(
                    "Per-school fetch failed: %s",
                    result,
                    extra={"domain": DOMAIN, "op": "fetch_school_fallback", "school": name},
                )
                continue
            succeeded += 1
            for item in result:
                merged[item.id] = item

        if succeeded == 0 and last_error is not None:
            raise last_error
        return list(merged.values())

    # -----------------------------
    # Writes
    # -----------------------------

    async def add_item(self, item: InventoryItem) -> InventoryItem:
        school = item.school or DEFAULT_SCHOOL
        stamped = replace(item, school=school, last_updated=iso_utc_now())
        if self.is_demo:
            self._demo.save(school, [stamped, *self._demo.load(school)])
            return replace(stamped, image_base64=None)

        payload = await self._transport.post(
            self._settings.script_url,
            {"action": "create", "data": self.build_item_payload(stamped)},
            op="add_item",
        )
        confirmed = replace(stamped, image_base64=None)
        data = payload.get("data")
        if isinstance(data, dict) and data.get("id"):
            confirmed = replace(confirmed, id=str(data["id"]))
        return confirmed

    async def update_item(self, item: InventoryItem) -> InventoryItem:
        school = item.school or DEFAULT_SCHOOL
        stamped = replace(item, school=school, last_updated=iso_utc_now())
        if self.is_demo:
            current = self._demo.load(school)
            self._demo.save(school, [stamped if i.id == item.id else i for i in current])
            return replace(stamped, image_base64=None)

        await self._transport.post(
            self._settings.script_url,
            {"action": "update", "data": self.build_item_payload(stamped)},
            op="update_item",
        )
        return replace(stamped, image_base64=None)

    async def delete_item(self, item_id: str, school: str) -> None:
        school = school or DEFAULT_SCHOOL
        if self.is_demo:
            current = self._demo.load(school)
            self._demo.save(school, [i for i in current if i.id != item_id])
            return

        await self._transport.post(
            self._settings.script_url,
            {"action": "delete", "id": item_id, "school": school},
            op="delete_item",
        )

    def build_item_payload(self, item: InventoryItem) -> dict[str, Any]:
        """Wire shape for a write, with the inline image when it fits."""

        data = item_to_wire(item)
        if not item.image_base64:
            return data
        try:
            self._check_inline_image(item.image_base64)
        except PayloadTooLarge as exc:
            LOGGER.warning(
                "Dropping inline image from request: %s",
                exc,
                extra={"domain": DOMAIN, "op": "shape_payload", "item_id": item.id},
            )
            return data
        data["imageBase64"] = item.image_base64
        return data

    def _check_inline_image(self, image_base64: str) -> None:
        size = len(image_base64.encode("utf-8"))
        limit = self._settings.max_inline_image_bytes
        if size > limit:
            raise PayloadTooLarge(f"inline image is {size} bytes; limit is {limit}")
