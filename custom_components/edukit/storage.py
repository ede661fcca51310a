"""Persistent local storage for EduKit.

Wraps Home Assistant's Store with schema-aware load/save and migrations, and
exposes a small key/value capability on top of it. The key/value store backs
everything the browser app kept in localStorage: demo inventories per school
(``demo_items_<school>``) and the demo school roster.

Data shape persisted:
    {
        "schema_version": int,
        "entries": {key -> JSON value},
    }
"""

from __future__ import annotations

import asyncio
import logging
import time
from copy import deepcopy
from typing import Any, Final

from homeassistant.core import HomeAssistant
from homeassistant.helpers.storage import Store

from . import migrations
from .const import DOMAIN
from .exceptions import StorageError

_LOGGER = logging.getLogger(__name__)

# Current schema version for persisted payloads
CURRENT_SCHEMA_VERSION: Final[int] = 1

# Storage key under which the persisted dataset is saved
STORAGE_KEY: Final[str] = "edukit_store"

# Debounce delay for persistence operations (seconds)
PERSIST_DEBOUNCE_DELAY: Final[float] = 1.0


def _empty_payload() -> dict[str, Any]:
    """Create a new empty payload matching the current schema."""

    return {"schema_version": CURRENT_SCHEMA_VERSION, "entries": {}}


class DomainStore:
    """Schema-aware wrapper around Home Assistant's Store for EduKit."""

    def __init__(
        self, hass: HomeAssistant, *, key: str = STORAGE_KEY, version: int = CURRENT_SCHEMA_VERSION
    ) -> None:
        self._store = Store(hass, version, key)
        self._schema_version = version
        self._key = key

    @property
    def schema_version(self) -> int:
        return self._schema_version

    @property
    def key(self) -> str:
        return self._key

    async def async_load(self) -> dict[str, Any]:
        """Load the persisted dataset, applying migrations if needed.

        Returns a copy of the data to prevent external mutation of the cached
        object inside the storage layer.
        """

        raw = await self._store.async_load()
        if raw is None:
            return _empty_payload()
        if not isinstance(raw, dict):
            _LOGGER.error(
                "Corrupted storage payload: expected dict, got %s",
                type(raw).__name__,
                extra={"domain": DOMAIN, "op": "load", "storage_key": self.key},
            )
            raise StorageError("corrupted storage payload: not a dict")

        from_version = int(raw.get("schema_version", 0))
        if from_version != self._schema_version:
            return deepcopy(await self._async_migrate(raw, from_version))

        data = _empty_payload()
        data.update(raw)
        if not isinstance(data.get("entries"), dict):
            raise StorageError("storage payload missing required collections")
        return deepcopy(data)

    async def async_save(self, data: dict[str, Any]) -> None:
        """Persist the dataset ensuring schema_version is up-to-date."""

        payload = deepcopy(data) if isinstance(data, dict) else {}
        payload["schema_version"] = self._schema_version
        payload.setdefault("entries", {})
        await self._store.async_save(payload)

    async def _async_migrate(self, raw: dict[str, Any], from_version: int) -> dict[str, Any]:
        to_version = self._schema_version
        try:
            migrated = migrations.migrate(raw, from_version=from_version, to_version=to_version)
        except Exception as exc:
            # Do not overwrite on-disk payload; surface as a typed error
            _LOGGER.error(
                "Storage migration failed",
                extra={
                    "domain": DOMAIN,
                    "op": "migrate",
                    "from_version": from_version,
                    "to_version": to_version,
                    "storage_key": self.key,
                },
                exc_info=True,
            )
            raise StorageError("storage migration failed") from exc
        migrated.setdefault("entries", {})
        migrated["schema_version"] = to_version
        await self._store.async_save(migrated)
        return migrated


class KeyValueStore:
    """In-memory key/value map with optional debounced persistence.

    Without a backing ``DomainStore`` the values live for the session only,
    which is all demo mode promises.
    """

    def __init__(
        self, store: DomainStore | None = None, entries: dict[str, Any] | None = None
    ) -> None:
        self._store = store
        self._entries: dict[str, Any] = deepcopy(entries) if entries else {}
        self._lock = asyncio.Lock()
        self._persist_task: asyncio.Task[None] | None = None

    @classmethod
    async def async_create(cls, store: DomainStore) -> KeyValueStore:
        payload = await store.async_load()
        return cls(store, payload.get("entries") or {})

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._entries:
            return default
        return deepcopy(self._entries[key])

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = deepcopy(value)
        self._request_persist()

    def export_state(self) -> dict[str, Any]:
        return {"entries": deepcopy(self._entries)}

    def _request_persist(self) -> None:
        """Coalesce rapid changes into one save after the debounce delay."""

        if self._store is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        if self._persist_task is not None and not self._persist_task.done():
            self._persist_task.cancel()

        async def _delayed_persist() -> None:
            try:
                await asyncio.sleep(PERSIST_DEBOUNCE_DELAY)
                await self.async_persist()
            except asyncio.CancelledError:
                _LOGGER.debug(
                    "Debounced persist task cancelled",
                    extra={"domain": DOMAIN, "op": "persist_debounce_cancelled"},
                )
            except Exception:
                _LOGGER.error(
                    "Debounced persist task failed",
                    extra={"domain": DOMAIN, "op": "persist_debounce_failed"},
                    exc_info=True,
                )

        self._persist_task = loop.create_task(_delayed_persist())

    async def async_persist(self) -> None:
        """Save the current entries, serialized by a lock."""

        if self._store is None:
            return
        async with self._lock:
            start_time = time.monotonic()
            try:
                await self._store.async_save(self.export_state())
            except Exception as exc:
                _LOGGER.error(
                    "Failed to persist key/value store",
                    extra={
                        "domain": DOMAIN,
                        "op": "persist_failed",
                        "elapsed_ms": int((time.monotonic() - start_time) * 1000),
                    },
                    exc_info=True,
                )
                raise StorageError("failed to persist local store") from exc
            _LOGGER.debug(
                "Key/value store persisted",
                extra={
                    "domain": DOMAIN,
                    "op": "persist_complete",
                    "entries": len(self._entries),
                    "elapsed_ms": int((time.monotonic() - start_time) * 1000),
                },
            )

    async def async_flush(self) -> None:
        """Persist immediately, bypassing the debounce."""

        if self._persist_task is not None and not self._persist_task.done():
            self._persist_task.cancel()
        self._persist_task = None
        await self.async_persist()
