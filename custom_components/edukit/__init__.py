"""EduKit integration bootstrap.

This module loads local storage, resolves the current scope (administrator or
one school) against the school registry, and wires the gateway, the sync
controller and, for school users, the location tree into hass.data.
"""

from __future__ import annotations

import logging

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import ConfigEntryNotReady
from homeassistant.helpers import config_validation as cv
from homeassistant.helpers.aiohttp_client import async_get_clientsession

from . import services as services_mod
from .const import ALL_SCHOOLS_KEY, DOMAIN
from .exceptions import EdukitError, StorageError
from .gateway import DemoInventoryStore, InventoryGateway
from .location_tree import LocationTree
from .models import SchoolScope
from .registry import SchoolRegistry
from .settings import settings_from_entry
from .storage import CURRENT_SCHEMA_VERSION, STORAGE_KEY, DomainStore, KeyValueStore
from .sync import SyncController
from .transport import AppsScriptTransport

LOGGER = logging.getLogger(__name__)


# This integration is config-entry only; no YAML configuration is accepted.
CONFIG_SCHEMA = cv.config_entry_only_config_schema(DOMAIN)


async def async_setup(hass: HomeAssistant, _config: dict) -> bool:
    """Set up the EduKit domain at Home Assistant startup.

    Initializes an empty domain bucket in hass.data with no side effects.
    """
    if DOMAIN not in hass.data:
        hass.data[DOMAIN] = {}
    return True


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Set up EduKit from a config entry."""
    bucket = hass.data.setdefault(DOMAIN, {})
    settings = settings_from_entry(entry)

    store = DomainStore(hass, key=STORAGE_KEY, version=CURRENT_SCHEMA_VERSION)
    try:
        kv = await KeyValueStore.async_create(store)
    except StorageError as exc:
        LOGGER.error(
            "Storage validation failed during setup",
            extra={"domain": DOMAIN, "op": "setup_storage", "schema_version": store.schema_version},
            exc_info=True,
        )
        raise ConfigEntryNotReady("storage validation failed") from exc

    transport = AppsScriptTransport(
        async_get_clientsession(hass), timeout=settings.request_timeout
    )
    registry = SchoolRegistry(transport, settings, kv)

    try:
        scope = await registry.resolve_scope(settings.school_code)
        if isinstance(scope, SchoolScope):
            known = [scope.name]
        else:
            known = await registry.known_school_names()
    except EdukitError as exc:
        LOGGER.error(
            "Failed to resolve scope during setup: %s",
            exc,
            extra={"domain": DOMAIN, "op": "setup_scope", "school_code": settings.school_code},
        )
        raise ConfigEntryNotReady(f"school registry unavailable: {exc}") from exc

    settings = settings.with_known_schools(known)
    selected = settings.selected_school
    if isinstance(scope, SchoolScope):
        selected = scope.name
        if not settings.script_url:
            settings = settings.with_script_url(scope.script_url)

    gateway = InventoryGateway(transport, settings, DemoInventoryStore(kv))
    controller = SyncController(gateway, selected_school=selected)

    bucket.update(
        {
            "store": store,
            "kv": kv,
            "settings": settings,
            "registry": registry,
            "gateway": gateway,
            "controller": controller,
            "scope": scope,
        }
    )
    if isinstance(scope, SchoolScope):
        bucket["location_tree"] = LocationTree(
            scope.code, list(scope.locations), persist=registry.update_locations
        )
        bucket["categories"] = services_mod.merged_categories(scope.categories)

    LOGGER.debug(
        "EduKit configured",
        extra={
            "domain": DOMAIN,
            "op": "setup_entry",
            "scope": "school" if isinstance(scope, SchoolScope) else "admin",
            "inventory_live": settings.inventory_live,
            "registry_live": settings.registry_live,
            "schools": len(settings.known_schools),
        },
    )

    # A failed first fetch leaves empty lists; the next refresh retries
    try:
        await controller.refresh_items()
        # The aggregate refresh above already filled all_items
        if controller.selected_school != ALL_SCHOOLS_KEY:
            await controller.refresh_dashboard()
    except EdukitError:
        LOGGER.warning(
            "Initial inventory refresh failed",
            extra={"domain": DOMAIN, "op": "setup_refresh", "school": selected},
            exc_info=True,
        )

    services_mod.setup(hass)
    return True


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Unload a config entry.

    Waits for pending location persists, flushes the local store and removes
    the registered services and runtime objects.
    """

    bucket = hass.data.get(DOMAIN) or {}

    tree: LocationTree | None = bucket.get("location_tree")
    if tree is not None:
        await tree.async_flush()

    kv: KeyValueStore | None = bucket.get("kv")
    if kv is not None:
        try:
            await kv.async_flush()
        except StorageError:
            LOGGER.warning(
                "Failed to persist during unload",
                extra={"domain": DOMAIN, "op": "unload"},
                exc_info=True,
            )

    services_mod.unload(hass)

    for key in (
        "store",
        "kv",
        "settings",
        "registry",
        "gateway",
        "controller",
        "scope",
        "location_tree",
        "categories",
    ):
        bucket.pop(key, None)

    return True
