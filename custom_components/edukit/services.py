"""Service registration and handlers for EduKit.

Exposes Home Assistant services under the ``edukit`` domain for inventory
CRUD, the school's location tree and categories, and two response services
for the location report and the dashboard summary. Input is validated with
voluptuous; inventory operations go through the ``SyncController``.

Errors from the domain layer are logged with contextual fields and do not
raise stack traces.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import Any

import voluptuous as vol
from homeassistant.core import HomeAssistant, ServiceCall, SupportsResponse

from .aggregation import build_dashboard_summary, build_location_report, report_as_dict
from .const import DEFAULT_CATEGORIES, DOMAIN
from .exceptions import (
    BackendRejected,
    EdukitError,
    NotFoundError,
    ValidationError,
)
from .location_tree import LocationTree
from .models import ItemStatus, SchoolScope, split_multi_value
from .registry import SchoolRegistry
from .sync import SyncController

LOGGER = logging.getLogger(__name__)


# -----------------------------
# Validation schemas
# -----------------------------

_STATUS = vol.In([s.value for s in ItemStatus] + [s.name for s in ItemStatus])
_QUANTITY = vol.All(int, vol.Range(min=0))

SCHEMA_ITEM_CREATE = vol.Schema(
    {
        vol.Required("name"): str,
        vol.Optional("school"): vol.Any(str, None),
        vol.Optional("quantity", default=0): _QUANTITY,
        vol.Optional("categories", default=[]): [str],
        vol.Optional("locations", default=[]): [str],
        vol.Optional("status"): _STATUS,
        vol.Optional("notes", default=""): str,
        vol.Optional("image_url", default=""): str,
        vol.Optional("image_base64"): vol.Any(str, None),
    }
)

SCHEMA_ITEM_UPDATE = vol.Schema(
    {
        vol.Required("item_id"): str,
        vol.Optional("name"): str,
        vol.Optional("quantity"): _QUANTITY,
        vol.Optional("categories"): [str],
        vol.Optional("locations"): [str],
        vol.Optional("status"): _STATUS,
        vol.Optional("notes"): str,
        vol.Optional("image_url"): str,
        vol.Optional("image_base64"): vol.Any(str, None),
    }
)

SCHEMA_ITEM_DELETE = vol.Schema(
    {vol.Required("item_id"): str, vol.Optional("school"): vol.Any(str, None)}
)

SCHEMA_ITEMS_REFRESH = vol.Schema({vol.Optional("school"): vol.Any(str, None)})

SCHEMA_EMPTY = vol.Schema({})

SCHEMA_SELECT_SCHOOL = vol.Schema({vol.Required("school"): str})

SCHEMA_ROOM_ADD = vol.Schema({vol.Required("name"): str})
SCHEMA_ROOM_UPDATE = vol.Schema({vol.Required("room_id"): str, vol.Required("name"): str})
SCHEMA_ROOM_DELETE = vol.Schema({vol.Required("room_id"): str})
SCHEMA_ROOM_DUPLICATE = vol.Schema({vol.Required("room_id"): str, vol.Required("name"): str})

SCHEMA_SHELF_ADD = vol.Schema({vol.Required("room_id"): str, vol.Required("name"): str})
SCHEMA_SHELF_UPDATE = vol.Schema(
    {vol.Required("room_id"): str, vol.Required("shelf_id"): str, vol.Required("name"): str}
)
SCHEMA_SHELF_DELETE = vol.Schema({vol.Required("room_id"): str, vol.Required("shelf_id"): str})
SCHEMA_SHELF_DUPLICATE = SCHEMA_SHELF_UPDATE

SCHEMA_SLOT_ADD = SCHEMA_SHELF_UPDATE
SCHEMA_SLOT_UPDATE = vol.Schema(
    {
        vol.Required("room_id"): str,
        vol.Required("shelf_id"): str,
        vol.Required("slot_id"): str,
        vol.Required("name"): str,
    }
)
SCHEMA_SLOT_DELETE = vol.Schema(
    {vol.Required("room_id"): str, vol.Required("shelf_id"): str, vol.Required("slot_id"): str}
)

SCHEMA_CATEGORIES_UPDATE = vol.Schema({vol.Required("categories"): [str]})

SCHEMA_LOCATION_REPORT = vol.Schema({vol.Optional("school"): vol.Any(str, None)})

SCHEMA_DASHBOARD_SUMMARY = vol.Schema(
    {vol.Optional("recent_limit", default=5): vol.All(int, vol.Range(min=0))}
)


# -----------------------------
# Internal helpers
# -----------------------------


def _bucket(hass: HomeAssistant) -> dict[str, Any]:
    return hass.data.setdefault(DOMAIN, {})


def _get_controller(hass: HomeAssistant) -> SyncController:
    controller = _bucket(hass).get("controller")
    if controller is None:
        raise ValidationError("integration is not set up")
    return controller  # type: ignore[return-value]


def _get_tree(hass: HomeAssistant) -> LocationTree:
    tree = _bucket(hass).get("location_tree")
    if tree is None:
        raise ValidationError("location management requires a school scope")
    return tree  # type: ignore[return-value]


def _get_school_scope(hass: HomeAssistant) -> SchoolScope:
    scope = _bucket(hass).get("scope")
    if not isinstance(scope, SchoolScope):
        raise ValidationError("category management requires a school scope")
    return scope


def _log_domain_error(op: str, context: dict[str, Any], exc: Exception) -> None:
    level = logging.WARNING
    if not isinstance(exc, ValidationError | NotFoundError | BackendRejected):
        level = logging.ERROR
    LOGGER.log(level, str(exc), extra={"domain": DOMAIN, "op": op, **context})


def merged_categories(extra: list[str] | tuple[str, ...]) -> list[str]:
    """Default categories followed by school-specific ones, without duplicates."""

    return list(dict.fromkeys([*DEFAULT_CATEGORIES, *(c for c in extra if c)]))


# -----------------------------
# Inventory handlers (exported for tests)
# -----------------------------


async def service_item_create(hass: HomeAssistant, data: dict) -> None:
    op = "item_create"
    try:
        payload = SCHEMA_ITEM_CREATE(data)
        item = await _get_controller(hass).add_item(payload)  # type: ignore[arg-type]
        LOGGER.debug(
            "Service item_create created item",
            extra={"domain": DOMAIN, "op": op, "item_id": item.id, "school": item.school},
        )
    except vol.Invalid as exc:
        _log_domain_error(op, {"name": data.get("name")}, ValidationError(str(exc)))
    except EdukitError as exc:
        _log_domain_error(op, {"name": data.get("name")}, exc)
    except Exception:  # pragma: no cover - defensive
        LOGGER.error("Unhandled service error", exc_info=True, extra={"domain": DOMAIN, "op": op})


async def service_item_update(hass: HomeAssistant, data: dict) -> None:
    op = "item_update"
    item_id = data.get("item_id")
    try:
        payload = SCHEMA_ITEM_UPDATE(data)
        controller = _get_controller(hass)
        current = controller.find_item(payload["item_id"])
        if current is None:
            raise NotFoundError(f"item not found: {payload['item_id']}")
        changes: dict[str, Any] = {}
        for key in ("name", "quantity", "notes", "image_url", "image_base64"):
            if key in payload:
                changes[key] = payload[key]
        if "categories" in payload:
            changes["categories"] = split_multi_value(payload["categories"])
        if "locations" in payload:
            changes["locations"] = split_multi_value(payload["locations"])
        if "status" in payload:
            changes["status"] = ItemStatus.parse(payload["status"])
        await controller.update_item(replace(current, **changes))
    except vol.Invalid as exc:
        _log_domain_error(op, {"item_id": item_id}, ValidationError(str(exc)))
    except EdukitError as exc:
        _log_domain_error(op, {"item_id": item_id}, exc)
    except Exception:  # pragma: no cover - defensive
        LOGGER.error("Unhandled service error", exc_info=True, extra={"domain": DOMAIN, "op": op})


async def service_item_delete(hass: HomeAssistant, data: dict) -> None:
    op = "item_delete"
    item_id = data.get("item_id")
    try:
        payload = SCHEMA_ITEM_DELETE(data)
        await _get_controller(hass).delete_item(payload["item_id"], payload.get("school"))
    except vol.Invalid as exc:
        _log_domain_error(op, {"item_id": item_id}, ValidationError(str(exc)))
    except EdukitError as exc:
        _log_domain_error(op, {"item_id": item_id}, exc)
    except Exception:  # pragma: no cover - defensive
        LOGGER.error("Unhandled service error", exc_info=True, extra={"domain": DOMAIN, "op": op})


async def service_items_refresh(hass: HomeAssistant, data: dict) -> None:
    op = "items_refresh"
    try:
        payload = SCHEMA_ITEMS_REFRESH(data)
        items = await _get_controller(hass).refresh_items(payload.get("school"))
        LOGGER.debug(
            "Service items_refresh fetched %s items",
            len(items),
            extra={"domain": DOMAIN, "op": op, "school": payload.get("school")},
        )
    except vol.Invalid as exc:
        _log_domain_error(op, {}, ValidationError(str(exc)))
    except EdukitError as exc:
        _log_domain_error(op, {"school": data.get("school")}, exc)
    except Exception:  # pragma: no cover - defensive
        LOGGER.error("Unhandled service error", exc_info=True, extra={"domain": DOMAIN, "op": op})


async def service_dashboard_refresh(hass: HomeAssistant, data: dict) -> None:
    op = "dashboard_refresh"
    try:
        SCHEMA_EMPTY(data)
        await _get_controller(hass).refresh_dashboard()
    except vol.Invalid as exc:
        _log_domain_error(op, {}, ValidationError(str(exc)))
    except EdukitError as exc:
        _log_domain_error(op, {}, exc)
    except Exception:  # pragma: no cover - defensive
        LOGGER.error("Unhandled service error", exc_info=True, extra={"domain": DOMAIN, "op": op})


async def service_select_school(hass: HomeAssistant, data: dict) -> None:
    op = "select_school"
    try:
        payload = SCHEMA_SELECT_SCHOOL(data)
        controller = _get_controller(hass)
        if isinstance(_bucket(hass).get("scope"), SchoolScope):
            raise ValidationError("school users cannot switch schools")
        controller.set_selected_school(payload["school"])
        await controller.refresh_items()
    except vol.Invalid as exc:
        _log_domain_error(op, {}, ValidationError(str(exc)))
    except EdukitError as exc:
        _log_domain_error(op, {"school": data.get("school")}, exc)
    except Exception:  # pragma: no cover - defensive
        LOGGER.error("Unhandled service error", exc_info=True, extra={"domain": DOMAIN, "op": op})


# -----------------------------
# Location tree handlers
# -----------------------------


def _tree_service(
    op: str, schema: vol.Schema, apply: Callable[[LocationTree, dict[str, Any]], Any]
) -> Callable[[HomeAssistant, dict], Awaitable[None]]:
    """Build a handler that validates ``data`` and applies one tree mutation."""

    async def _handler(hass: HomeAssistant, data: dict) -> None:
        try:
            payload = schema(data)
            tree = _get_tree(hass)
            result = apply(tree, payload)
            LOGGER.debug(
                "Service %s applied",
                op,
                extra={
                    "domain": DOMAIN,
                    "op": op,
                    "school_code": tree.school_code,
                    "node_id": getattr(result, "id", None),
                },
            )
        except vol.Invalid as exc:
            _log_domain_error(op, {}, ValidationError(str(exc)))
        except EdukitError as exc:
            _log_domain_error(op, {k: v for k, v in data.items() if k.endswith("_id")}, exc)
        except Exception:  # pragma: no cover - defensive
            LOGGER.error(
                "Unhandled service error", exc_info=True, extra={"domain": DOMAIN, "op": op}
            )

    _handler.__name__ = f"service_{op}"
    return _handler


service_room_add = _tree_service("room_add", SCHEMA_ROOM_ADD, lambda t, p: t.add_room(p["name"]))
service_room_update = _tree_service(
    "room_update", SCHEMA_ROOM_UPDATE, lambda t, p: t.update_room(p["room_id"], p["name"])
)
service_room_delete = _tree_service(
    "room_delete", SCHEMA_ROOM_DELETE, lambda t, p: t.delete_room(p["room_id"])
)
service_room_duplicate = _tree_service(
    "room_duplicate", SCHEMA_ROOM_DUPLICATE, lambda t, p: t.duplicate_room(p["room_id"], p["name"])
)
service_shelf_add = _tree_service(
    "shelf_add", SCHEMA_SHELF_ADD, lambda t, p: t.add_shelf(p["room_id"], p["name"])
)
service_shelf_update = _tree_service(
    "shelf_update",
    SCHEMA_SHELF_UPDATE,
    lambda t, p: t.update_shelf(p["room_id"], p["shelf_id"], p["name"]),
)
service_shelf_delete = _tree_service(
    "shelf_delete", SCHEMA_SHELF_DELETE, lambda t, p: t.delete_shelf(p["room_id"], p["shelf_id"])
)
service_shelf_duplicate = _tree_service(
    "shelf_duplicate",
    SCHEMA_SHELF_DUPLICATE,
    lambda t, p: t.duplicate_shelf(p["room_id"], p["shelf_id"], p["name"]),
)
service_slot_add = _tree_service(
    "slot_add", SCHEMA_SLOT_ADD, lambda t, p: t.add_slot(p["room_id"], p["shelf_id"], p["name"])
)
service_slot_update = _tree_service(
    "slot_update",
    SCHEMA_SLOT_UPDATE,
    lambda t, p: t.update_slot(p["room_id"], p["shelf_id"], p["slot_id"], p["name"]),
)
service_slot_delete = _tree_service(
    "slot_delete",
    SCHEMA_SLOT_DELETE,
    lambda t, p: t.delete_slot(p["room_id"], p["shelf_id"], p["slot_id"]),
)


# -----------------------------
# Categories
# -----------------------------


async def service_categories_update(hass: HomeAssistant, data: dict) -> None:
    """Replace the school-specific categories; the defaults are always kept."""

    op = "categories_update"
    try:
        payload = SCHEMA_CATEGORIES_UPDATE(data)
        scope = _get_school_scope(hass)
        defaults = set(DEFAULT_CATEGORIES)
        custom = [c.strip() for c in payload["categories"] if c.strip() and c.strip() not in defaults]
        custom = list(dict.fromkeys(custom))
        registry: SchoolRegistry = _bucket(hass)["registry"]
        await registry.update_categories(scope.code, custom)
        _bucket(hass)["scope"] = replace(scope, categories=tuple(custom))
        _bucket(hass)["categories"] = merged_categories(custom)
    except vol.Invalid as exc:
        _log_domain_error(op, {}, ValidationError(str(exc)))
    except EdukitError as exc:
        _log_domain_error(op, {}, exc)
    except Exception:  # pragma: no cover - defensive
        LOGGER.error("Unhandled service error", exc_info=True, extra={"domain": DOMAIN, "op": op})


# -----------------------------
# Response services
# -----------------------------


async def service_location_report(hass: HomeAssistant, data: dict) -> dict[str, Any]:
    """Room/shelf/slot report over the selected list, or one school's items."""

    payload = SCHEMA_LOCATION_REPORT(data)
    controller = _get_controller(hass)
    school = payload.get("school")
    if school:
        items = [i for i in controller.all_items if i.school == school]
    else:
        items = controller.items
    return {"rooms": report_as_dict(build_location_report(items))}


async def service_dashboard_summary(hass: HomeAssistant, data: dict) -> dict[str, Any]:
    payload = SCHEMA_DASHBOARD_SUMMARY(data)
    controller = _get_controller(hass)
    return build_dashboard_summary(controller.all_items, recent_limit=payload["recent_limit"])


# -----------------------------
# Registration
# -----------------------------

_SERVICES: dict[str, tuple[Callable[[HomeAssistant, dict], Awaitable[Any]], vol.Schema]] = {
    "item_create": (service_item_create, SCHEMA_ITEM_CREATE),
    "item_update": (service_item_update, SCHEMA_ITEM_UPDATE),
    "item_delete": (service_item_delete, SCHEMA_ITEM_DELETE),
    "items_refresh": (service_items_refresh, SCHEMA_ITEMS_REFRESH),
    "dashboard_refresh": (service_dashboard_refresh, SCHEMA_EMPTY),
    "select_school": (service_select_school, SCHEMA_SELECT_SCHOOL),
    "room_add": (service_room_add, SCHEMA_ROOM_ADD),
    "room_update": (service_room_update, SCHEMA_ROOM_UPDATE),
    "room_delete": (service_room_delete, SCHEMA_ROOM_DELETE),
    "room_duplicate": (service_room_duplicate, SCHEMA_ROOM_DUPLICATE),
    "shelf_add": (service_shelf_add, SCHEMA_SHELF_ADD),
    "shelf_update": (service_shelf_update, SCHEMA_SHELF_UPDATE),
    "shelf_delete": (service_shelf_delete, SCHEMA_SHELF_DELETE),
    "shelf_duplicate": (service_shelf_duplicate, SCHEMA_SHELF_DUPLICATE),
    "slot_add": (service_slot_add, SCHEMA_SLOT_ADD),
    "slot_update": (service_slot_update, SCHEMA_SLOT_UPDATE),
    "slot_delete": (service_slot_delete, SCHEMA_SLOT_DELETE),
    "categories_update": (service_categories_update, SCHEMA_CATEGORIES_UPDATE),
}

_RESPONSE_SERVICES: dict[str, tuple[Callable[[HomeAssistant, dict], Awaitable[Any]], vol.Schema]] = {
    "location_report": (service_location_report, SCHEMA_LOCATION_REPORT),
    "dashboard_summary": (service_dashboard_summary, SCHEMA_DASHBOARD_SUMMARY),
}


def _bind(
    hass: HomeAssistant, handler: Callable[[HomeAssistant, dict], Awaitable[Any]]
) -> Callable[[ServiceCall], Awaitable[Any]]:
    async def _call(call: ServiceCall) -> Any:
        return await handler(hass, dict(call.data))

    return _call


def setup(hass: HomeAssistant) -> None:
    """Register edukit.* services on Home Assistant."""

    # Idempotent: avoid duplicate registration across reloads
    bucket = _bucket(hass)
    if bucket.get("services_registered"):
        return

    # Home Assistant validates inputs against these schemas before invoking
    # the handler; handlers are exported above for testability.
    for name, (handler, schema) in _SERVICES.items():
        hass.services.async_register(DOMAIN, name, _bind(hass, handler), schema)
    for name, (handler, schema) in _RESPONSE_SERVICES.items():
        hass.services.async_register(
            DOMAIN,
            name,
            _bind(hass, handler),
            schema,
            supports_response=SupportsResponse.ONLY,
        )

    bucket["services_registered"] = True


def unload(hass: HomeAssistant) -> None:
    """Remove edukit.* services."""

    bucket = _bucket(hass)
    if not bucket.pop("services_registered", None):
        return
    for name in (*_SERVICES, *_RESPONSE_SERVICES):
        hass.services.async_remove(DOMAIN, name)
