"""Schema migrations for EduKit persistent storage.

Forward-only, idempotent migration steps. Each step receives and returns the
entire persisted dict payload. Steps must tolerate being applied more than once
without changing the outcome.
"""

from __future__ import annotations

from copy import deepcopy
from typing import Any

# Pre-versioned payloads stored these keys at the top level
_LEGACY_PREFIXES = ("demo_items_", "demo_school_settings", "location_data_")


def migrate(payload: dict[str, Any], *, from_version: int, to_version: int) -> dict[str, Any]:
    """Migrate ``payload`` from ``from_version`` to ``to_version``.

    Steps are applied sequentially: vN -> vN+1 -> ... -> vM.
    """

    if from_version > to_version:
        # We do not support downgrades; return the original as-is
        return payload

    data: dict[str, Any] = deepcopy(payload)
    version = int(from_version)
    while version < to_version:
        next_version = version + 1
        step = globals().get(f"migrate_{version}_to_{next_version}")
        if callable(step):
            data = step(data)
        version = next_version

    data["schema_version"] = to_version
    return data


def migrate_0_to_1(payload: dict[str, Any]) -> dict[str, Any]:
    """Move loose top-level keys into the ``entries`` collection.

    Idempotent: re-applying yields same result.
    """

    data = deepcopy(payload) if isinstance(payload, dict) else {}
    entries = data.get("entries")
    if not isinstance(entries, dict):
        entries = {}
    for key in [k for k in data if k.startswith(_LEGACY_PREFIXES)]:
        entries.setdefault(key, data.pop(key))
    data["entries"] = entries
    return data
