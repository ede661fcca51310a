"""Settings value object for EduKit.

Everything that used to be read ad hoc from browser storage (backend URLs,
the demo flag, the selected school) is collected here and passed explicitly
into the gateway, registry client and sync controller.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from typing import Any

from .const import (
    ALL_SCHOOLS_KEY,
    CONF_ADMIN_URL,
    CONF_DEMO_MODE,
    CONF_MAX_INLINE_IMAGE_BYTES,
    CONF_REQUEST_TIMEOUT,
    CONF_SCHOOL_CODE,
    CONF_SCRIPT_URL,
    CONF_SELECTED_SCHOOL,
    DEFAULT_MAX_INLINE_IMAGE_BYTES,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_SCHOOLS,
)


@dataclass(frozen=True)
class Settings:
    """Immutable runtime configuration."""

    script_url: str = ""
    admin_url: str = ""
    demo_mode: bool = True
    selected_school: str = ALL_SCHOOLS_KEY
    school_code: str = ""
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    max_inline_image_bytes: int = DEFAULT_MAX_INLINE_IMAGE_BYTES
    known_schools: tuple[str, ...] = DEFAULT_SCHOOLS

    @property
    def inventory_live(self) -> bool:
        """True when inventory calls go to a real script endpoint."""

        return not self.demo_mode and bool(self.script_url)

    @property
    def registry_live(self) -> bool:
        """The school registry ignores the demo flag; only a missing URL disables it."""

        return bool(self.admin_url)

    def with_known_schools(self, names: Iterable[str]) -> Settings:
        unique = tuple(dict.fromkeys(n for n in names if n))
        return replace(self, known_schools=unique or self.known_schools)

    def with_script_url(self, url: str) -> Settings:
        return replace(self, script_url=(url or "").strip())


def settings_from_entry(entry: Any) -> Settings:
    """Build Settings from a config entry, options taking precedence over data."""

    merged: dict[str, Any] = {}
    for source in (getattr(entry, "data", None), getattr(entry, "options", None)):
        if isinstance(source, Mapping):
            merged.update(source)
    return Settings(
        script_url=str(merged.get(CONF_SCRIPT_URL) or "").strip(),
        admin_url=str(merged.get(CONF_ADMIN_URL) or "").strip(),
        demo_mode=bool(merged.get(CONF_DEMO_MODE, True)),
        selected_school=str(merged.get(CONF_SELECTED_SCHOOL) or ALL_SCHOOLS_KEY),
        school_code=str(merged.get(CONF_SCHOOL_CODE) or "").strip(),
        request_timeout=float(merged.get(CONF_REQUEST_TIMEOUT, DEFAULT_REQUEST_TIMEOUT)),
        max_inline_image_bytes=int(
            merged.get(CONF_MAX_INLINE_IMAGE_BYTES, DEFAULT_MAX_INLINE_IMAGE_BYTES)
        ),
    )
