"""Config flow for EduKit."""

from __future__ import annotations

from typing import Any

import voluptuous as vol
from homeassistant import config_entries
from homeassistant.data_entry_flow import FlowResult

from .const import CONF_ADMIN_URL, CONF_DEMO_MODE, CONF_SCHOOL_CODE, CONF_SCRIPT_URL, DOMAIN

STEP_USER_SCHEMA = vol.Schema(
    {
        vol.Optional(CONF_DEMO_MODE, default=True): bool,
        vol.Optional(CONF_ADMIN_URL, default=""): str,
        vol.Optional(CONF_SCRIPT_URL, default=""): str,
        vol.Optional(CONF_SCHOOL_CODE, default=""): str,
    }
)


def validate_user_input(user_input: dict[str, Any]) -> dict[str, str]:
    """Return form errors keyed by field; empty when the input is usable."""

    errors: dict[str, str] = {}
    for key in (CONF_ADMIN_URL, CONF_SCRIPT_URL):
        value = (user_input.get(key) or "").strip()
        if not value:
            continue
        try:
            vol.Url()(value)
        except vol.Invalid:
            errors[key] = "invalid_url"
    if not user_input.get(CONF_DEMO_MODE, True) and not (user_input.get(CONF_SCRIPT_URL) or "").strip():
        errors.setdefault(CONF_SCRIPT_URL, "script_url_required")
    return errors


class EdukitConfigFlow(config_entries.ConfigFlow, domain=DOMAIN):
    """Handle a config flow for EduKit."""

    VERSION = 1

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> FlowResult:
        """Handle the initial step. Single instance only."""
        if self._async_current_entries():
            return self.async_abort(reason="single_instance_allowed")

        if user_input is None:
            return self.async_show_form(step_id="user", data_schema=STEP_USER_SCHEMA)

        data = STEP_USER_SCHEMA(user_input)
        errors = validate_user_input(data)
        if errors:
            return self.async_show_form(
                step_id="user", data_schema=STEP_USER_SCHEMA, errors=errors
            )

        data = {k: v.strip() if isinstance(v, str) else v for k, v in data.items()}
        title = f"EduKit ({data[CONF_SCHOOL_CODE]})" if data[CONF_SCHOOL_CODE] else "EduKit"
        return self.async_create_entry(title=title, data=data)
