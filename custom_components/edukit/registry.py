"""School registry client for EduKit.

Talks to the admin Apps Script endpoint that owns the school roster. School
records there also carry each school's category list and location tree, which
makes ``update_locations`` the best-effort persistence target of a school's
``LocationTree``.

When no admin URL is configured the registry runs against a demo roster kept
in the local key/value store under ``demo_school_settings``.
"""

from __future__ import annotations

import logging
import secrets
import string
from dataclasses import replace
from typing import Any

from .const import DEFAULT_SCHOOLS, DOMAIN
from .exceptions import BackendRejected, ParseFailure
from .models import (
    AdminScope,
    LocationRoom,
    ManySchools,
    SchoolConfig,
    Scope,
    SingleSchool,
    iso_utc_now,
    lookup_result_from_data,
    rooms_to_wire,
    school_from_wire,
    school_to_wire,
    scope_for_school,
)
from .settings import Settings
from .storage import KeyValueStore
from .transport import AppsScriptTransport

LOGGER = logging.getLogger(__name__)

DEMO_SCHOOLS_KEY = "demo_school_settings"
DEMO_ADMIN_USERNAME = "admin"
DEMO_ADMIN_PASSWORD = "admin123"

SCHOOL_CODE_ALPHABET = string.ascii_uppercase + string.digits
SCHOOL_CODE_LENGTH = 6

MSG_INVALID_CODE = "유효하지 않은 학교 코드입니다."
MSG_BAD_CREDENTIALS = "아이디 또는 비밀번호가 올바르지 않습니다."
MSG_DUPLICATE_CODE = "이미 존재하는 학교 코드입니다."
MSG_DUPLICATE_NAME = "이미 존재하는 학교 이름입니다."
MSG_SCHOOL_NOT_FOUND = "해당 학교를 찾을 수 없습니다."


def generate_school_code() -> str:
    """Random six-character school code from A-Z and 0-9."""

    return "".join(secrets.choice(SCHOOL_CODE_ALPHABET) for _ in range(SCHOOL_CODE_LENGTH))


def demo_schools() -> list[SchoolConfig]:
    created_at = iso_utc_now()
    return [
        SchoolConfig(name=name, code=f"DEMO{index:03d}", created_at=created_at)
        for index, name in enumerate(DEFAULT_SCHOOLS, 1)
    ]


class SchoolRegistry:
    """Admin/school-registry operations, live or demo."""

    def __init__(
        self, transport: AppsScriptTransport, settings: Settings, kv: KeyValueStore
    ) -> None:
        self._transport = transport
        self._settings = settings
        self._kv = kv

    def configure(self, settings: Settings) -> None:
        self._settings = settings

    @property
    def is_demo(self) -> bool:
        return not self._settings.registry_live

    # -----------------------------
    # Demo roster
    # -----------------------------

    def _load_demo(self) -> list[SchoolConfig]:
        stored = self._kv.get(DEMO_SCHOOLS_KEY)
        if isinstance(stored, list):
            try:
                return [school_from_wire(s) for s in stored]
            except ParseFailure:
                LOGGER.warning(
                    "Demo school roster is malformed; reseeding",
                    extra={"domain": DOMAIN, "op": "demo_roster"},
                )
        schools = demo_schools()
        self._save_demo(schools)
        return schools

    def _save_demo(self, schools: list[SchoolConfig]) -> None:
        self._kv.set(DEMO_SCHOOLS_KEY, [school_to_wire(s) for s in schools])

    def _demo_update(self, code: str, **changes: Any) -> SchoolConfig:
        schools = self._load_demo()
        for index, school in enumerate(schools):
            if school.code == code:
                schools[index] = replace(school, **changes)
                self._save_demo(schools)
                return schools[index]
        raise BackendRejected(MSG_SCHOOL_NOT_FOUND)

    async def _post(self, body: dict[str, Any], *, op: str) -> dict[str, Any]:
        return await self._transport.post(self._settings.admin_url, body, op=op)

    # -----------------------------
    # Reads
    # -----------------------------

    async def get_schools(self) -> list[SchoolConfig]:
        if self.is_demo:
            return self._load_demo()
        payload = await self._transport.get(
            self._settings.admin_url, {"action": "getSchools"}, op="get_schools"
        )
        result = lookup_result_from_data(payload.get("data") or [])
        if isinstance(result, SingleSchool):
            return [result.school]
        return result.schools

    async def known_school_names(self) -> list[str]:
        return [s.name for s in await self.get_schools() if s.name]

    async def verify_code(self, code: str) -> SchoolConfig:
        """Look up one school by its access code."""

        if self.is_demo:
            found = next((s for s in self._load_demo() if s.code == code), None)
            if found is None:
                raise BackendRejected(MSG_INVALID_CODE)
            return found

        payload = await self._transport.get(
            self._settings.admin_url, {"action": "verifyCode", "code": code}, op="verify_code"
        )
        result = lookup_result_from_data(payload.get("data"))
        if isinstance(result, ManySchools):
            found = next((s for s in result.schools if s.code == code), None)
            if found is None:
                raise BackendRejected(MSG_INVALID_CODE)
            return found
        return result.school

    async def resolve_scope(self, code: str | None) -> Scope:
        """No code means the administrator; otherwise the school owning ``code``."""

        if not code:
            return AdminScope()
        return scope_for_school(await self.verify_code(code))

    # -----------------------------
    # Admin writes
    # -----------------------------

    async def admin_login(self, username: str, password: str) -> None:
        if self.is_demo:
            if username != DEMO_ADMIN_USERNAME or password != DEMO_ADMIN_PASSWORD:
                raise BackendRejected(MSG_BAD_CREDENTIALS)
            return
        await self._post(
            {"action": "adminLogin", "username": username, "password": password},
            op="admin_login",
        )

    async def change_password(self, username: str, old_password: str, new_password: str) -> None:
        if self.is_demo:
            LOGGER.debug(
                "Password change simulated",
                extra={"domain": DOMAIN, "op": "change_password"},
            )
            return
        await self._post(
            {
                "action": "changePassword",
                "username": username,
                "oldPassword": old_password,
                "newPassword": new_password,
            },
            op="change_password",
        )

    async def add_school(self, school: SchoolConfig) -> SchoolConfig:
        if self.is_demo:
            schools = self._load_demo()
            if any(s.code == school.code for s in schools):
                raise BackendRejected(MSG_DUPLICATE_CODE)
            if any(s.name == school.name for s in schools):
                raise BackendRejected(MSG_DUPLICATE_NAME)
            created = replace(school, created_at=iso_utc_now())
            schools.append(created)
            self._save_demo(schools)
            return created

        payload = await self._post(
            {
                "action": "addSchool",
                "name": school.name,
                "code": school.code,
                "scriptUrl": school.script_url,
                "sheetUrl": school.sheet_url,
                "driveFolderUrl": school.drive_folder_url,
                "categories": list(school.categories),
            },
            op="add_school",
        )
        data = payload.get("data")
        return school_from_wire(data) if isinstance(data, dict) else school

    async def update_school(self, original_code: str, school: SchoolConfig) -> SchoolConfig:
        if self.is_demo:
            schools = self._load_demo()
            if school.code != original_code and any(s.code == school.code for s in schools):
                raise BackendRejected(MSG_DUPLICATE_CODE)
            return self._demo_update(
                original_code, name=school.name, code=school.code, script_url=school.script_url
            )

        payload = await self._post(
            {
                "action": "updateSchool",
                "originalCode": original_code,
                "name": school.name,
                "code": school.code,
                "scriptUrl": school.script_url,
                "sheetUrl": school.sheet_url,
                "driveFolderUrl": school.drive_folder_url,
                "categories": list(school.categories),
            },
            op="update_school",
        )
        data = payload.get("data")
        return school_from_wire(data) if isinstance(data, dict) else school

    async def delete_school(self, code: str) -> None:
        if self.is_demo:
            schools = self._load_demo()
            remaining = [s for s in schools if s.code != code]
            if len(remaining) == len(schools):
                raise BackendRejected(MSG_SCHOOL_NOT_FOUND)
            self._save_demo(remaining)
            return
        await self._post({"action": "deleteSchool", "code": code}, op="delete_school")

    # -----------------------------
    # School-owned settings
    # -----------------------------

    async def update_categories(self, code: str, categories: list[str]) -> None:
        if self.is_demo:
            self._demo_update(code, categories=list(categories))
            return
        await self._post(
            {"action": "updateCategories", "code": code, "categories": list(categories)},
            op="update_categories",
        )

    async def update_locations(self, code: str, rooms: list[LocationRoom]) -> None:
        """Store a school's location tree on its registry record."""

        if self.is_demo:
            self._demo_update(code, locations=list(rooms))
            return
        await self._post(
            {"action": "updateLocations", "code": code, "locations": rooms_to_wire(rooms)},
            op="update_locations",
        )
