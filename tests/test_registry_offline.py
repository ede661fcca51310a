"""Offline tests for the school registry client.

Scenarios (demo):
- Five DEMO00x schools are seeded and persisted on first read
- Code verification, admin login, duplicate and unknown-code rejections
- Categories and locations are stored on the school record
- Scope resolution for admin and school users

Scenarios (live): getSchools single/array shapes, verifyCode, POST bodies
"""

from __future__ import annotations

import re

import pytest
from custom_components.edukit.exceptions import BackendRejected
from custom_components.edukit.models import (
    AdminScope,
    LocationRoom,
    LocationShelf,
    SchoolConfig,
    SchoolScope,
)
from custom_components.edukit.registry import (
    DEMO_SCHOOLS_KEY,
    SchoolRegistry,
    generate_school_code,
)
from custom_components.edukit.settings import Settings
from custom_components.edukit.storage import KeyValueStore
from custom_components.edukit.transport import AppsScriptTransport


def _demo(kv: KeyValueStore | None = None) -> SchoolRegistry:
    return SchoolRegistry(
        AppsScriptTransport(None),  # type: ignore[arg-type]
        Settings(),
        kv or KeyValueStore(),
    )


def _live(backend) -> SchoolRegistry:  # type: ignore[no-untyped-def]
    return SchoolRegistry(
        AppsScriptTransport(backend.session, timeout=5),
        Settings(admin_url=backend.admin_url),
        KeyValueStore(),
    )


def test_generate_school_code_shape() -> None:
    codes = {generate_school_code() for _ in range(50)}
    assert all(re.fullmatch(r"[A-Z0-9]{6}", c) for c in codes)
    assert len(codes) > 1


@pytest.mark.asyncio
async def test_demo_roster_is_seeded_and_stored() -> None:
    kv = KeyValueStore()
    registry = _demo(kv)

    schools = await registry.get_schools()

    assert [s.code for s in schools] == ["DEMO001", "DEMO002", "DEMO003", "DEMO004", "DEMO005"]
    assert schools[0].name == "대건고"
    assert len(kv.get(DEMO_SCHOOLS_KEY)) == 5
    assert await registry.known_school_names() == ["대건고", "신송고", "중산중", "신현중", "이음초"]


@pytest.mark.asyncio
async def test_demo_verify_code_and_login() -> None:
    registry = _demo()

    assert (await registry.verify_code("DEMO002")).name == "신송고"
    with pytest.raises(BackendRejected) as excinfo:
        await registry.verify_code("NOPE")
    assert str(excinfo.value) == "유효하지 않은 학교 코드입니다."

    await registry.admin_login("admin", "admin123")
    with pytest.raises(BackendRejected):
        await registry.admin_login("admin", "wrong")
    await registry.change_password("admin", "admin123", "new-secret")


@pytest.mark.asyncio
async def test_demo_add_update_delete_rules() -> None:
    registry = _demo()

    created = await registry.add_school(SchoolConfig(name="새학교", code="NEW001"))
    assert created.created_at

    with pytest.raises(BackendRejected, match="이미 존재하는 학교 코드입니다."):
        await registry.add_school(SchoolConfig(name="다른학교", code="NEW001"))
    with pytest.raises(BackendRejected, match="이미 존재하는 학교 이름입니다."):
        await registry.add_school(SchoolConfig(name="새학교", code="NEW002"))

    updated = await registry.update_school(
        "NEW001", SchoolConfig(name="새학교2", code="NEW009", script_url="https://x/exec")
    )
    assert (updated.name, updated.code, updated.script_url) == ("새학교2", "NEW009", "https://x/exec")
    assert updated.created_at == created.created_at

    with pytest.raises(BackendRejected, match="이미 존재하는 학교 코드입니다."):
        await registry.update_school("NEW009", SchoolConfig(name="x", code="DEMO001"))
    with pytest.raises(BackendRejected, match="해당 학교를 찾을 수 없습니다."):
        await registry.update_school("GONE", SchoolConfig(name="x", code="GONE"))

    await registry.delete_school("NEW009")
    with pytest.raises(BackendRejected, match="해당 학교를 찾을 수 없습니다."):
        await registry.delete_school("NEW009")
    assert "NEW009" not in {s.code for s in await registry.get_schools()}


@pytest.mark.asyncio
async def test_demo_categories_and_locations_live_on_school_record() -> None:
    registry = _demo()
    rooms = [LocationRoom(id="r1", name="전산1", shelves=[LocationShelf(id="s1", name="선반A")])]

    await registry.update_categories("DEMO001", ["과학키트"])
    await registry.update_locations("DEMO001", rooms)

    scope = await registry.resolve_scope("DEMO001")
    assert isinstance(scope, SchoolScope)
    assert scope.categories == ("과학키트",)
    assert scope.locations == tuple(rooms)

    with pytest.raises(BackendRejected):
        await registry.update_locations("GONE", rooms)


@pytest.mark.asyncio
async def test_resolve_scope_without_code_is_admin() -> None:
    assert await _demo().resolve_scope("") == AdminScope()
    assert await _demo().resolve_scope(None) == AdminScope()


@pytest.mark.asyncio
async def test_live_get_schools_accepts_single_or_list(backend) -> None:
    registry = _live(backend)
    backend.admin_get["getSchools"] = {
        "success": True,
        "data": [{"name": "대건고", "code": "A1"}, {"name": "신송고", "code": "B2"}],
    }
    assert [s.code for s in await registry.get_schools()] == ["A1", "B2"]

    backend.admin_get["getSchools"] = {"success": True, "data": {"name": "대건고", "code": "A1"}}
    assert [s.code for s in await registry.get_schools()] == ["A1"]


@pytest.mark.asyncio
async def test_live_verify_code(backend) -> None:
    registry = _live(backend)
    backend.admin_get["verifyCode"] = {
        "success": True,
        "data": {"name": "대건고", "code": "A1", "scriptUrl": "https://s/exec", "categories": ["c"]},
    }

    scope = await registry.resolve_scope("A1")

    assert scope == SchoolScope(code="A1", name="대건고", script_url="https://s/exec", categories=("c",))
    assert backend.get_queries[-1] == {"action": "verifyCode", "code": "A1"}

    backend.admin_get["verifyCode"] = {"success": False, "message": "유효하지 않은 학교 코드입니다."}
    with pytest.raises(BackendRejected):
        await registry.verify_code("ZZ")


@pytest.mark.asyncio
async def test_live_post_bodies(backend) -> None:
    registry = _live(backend)
    rooms = [LocationRoom(id="r1", name="전산1")]

    await registry.admin_login("admin", "pw")
    await registry.update_school("OLD", SchoolConfig(name="대건고", code="NEW"))
    await registry.delete_school("NEW")
    await registry.update_locations("NEW", rooms)

    actions = [b["action"] for b in backend.admin_posts]
    assert actions == ["adminLogin", "updateSchool", "deleteSchool", "updateLocations"]
    assert backend.admin_posts[1]["originalCode"] == "OLD"
    assert backend.admin_posts[3]["locations"] == [{"id": "r1", "name": "전산1", "shelves": []}]


@pytest.mark.asyncio
async def test_live_rejection_is_raised(backend) -> None:
    backend.admin_post["adminLogin"] = {"success": False, "message": "로그인 실패"}

    with pytest.raises(BackendRejected, match="로그인 실패"):
        await _live(backend).admin_login("admin", "bad")
