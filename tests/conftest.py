"""Shared fixtures for offline tests.

- ``hass``: a MagicMock standing in for HomeAssistant with a real ``data`` dict
- ``store_backing``: swaps the Store class used by ``storage`` for an
  in-memory implementation and returns the backing dict (key -> payload)
- ``backend``: a local aiohttp application that speaks the Apps Script
  envelope for both the inventory and the registry endpoints
"""

from __future__ import annotations

import asyncio
import json
from copy import deepcopy
from typing import Any
from unittest.mock import MagicMock

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer
import custom_components.edukit as edukit_init
from custom_components.edukit import storage as storage_mod


class MemoryStore:
    """Store lookalike keeping payloads in a shared dict."""

    def __init__(self, backing: dict[str, Any], version: int, key: str) -> None:
        self._backing = backing
        self.version = version
        self.key = key
        self.save_calls = 0

    async def async_load(self) -> Any:
        return deepcopy(self._backing.get(self.key))

    async def async_save(self, data: Any) -> None:
        self.save_calls += 1
        self._backing[self.key] = deepcopy(data)


@pytest.fixture
def hass() -> MagicMock:
    mock = MagicMock()
    mock.data = {}
    return mock


@pytest.fixture
def store_backing(monkeypatch) -> dict[str, Any]:
    backing: dict[str, Any] = {}

    def _factory(_hass, version, key):  # type: ignore[no-untyped-def]
        return MemoryStore(backing, version, key)

    monkeypatch.setattr(storage_mod, "Store", _factory)
    return backing


class FakeAppsScript:
    """Scriptable Apps Script double.

    GET ``/exec?school=X`` answers from ``rows[X]``; ``aggregate`` answers the
    all-schools key. Schools in ``failing`` answer ``success: false``; schools
    in ``delays`` answer after sleeping. Schools in ``garbled`` answer
    with that raw byte body. ``raw`` short-circuits everything with
    a fixed (status, body). POST bodies are recorded in ``posts``.

    GET ``/admin?action=...`` answers from ``admin_get[action]`` and POST
    ``/admin`` from ``admin_post[action]``.
    """

    def __init__(self) -> None:
        self.url = ""
        self.admin_url = ""
        self.session: aiohttp.ClientSession | None = None
        self.rows: dict[str, list[dict[str, Any]]] = {}
        self.aggregate: list[dict[str, Any]] | None = None
        self.failing: set[str] = set()
        self.delays: dict[str, float] = {}
        self.garbled: dict[str, bytes] = {}
        self.raw: tuple[int, str] | None = None
        self.post_response: dict[str, Any] = {"success": True, "message": "ok"}
        self.posts: list[dict[str, Any]] = []
        self.post_content_types: list[str] = []
        self.get_queries: list[dict[str, str]] = []
        self.admin_get: dict[str, dict[str, Any]] = {}
        self.admin_post: dict[str, dict[str, Any]] = {}
        self.admin_posts: list[dict[str, Any]] = []

    async def handle_get(self, request: web.Request) -> web.Response:
        query = dict(request.query)
        self.get_queries.append(query)
        if self.raw is not None:
            status, text = self.raw
            return web.Response(status=status, text=text)
        school = query.get("school", "")
        if school in self.delays:
            await asyncio.sleep(self.delays[school])
        if school in self.garbled:
            return web.Response(body=self.garbled[school], content_type="text/plain")
        if school in self.failing:
            return _json({"success": False, "message": f"{school} 시트를 찾을 수 없습니다."})
        if school == "모두":
            return _json({"success": True, "data": self.aggregate or []})
        return _json({"success": True, "data": self.rows.get(school, [])})

    async def handle_post(self, request: web.Request) -> web.Response:
        self.post_content_types.append(request.headers.get("Content-Type", ""))
        body = json.loads(await request.text())
        self.posts.append(body)
        if self.raw is not None:
            status, text = self.raw
            return web.Response(status=status, text=text)
        return _json(self.post_response)

    async def handle_admin_get(self, request: web.Request) -> web.Response:
        action = request.query.get("action", "")
        self.get_queries.append(dict(request.query))
        return _json(self.admin_get.get(action, {"success": False, "message": "unknown"}))

    async def handle_admin_post(self, request: web.Request) -> web.Response:
        body = json.loads(await request.text())
        self.admin_posts.append(body)
        return _json(self.admin_post.get(body.get("action"), {"success": True}))


def _json(payload: dict[str, Any]) -> web.Response:
    # Apps Script serves JSON as text/plain after its redirect
    return web.Response(text=json.dumps(payload, ensure_ascii=False), content_type="text/plain")


@pytest_asyncio.fixture
async def backend():
    fake = FakeAppsScript()
    app = web.Application()
    app.router.add_get("/exec", fake.handle_get)
    app.router.add_post("/exec", fake.handle_post)
    app.router.add_get("/admin", fake.handle_admin_get)
    app.router.add_post("/admin", fake.handle_admin_post)
    server = TestServer(app)
    await server.start_server()
    fake.url = str(server.make_url("/exec"))
    fake.admin_url = str(server.make_url("/admin"))
    async with aiohttp.ClientSession() as session:
        fake.session = session
        yield fake
    await server.close()


@pytest.fixture
def setup_integration(hass, store_backing, monkeypatch):  # type: ignore[no-untyped-def]
    """Return a coroutine function that sets up a demo-mode entry with ``data``."""

    monkeypatch.setattr(edukit_init, "async_get_clientsession", lambda _hass: MagicMock())

    async def _setup(**data: Any) -> MagicMock:
        entry = MagicMock()
        entry.entry_id = "entry-1"
        entry.data = {"demo_mode": True, **data}
        entry.options = {}
        assert await edukit_init.async_setup_entry(hass, entry) is True
        return entry

    return _setup
