"""HTTP transport for Google Apps Script web-app endpoints.

Both the per-school inventory script and the admin/school-registry script use
the same envelope: GET with query parameters, POST with a JSON body, and a
JSON answer of the form ``{"success": bool, "data"?: ..., "message"?: str}``.

Apps Script serves JSON with varying content types, so bodies are read as raw
bytes and decoded explicitly. Failures are mapped onto the EduKit taxonomy:
``NetworkFailure`` (transport error, timeout, non-2xx), ``ParseFailure`` (not
JSON or not an object) and ``BackendRejected`` (``success`` is false).
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Mapping
from typing import Any

import aiohttp

from .const import DEFAULT_REQUEST_TIMEOUT, DOMAIN
from .exceptions import BackendRejected, NetworkFailure, ParseFailure

LOGGER = logging.getLogger(__name__)

DEFAULT_FAILURE_MESSAGE = "요청 처리 중 오류가 발생했습니다."


class AppsScriptTransport:
    """Thin JSON client around a shared aiohttp session."""

    def __init__(
        self, session: aiohttp.ClientSession, *, timeout: float = DEFAULT_REQUEST_TIMEOUT
    ) -> None:
        self._session = session
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def get(self, url: str, params: Mapping[str, str], *, op: str) -> dict[str, Any]:
        return await self._request("GET", url, op=op, params=dict(params))

    async def post(self, url: str, body: Mapping[str, Any], *, op: str) -> dict[str, Any]:
        # text/plain keeps the request "simple"; Apps Script reads postData.contents
        return await self._request(
            "POST",
            url,
            op=op,
            data=json.dumps(body, ensure_ascii=False).encode("utf-8"),
            headers={"Content-Type": "text/plain;charset=utf-8"},
        )

    async def _request(self, method: str, url: str, *, op: str, **kwargs: Any) -> dict[str, Any]:
        if not url:
            raise NetworkFailure("endpoint URL is not configured")

        start_time = time.monotonic()
        try:
            async with self._session.request(
                method, url, timeout=self._timeout, **kwargs
            ) as resp:
                body = await resp.read()
                status = resp.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            LOGGER.debug(
                "Request failed",
                extra={"domain": DOMAIN, "op": op, "method": method},
                exc_info=True,
            )
            raise NetworkFailure(f"network request failed: {exc or type(exc).__name__}") from exc

        LOGGER.debug(
            "Request completed",
            extra={
                "domain": DOMAIN,
                "op": op,
                "method": method,
                "status": status,
                "elapsed_ms": int((time.monotonic() - start_time) * 1000),
            },
        )
        if not 200 <= status < 300:
            raise NetworkFailure(f"backend returned HTTP {status}")
        return parse_envelope(body)


def parse_envelope(body: bytes | str) -> dict[str, Any]:
    """Decode a response body and enforce ``success``."""

    if isinstance(body, bytes):
        try:
            body = body.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ParseFailure("response body is not valid UTF-8") from exc
    try:
        payload = json.loads(body)
    except (TypeError, ValueError) as exc:
        raise ParseFailure("response body is not valid JSON") from exc
    if not isinstance(payload, dict):
        raise ParseFailure("response body must be a JSON object")
    if not payload.get("success"):
        raise BackendRejected(str(payload.get("message") or DEFAULT_FAILURE_MESSAGE))
    return payload
