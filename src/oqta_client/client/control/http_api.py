from __future__ import annotations

"""Async client for the drive server's REST API.

One ``DriveApi`` wraps one ``aiohttp.ClientSession`` and must be used from
the event loop that created it.  Methods map 1:1 onto server endpoints and
return parsed protocol dataclasses.  Unexpected status codes raise
:class:`DriveApiError`; transport problems surface as the underlying
``aiohttp.ClientError``/``OSError`` so callers can tell the two apart.

The long-poll ``/watch`` call is special: it never times out on the client
side (the server paces it) and a 502 reply is a regular "nothing new"
answer, reported as ``None``.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union
from urllib.parse import quote

import aiohttp

from oqta_client.protocol import (
    ClientSnapshot,
    DriveSnapshot,
    MappingState,
    RumbleConfig,
    SearchResult,
    WatchUpdate,
    check_slot,
)

logger = logging.getLogger(__name__)

JSON_HEADERS = {"Content-Type": "application/json"}

# status the server answers a long-poll with when nothing changed
WATCH_NO_UPDATE = 502

RUMBLE_MAX = 255

# characters encodeURIComponent leaves alone besides alphanumerics and _.-~
_URI_SAFE = "!*'()"


class DriveApiError(RuntimeError):
    """Raised when the server answers with an unexpected status code."""

    def __init__(self, method: str, path: str, status: int, reason: str = "", body: str = "") -> None:
        self.method = method
        self.path = path
        self.status = int(status)
        self.reason = reason
        self.body = body
        detail = body.strip() or reason
        super().__init__(f"{method} {path} -> {self.status} {detail}".rstrip())


@dataclass(frozen=True)
class UploadRequest:
    """Parameters of a ``PUT /drive/{n}`` load."""

    slot: int
    name: str
    format: str
    compressor: str
    payload: Union[bytes, str]
    is_reference: bool = False

    def path(self) -> str:
        path = (
            f"/drive/{self.slot}?type={self.format}&compressor={self.compressor}"
            f"&repair=true&name={quote(self.name, safe=_URI_SAFE)}"
        )
        if self.is_reference:
            path += "&ref=true"
        return path

    def body(self) -> bytes:
        if isinstance(self.payload, str):
            return self.payload.encode("utf-8")
        return bytes(self.payload)


def clamp_rumble(level: int) -> int:
    return 0 if level < 0 else RUMBLE_MAX if level > RUMBLE_MAX else int(level)


class DriveApi:
    """Endpoint wrappers for the drive server."""

    def __init__(
        self,
        base_url: str,
        *,
        request_timeout_s: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=request_timeout_s or None)
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "DriveApi":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def _client(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        session = self._session
        self._session = None
        if session is not None and self._owns_session and not session.closed:
            await session.close()

    # --- plumbing ---------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        *,
        data: Optional[bytes] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[aiohttp.ClientTimeout] = None,
        expect_json: bool = False,
    ) -> Any:
        url = f"{self.base_url}{path}"
        logger.debug("DriveApi %s %s", method, path)
        async with self._client().request(
            method,
            url,
            data=data,
            headers=headers,
            timeout=timeout or self._timeout,
        ) as resp:
            text = await resp.text()
            if resp.status // 100 != 2:
                raise DriveApiError(method, path, resp.status, resp.reason or "", text)
            if not expect_json:
                return text
            try:
                return json.loads(text)
            except json.JSONDecodeError as exc:
                raise DriveApiError(method, path, resp.status, "invalid JSON body", text) from exc

    async def _get_json(self, path: str) -> Any:
        return await self._request("GET", path, headers=JSON_HEADERS, expect_json=True)

    # --- state ------------------------------------------------------------------

    async def list_drives(self) -> DriveSnapshot:
        return DriveSnapshot.from_list(await self._get_json("/list"))

    async def status(self) -> ClientSnapshot:
        return ClientSnapshot.from_dict(await self._get_json("/status"))

    async def watch(self) -> Optional[WatchUpdate]:
        """Block until the server has news; ``None`` when the poll ended empty."""
        path = "/watch"
        async with self._client().get(
            f"{self.base_url}{path}",
            headers=JSON_HEADERS,
            timeout=aiohttp.ClientTimeout(total=None),
        ) as resp:
            if resp.status == WATCH_NO_UPDATE:
                return None
            text = await resp.text()
            if resp.status != 200:
                raise DriveApiError("GET", path, resp.status, resp.reason or "", text)
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise DriveApiError("GET", path, 200, "invalid JSON body", text) from exc
        return WatchUpdate.from_dict(payload)

    # --- drives -----------------------------------------------------------------

    async def upload(self, request: UploadRequest) -> str:
        check_slot(request.slot)
        return await self._request("PUT", request.path(), data=request.body())

    async def drive_listing(self, slot: int) -> str:
        return await self._request("GET", f"/drive/{check_slot(slot)}/list", headers=JSON_HEADERS)

    async def unload(self, slot: int) -> str:
        return await self._request("PUT", f"/drive/{check_slot(slot)}/unload?force=true")

    async def resync(self) -> str:
        return await self._request("PUT", "/resync?reset=true")

    # --- hardware mapping & config ------------------------------------------------

    async def get_mapping(self) -> MappingState:
        return MappingState.from_dict(await self._get_json("/map"))

    async def set_mapping(self, start: int, end: int) -> str:
        MappingState(start=int(start), end=int(end))
        return await self._request("PUT", f"/map/?start={int(start)}&end={int(end)}")

    async def get_rumble(self) -> RumbleConfig:
        return RumbleConfig.from_dict(await self._get_json("/config?item=rumble"))

    async def set_rumble(self, level: int) -> str:
        return await self._request("PUT", f"/config?item=rumble&arg1={clamp_rumble(level)}")

    # --- repository & misc ----------------------------------------------------------

    async def search(self, term: str, items: int = 25) -> SearchResult:
        path = f"/search?items={int(items)}&term={quote(term, safe=_URI_SAFE)}"
        return SearchResult.from_dict(await self._get_json(path))

    async def version(self) -> str:
        return (await self._request("GET", "/version")).strip()
