"""Single-flight cartridge uploads per drive slot."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional, Protocol, Set, Union

import aiohttp

from oqta_client.client.state.formats import display_name, resolve
from oqta_client.protocol import REFERENCE_PREFIX, check_slot

from .http_api import DriveApiError, UploadRequest

logger = logging.getLogger(__name__)


class UploadTarget(Protocol):
    async def upload(self, request: UploadRequest) -> str: ...


def request_for_file(slot: int, filename: str, data: bytes) -> UploadRequest:
    """Build the upload request for a local file picked by the user."""
    fc = resolve(filename)
    return UploadRequest(
        slot=slot,
        name=display_name(filename),
        format=fc.format,
        compressor=fc.compressor,
        payload=data,
    )


def request_for_reference(slot: int, reference: str) -> UploadRequest:
    """Build the load-by-reference request for a repository item."""
    if not reference.startswith(REFERENCE_PREFIX):
        reference = REFERENCE_PREFIX + reference
    fc = resolve(reference)
    return UploadRequest(
        slot=slot,
        name=display_name(reference),
        format=fc.format,
        compressor=fc.compressor,
        payload=reference,
        is_reference=True,
    )


class UploadOrchestrator:
    """Issue at most one upload per slot until the next snapshot arrives.

    ``start`` switches the slot to its loading projection right away and
    sends the request in the background.  Nothing is re-enabled here, on
    success or failure: the slot stays in flight until ``release_all`` is
    called for the next authoritative snapshot, which also repaints it.
    """

    def __init__(self, target: UploadTarget, on_loading: Callable[[int], None]) -> None:
        self._target = target
        self._on_loading = on_loading
        self._in_flight: Set[int] = set()
        self._tasks: Set[asyncio.Task] = set()

    def in_flight(self, slot: int) -> bool:
        return slot in self._in_flight

    def release_all(self) -> None:
        self._in_flight.clear()

    def start(self, request: UploadRequest) -> Optional[asyncio.Task]:
        slot = check_slot(request.slot)
        if slot in self._in_flight:
            logger.info("Drive %d already loading; ignoring trigger", slot)
            return None
        self._in_flight.add(slot)
        self._on_loading(slot)
        task = asyncio.get_running_loop().create_task(self._send(request))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def upload(
        self,
        slot: int,
        name: str,
        format: str,
        compressor: str,
        payload: Union[bytes, str],
        is_reference: bool = False,
    ) -> Optional[asyncio.Task]:
        return self.start(
            UploadRequest(
                slot=slot,
                name=name,
                format=format,
                compressor=compressor,
                payload=payload,
                is_reference=is_reference,
            )
        )

    async def _send(self, request: UploadRequest) -> None:
        kind = "reference" if request.is_reference else f"{len(request.body())} bytes"
        logger.info("Loading %r into drive %d (%s)", request.name, request.slot, kind)
        try:
            reply = await self._target.upload(request)
        except DriveApiError as exc:
            logger.warning("Load into drive %d failed: %s", request.slot, exc)
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as exc:
            logger.warning("Load into drive %d failed: %s", request.slot, str(exc) or exc.__class__.__name__)
        except ValueError as exc:
            logger.warning("Load into drive %d rejected: %s", request.slot, exc)
        else:
            logger.info("Drive %d: %s", request.slot, reply.strip())

    async def aclose(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
