"""Debounced repository search.

Keystrokes are coalesced with a pending counter: every keystroke bumps the
counter and schedules a check after the quiet period; a check decrements
the counter and only the check that brings it back to zero searches, using
the latest input.  A burst of typing therefore yields a single request,
issued one quiet period after the last keystroke.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set

import aiohttp

from oqta_client.protocol import SearchResult

from .http_api import DriveApiError

logger = logging.getLogger(__name__)


class SearchDebouncer:
    def __init__(
        self,
        search: Callable[[str], Awaitable[SearchResult]],
        on_results: Callable[[str, SearchResult], None],
        *,
        delay_s: float = 0.6,
        min_chars: int = 2,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._search = search
        self._on_results = on_results
        self._delay_s = float(delay_s)
        self._min_chars = int(min_chars)
        self._sleep = sleep
        self._pending = 0
        self._latest = ""
        self._issued = 0
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return self._pending

    def keystroke(self, value: str) -> None:
        self._latest = value
        self._pending += 1
        self._spawn(self._check())

    def search_now(self, value: str) -> Optional[asyncio.Task]:
        """Search immediately (search button), bypassing the quiet period."""
        self._latest = value
        return self._spawn(self._issue(value))

    def _spawn(self, coro: Awaitable[None]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _check(self) -> None:
        await self._sleep(self._delay_s)
        self._pending -= 1
        if self._pending == 0:
            await self._issue(self._latest)

    async def _issue(self, term: str) -> None:
        if len(term) < self._min_chars:
            return
        self._issued += 1
        ticket = self._issued
        logger.debug("Searching repository for %r", term)
        try:
            result = await self._search(term)
        except DriveApiError as exc:
            logger.info("Search for %r failed: %s", term, exc)
            return
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as exc:
            logger.info("Search for %r failed: %s", term, str(exc) or exc.__class__.__name__)
            return
        except ValueError as exc:
            logger.warning("Search reply for %r rejected: %s", term, exc)
            return
        if ticket != self._issued:
            logger.debug("Dropping stale results for %r", term)
            return
        self._on_results(term, result)

    async def aclose(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._pending = 0
