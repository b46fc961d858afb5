from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Mapping, Optional, Protocol

import aiohttp

from oqta_client.protocol import WatchUpdate
from oqta_client.utils.env import env_bool

from .http_api import DriveApiError

logger = logging.getLogger(__name__)


def sync_debug_enabled(env: Optional[Mapping[str, str]] = None) -> bool:
    """``OQTA_SYNC_DEBUG`` (or the client-wide ``OQTA_CLIENT_DEBUG``) is set."""
    return env_bool("OQTA_SYNC_DEBUG", False, env) or env_bool("OQTA_CLIENT_DEBUG", False, env)


def _maybe_enable_debug_logger(env: Optional[Mapping[str, str]] = None) -> bool:
    if not sync_debug_enabled(env):
        return False
    has_local = any(getattr(h, "_oqta_local", False) for h in logger.handlers)
    if not has_local:
        handler = logging.StreamHandler()
        fmt = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"
        handler.setFormatter(logging.Formatter(fmt))
        handler.setLevel(logging.DEBUG)
        setattr(handler, "_oqta_local", True)
        logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    return True


_SYNC_DEBUG = _maybe_enable_debug_logger()


class WatchSource(Protocol):
    async def watch(self) -> Optional[WatchUpdate]: ...


class SyncLoop:
    """Long-poll ``/watch`` forever and hand every update to ``handle_update``.

    Exactly one poll is outstanding at any time; the next one is issued only
    after the previous one resolved, so updates arrive in server order.  An
    empty poll is followed immediately by the next one; any failure is
    followed by a fixed back-off.  The loop never gives up on its own: it
    ends only when its task is cancelled.
    """

    def __init__(
        self,
        source: WatchSource,
        handle_update: Callable[[WatchUpdate], None],
        *,
        backoff_s: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._source = source
        self._handle_update = handle_update
        self._backoff_s = float(backoff_s)
        self._sleep = sleep
        self.polls = 0
        self.updates = 0
        self.failures = 0

    async def run(self) -> None:
        logger.info("Sync loop started")
        try:
            while True:
                await self.poll_once()
        finally:
            logger.info("Sync loop stopped after %d polls (%d updates, %d failures)",
                        self.polls, self.updates, self.failures)

    async def poll_once(self) -> None:
        """One iteration: poll, dispatch or back off."""
        self.polls += 1
        try:
            update = await self._source.watch()
        except asyncio.CancelledError:
            raise
        except DriveApiError as exc:
            self.failures += 1
            logger.info("Watch returned %s; retrying in %.1fs", exc, self._backoff_s)
            await self._sleep(self._backoff_s)
            return
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as exc:
            self.failures += 1
            msg = str(exc) or exc.__class__.__name__
            logger.info("Watch unavailable (%s); retrying in %.1fs", msg, self._backoff_s)
            await self._sleep(self._backoff_s)
            return
        except ValueError as exc:
            self.failures += 1
            logger.warning("Watch payload rejected (%s); retrying in %.1fs", exc, self._backoff_s)
            await self._sleep(self._backoff_s)
            return

        if update is None:
            if _SYNC_DEBUG:
                logger.debug("Watch ended without update")
            return

        self.updates += 1
        if _SYNC_DEBUG:
            logger.debug("Watch update: client=%r drives=%s", update.client.client, update.drives is not None)
        try:
            self._handle_update(update)
        except Exception:
            logger.exception("Applying watch update failed")
