from __future__ import annotations

"""Engine thread hosting the client's single asyncio event loop.

Every network call and every ``DriveSession`` step runs on this loop.  The
GUI thread only talks to it through :meth:`EngineThread.call_soon` and
:meth:`EngineThread.submit`, both thread-safe.
"""

import asyncio
import concurrent.futures
import inspect
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, TypeVar

from oqta_client.client.config import ClientConfig
from oqta_client.client.control.http_api import DriveApi
from oqta_client.client.control.session import DriveSession, DriveView

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EngineThread:
    def __init__(self, name: str = "oqta-engine") -> None:
        self.name = name
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._ready = threading.Event()

    @property
    def loop(self) -> Optional[asyncio.AbstractEventLoop]:
        return self._loop

    @property
    def alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, timeout: float = 5.0) -> None:
        if self.alive:
            return
        self._ready.clear()
        thread = threading.Thread(target=self.run, name=self.name, daemon=True)
        self._thread = thread
        thread.start()
        if not self._ready.wait(timeout):
            raise RuntimeError(f"{self.name}: event loop did not start within {timeout}s")

    def run(self) -> None:
        """Thread body: run the loop until :meth:`stop`, then drain leftover tasks."""
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._loop = loop
        self._ready.set()
        logger.debug("%s: event loop running", self.name)
        try:
            loop.run_forever()
        finally:
            try:
                pending = [task for task in asyncio.all_tasks(loop) if not task.done()]
                for task in pending:
                    task.cancel()
                if pending:
                    loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
                loop.run_until_complete(loop.shutdown_asyncgens())
            except Exception:
                logger.debug("%s: loop drain failed", self.name, exc_info=True)
            self._loop = None
            loop.close()
            logger.debug("%s: event loop closed", self.name)

    def _require_loop(self) -> asyncio.AbstractEventLoop:
        loop = self._loop
        if loop is None or loop.is_closed():
            raise RuntimeError(f"{self.name} is not running")
        return loop

    def call_soon(self, callback: Callable[..., Any], *args: Any) -> None:
        self._require_loop().call_soon_threadsafe(callback, *args)

    def submit(self, coro: Awaitable[T]) -> "concurrent.futures.Future[T]":
        """Schedule ``coro`` on the engine loop; the returned future is safe to wait on."""
        return asyncio.run_coroutine_threadsafe(coro, self._require_loop())

    def stop(self, timeout: float = 2.0) -> None:
        loop = self._loop
        if loop is not None and not loop.is_closed():
            try:
                loop.call_soon_threadsafe(loop.stop)
            except RuntimeError:
                logger.debug("%s: loop already closed", self.name, exc_info=True)
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None


@dataclass
class SessionHost:
    """Start and stop a ``DriveSession`` on its own engine thread."""

    config: ClientConfig
    view: DriveView
    engine: EngineThread = field(default_factory=EngineThread)
    session: Optional[DriveSession] = None

    def start(self, timeout: float = 10.0) -> DriveSession:
        self.engine.start()

        async def _open() -> DriveSession:
            api = DriveApi(self.config.address, request_timeout_s=self.config.request_timeout_s)
            session = DriveSession(api, self.view, self.config)
            await session.start()
            return session

        self.session = self.engine.submit(_open()).result(timeout)
        logger.info("Drive session started for %s", self.config.address)
        return self.session

    def post(self, coro: Awaitable[Any]) -> "concurrent.futures.Future[Any]":
        """Run a session coroutine on the engine; failures are logged, not raised."""
        future = self.engine.submit(coro)
        future.add_done_callback(_log_failure)
        return future

    def dispatch(self, action: str, *args: Any) -> "concurrent.futures.Future[Any]":
        """Call ``session.<action>(*args)`` on the engine loop, awaiting it if needed."""

        async def _run() -> Any:
            session = self.session
            if session is None:
                logger.debug("Dropping %s: no session", action)
                return None
            result = getattr(session, action)(*args)
            if inspect.isawaitable(result):
                result = await result
            return result

        return self.post(_run())

    def stop(self, timeout: float = 5.0) -> None:
        session = self.session
        self.session = None
        if session is not None and self.engine.loop is not None:

            async def _close() -> None:
                await session.close()
                await session.api.close()

            try:
                self.engine.submit(_close()).result(timeout)
            except concurrent.futures.TimeoutError:
                logger.warning("Drive session did not close within %.1fs", timeout)
        self.engine.stop()
        logger.info("Drive session stopped")


def _log_failure(future: "concurrent.futures.Future[Any]") -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.error("Engine task failed", exc_info=exc)
