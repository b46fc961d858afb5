"""Session state and user-intent handlers for one connection to the drive server.

``DriveSession`` owns everything that changes while the client runs: the
latest rendered ``UiState``, the hardware mapping, the pending repository
selection and the background tasks (sync loop, uploads, searches).  It runs
entirely on the engine event loop; views only receive immutable render
objects and answer confirmations/file picks through awaitables.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Optional, Protocol, Tuple, TypeVar

import aiohttp

from oqta_client.client.config import ClientConfig
from oqta_client.client.state.range_solver import SlotValue, to_wire_value
from oqta_client.client.state.reconciler import (
    MappingView,
    UiState,
    mark_loading,
    project_mapping,
    reconcile,
    rumble_hint,
)
from oqta_client.protocol import (
    CLIENT_NO_UPDATE,
    REFERENCE_PREFIX,
    ClientSnapshot,
    MappingState,
    SearchResult,
    WatchUpdate,
    check_slot,
)

from .http_api import DriveApi, DriveApiError, clamp_rumble
from .search import SearchDebouncer
from .sync_loop import SyncLoop
from .uploads import UploadOrchestrator, request_for_file, request_for_reference

logger = logging.getLogger(__name__)

T = TypeVar("T")

TAB_DRIVES = "drives"
TAB_FILES = "files"
TAB_SEARCH = "search"

CONFIRM_LOAD = (
    "Load cartridge?",
    "Confirm & click the load button of the drive into which you want to load.",
)
CONFIRM_UNLOAD = ("Unload cartridge?", "Unsaved changes will be lost!")
CONFIRM_MAP_ENABLE = (
    "Enable hardware drives",
    "Specifying the wrong number of hardware drives will cause problems. If you "
    "set too many, you will block virtual drives, if you set too few, the excess "
    "hardware drives will conflict with virtual drives, causing bus contention. "
    "Proceed?",
)
CONFIRM_MAP_DISABLE = ("Disable hardware drives", "Proceed?")


class MappingLockedError(RuntimeError):
    """Raised when a mapping edit is submitted while the server reports it locked."""


class DriveView(Protocol):
    """Sink for everything the session shows; implemented by the Qt panel and the CLI."""

    def render(self, ui: UiState) -> None: ...

    def render_mapping(self, mapping: MappingView) -> None: ...

    def render_rumble(self, level: Optional[int], hint: str) -> None: ...

    def render_version(self, version: str) -> None: ...

    def render_search_results(self, term: str, result: SearchResult) -> None: ...

    def render_file_list(self, slot: int, text: str) -> None: ...

    def show_tab(self, name: str) -> None: ...

    async def confirm(self, title: str, message: str) -> bool: ...

    async def pick_file(self, slot: int) -> Optional[Tuple[str, bytes]]: ...


class DriveSession:
    def __init__(
        self,
        api: DriveApi,
        view: DriveView,
        config: Optional[ClientConfig] = None,
        *,
        sleep=asyncio.sleep,
    ) -> None:
        self.api = api
        self.view = view
        self.config = config or ClientConfig()
        self.ui = UiState()
        self.mapping: Optional[MappingState] = None
        self.rumble: Optional[int] = None
        self.version: str = ""
        self.pending_selection: Optional[str] = None
        self.files_slot: Optional[int] = None
        self.uploads = UploadOrchestrator(api, self._indicate_loading)
        self.search = SearchDebouncer(
            self._search,
            self.view.render_search_results,
            delay_s=self.config.search_debounce_s,
            min_chars=self.config.search_min_chars,
            sleep=sleep,
        )
        self.sync = SyncLoop(api, self.apply_update, backoff_s=self.config.watch_backoff_s, sleep=sleep)
        self._sync_task: Optional[asyncio.Task] = None
        self._closed = False

    # --- lifecycle -------------------------------------------------------------

    async def start(self) -> None:
        """Paint the first frame from one-shot fetches, then start long-polling."""
        await self.refresh()
        await self.load_mapping()
        await self.load_rumble()
        await self.load_version()
        if self._sync_task is None and not self._closed:
            self._sync_task = asyncio.get_running_loop().create_task(self.sync.run())

    async def refresh(self) -> None:
        drives = await self._call("list drives", self.api.list_drives())
        status = await self._call("client status", self.api.status())
        self.apply_update(
            WatchUpdate(
                client=status if status is not None else ClientSnapshot(CLIENT_NO_UPDATE),
                drives=drives,
            )
        )

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        task = self._sync_task
        self._sync_task = None
        if task is not None:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        await self.search.aclose()
        await self.uploads.aclose()
        self.pending_selection = None

    @property
    def running(self) -> bool:
        return self._sync_task is not None and not self._sync_task.done()

    # --- drive list --------------------------------------------------------------

    def apply_update(self, update: WatchUpdate) -> None:
        """Fold one server update into the rendered state."""
        if update.drives is not None:
            self.uploads.release_all()
        self.ui = reconcile(self.ui, update)
        self.view.render(self.ui)

    def _indicate_loading(self, slot: int) -> None:
        self.ui = mark_loading(self.ui, slot)
        self.view.render(self.ui)

    def take_pending_selection(self) -> Optional[str]:
        reference, self.pending_selection = self.pending_selection, None
        return reference

    async def slot_action(self, slot: int) -> Optional[asyncio.Task]:
        """Load button of ``slot``: consume a pending repository pick or ask for a file."""
        slot = check_slot(slot)
        if not self.ui.slot(slot).enabled or self.uploads.in_flight(slot):
            logger.info("Drive %d is not accepting loads right now", slot)
            return None
        reference = self.take_pending_selection()
        if reference is not None:
            return self.uploads.start(request_for_reference(slot, reference))
        picked = await self.view.pick_file(slot)
        if picked is None:
            return None
        filename, data = picked
        return self.uploads.start(request_for_file(slot, filename, data))

    async def show_files(self, slot: int) -> Optional[str]:
        self.view.show_tab(TAB_FILES)
        text = await self._call(f"list files of drive {slot}", self.api.drive_listing(slot))
        if text is None:
            return None
        self.files_slot = slot
        self.view.render_file_list(slot, f"drive {slot}: {text.strip()}")
        return text

    async def unload(self, slot: Optional[int] = None) -> bool:
        slot = slot if slot is not None else self.files_slot
        if slot is None:
            return False
        if not await self.view.confirm(*CONFIRM_UNLOAD):
            return False
        if await self._call(f"unload drive {slot}", self.api.unload(slot)) is None:
            return False
        self.view.show_tab(TAB_DRIVES)
        return True

    async def resync(self) -> bool:
        return await self._call("client resync", self.api.resync()) is not None

    # --- repository search -----------------------------------------------------------

    def _search(self, term: str) -> Awaitable[SearchResult]:
        return self.api.search(term, items=self.config.search_items)

    def search_input(self, value: str) -> None:
        self.search.keystroke(value)

    def search_now(self, value: str) -> Optional[asyncio.Task]:
        return self.search.search_now(value)

    async def select_search_result(self, hit: str) -> bool:
        """Confirm a search hit and keep it for the next load button."""
        if await self.view.confirm(*CONFIRM_LOAD):
            self.pending_selection = REFERENCE_PREFIX + hit
            self.view.show_tab(TAB_DRIVES)
            return True
        self.pending_selection = None
        return False

    def cancel_selection(self) -> None:
        self.pending_selection = None

    # --- hardware mapping --------------------------------------------------------------

    async def load_mapping(self) -> Optional[MappingState]:
        mapping = await self._call("hardware mapping", self.api.get_mapping())
        if mapping is not None:
            self.mapping = mapping
            self.view.render_mapping(project_mapping(mapping))
        return mapping

    async def set_mapping(self, start: SlotValue, end: SlotValue) -> bool:
        """Ask for confirmation and send the range; a malformed range raises ``ValueError`` first."""
        if self.mapping is not None and self.mapping.locked:
            raise MappingLockedError("hardware drive mapping is locked")
        wire_start, wire_end = to_wire_value(start), to_wire_value(end)
        if wire_start:
            MappingState(start=wire_start, end=wire_end)
            if not await self.view.confirm(*CONFIRM_MAP_ENABLE):
                return False
        else:
            if not await self.view.confirm(*CONFIRM_MAP_DISABLE):
                return False
            wire_start = wire_end = 0
        if await self._call("set hardware mapping", self.api.set_mapping(wire_start, wire_end)) is None:
            return False
        await self.load_mapping()
        return True

    # --- auxiliary config --------------------------------------------------------------

    async def load_rumble(self) -> Optional[int]:
        config = await self._call("rumble level", self.api.get_rumble())
        if config is not None:
            self.rumble = config.rumble
            self.view.render_rumble(self.rumble, rumble_hint(self.rumble))
        return self.rumble

    async def set_rumble(self, level: int) -> bool:
        level = clamp_rumble(level)
        if await self._call("set rumble level", self.api.set_rumble(level)) is None:
            return False
        self.rumble = level
        self.view.render_rumble(level, rumble_hint(level))
        return True

    async def load_version(self) -> str:
        version = await self._call("server version", self.api.version())
        if version is not None:
            self.version = version
            self.view.render_version(version)
        return self.version

    # --- plumbing ------------------------------------------------------------------------

    async def _call(self, what: str, request: Awaitable[T]) -> Optional[T]:
        """Await one request; failures are logged and reported as ``None``."""
        try:
            return await request
        except DriveApiError as exc:
            logger.warning("%s failed: %s", what, exc)
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as exc:
            logger.info("%s failed: %s", what, str(exc) or exc.__class__.__name__)
        except ValueError as exc:
            logger.warning("%s: unexpected reply (%s)", what, exc)
        return None


__all__ = [
    "CONFIRM_LOAD",
    "CONFIRM_MAP_DISABLE",
    "CONFIRM_MAP_ENABLE",
    "CONFIRM_UNLOAD",
    "DriveSession",
    "DriveView",
    "MappingLockedError",
    "TAB_DRIVES",
    "TAB_FILES",
    "TAB_SEARCH",
]
