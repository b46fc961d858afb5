from __future__ import annotations

import asyncio
from typing import List, Optional, Tuple

import aiohttp
import pytest

from oqta_client.client.config import ClientConfig
from oqta_client.client.control.http_api import DriveApiError, UploadRequest
from oqta_client.client.control.session import (
    CONFIRM_LOAD,
    CONFIRM_MAP_DISABLE,
    CONFIRM_MAP_ENABLE,
    CONFIRM_UNLOAD,
    TAB_DRIVES,
    TAB_FILES,
    DriveSession,
    MappingLockedError,
)
from oqta_client.client.state.reconciler import LABEL_LOADING
from oqta_client.protocol import (
    ClientSnapshot,
    DriveSnapshot,
    DriveState,
    MappingState,
    RumbleConfig,
    SearchResult,
    WatchUpdate,
)


def _snapshot(**slots: DriveState) -> DriveSnapshot:
    drives = [DriveState(status="empty") for _ in range(8)]
    for key, state in slots.items():
        drives[int(key[1:]) - 1] = state
    return DriveSnapshot(tuple(drives))


class StubApi:
    def __init__(self) -> None:
        self.calls: List[Tuple] = []
        self.drives = _snapshot(s1=DriveState(status="idle", formatted=True, name="GAMES"))
        self.mapping = MappingState()
        self.rumble = RumbleConfig(rumble=40)
        self.fail: set = set()
        self.watch_gate = asyncio.Event()

    def _maybe_fail(self, name: str) -> None:
        if name in self.fail:
            raise aiohttp.ClientConnectionError(f"{name} refused")

    async def list_drives(self):
        self.calls.append(("list",))
        self._maybe_fail("list")
        return self.drives

    async def status(self):
        self.calls.append(("status",))
        self._maybe_fail("status")
        return ClientSnapshot("Spectrum")

    async def watch(self):
        self.calls.append(("watch",))
        await self.watch_gate.wait()
        return None

    async def upload(self, request: UploadRequest) -> str:
        self.calls.append(("upload", request))
        return "ok"

    async def drive_listing(self, slot: int) -> str:
        self.calls.append(("listing", slot))
        return "\n RUN  \n"

    async def unload(self, slot: int) -> str:
        self.calls.append(("unload", slot))
        return "ok"

    async def resync(self) -> str:
        self.calls.append(("resync",))
        self._maybe_fail("resync")
        return ""

    async def get_mapping(self):
        self.calls.append(("get_mapping",))
        return self.mapping

    async def set_mapping(self, start: int, end: int) -> str:
        self.calls.append(("set_mapping", start, end))
        if "set_mapping" in self.fail:
            raise DriveApiError("PUT", "/map/", 409, "Conflict")
        self.mapping = MappingState(start=start, end=end)
        return "ok"

    async def get_rumble(self):
        self.calls.append(("get_rumble",))
        return self.rumble

    async def set_rumble(self, level: int) -> str:
        self.calls.append(("set_rumble", level))
        return "ok"

    async def search(self, term: str, items: int = 25) -> SearchResult:
        self.calls.append(("search", term, items))
        return SearchResult(total=1, hits=(f"{term}.mdr",))

    async def version(self) -> str:
        self.calls.append(("version",))
        return "v1.2"

    def requests(self, kind: str) -> list:
        return [call for call in self.calls if call[0] == kind]


class StubView:
    def __init__(self, answer: bool = True, picked: Optional[Tuple[str, bytes]] = None) -> None:
        self.answer = answer
        self.picked = picked
        self.frames: list = []
        self.mappings: list = []
        self.rumbles: list = []
        self.versions: list = []
        self.search_results: list = []
        self.file_lists: list = []
        self.tabs: list = []
        self.confirms: list = []
        self.picks: list = []

    def render(self, ui) -> None:
        self.frames.append(ui)

    def render_mapping(self, mapping) -> None:
        self.mappings.append(mapping)

    def render_rumble(self, level, hint) -> None:
        self.rumbles.append((level, hint))

    def render_version(self, version) -> None:
        self.versions.append(version)

    def render_search_results(self, term, result) -> None:
        self.search_results.append((term, result))

    def render_file_list(self, slot, text) -> None:
        self.file_lists.append((slot, text))

    def show_tab(self, name) -> None:
        self.tabs.append(name)

    async def confirm(self, title, message) -> bool:
        self.confirms.append((title, message))
        return self.answer

    async def pick_file(self, slot):
        self.picks.append(slot)
        return self.picked


async def _no_sleep(delay: float) -> None:
    await asyncio.sleep(0)


def _run(body, api: Optional[StubApi] = None, view: Optional[StubView] = None):
    async def scenario():
        session = DriveSession(api or StubApi(), view or StubView(), ClientConfig(search_debounce_ms=0), sleep=_no_sleep)
        try:
            return await body(session)
        finally:
            await session.close()

    return asyncio.run(scenario())


def test_start_paints_first_frame_and_starts_polling() -> None:
    api = StubApi()
    view = StubView()

    async def body(session):
        await session.start()
        await asyncio.sleep(0)
        return session.running

    assert _run(body, api, view)
    first = view.frames[0]
    assert first.slot(1).label == "GAMES"
    assert first.client.label == "Spectrum"
    assert view.mappings[0].start == "-"
    assert view.rumbles == [(40, "40 - mellow")]
    assert view.versions == ["v1.2"]
    assert api.requests("watch")


def test_start_survives_unreachable_server() -> None:
    api = StubApi()
    api.fail = {"list", "status"}
    view = StubView()

    async def body(session):
        await session.start()
        return session.ui

    ui = _run(body, api, view)
    assert ui.client.label == ""
    assert ui.slot(1).label == ""


def test_pending_selection_is_consumed_once() -> None:
    api = StubApi()
    view = StubView(picked=("Local.mdv", b"data"))

    async def body(session):
        assert await session.select_search_result("Manic Miner.mdr.gz")
        assert session.pending_selection == "repo://Manic Miner.mdr.gz"
        task = await session.slot_action(2)
        await task
        pending_after = session.pending_selection
        session.apply_update(WatchUpdate(client=ClientSnapshot(""), drives=api.drives))
        task = await session.slot_action(2)
        await task
        return pending_after

    assert _run(body, api, view) is None
    uploads = api.requests("upload")
    assert uploads[0][1].is_reference
    assert uploads[0][1].payload == "repo://Manic Miner.mdr.gz"
    assert (uploads[0][1].format, uploads[0][1].compressor) == ("mdr", "gz")
    assert uploads[1][1].payload == b"data"
    assert view.picks == [2]
    assert view.confirms[0] == CONFIRM_LOAD
    assert view.tabs == [TAB_DRIVES]


def test_declined_selection_clears_pending() -> None:
    view = StubView(answer=False)

    async def body(session):
        session.pending_selection = "repo://old.mdr"
        accepted = await session.select_search_result("new.mdr")
        return accepted, session.pending_selection

    assert _run(body, view=view) == (False, None)


def test_slot_action_shows_loading_and_blocks_retrigger() -> None:
    api = StubApi()
    view = StubView(picked=("Tape.mdr", b"x"))

    async def body(session):
        task = await session.slot_action(3)
        blocked = await session.slot_action(3)
        await task
        return session.ui, blocked

    ui, blocked = _run(body, api, view)
    assert blocked is None
    assert ui.slot(3).label == LABEL_LOADING
    assert ui.slot(3).enabled is False
    assert len(api.requests("upload")) == 1


def test_busy_slot_ignores_load_button() -> None:
    api = StubApi()
    view = StubView(picked=("Tape.mdr", b"x"))

    async def body(session):
        session.pending_selection = "repo://x.mdr"
        session.apply_update(WatchUpdate(client=ClientSnapshot(""), drives=_snapshot(s4=DriveState(status="busy"))))
        result = await session.slot_action(4)
        return result, session.pending_selection

    result, pending = _run(body, api, view)
    assert result is None
    assert pending == "repo://x.mdr"
    assert api.requests("upload") == []
    assert view.picks == []


def test_out_of_range_slot_is_rejected_before_loading() -> None:
    api = StubApi()
    view = StubView(picked=("Tape.mdr", b"x"))

    async def body(session):
        session.pending_selection = "repo://x.mdr"
        for slot in (0, 9):
            with pytest.raises(ValueError):
                await session.slot_action(slot)
        return session.ui, session.pending_selection

    ui, pending = _run(body, api, view)
    assert ui.slot(8).label != LABEL_LOADING
    assert ui.slot(8).enabled
    assert pending == "repo://x.mdr"
    assert view.frames == []
    assert view.picks == []
    assert api.requests("upload") == []


def test_cancelled_file_pick_sends_nothing() -> None:
    api = StubApi()

    async def body(session):
        return await session.slot_action(1)

    assert _run(body, api, StubView(picked=None)) is None
    assert api.requests("upload") == []


def test_show_files_then_unload() -> None:
    api = StubApi()
    view = StubView()

    async def body(session):
        await session.show_files(5)
        return await session.unload()

    assert _run(body, api, view)
    assert view.file_lists == [(5, "drive 5: RUN")]
    assert view.confirms == [CONFIRM_UNLOAD]
    assert api.requests("unload") == [("unload", 5)]
    assert view.tabs == [TAB_FILES, TAB_DRIVES]


def test_declined_unload_sends_nothing() -> None:
    api = StubApi()

    async def body(session):
        return await session.unload(2)

    assert _run(body, api, StubView(answer=False)) is False
    assert api.requests("unload") == []


def test_enable_mapping_requires_warning_confirmation() -> None:
    api = StubApi()
    view = StubView()

    async def body(session):
        return await session.set_mapping(2, 3)

    assert _run(body, api, view)
    assert view.confirms == [CONFIRM_MAP_ENABLE]
    assert api.requests("set_mapping") == [("set_mapping", 2, 3)]
    assert view.mappings[-1].start == 2


def test_disable_mapping_sends_zero_range() -> None:
    api = StubApi()
    api.mapping = MappingState(start=1, end=2)
    view = StubView()

    async def body(session):
        return await session.set_mapping("-", 2)

    assert _run(body, api, view)
    assert view.confirms == [CONFIRM_MAP_DISABLE]
    assert api.requests("set_mapping") == [("set_mapping", 0, 0)]


def test_declined_mapping_sends_nothing() -> None:
    api = StubApi()

    async def body(session):
        return await session.set_mapping(1, 1)

    assert _run(body, api, StubView(answer=False)) is False
    assert api.requests("set_mapping") == []


def test_locked_mapping_blocks_submission() -> None:
    api = StubApi()
    api.mapping = MappingState(start=1, end=2, locked=True)
    view = StubView()

    async def body(session):
        await session.load_mapping()
        assert view.mappings[-1].locked
        with pytest.raises(MappingLockedError):
            await session.set_mapping(1, 3)

    _run(body, api, view)
    assert view.confirms == []
    assert api.requests("set_mapping") == []


@pytest.mark.parametrize("start, end", [(5, 3), (3, "-")])
def test_malformed_mapping_raises_before_confirmation(start, end) -> None:
    api = StubApi()
    view = StubView()

    async def body(session):
        with pytest.raises(ValueError):
            await session.set_mapping(start, end)

    _run(body, api, view)
    assert view.confirms == []
    assert api.requests("set_mapping") == []


def test_rejected_mapping_is_reported_not_raised() -> None:
    api = StubApi()
    api.fail = {"set_mapping"}

    async def body(session):
        return await session.set_mapping(1, 2)

    assert _run(body, api) is False


def test_set_rumble_clamps_and_renders_hint() -> None:
    api = StubApi()
    view = StubView()

    async def body(session):
        return await session.set_rumble(400)

    assert _run(body, api, view)
    assert api.requests("set_rumble") == [("set_rumble", 255)]
    assert view.rumbles == [(255, "255 - insane")]


def test_resync_failure_returns_false() -> None:
    api = StubApi()
    api.fail = {"resync"}

    async def body(session):
        return await session.resync()

    assert _run(body, api) is False


def test_search_input_delivers_results_to_view() -> None:
    api = StubApi()
    view = StubView()

    async def body(session):
        session.search_input("jet")
        for _ in range(10):
            await asyncio.sleep(0)

    _run(body, api, view)
    assert api.requests("search") == [("search", "jet", 25)]
    assert view.search_results == [("jet", SearchResult(total=1, hits=("jet.mdr",)))]


def test_close_cancels_sync_loop() -> None:
    async def body(session):
        await session.start()
        await session.close()
        return session.running, session.pending_selection

    assert _run(body) == (False, None)
