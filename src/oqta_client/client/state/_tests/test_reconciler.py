from __future__ import annotations

import pytest

from oqta_client.client.state.reconciler import (
    LABEL_DISCONNECTED,
    LABEL_HARDWARE,
    LABEL_LOADING,
    LABEL_UNFORMATTED,
    STATUS_ICONS,
    ClientView,
    UiState,
    display_status,
    mark_loading,
    project_mapping,
    reconcile,
    rumble_hint,
)
from oqta_client.client.state.range_solver import MAPPING_OFF
from oqta_client.protocol import ClientSnapshot, DriveSnapshot, DriveState, MappingState, WatchUpdate


def _snapshot(**slots: DriveState) -> DriveSnapshot:
    drives = [DriveState(status="empty") for _ in range(8)]
    for key, state in slots.items():
        drives[int(key[1:]) - 1] = state
    return DriveSnapshot(tuple(drives))


def _update(client: str = "", **slots: DriveState) -> WatchUpdate:
    return WatchUpdate(client=ClientSnapshot(client), drives=_snapshot(**slots))


def test_precedence_prefers_modified() -> None:
    drive = DriveState(status="idle", modified=True, write_protected=True, formatted=False)
    assert display_status(drive) == "modified"


@pytest.mark.parametrize(
    "drive, expected",
    [
        (DriveState(status="idle", write_protected=True, formatted=False), "writeProtected"),
        (DriveState(status="idle", formatted=False), "unformatted"),
        (DriveState(status="idle", formatted=True), "idle"),
        (DriveState(status="busy", modified=True), "busy"),
        (DriveState(status="hardware", formatted=False), "hardware"),
        (DriveState(status="empty"), "empty"),
    ],
)
def test_display_status(drive: DriveState, expected: str) -> None:
    assert display_status(drive) == expected


def test_slot_projection() -> None:
    ui = reconcile(
        UiState(),
        _update(
            s1=DriveState(status="idle", formatted=True, name="GAMES"),
            s2=DriveState(status="hardware"),
            s3=DriveState(status="idle", formatted=False),
            s5=DriveState(status="busy", formatted=True, name="WORK"),
        ),
    )
    assert ui.slot(1).label == "GAMES"
    assert ui.slot(1).icon == STATUS_ICONS["idle"]
    assert ui.slot(1).enabled
    assert ui.slot(2).label == LABEL_HARDWARE
    assert not ui.slot(2).enabled
    assert ui.slot(3).label == LABEL_UNFORMATTED
    assert ui.slot(3).icon == STATUS_ICONS["unformatted"]
    assert ui.slot(5).label == "WORK"
    assert not ui.slot(5).enabled
    assert ui.slot(8).label == LABEL_UNFORMATTED


def test_busy_without_name_keeps_previous_label() -> None:
    first = reconcile(UiState(), _update(s4=DriveState(status="idle", formatted=True, name="MANIC")))
    second = reconcile(first, _update(s4=DriveState(status="busy", formatted=True, name="")))
    assert second.slot(4).label == "MANIC"
    assert second.slot(4).enabled is False
    assert second.slot(4).icon == STATUS_ICONS["busy"]


def test_client_identity_updates() -> None:
    connected = reconcile(UiState(), _update(client="Spectrum"))
    assert connected.client == ClientView(icon=STATUS_ICONS["connected"], label="Spectrum", connected=True)

    unchanged = reconcile(connected, _update(client=""))
    assert unchanged.client == connected.client

    gone = reconcile(unchanged, _update(client="<unknown>"))
    assert gone.client.label == LABEL_DISCONNECTED
    assert gone.client.icon == STATUS_ICONS["disconnected"]
    assert gone.client.connected is False


def test_missing_drives_leave_slots_untouched() -> None:
    first = reconcile(UiState(), _update(s1=DriveState(status="idle", formatted=True, name="A")))
    second = reconcile(first, WatchUpdate(client=ClientSnapshot("QL"), drives=None))
    assert second.slots == first.slots
    assert second.client.label == "QL"


def test_snapshot_overrides_loading() -> None:
    ui = mark_loading(UiState(), 2)
    assert ui.slot(2).label == LABEL_LOADING
    assert ui.slot(2).enabled is False
    assert ui.slot(2).icon == STATUS_ICONS["loading"]
    assert ui.slot(1) == UiState().slot(1)

    after = reconcile(ui, _update(s2=DriveState(status="idle", formatted=True, name="NEW")))
    assert after.slot(2).label == "NEW"
    assert after.slot(2).enabled is True


@pytest.mark.parametrize("slot", [0, 9, -1])
def test_slot_numbers_outside_range_are_rejected(slot: int) -> None:
    with pytest.raises(ValueError):
        UiState().slot(slot)
    with pytest.raises(ValueError):
        mark_loading(UiState(), slot)


def test_reconcile_does_not_mutate_previous_state() -> None:
    before = UiState()
    reconcile(before, _update(s1=DriveState(status="busy", name="X")))
    assert before == UiState()


def test_project_mapping_unlocked_runs_solver() -> None:
    view = project_mapping(MappingState(start=3, end=5))
    assert (view.start, view.end) == (3, 5)
    assert view.locked is False
    assert view.icon == STATUS_ICONS["unlocked"]
    assert view.solution.primary_disabled[5] is True
    assert view.solution.secondary_disabled[1] is True


def test_project_mapping_off() -> None:
    view = project_mapping(MappingState())
    assert (view.start, view.end) == (MAPPING_OFF, MAPPING_OFF)
    assert not any(view.solution.primary_disabled)


def test_project_mapping_locked_skips_solver() -> None:
    view = project_mapping(MappingState(start=1, end=2, locked=True))
    assert view.locked is True
    assert view.icon == STATUS_ICONS["locked"]
    assert not any(view.solution.primary_disabled + view.solution.secondary_disabled)


@pytest.mark.parametrize(
    "level, hint",
    [
        (None, "-"),
        (0, "0 - off"),
        (1, "1 - faint"),
        (21, "21 - quiet"),
        (30, "30 - quiet"),
        (46, "46 - assertive"),
        (111, "111 - ridiculous"),
        (255, "255 - insane"),
    ],
)
def test_rumble_hint(level, hint) -> None:
    assert rumble_hint(level) == hint
