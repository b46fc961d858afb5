"""Pure projection of server snapshots onto per-slot UI state.

``UiState`` is what the drive panel renders: one ``SlotView`` per slot plus
the client identity view.  It is rebuilt from the previous UI state and the
latest snapshot on every update; no authoritative state is kept on the
client side.  The only reason the previous state is consulted at all is the
two "keep what is shown" rules:

- an empty client identity means the server has nothing new to say about
  the client, so the previous client view is kept;
- a busy slot without a name keeps its previous label (the server blanks
  the name while the drive is in use).
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Mapping, Optional, Tuple

from oqta_client.protocol import (
    CLIENT_UNKNOWN,
    DRIVE_STATUS_BUSY,
    DRIVE_STATUS_HARDWARE,
    DRIVE_STATUS_IDLE,
    SLOT_COUNT,
    ClientSnapshot,
    DriveSnapshot,
    DriveState,
    MappingState,
    WatchUpdate,
    check_slot,
)

from .range_solver import RangeSolution, SlotValue, solve_mapping, to_select_value

# display status -> icon identifier understood by the drive panel
STATUS_ICONS: Mapping[str, str] = {
    "empty": "bi-none",
    "idle": "bi-app",
    "busy": "bi-caret-right-square",
    "hardware": "bi-gear",
    "unformatted": "bi-hr",
    "writeProtected": "bi-lock",
    "modified": "bi-app-indicator",
    "connected": "bi-plug-fill",
    "disconnected": "bi-plug",
    "loading": "bi-hourglass-split",
    "locked": "bi-lock",
    "unlocked": "bi-unlock",
}

LABEL_HARDWARE = "< h/w drive >"
LABEL_UNFORMATTED = "< unformatted >"
LABEL_LOADING = "< loading >"
LABEL_DISCONNECTED = "disconn."


def status_icon(status: str) -> str:
    return STATUS_ICONS.get(status, STATUS_ICONS["empty"])


@dataclass(frozen=True)
class SlotView:
    """Rendered state of one slot row."""

    slot: int
    display_status: str = "empty"
    icon: str = STATUS_ICONS["empty"]
    label: str = ""
    enabled: bool = True


@dataclass(frozen=True)
class ClientView:
    icon: str = STATUS_ICONS["disconnected"]
    label: str = ""
    connected: bool = False


def _initial_slots() -> Tuple[SlotView, ...]:
    return tuple(SlotView(slot=i) for i in range(1, SLOT_COUNT + 1))


@dataclass(frozen=True)
class UiState:
    client: ClientView = ClientView()
    slots: Tuple[SlotView, ...] = _initial_slots()

    def slot(self, number: int) -> SlotView:
        return self.slots[check_slot(number) - 1]


def display_status(drive: DriveState) -> str:
    """Resolve the icon status; flags only refine an ``idle`` drive.

    Precedence is modified > write protected > unformatted > raw status.
    """
    if drive.status != DRIVE_STATUS_IDLE:
        return drive.status
    if drive.modified:
        return "modified"
    if drive.write_protected:
        return "writeProtected"
    if not drive.formatted:
        return "unformatted"
    return drive.status


def slot_label(drive: DriveState, previous: str) -> str:
    if drive.name == "" and drive.status == DRIVE_STATUS_BUSY:
        return previous
    if drive.formatted:
        return drive.name
    if drive.status == DRIVE_STATUS_HARDWARE:
        return LABEL_HARDWARE
    return LABEL_UNFORMATTED


def project_slot(previous: SlotView, drive: DriveState) -> SlotView:
    status = display_status(drive)
    return SlotView(
        slot=previous.slot,
        display_status=status,
        icon=status_icon(status),
        label=slot_label(drive, previous.label),
        enabled=not drive.blocked,
    )


def reconcile_client(previous: ClientView, snapshot: ClientSnapshot) -> ClientView:
    if not snapshot.is_update:
        return previous
    if snapshot.client == CLIENT_UNKNOWN:
        return ClientView(icon=STATUS_ICONS["disconnected"], label=LABEL_DISCONNECTED, connected=False)
    return ClientView(icon=STATUS_ICONS["connected"], label=snapshot.client, connected=True)


def reconcile_drives(previous: Tuple[SlotView, ...], snapshot: Optional[DriveSnapshot]) -> Tuple[SlotView, ...]:
    if snapshot is None:
        return previous
    return tuple(project_slot(view, drive) for view, drive in zip(previous, snapshot))


def reconcile(old: UiState, update: WatchUpdate) -> UiState:
    """Project ``update`` onto ``old`` and return the new UI state."""
    return UiState(
        client=reconcile_client(old.client, update.client),
        slots=reconcile_drives(old.slots, update.drives),
    )


def mark_loading(ui: UiState, slot: int) -> UiState:
    """Optimistic projection shown while an upload into ``slot`` is in flight."""
    index = check_slot(slot) - 1
    slots = list(ui.slots)
    slots[index] = replace(
        slots[index],
        display_status="loading",
        icon=STATUS_ICONS["loading"],
        label=LABEL_LOADING,
        enabled=False,
    )
    return replace(ui, slots=tuple(slots))


@dataclass(frozen=True)
class MappingView:
    """Rendered state of the hardware mapping selectors."""

    start: SlotValue
    end: SlotValue
    locked: bool
    icon: str
    solution: RangeSolution


def project_mapping(state: MappingState) -> MappingView:
    """Selector values, lock state and selectable options for a server mapping.

    A locked mapping keeps its values but offers no edits, so the solver pass
    is skipped and every control is expected to be disabled by the view.
    """
    start = to_select_value(state.start)
    end = to_select_value(state.end)
    if state.locked:
        return MappingView(
            start=start,
            end=end,
            locked=True,
            icon=STATUS_ICONS["locked"],
            solution=RangeSolution((False,) * SLOT_COUNT, (False,) * SLOT_COUNT, end),
        )
    return MappingView(
        start=start,
        end=end,
        locked=False,
        icon=STATUS_ICONS["unlocked"],
        solution=solve_mapping(state),
    )


_RUMBLE_HINTS = (
    (200, "insane"),
    (160, "ludicrous"),
    (110, "ridiculous"),
    (70, "noisy"),
    (45, "assertive"),
    (30, "mellow"),
    (20, "quiet"),
    (0, "faint"),
)


def rumble_hint(level: Optional[int]) -> str:
    if level is None:
        return "-"
    for threshold, word in _RUMBLE_HINTS:
        if level > threshold:
            return f"{level} - {word}"
    return f"{level} - off"
