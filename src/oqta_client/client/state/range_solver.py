"""Option-disabling solver for the hardware drive range selectors.

The mapping UI has two selectors, *start* and *end*, each offering slots
1..8 plus an off entry.  Rather than validating a submitted range, the
solver disables every option that would produce ``start > end`` so the UI
can only ever hold a contiguous range or the all-off state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple, Union

from oqta_client.protocol import SLOT_COUNT, MappingState

MAPPING_OFF = "-"

SlotValue = Union[int, str]

_NONE_DISABLED: Tuple[bool, ...] = (False,) * SLOT_COUNT


@dataclass(frozen=True)
class RangeSolution:
    """Per-slot disabled flags (index ``i`` is slot ``i + 1``) and the new secondary value."""

    primary_disabled: Tuple[bool, ...]
    secondary_disabled: Tuple[bool, ...]
    secondary_value: SlotValue


def _normalize(value: SlotValue) -> SlotValue:
    if value == MAPPING_OFF or value == 0 or value is None:
        return MAPPING_OFF
    slot = int(value)
    if not 1 <= slot <= SLOT_COUNT:
        raise ValueError(f"slot {slot} out of range 1..{SLOT_COUNT}")
    return slot


def to_select_value(slot: int) -> SlotValue:
    """Map a server-side endpoint (``0`` or negative = off) to a selector value."""
    return MAPPING_OFF if slot < 1 else int(slot)


def to_wire_value(value: SlotValue) -> int:
    return 0 if _normalize(value) == MAPPING_OFF else int(value)


def solve(primary: SlotValue, secondary: SlotValue, primary_is_start: bool) -> RangeSolution:
    """Recompute selectable options after ``primary`` was changed.

    ``primary_is_start`` tells whether the edited selector is the start one.
    """
    primary = _normalize(primary)
    secondary = _normalize(secondary)

    if primary == MAPPING_OFF:
        return RangeSolution(_NONE_DISABLED, _NONE_DISABLED, MAPPING_OFF)

    if secondary == MAPPING_OFF:
        secondary = primary

    prim_disabled = []
    sec_disabled = []
    for slot in range(1, SLOT_COUNT + 1):
        if primary_is_start:
            prim_disabled.append(slot > secondary)
            sec_disabled.append(slot < primary)
        else:
            prim_disabled.append(slot < secondary)
            sec_disabled.append(slot > primary)
    return RangeSolution(tuple(prim_disabled), tuple(sec_disabled), secondary)


def solve_mapping(state: MappingState) -> RangeSolution:
    """Solve for a mapping freshly received from the server, as a start-side edit."""
    return solve(to_select_value(state.start), to_select_value(state.end), True)
