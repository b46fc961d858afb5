"""Pure client state projections: formats, range solving and reconciliation."""

from __future__ import annotations

from .formats import FormatCompressor, display_name, resolve
from .range_solver import MAPPING_OFF, RangeSolution, solve, solve_mapping
from .reconciler import (
    ClientView,
    MappingView,
    SlotView,
    UiState,
    mark_loading,
    project_mapping,
    reconcile,
    rumble_hint,
)

__all__ = [
    "MAPPING_OFF",
    "ClientView",
    "FormatCompressor",
    "MappingView",
    "RangeSolution",
    "SlotView",
    "UiState",
    "display_name",
    "mark_loading",
    "project_mapping",
    "reconcile",
    "resolve",
    "rumble_hint",
    "solve",
    "solve_mapping",
]
