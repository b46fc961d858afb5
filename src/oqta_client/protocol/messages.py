"""Wire dataclasses for the drive server's REST contract.

Every payload the client consumes is parsed here into a frozen dataclass.
Snapshots are replaced wholesale on each update; nothing in this module is
mutated after construction.  Parsing is strict about structure (types,
slot count, mapping invariants) and lenient about extra keys the server may
add in newer releases.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Sequence, Tuple

SLOT_COUNT = 8

DRIVE_STATUS_EMPTY = "empty"
DRIVE_STATUS_IDLE = "idle"
DRIVE_STATUS_BUSY = "busy"
DRIVE_STATUS_HARDWARE = "hardware"
DRIVE_STATUSES = frozenset(
    {DRIVE_STATUS_EMPTY, DRIVE_STATUS_IDLE, DRIVE_STATUS_BUSY, DRIVE_STATUS_HARDWARE}
)

CLIENT_NO_UPDATE = ""
CLIENT_UNKNOWN = "<unknown>"

REFERENCE_PREFIX = "repo://"


def check_slot(slot: int) -> int:
    """Return ``slot`` as an int, raising ``ValueError`` outside 1..SLOT_COUNT."""
    slot = int(slot)
    if not 1 <= slot <= SLOT_COUNT:
        raise ValueError(f"slot {slot} out of range 1..{SLOT_COUNT}")
    return slot


def _as_mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ValueError(f"{field_name} must be a mapping")
    return value


def _as_sequence(value: Any, field_name: str) -> Sequence[Any]:
    if not isinstance(value, Sequence) or isinstance(value, (str, bytes, bytearray)):
        raise ValueError(f"{field_name} must be a JSON array")
    return value


def _require_keys(mapping: Mapping[str, Any], required: Sequence[str], context: str) -> None:
    missing = sorted(key for key in required if key not in mapping)
    if missing:
        raise ValueError(f"{context} missing fields: {', '.join(missing)}")


def _as_bool(value: Any, field_name: str) -> bool:
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ValueError(f"{field_name} must be a boolean")
    return value


def _as_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{field_name} must be an integer")
    if int(value) != value:
        raise ValueError(f"{field_name} must be an integer")
    return int(value)


@dataclass(frozen=True)
class DriveState:
    """State of one drive slot as reported by the server."""

    status: str
    formatted: bool = False
    write_protected: bool = False
    modified: bool = False
    name: str = ""

    @property
    def blocked(self) -> bool:
        return self.status in (DRIVE_STATUS_BUSY, DRIVE_STATUS_HARDWARE)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "formatted": self.formatted,
            "writeProtected": self.write_protected,
            "modified": self.modified,
            "name": self.name,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DriveState":
        mapping = _as_mapping(data, "drive state")
        _require_keys(mapping, ("status",), "drive state")
        status = str(mapping["status"])
        if status not in DRIVE_STATUSES:
            raise ValueError(f"unknown drive status {status!r}")
        name = mapping.get("name")
        return cls(
            status=status,
            formatted=_as_bool(mapping.get("formatted"), "formatted"),
            write_protected=_as_bool(mapping.get("writeProtected"), "writeProtected"),
            modified=_as_bool(mapping.get("modified"), "modified"),
            name="" if name is None else str(name),
        )


@dataclass(frozen=True)
class DriveSnapshot:
    """All eight slots, position ``i`` holding drive ``i + 1``."""

    drives: Tuple[DriveState, ...]

    def __post_init__(self) -> None:
        if len(self.drives) != SLOT_COUNT:
            raise ValueError(f"drive snapshot requires {SLOT_COUNT} entries, got {len(self.drives)}")

    def __iter__(self):
        return iter(self.drives)

    def __len__(self) -> int:
        return len(self.drives)

    def slot(self, number: int) -> DriveState:
        """Return the state of 1-indexed slot ``number``."""
        if not 1 <= number <= SLOT_COUNT:
            raise IndexError(f"slot {number} out of range 1..{SLOT_COUNT}")
        return self.drives[number - 1]

    def to_list(self) -> list[Dict[str, Any]]:
        return [drive.to_dict() for drive in self.drives]

    @classmethod
    def from_list(cls, data: Any) -> "DriveSnapshot":
        entries = _as_sequence(data, "drives")
        return cls(drives=tuple(DriveState.from_dict(entry) for entry in entries))


@dataclass(frozen=True)
class ClientSnapshot:
    """Identity of the device attached to the server's adapter."""

    client: str = CLIENT_NO_UPDATE

    @property
    def is_update(self) -> bool:
        return self.client != CLIENT_NO_UPDATE

    @property
    def connected(self) -> bool:
        return self.is_update and self.client != CLIENT_UNKNOWN

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ClientSnapshot":
        mapping = _as_mapping(data, "status")
        raw = mapping.get("client")
        return cls(client="" if raw is None else str(raw))


@dataclass(frozen=True)
class WatchUpdate:
    """Combined long-poll payload; ``drives`` is ``None`` when absent."""

    client: ClientSnapshot
    drives: DriveSnapshot | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "WatchUpdate":
        mapping = _as_mapping(data, "watch update")
        raw_drives = mapping.get("drives")
        drives = DriveSnapshot.from_list(raw_drives) if raw_drives is not None else None
        return cls(client=ClientSnapshot.from_dict(mapping), drives=drives)


@dataclass(frozen=True)
class MappingState:
    """Contiguous block of slots reserved for hardware drives.

    ``start == end == 0`` means hardware drives are switched off.
    """

    start: int = 0
    end: int = 0
    locked: bool = False

    def __post_init__(self) -> None:
        if (self.start == 0) != (self.end == 0):
            raise ValueError("mapping start and end must be disabled together")
        if self.start != 0 and not 1 <= self.start <= self.end <= SLOT_COUNT:
            raise ValueError(f"invalid mapping range {self.start}..{self.end}")

    @property
    def enabled(self) -> bool:
        return self.start != 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MappingState":
        mapping = _as_mapping(data, "mapping")
        _require_keys(mapping, ("start", "end"), "mapping")
        start = _as_int(mapping["start"], "start")
        end = _as_int(mapping["end"], "end")
        # the server reports -1 when no adapter is present
        if start < 1 or end < 1:
            start = end = 0
        return cls(start=start, end=end, locked=_as_bool(mapping.get("locked"), "locked"))


@dataclass(frozen=True)
class SearchResult:
    total: int
    hits: Tuple[str, ...]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SearchResult":
        mapping = _as_mapping(data, "search result")
        _require_keys(mapping, ("total",), "search result")
        hits = mapping.get("hits") or ()
        return cls(
            total=_as_int(mapping["total"], "total"),
            hits=tuple(str(hit) for hit in _as_sequence(hits, "hits") if hit),
        )


@dataclass(frozen=True)
class RumbleConfig:
    """Rumble level of the adapter; ``None`` when not supported."""

    rumble: int | None = None

    @property
    def available(self) -> bool:
        return self.rumble is not None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RumbleConfig":
        mapping = _as_mapping(data, "config")
        raw = mapping.get("rumble")
        return cls(rumble=None if raw is None else _as_int(raw, "rumble"))


__all__ = [
    "CLIENT_NO_UPDATE",
    "CLIENT_UNKNOWN",
    "DRIVE_STATUSES",
    "DRIVE_STATUS_BUSY",
    "DRIVE_STATUS_EMPTY",
    "DRIVE_STATUS_HARDWARE",
    "DRIVE_STATUS_IDLE",
    "REFERENCE_PREFIX",
    "SLOT_COUNT",
    "ClientSnapshot",
    "DriveSnapshot",
    "DriveState",
    "MappingState",
    "RumbleConfig",
    "SearchResult",
    "WatchUpdate",
    "check_slot",
]
