from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .errors import InvalidKindError

Number = Union[int, float]


class ActivityKind(str, Enum):
    """How an activity is drawn. Kind never affects timing."""

    REAL = "Real"
    VIRTUAL = "Virtual"  # Logic-only link, dashed arrow
    MILESTONE = "Milestone"  # Zero-width point event


class DependencyKind(str, Enum):
    CONTIGUOUS = "contiguous"
    FREE_FLOAT = "free_float"


@dataclass
class Activity:
    """Represents a schedule activity (an arrow in the time-scaled network)."""

    id: str
    name: str
    duration: Number
    predecessors: List[str] = field(default_factory=list)
    kind: ActivityKind = ActivityKind.REAL
    zone: Optional[str] = None

    # Forward pass results
    early_start: Optional[Number] = None
    early_finish: Optional[Number] = None

    # Backward pass results
    late_start: Optional[Number] = None
    late_finish: Optional[Number] = None

    # Float calculations
    total_float: Optional[Number] = None
    free_float: Optional[Number] = None

    is_critical: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.kind, ActivityKind):
            try:
                self.kind = ActivityKind(self.kind)
            except ValueError:
                raise InvalidKindError(self.id, self.kind) from None
        self.predecessors = list(self.predecessors or [])

    def zone_label(self, default: str) -> str:
        if self.zone is None or not str(self.zone).strip():
            return default
        return str(self.zone).strip()

    def reset_calculations(self) -> None:
        """Reset all calculated values."""
        self.early_start = None
        self.early_finish = None
        self.late_start = None
        self.late_finish = None
        self.total_float = None
        self.free_float = None
        self.is_critical = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "duration": self.duration,
            "predecessors": list(self.predecessors),
            "kind": self.kind.value,
            "zone": self.zone,
            "early_start": self.early_start,
            "early_finish": self.early_finish,
            "late_start": self.late_start,
            "late_finish": self.late_finish,
            "total_float": self.total_float,
            "free_float": self.free_float,
            "is_critical": self.is_critical,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Activity":
        """Build an input activity from plain data. Computed fields are ignored."""
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", data["id"])),
            duration=data.get("duration", 0),
            predecessors=[str(p) for p in data.get("predecessors") or []],
            kind=data.get("kind") or ActivityKind.REAL,
            zone=data.get("zone"),
        )


@dataclass(frozen=True)
class LaneAssignment:
    activity_id: str
    zone: str
    lane_index: int
    global_row_index: int


@dataclass(frozen=True)
class ZoneMeta:
    name: str
    start_row: int
    row_count: int
    color: str = ""

    @property
    def end_row(self) -> int:
        return self.start_row + self.row_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "start_row": self.start_row,
            "row_count": self.row_count,
            "end_row": self.end_row,
            "color": self.color,
        }


@dataclass(frozen=True)
class DependencyLink:
    """A classified predecessor edge, ready for the renderer."""

    predecessor_id: str
    successor_id: str
    gap: Number
    kind: DependencyKind
    from_row: int
    to_row: int
    from_day: Number  # Predecessor early finish
    to_day: Number  # Successor early start

    @property
    def same_row(self) -> bool:
        return self.from_row == self.to_row

    def to_dict(self) -> Dict[str, Any]:
        return {
            "predecessor_id": self.predecessor_id,
            "successor_id": self.successor_id,
            "gap": self.gap,
            "kind": self.kind.value,
            "from_row": self.from_row,
            "to_row": self.to_row,
            "from_day": self.from_day,
            "to_day": self.to_day,
            "same_row": self.same_row,
        }
