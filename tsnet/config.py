from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Dict, List

DEFAULT_ZONE = "Default Zone"

# Day tolerance used for "finish equals start" checks on fractional durations.
CONTIGUOUS_TOLERANCE = 0.01

# Rows reserved per zone even when fewer lanes are used.
MIN_ZONE_ROWS = 3

FLOAT_EPSILON = 1e-9

# Cap on chains listed by Schedule.critical_paths().
MAX_CRITICAL_PATHS = 100

ZONE_COLORS: List[str] = [
    "#2563eb",  # Blue
    "#059669",  # Emerald
    "#d97706",  # Amber
    "#7c3aed",  # Violet
    "#db2777",  # Pink
    "#0891b2",  # Cyan
    "#4f46e5",  # Indigo
    "#ea580c",  # Orange
    "#65a30d",  # Lime
    "#be185d",  # Rose
]

THEMES: Dict[str, Dict[str, Any]] = {
    "Slate": {
        "bg": "#ffffff",
        "surface": "#ffffff",
        "ink": "#1e293b",
        "muted": "#64748b",
        "critical": "#ef4444",
        "normal": "#3b82f6",
        "zone_bg": "#f8fafc",
        "zone_border": "#cbd5e1",
        "dependency": "#64748b",
        "grid": "#e2e8f0",
    },
    "Warm Clay": {
        "bg": "#f7f5f2",
        "surface": "#ffffff",
        "ink": "#1f2328",
        "muted": "#5f6c7b",
        "critical": "#ff6b4a",
        "normal": "#2c7a7b",
        "zone_bg": "#fbfaf7",
        "zone_border": "#e2ded7",
        "dependency": "#5f6c7b",
        "grid": "#e2ded7",
    },
}

DEFAULT_THEME = "Slate"


def zone_color(index: int) -> str:
    return ZONE_COLORS[index % len(ZONE_COLORS)]


@dataclass(frozen=True)
class LayoutConfig:
    """Tunables for zone partitioning, lane packing and dependency classification."""

    default_zone: str = DEFAULT_ZONE
    tolerance: float = CONTIGUOUS_TOLERANCE
    min_zone_rows: int = MIN_ZONE_ROWS

    def __post_init__(self) -> None:
        if self.tolerance < 0:
            raise ValueError("tolerance must be non-negative")
        if self.min_zone_rows < 0:
            raise ValueError("min_zone_rows must be non-negative")

    @classmethod
    def from_env(cls) -> "LayoutConfig":
        """Load overrides from TSNET_* environment variables."""
        return cls(
            default_zone=os.getenv("TSNET_DEFAULT_ZONE", DEFAULT_ZONE),
            tolerance=float(os.getenv("TSNET_TOLERANCE", str(CONTIGUOUS_TOLERANCE))),
            min_zone_rows=int(os.getenv("TSNET_MIN_ZONE_ROWS", str(MIN_ZONE_ROWS))),
        )
