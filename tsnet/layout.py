"""
Lane packing layout for time-scaled activity-on-arrow diagrams.

Activities are grouped into zones (swim-lanes), each zone is packed into
the smallest number of non-overlapping rows it can get greedily, and every
predecessor edge is classified so the renderer knows whether to draw a
direct jog or a wavy "free float" wait connector.
"""
from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple, Union

import networkx as nx
import pandas as pd

from .config import DEFAULT_ZONE, LayoutConfig, zone_color
from .engine import ActivityInput, CPMSolver, Schedule
from .models import (
    Activity,
    ActivityKind,
    DependencyKind,
    DependencyLink,
    LaneAssignment,
    Number,
    ZoneMeta,
)

logger = logging.getLogger(__name__)


@dataclass
class ScheduleLayout:
    """Row assignments, zone bands and classified links for one solved schedule."""

    schedule: Schedule
    assignments: Dict[str, LaneAssignment]
    zones: List[ZoneMeta]
    links: List[DependencyLink] = field(default_factory=list)

    @property
    def total_rows(self) -> int:
        return self.zones[-1].end_row if self.zones else 0

    @property
    def project_duration(self) -> Number:
        return self.schedule.project_duration

    @property
    def critical_ids(self) -> Set[str]:
        return self.schedule.critical_ids

    @property
    def critical_path(self) -> List[str]:
        return list(self.schedule.critical_path)

    def row_of(self, activity_id: str) -> int:
        return self.assignments[activity_id].global_row_index

    def zone(self, name: str) -> ZoneMeta:
        for meta in self.zones:
            if meta.name == name:
                return meta
        raise KeyError(name)

    def to_dict(self) -> Dict[str, Any]:
        """Plain-data view for renderers; no dependency on a drawing surface."""
        items = []
        for act_id, assignment in self.assignments.items():
            entry = self.schedule[act_id].to_dict()
            entry.update(
                {
                    "zone": assignment.zone,
                    "lane_index": assignment.lane_index,
                    "global_row_index": assignment.global_row_index,
                }
            )
            items.append(entry)
        return {
            "activities": items,
            "zones": [meta.to_dict() for meta in self.zones],
            "links": [link.to_dict() for link in self.links],
            "total_rows": self.total_rows,
            "project_duration": self.project_duration,
            "critical_ids": sorted(self.critical_ids),
            "critical_path": self.critical_path,
        }

    def get_layout_dataframe(self, start_date: Optional[date] = None) -> pd.DataFrame:
        """
        Get the row assignments as a pandas DataFrame.

        When ``start_date`` is given, ``Start``/``Finish`` calendar columns are
        added by offsetting early start/finish in whole calendar days.
        """
        data = []
        for act_id, assignment in self.assignments.items():
            act = self.schedule[act_id]
            data.append(
                {
                    "ID": act_id,
                    "Name": act.name,
                    "Zone": assignment.zone,
                    "Lane": assignment.lane_index,
                    "Row": assignment.global_row_index,
                    "ES": act.early_start,
                    "EF": act.early_finish,
                    "TF": act.total_float,
                    "Critical": "Yes" if act.is_critical else "No",
                }
            )
        df = pd.DataFrame(
            data, columns=["ID", "Name", "Zone", "Lane", "Row", "ES", "EF", "TF", "Critical"]
        )
        if start_date is not None:
            base = pd.Timestamp(start_date)
            df["Start"] = base + pd.to_timedelta(df["ES"].astype(float), unit="D")
            df["Finish"] = base + pd.to_timedelta(df["EF"].astype(float), unit="D")
        return df


def partition_zones(
    activities: Union[Schedule, Iterable[Activity]], default_zone: str = DEFAULT_ZONE
) -> "OrderedDict[str, List[Activity]]":
    """Group activities by zone label; labels come back sorted lexicographically."""
    groups: Dict[str, List[Activity]] = {}
    for act in activities:
        groups.setdefault(act.zone_label(default_zone), []).append(act)
    return OrderedDict((name, groups[name]) for name in sorted(groups))


def pack_lanes(
    zone_activities: Iterable[Activity],
    zone: str,
    start_row: int,
    lookup: Mapping[str, Activity],
    default_zone: str,
    tolerance: float,
    min_rows: int,
) -> Tuple[List[LaneAssignment], int]:
    """
    Assign each activity of one zone to a lane.

    Activities are visited by ``(early_start, id)``. An activity first tries
    the lane of a same-zone predecessor that finishes exactly when it
    starts, then the first lane that is free by its start, then a new lane.

    Returns the assignments in visiting order and the zone's row count.
    """
    ordered = sorted(zone_activities, key=lambda a: (a.early_start, a.id))
    lanes: List[Number] = []
    lane_of: Dict[str, int] = {}
    assignments: List[LaneAssignment] = []

    for act in ordered:
        start = act.early_start
        assigned = -1

        direct_pred = next(
            (
                lookup[pid]
                for pid in act.predecessors
                if pid in lookup
                and lookup[pid].zone_label(default_zone) == zone
                and abs(lookup[pid].early_finish - start) <= tolerance
            ),
            None,
        )
        if direct_pred is not None:
            pred_lane = lane_of.get(direct_pred.id)
            if pred_lane is not None and lanes[pred_lane] <= start + tolerance:
                assigned = pred_lane

        if assigned == -1:
            for index, finish in enumerate(lanes):
                if finish <= start + tolerance:
                    assigned = index
                    break

        if assigned == -1:
            assigned = len(lanes)
            lanes.append(0)

        lanes[assigned] = act.early_finish
        lane_of[act.id] = assigned
        assignments.append(
            LaneAssignment(
                activity_id=act.id,
                zone=zone,
                lane_index=assigned,
                global_row_index=start_row + assigned,
            )
        )

    return assignments, max(len(lanes), min_rows)


def classify_dependencies(
    schedule: Schedule,
    assignments: Mapping[str, LaneAssignment],
    tolerance: float,
) -> List[DependencyLink]:
    links: List[DependencyLink] = []
    for act in schedule:
        for pred_id in act.predecessors:
            pred = schedule[pred_id]
            gap = act.early_start - pred.early_finish
            if abs(gap) <= tolerance:
                kind = DependencyKind.CONTIGUOUS
                gap = 0
            else:
                kind = DependencyKind.FREE_FLOAT
            links.append(
                DependencyLink(
                    predecessor_id=pred_id,
                    successor_id=act.id,
                    gap=gap,
                    kind=kind,
                    from_row=assignments[pred_id].global_row_index,
                    to_row=assignments[act.id].global_row_index,
                    from_day=pred.early_finish,
                    to_day=act.early_start,
                )
            )
    return links


def build_layout(schedule: Schedule, config: Optional[LayoutConfig] = None) -> ScheduleLayout:
    """Partition, pack and classify a solved schedule."""
    config = config or LayoutConfig()
    zones = partition_zones(schedule, config.default_zone)

    assignments: Dict[str, LaneAssignment] = {}
    zone_meta: List[ZoneMeta] = []
    current_row = 0
    for index, (name, members) in enumerate(zones.items()):
        packed, row_count = pack_lanes(
            members,
            name,
            current_row,
            schedule.activities,
            config.default_zone,
            config.tolerance,
            config.min_zone_rows,
        )
        for assignment in packed:
            assignments[assignment.activity_id] = assignment
        zone_meta.append(ZoneMeta(name=name, start_row=current_row, row_count=row_count, color=zone_color(index)))
        current_row += row_count

    links = classify_dependencies(schedule, assignments, config.tolerance)
    logger.debug(
        "Laid out %d activities in %d zones over %d rows (%d links)",
        len(assignments), len(zone_meta), current_row, len(links),
    )
    return ScheduleLayout(schedule=schedule, assignments=assignments, zones=zone_meta, links=links)


class LayoutEngine:
    """Solve-then-lay-out convenience wrapper used by callers that hold raw activities."""

    def __init__(self, config: Optional[LayoutConfig] = None, solver: Optional[CPMSolver] = None):
        self.config = config or LayoutConfig()
        self.solver = solver or CPMSolver()

    def build(self, activities: Union[Schedule, Iterable[ActivityInput]]) -> ScheduleLayout:
        schedule = activities if isinstance(activities, Schedule) else self.solver.solve(activities)
        return build_layout(schedule, self.config)


def build_event_graph(layout: ScheduleLayout) -> nx.DiGraph:
    """
    Build the arrow-diagram event graph.

    Nodes are events keyed by ``(day, row)``: an activity runs from its
    start event to its finish event on its own row, so contiguous activities
    on one row share an event. Milestones are diamonds; a diamond is never
    replaced by a circle. Dependency connectors link events across rows,
    and a free-float connector turns at ``(successor start, predecessor row)``.
    """
    graph = nx.DiGraph()
    schedule = layout.schedule

    def add_event(day: Number, row: int, shape: str = "circle") -> Tuple[Number, int]:
        key = (day, row)
        if key not in graph:
            graph.add_node(key, day=day, row=row, shape=shape)
        elif shape == "diamond":
            graph.nodes[key]["shape"] = "diamond"
        return key

    for act_id, assignment in layout.assignments.items():
        act = schedule[act_id]
        row = assignment.global_row_index
        shape = "diamond" if act.kind == ActivityKind.MILESTONE else "circle"
        start = add_event(act.early_start, row, shape)
        finish = add_event(act.early_finish, row, shape)
        if start != finish:
            graph.add_edge(start, finish, activity_id=act_id, kind=act.kind.value, critical=act.is_critical)
        else:
            graph.nodes[start].setdefault("activities", []).append(act_id)

    def add_connector(u: Tuple[Number, int], v: Tuple[Number, int], link: DependencyLink) -> None:
        # Activity arrows already drawn between the same events take precedence.
        if u == v or graph.has_edge(u, v):
            return
        graph.add_edge(
            u,
            v,
            dependency=link.kind.value,
            gap=link.gap,
            predecessor_id=link.predecessor_id,
            successor_id=link.successor_id,
        )

    for link in layout.links:
        source = add_event(link.from_day, link.from_row)
        target = add_event(link.to_day, link.to_row)
        if link.kind == DependencyKind.FREE_FLOAT and not link.same_row:
            turn = add_event(link.to_day, link.from_row)
            add_connector(source, turn, link)
            add_connector(turn, target, link)
        else:
            add_connector(source, target, link)

    return graph
