from __future__ import annotations

import logging
import math
from collections import defaultdict, deque
from dataclasses import dataclass, field, replace
from numbers import Real
from typing import Any, Dict, Iterable, List, Mapping, Set, Union

import pandas as pd

from .config import FLOAT_EPSILON, MAX_CRITICAL_PATHS
from .errors import (
    CycleError,
    DuplicateActivityError,
    InvalidDurationError,
    InvalidReferenceError,
    ScheduleError,
)
from .models import Activity, Number

logger = logging.getLogger(__name__)

ActivityInput = Union[Activity, Mapping[str, Any]]


def _fmt(value: Number) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.2f}"


def _close(a: Number, b: Number) -> bool:
    return abs(a - b) <= FLOAT_EPSILON


@dataclass
class Schedule:
    """Result of one CPM calculation. Activities are solved copies of the input."""

    activities: Dict[str, Activity]
    project_duration: Number = 0
    critical_path: List[str] = field(default_factory=list)
    calculation_log: List[str] = field(default_factory=list)
    forward_passes: int = 0
    backward_passes: int = 0

    def __post_init__(self) -> None:
        self._successors: Dict[str, List[str]] = _successor_map(self.activities)

    def __len__(self) -> int:
        return len(self.activities)

    def __iter__(self):
        return iter(self.activities.values())

    def __getitem__(self, activity_id: str) -> Activity:
        return self.activities[activity_id]

    @property
    def critical_ids(self) -> Set[str]:
        return {aid for aid, act in self.activities.items() if act.is_critical}

    def successors_of(self, activity_id: str) -> List[str]:
        return list(self._successors.get(activity_id, []))

    def critical_paths(self, max_paths: int = MAX_CRITICAL_PATHS) -> List[List[str]]:
        """
        List chains of critical driving links, start to end, ordered by (ES, id).

        Parallel critical branches multiply the number of chains, so at most
        ``max_paths`` are returned.
        """
        acts = self.activities
        critical_set = self.critical_ids
        if not critical_set or max_paths <= 0:
            return []

        links: Dict[str, List[str]] = defaultdict(list)
        incoming: Dict[str, int] = defaultdict(int)
        for pred_id in critical_set:
            pred = acts[pred_id]
            for succ_id in self._successors.get(pred_id, []):
                if succ_id in critical_set and _close(acts[succ_id].early_start, pred.early_finish):
                    links[pred_id].append(succ_id)
                    incoming[succ_id] += 1

        def order_key(act_id: str):
            return (acts[act_id].early_start, act_id)

        for pred_id in links:
            links[pred_id] = sorted(set(links[pred_id]), key=order_key)

        start_nodes = sorted((nid for nid in critical_set if incoming[nid] == 0), key=order_key)
        paths: List[List[str]] = []
        path: List[str] = []
        stack = [(start, 0) for start in reversed(start_nodes)]
        while stack and len(paths) < max_paths:
            node, depth = stack.pop()
            del path[depth:]
            path.append(node)
            if not links.get(node):
                paths.append(list(path))
                continue
            for succ in reversed(links[node]):
                stack.append((succ, depth + 1))

        return paths

    def to_dict(self) -> Dict[str, Any]:
        return {
            "activities": [act.to_dict() for act in self.activities.values()],
            "project_duration": self.project_duration,
            "critical_ids": sorted(self.critical_ids),
            "critical_path": list(self.critical_path),
            "critical_paths": self.critical_paths(),
        }

    def get_results_dataframe(self) -> pd.DataFrame:
        """Get calculation results as a pandas DataFrame."""
        data = []
        for act_id in sorted(self.activities.keys()):
            act = self.activities[act_id]
            data.append(
                {
                    "ID": act_id,
                    "Name": act.name,
                    "Kind": act.kind.value,
                    "Zone": act.zone or "",
                    "Duration": act.duration,
                    "Predecessors": ";".join(act.predecessors),
                    "ES": act.early_start,
                    "EF": act.early_finish,
                    "LS": act.late_start,
                    "LF": act.late_finish,
                    "TF": act.total_float,
                    "FF": act.free_float,
                    "Critical": "Yes" if act.is_critical else "No",
                }
            )
        return pd.DataFrame(
            data,
            columns=[
                "ID", "Name", "Kind", "Zone", "Duration", "Predecessors",
                "ES", "EF", "LS", "LF", "TF", "FF", "Critical",
            ],
        )


def _successor_map(activities: Mapping[str, Activity]) -> Dict[str, List[str]]:
    successors: Dict[str, List[str]] = defaultdict(list)
    for act_id, act in activities.items():
        for pred_id in act.predecessors:
            successors[pred_id].append(act_id)
    return successors


class CPMSolver:
    """
    Critical Path Method solver for finish-to-start activity networks.

    Every call to :meth:`solve` works on private copies of the input and
    returns a fresh :class:`Schedule`; the solver itself only holds
    configuration, so one instance can be shared between threads.

    Two methods are available:

    - ``"topological"`` (default): order activities with Kahn's algorithm,
      then run one forward and one reverse pass.
    - ``"relaxation"``: repeat unordered passes until nothing changes,
      bounded by ``2 * len(activities)`` passes per direction.
    """

    METHODS = {"topological", "relaxation"}

    def __init__(self, method: str = "topological"):
        if method not in self.METHODS:
            raise ValueError(f"Unknown CPM method '{method}'. Use one of: {', '.join(sorted(self.METHODS))}.")
        self.method = method

    def solve(self, activities: Iterable[ActivityInput]) -> Schedule:
        log: List[str] = []
        log.append("=" * 70)
        log.append("CPM CALCULATION")
        log.append(f"Time-scaled network (Activity-on-Arrow), method: {self.method}")
        log.append("=" * 70)

        try:
            acts = self._prepare(activities)
            self._validate(acts)
        except ScheduleError as exc:
            logger.warning("Schedule rejected: %s", exc)
            raise

        if not acts:
            log.append("No activities defined. Project Duration: 0")
            return Schedule(activities={}, calculation_log=log)

        successors = _successor_map(acts)

        if self.method == "relaxation":
            forward_passes = self._forward_relaxation(acts, log)
            project_duration = max(act.early_finish for act in acts.values())
            backward_passes = self._backward_relaxation(acts, successors, project_duration, log)
        else:
            order = self._get_topological_order(acts, successors)
            self._forward_pass(acts, order, log)
            project_duration = max(act.early_finish for act in acts.values())
            self._backward_pass(acts, order, successors, project_duration, log)
            forward_passes = backward_passes = 1

        self._calculate_floats(acts, successors, project_duration, log)
        critical_path = self._trace_critical_path(acts, successors, project_duration)

        log.append("")
        log.append("=" * 70)
        log.append("CALCULATION COMPLETE")
        log.append(f"Project Duration: {_fmt(project_duration)} days")
        if critical_path:
            log.append(f"Critical Path: {' -> '.join(critical_path)}")
        else:
            log.append("Critical Path: (none)")
        log.append("=" * 70)

        logger.info(
            "Solved %d activities: duration=%s, critical path=%s",
            len(acts), _fmt(project_duration), " -> ".join(critical_path) or "(none)",
        )

        return Schedule(
            activities=acts,
            project_duration=project_duration,
            critical_path=critical_path,
            calculation_log=log,
            forward_passes=forward_passes,
            backward_passes=backward_passes,
        )

    def _prepare(self, activities: Iterable[ActivityInput]) -> Dict[str, Activity]:
        acts: Dict[str, Activity] = {}
        for item in activities:
            source = Activity.from_dict(item) if isinstance(item, Mapping) else item
            if source.id in acts:
                raise DuplicateActivityError(f"Activity '{source.id}' already exists.", source.id)
            # Duplicate predecessors collapse onto their first occurrence.
            predecessors = list(dict.fromkeys(source.predecessors))
            act = replace(source, predecessors=predecessors)
            act.reset_calculations()
            acts[act.id] = act
        return acts

    def _validate(self, acts: Dict[str, Activity]) -> None:
        """
        Validate the network for calculation readiness.

        Checks for:
        - Negative or non-numeric durations
        - Missing predecessor references
        - Circular dependencies (self-references included)
        """
        for act in acts.values():
            duration = act.duration
            if (
                isinstance(duration, bool)
                or not isinstance(duration, Real)
                or not math.isfinite(duration)
                or duration < 0
            ):
                raise InvalidDurationError(act.id, duration)

        for act in acts.values():
            for pred_id in act.predecessors:
                if pred_id not in acts:
                    raise InvalidReferenceError(act.id, pred_id)

        cycle = self._detect_cycle(acts)
        if cycle:
            raise CycleError(cycle)

    def _detect_cycle(self, acts: Dict[str, Activity]) -> List[str]:
        """Detect cycles with an iterative DFS over predecessor edges."""
        WHITE, GRAY, BLACK = 0, 1, 2
        color = {act_id: WHITE for act_id in acts}

        for root in acts:
            if color[root] != WHITE:
                continue
            color[root] = GRAY
            path = [root]
            stack = [iter(acts[root].predecessors)]
            while stack:
                advanced = False
                for pred_id in stack[-1]:
                    if color[pred_id] == GRAY:
                        # path runs successor -> predecessor; report it in dependency order
                        loop = path[path.index(pred_id):]
                        return list(reversed(loop)) + [loop[-1]]
                    if color[pred_id] == WHITE:
                        color[pred_id] = GRAY
                        path.append(pred_id)
                        stack.append(iter(acts[pred_id].predecessors))
                        advanced = True
                        break
                if not advanced:
                    color[path.pop()] = BLACK
                    stack.pop()
        return []

    def _get_topological_order(
        self, acts: Dict[str, Activity], successors: Dict[str, List[str]]
    ) -> List[str]:
        """Get activities in topological order (predecessors before successors)."""
        in_degree = {act_id: len(act.predecessors) for act_id, act in acts.items()}
        queue = deque([act_id for act_id, degree in in_degree.items() if degree == 0])
        order: List[str] = []

        while queue:
            node = queue.popleft()
            order.append(node)
            for succ in successors.get(node, []):
                in_degree[succ] -= 1
                if in_degree[succ] == 0:
                    queue.append(succ)

        if len(order) != len(acts):
            stuck = [act_id for act_id in acts if in_degree[act_id] > 0]
            raise CycleError(message=f"Circular dependency detected among: {', '.join(stuck)}")
        return order

    def _forward_pass(self, acts: Dict[str, Activity], order: List[str], log: List[str]) -> None:
        """Forward pass calculation to determine Early Start (ES) and Early Finish (EF)."""
        log.append("")
        log.append("FORWARD PASS (Calculating ES and EF)")
        log.append("-" * 50)

        for act_id in order:
            act = acts[act_id]
            if not act.predecessors:
                act.early_start = 0
                act.early_finish = act.duration
                log.append(f"{act_id} (no predecessors): ES = 0, EF = {_fmt(act.early_finish)}")
                continue

            act.early_start = max(0, max(acts[p].early_finish for p in act.predecessors))
            act.early_finish = act.early_start + act.duration
            log.append(
                f"{act_id} (predecessors: {', '.join(act.predecessors)}): "
                f"ES = max(EF) = {_fmt(act.early_start)}, "
                f"EF = {_fmt(act.early_start)} + {_fmt(act.duration)} = {_fmt(act.early_finish)}"
            )

    def _backward_pass(
        self,
        acts: Dict[str, Activity],
        order: List[str],
        successors: Dict[str, List[str]],
        project_duration: Number,
        log: List[str],
    ) -> None:
        """Backward pass calculation to determine Late Start (LS) and Late Finish (LF)."""
        log.append("")
        log.append("BACKWARD PASS (Calculating LS and LF)")
        log.append("-" * 50)

        for act_id in reversed(order):
            act = acts[act_id]
            succ_list = successors.get(act_id, [])
            if not succ_list:
                act.late_finish = project_duration
                act.late_start = act.late_finish - act.duration
                log.append(
                    f"{act_id} (no successors): LF = Project Finish = {_fmt(project_duration)}, "
                    f"LS = {_fmt(act.late_start)}"
                )
                continue

            act.late_finish = min(acts[s].late_start for s in succ_list)
            act.late_start = act.late_finish - act.duration
            log.append(
                f"{act_id} (successors: {', '.join(succ_list)}): "
                f"LF = min(LS) = {_fmt(act.late_finish)}, "
                f"LS = {_fmt(act.late_finish)} - {_fmt(act.duration)} = {_fmt(act.late_start)}"
            )

    def _forward_relaxation(self, acts: Dict[str, Activity], log: List[str]) -> int:
        log.append("")
        log.append("FORWARD PASS (fixed-point relaxation)")
        log.append("-" * 50)

        for act in acts.values():
            act.early_start = 0
            act.early_finish = act.duration

        limit = 2 * len(acts)
        passes = 0
        changed = True
        while changed:
            if passes >= limit:
                raise CycleError(message=f"Forward pass did not converge within {limit} passes.")
            passes += 1
            changed = False
            for act in acts.values():
                candidate = max([0] + [acts[p].early_finish for p in act.predecessors])
                if candidate != act.early_start:
                    act.early_start = candidate
                    act.early_finish = candidate + act.duration
                    changed = True
            log.append(f"Pass {passes}: {'changed' if changed else 'stable'}")

        for act in acts.values():
            log.append(f"{act.id}: ES = {_fmt(act.early_start)}, EF = {_fmt(act.early_finish)}")
        return passes

    def _backward_relaxation(
        self,
        acts: Dict[str, Activity],
        successors: Dict[str, List[str]],
        project_duration: Number,
        log: List[str],
    ) -> int:
        log.append("")
        log.append("BACKWARD PASS (fixed-point relaxation)")
        log.append("-" * 50)

        for act in acts.values():
            act.late_finish = project_duration
            act.late_start = project_duration - act.duration

        limit = 2 * len(acts)
        passes = 0
        changed = True
        while changed:
            if passes >= limit:
                raise CycleError(message=f"Backward pass did not converge within {limit} passes.")
            passes += 1
            changed = False
            for act_id, act in acts.items():
                succ_list = successors.get(act_id)
                if not succ_list:
                    continue
                candidate = min(acts[s].late_start for s in succ_list)
                if candidate != act.late_finish:
                    act.late_finish = candidate
                    act.late_start = candidate - act.duration
                    changed = True
            log.append(f"Pass {passes}: {'changed' if changed else 'stable'}")

        for act in acts.values():
            log.append(f"{act.id}: LS = {_fmt(act.late_start)}, LF = {_fmt(act.late_finish)}")
        return passes

    def _calculate_floats(
        self,
        acts: Dict[str, Activity],
        successors: Dict[str, List[str]],
        project_duration: Number,
        log: List[str],
    ) -> None:
        """Calculate Total Float (TF), Free Float (FF) and criticality."""
        log.append("")
        log.append("FLOAT CALCULATIONS")
        log.append("-" * 50)

        for act_id, act in acts.items():
            act.total_float = act.late_start - act.early_start
            act.is_critical = _close(act.total_float, 0)

            succ_list = successors.get(act_id, [])
            if succ_list:
                act.free_float = min(acts[s].early_start for s in succ_list) - act.early_finish
            else:
                act.free_float = project_duration - act.early_finish

            log.append(
                f"{act_id}: TF = {_fmt(act.late_start)} - {_fmt(act.early_start)} = {_fmt(act.total_float)}, "
                f"FF = {_fmt(act.free_float)}" + (" -> CRITICAL" if act.is_critical else "")
            )

    def _trace_critical_path(
        self,
        acts: Dict[str, Activity],
        successors: Dict[str, List[str]],
        project_duration: Number,
    ) -> List[str]:
        """Walk back from the lowest-id critical end activity along driving critical predecessors."""
        terminals = sorted(
            act_id
            for act_id, act in acts.items()
            if act.is_critical
            and not successors.get(act_id)
            and _close(act.early_finish, project_duration)
        )
        if not terminals:
            return []

        current = acts[terminals[0]]
        path = [current.id]
        while True:
            drivers = sorted(
                pred_id
                for pred_id in current.predecessors
                if acts[pred_id].is_critical
                and _close(acts[pred_id].early_finish, current.early_start)
            )
            if not drivers:
                break
            current = acts[drivers[0]]
            path.append(current.id)

        path.reverse()
        return path


def solve(activities: Iterable[ActivityInput], method: str = "topological") -> Schedule:
    """Solve ``activities`` with a throwaway :class:`CPMSolver`."""
    return CPMSolver(method=method).solve(activities)
