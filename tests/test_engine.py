import random
import time
import unittest

from tsnet.engine import CPMSolver, Schedule, solve
from tsnet.errors import (
    CycleError,
    DuplicateActivityError,
    InvalidDurationError,
    InvalidKindError,
    InvalidReferenceError,
    ScheduleError,
)
from tsnet.models import Activity, ActivityKind


def _network():
    return [
        Activity("A", "Excavation", 20),
        Activity("B", "Foundations", 90, ["A"]),
        Activity("C", "Drainage", 30, ["A"]),
        Activity("D", "Handover", 5, ["B", "C"]),
    ]


def _random_dag(seed, size=40):
    rng = random.Random(seed)
    acts = []
    for i in range(size):
        earlier = [a.id for a in acts]
        preds = rng.sample(earlier, min(len(earlier), rng.randint(0, 3)))
        acts.append(
            Activity(f"T{i:02d}", f"Task {i}", rng.randint(0, 15), preds, zone=rng.choice(["North", "South", None]))
        )
    rng.shuffle(acts)
    return acts


class TestCPMSolver(unittest.TestCase):
    def test_four_activity_network(self):
        schedule = CPMSolver().solve(_network())

        self.assertEqual(schedule.project_duration, 115)
        expected = {"A": (0, 20), "B": (20, 110), "C": (20, 50), "D": (110, 115)}
        for act_id, (es, ef) in expected.items():
            self.assertEqual(schedule[act_id].early_start, es)
            self.assertEqual(schedule[act_id].early_finish, ef)

        self.assertEqual(schedule["C"].total_float, 60)
        self.assertEqual(schedule["C"].free_float, 60)
        self.assertEqual(schedule["C"].late_start, 80)
        self.assertEqual(schedule.critical_path, ["A", "B", "D"])
        self.assertEqual(schedule.critical_ids, {"A", "B", "D"})
        self.assertEqual(schedule.critical_paths(), [["A", "B", "D"]])

    def test_solved_invariants(self):
        schedule = solve(_random_dag(7))
        for act in schedule:
            self.assertEqual(act.early_finish, act.early_start + act.duration)
            self.assertEqual(act.late_finish - act.late_start, act.duration)
            self.assertGreaterEqual(act.total_float, 0)
            self.assertEqual(act.is_critical, act.total_float == 0)
            pred_finishes = [schedule[p].early_finish for p in act.predecessors]
            self.assertEqual(act.early_start, max(pred_finishes, default=0))
        self.assertEqual(schedule.project_duration, max(a.early_finish for a in schedule))

    def test_relaxation_matches_topological(self):
        for seed in range(5):
            acts = _random_dag(seed)
            topo = CPMSolver().solve(acts)
            relaxed = CPMSolver(method="relaxation").solve(acts)

            self.assertEqual(topo.project_duration, relaxed.project_duration)
            self.assertLessEqual(relaxed.forward_passes, len(acts))
            self.assertLessEqual(relaxed.backward_passes, len(acts))
            for act in topo:
                other = relaxed[act.id]
                self.assertEqual(
                    (act.early_start, act.early_finish, act.late_start, act.late_finish),
                    (other.early_start, other.early_finish, other.late_start, other.late_finish),
                )
            self.assertEqual(topo.critical_path, relaxed.critical_path)

    def test_relaxation_with_reverse_input_order(self):
        schedule = CPMSolver(method="relaxation").solve(list(reversed(_network())))
        self.assertEqual(schedule["D"].early_start, 110)
        self.assertEqual(schedule.forward_passes, 3)
        self.assertEqual(schedule.critical_path, ["A", "B", "D"])

    def test_relaxation_bound_raises_cycle_error(self):
        # solve() rejects cycles in the DFS validation before any pass runs,
        # so the pass bound is only reachable by relaxing an unvalidated network.
        solver = CPMSolver(method="relaxation")
        acts = {
            "A": Activity("A", "A", 5, ["B"]),
            "B": Activity("B", "B", 5, ["A"]),
        }
        with self.assertRaises(CycleError) as ctx:
            solver._forward_relaxation(acts, [])
        self.assertEqual(ctx.exception.cycle, [])

    def test_critical_path_walks_from_start_to_end(self):
        schedule = solve(_random_dag(11))
        path = schedule.critical_path
        self.assertTrue(path)
        first, last = schedule[path[0]], schedule[path[-1]]
        self.assertEqual(first.predecessors, [])
        self.assertEqual(first.early_start, 0)
        self.assertEqual(schedule.successors_of(last.id), [])
        self.assertEqual(last.early_finish, schedule.project_duration)
        for pred_id, succ_id in zip(path, path[1:]):
            self.assertIn(pred_id, schedule[succ_id].predecessors)
            self.assertTrue(schedule[pred_id].is_critical)
            self.assertEqual(schedule[pred_id].early_finish, schedule[succ_id].early_start)

    def test_multiple_critical_paths(self):
        schedule = solve([
            Activity("A", "A", 2),
            Activity("B", "B", 2),
            Activity("C", "C", 2, ["A"]),
            Activity("D", "D", 2, ["B"]),
            Activity("E", "E", 2, ["C", "D"]),
        ])

        paths = {tuple(p) for p in schedule.critical_paths()}
        self.assertEqual(paths, {("A", "C", "E"), ("B", "D", "E")})
        # Lowest id wins when several critical predecessors drive an activity
        self.assertEqual(schedule.critical_path, ["A", "C", "E"])

    def test_critical_paths_respects_cap(self):
        schedule = solve([
            Activity("A", "A", 2),
            Activity("B", "B", 2),
            Activity("C", "C", 2, ["A"]),
            Activity("D", "D", 2, ["B"]),
            Activity("E", "E", 2, ["C", "D"]),
        ])
        self.assertEqual(schedule.critical_paths(max_paths=1), [["A", "C", "E"]])
        self.assertEqual(schedule.critical_paths(max_paths=0), [])

    def test_ladder_of_parallel_critical_pairs(self):
        # Every stage doubles the number of critical chains (2**30 in total)
        acts = [Activity("S", "Start", 1)]
        previous = ["S"]
        for stage in range(30):
            pair = [f"A{stage:02d}", f"B{stage:02d}"]
            acts.extend(Activity(act_id, act_id, 1, previous) for act_id in pair)
            previous = pair
        acts.append(Activity("E", "End", 1, previous))
        self.assertEqual(len(acts), 62)

        started = time.perf_counter()
        schedule = solve(acts)
        paths = schedule.critical_paths(max_paths=10)
        self.assertLess(time.perf_counter() - started, 5)

        self.assertEqual(schedule.project_duration, 32)
        self.assertEqual(schedule.critical_ids, {a.id for a in acts})
        expected = ["S"] + [f"A{stage:02d}" for stage in range(30)] + ["E"]
        self.assertEqual(schedule.critical_path, expected)
        self.assertEqual(len(paths), 10)
        self.assertEqual(paths[0], expected)
        self.assertEqual(len({tuple(p) for p in paths}), 10)
        self.assertEqual(len(schedule.to_dict()["critical_paths"]), 100)

    def test_long_chain(self):
        ids = [f"T{i:04d}" for i in range(1200)]
        acts = [Activity(ids[0], ids[0], 1)]
        acts.extend(Activity(act_id, act_id, 1, [prev]) for prev, act_id in zip(ids, ids[1:]))
        acts.reverse()

        for method in ("topological", "relaxation"):
            schedule = solve(acts, method=method)
            self.assertEqual(schedule.project_duration, 1200)
            self.assertEqual(schedule.critical_path, ids)
            self.assertEqual(schedule.critical_paths(), [ids])

    def test_long_chain_with_back_edge_reports_cycle(self):
        ids = [f"T{i:04d}" for i in range(1200)]
        acts = [Activity(ids[0], ids[0], 1, [ids[-1]])]
        acts.extend(Activity(act_id, act_id, 1, [prev]) for prev, act_id in zip(ids, ids[1:]))
        with self.assertRaises(CycleError) as ctx:
            solve(acts)
        self.assertEqual(len(ctx.exception.cycle), 1201)

    def test_zero_duration_milestones(self):
        schedule = solve([
            Activity("START", "Start", 0, kind=ActivityKind.MILESTONE),
            Activity("A", "Work", 4, ["START"]),
            Activity("LINK", "Logic", 0, ["A"], kind="Virtual"),
            Activity("END", "End", 0, ["LINK"], kind=ActivityKind.MILESTONE),
        ])
        self.assertEqual(schedule.project_duration, 4)
        self.assertEqual(schedule["LINK"].kind, ActivityKind.VIRTUAL)
        self.assertEqual(schedule["END"].early_start, 4)
        self.assertEqual(schedule.critical_path, ["START", "A", "LINK", "END"])

    def test_fractional_durations(self):
        schedule = solve([
            Activity("A", "A", 1.5),
            Activity("B", "B", 2.25, ["A"]),
            Activity("C", "C", 0.5, ["A"]),
        ])
        self.assertAlmostEqual(schedule["B"].early_finish, 3.75)
        self.assertAlmostEqual(schedule["C"].total_float, 1.75)
        self.assertFalse(schedule["C"].is_critical)
        self.assertTrue(schedule["B"].is_critical)

    def test_empty_input(self):
        schedule = solve([])
        self.assertIsInstance(schedule, Schedule)
        self.assertEqual(schedule.project_duration, 0)
        self.assertEqual(len(schedule), 0)
        self.assertEqual(schedule.critical_path, [])

    def test_input_is_not_mutated(self):
        acts = _network()
        schedule = solve(acts)
        for act in acts:
            self.assertIsNone(act.early_start)
            self.assertIsNone(act.total_float)
            self.assertIsNot(schedule[act.id], act)

    def test_idempotent(self):
        acts = _random_dag(3)
        self.assertEqual(solve(acts).to_dict(), solve(acts).to_dict())

    def test_duplicate_predecessors_collapse(self):
        schedule = solve([Activity("A", "A", 3), Activity("B", "B", 2, ["A", "A"])])
        self.assertEqual(schedule["B"].predecessors, ["A"])
        self.assertEqual(schedule.successors_of("A"), ["B"])

    def test_accepts_plain_dicts(self):
        schedule = solve([
            {"id": "A", "name": "A", "duration": 3},
            {"id": "B", "duration": 4, "predecessors": ["A"], "zone": "North", "kind": "Real"},
        ])
        self.assertEqual(schedule["B"].early_finish, 7)
        self.assertEqual(schedule["B"].name, "B")

    def test_calculation_log(self):
        schedule = solve(_network())
        log = "\n".join(schedule.calculation_log)
        self.assertIn("FORWARD PASS", log)
        self.assertIn("BACKWARD PASS", log)
        self.assertIn("Critical Path: A -> B -> D", log)

    def test_results_dataframe(self):
        df = solve(_network()).get_results_dataframe()
        self.assertEqual(list(df["ID"]), ["A", "B", "C", "D"])
        row = df[df["ID"] == "C"].iloc[0]
        self.assertEqual(row["TF"], 60)
        self.assertEqual(row["Critical"], "No")
        self.assertEqual(df[df["ID"] == "D"].iloc[0]["Predecessors"], "B;C")

    def test_unknown_method(self):
        with self.assertRaises(ValueError):
            CPMSolver(method="pert")


class TestValidation(unittest.TestCase):
    def test_two_activity_cycle(self):
        with self.assertRaises(CycleError) as ctx:
            solve([Activity("A", "A", 1, ["B"]), Activity("B", "B", 1, ["A"])])
        cycle = ctx.exception.cycle
        self.assertEqual(cycle[0], cycle[-1])
        self.assertEqual(set(cycle), {"A", "B"})

    def test_zero_duration_cycle_is_still_rejected(self):
        acts = [
            Activity("A", "A", 0, ["C"]),
            Activity("B", "B", 0, ["A"]),
            Activity("C", "C", 0, ["B"]),
        ]
        for method in ("topological", "relaxation"):
            with self.assertRaises(CycleError):
                solve(acts, method=method)

    def test_self_reference(self):
        with self.assertRaises(CycleError) as ctx:
            solve([Activity("A", "A", 1, ["A"])])
        self.assertEqual(ctx.exception.cycle, ["A", "A"])

    def test_unknown_predecessor(self):
        with self.assertRaises(InvalidReferenceError) as ctx:
            solve([Activity("A", "A", 1), Activity("B", "B", 1, ["Z"])])
        self.assertEqual(ctx.exception.activity_id, "B")
        self.assertEqual(ctx.exception.predecessor_id, "Z")

    def test_negative_duration(self):
        with self.assertRaises(InvalidDurationError) as ctx:
            solve([Activity("A", "A", -1)])
        self.assertEqual(ctx.exception.duration, -1)

    def test_non_numeric_duration(self):
        for bad in ("5", float("nan"), None):
            with self.assertRaises(InvalidDurationError):
                solve([Activity("A", "A", bad)])

    def test_duplicate_ids(self):
        with self.assertRaises(DuplicateActivityError):
            solve([Activity("A", "A", 1), Activity("A", "Again", 2)])

    def test_unknown_kind(self):
        with self.assertRaises(InvalidKindError) as ctx:
            Activity("A", "A", 1, kind="Bogus")
        self.assertEqual(ctx.exception.activity_id, "A")
        self.assertEqual(ctx.exception.kind, "Bogus")

    def test_unknown_kind_from_plain_dict(self):
        with self.assertRaises(ScheduleError) as ctx:
            solve([{"id": "A", "duration": 1, "kind": "Bogus"}])
        self.assertIsInstance(ctx.exception, InvalidKindError)

    def test_errors_share_a_base(self):
        for exc in (
            CycleError,
            InvalidReferenceError,
            InvalidDurationError,
            DuplicateActivityError,
            InvalidKindError,
        ):
            self.assertTrue(issubclass(exc, ScheduleError))
            self.assertTrue(issubclass(exc, ValueError))


if __name__ == "__main__":
    unittest.main()
