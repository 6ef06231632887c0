from __future__ import annotations

from typing import List, Optional


class ScheduleError(ValueError):
    """Base class for structural problems in an activity collection."""

    def __init__(self, message: str, activity_id: Optional[str] = None):
        super().__init__(message)
        self.activity_id = activity_id


class DuplicateActivityError(ScheduleError):
    pass


class InvalidDurationError(ScheduleError):
    def __init__(self, activity_id: str, duration: object):
        super().__init__(
            f"Activity '{activity_id}' has invalid duration {duration!r}; "
            "duration must be a non-negative number.",
            activity_id,
        )
        self.duration = duration


class InvalidReferenceError(ScheduleError):
    def __init__(self, activity_id: str, predecessor_id: str):
        super().__init__(
            f"Activity '{activity_id}' references undefined predecessor '{predecessor_id}'.",
            activity_id,
        )
        self.predecessor_id = predecessor_id


class CycleError(ScheduleError):
    """Raised when the predecessor relation is not acyclic.

    ``cycle`` holds the offending ids in dependency order with the first id
    repeated at the end. It is empty when the failure was only detected by
    the relaxation iteration bound.
    """

    def __init__(self, cycle: Optional[List[str]] = None, message: Optional[str] = None):
        self.cycle = list(cycle or [])
        if message is None:
            if self.cycle:
                message = f"Circular dependency detected: {' -> '.join(self.cycle)}"
            else:
                message = "Circular dependency detected: schedule did not converge."
        super().__init__(message, self.cycle[0] if self.cycle else None)


class InvalidKindError(ScheduleError):
    def __init__(self, activity_id: str, kind: object):
        super().__init__(
            f"Activity '{activity_id}' has unknown kind {kind!r}; use Real, Virtual or Milestone.",
            activity_id,
        )
        self.kind = kind
