"""zapflow scheduling -- next-run calculation and the schedule tick."""

from zapflow.scheduling.backend import ThreadTickBackend
from zapflow.scheduling.calculator import next_run, validate_spec
from zapflow.scheduling.service import ScheduleService, TickResult

__all__ = ["ScheduleService", "ThreadTickBackend", "TickResult", "next_run", "validate_spec"]
