"""
Availability lookups over an immutable snapshot of bookings and leave.
"""

from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Union

from pendulum import DateTime

from .models import ExistingAppointment, LeaveBlock, TimeRange

Conflict = Union[ExistingAppointment, LeaveBlock]


class AvailabilityIndex:
    """
    Answers "is practitioner P free for [start, end)?".

    The index is built once per search from already-fetched appointments
    and leave blocks and is never modified afterwards, so it can be shared
    between worker threads without locking.

    Overlap is half-open: [a1, a2) and [b1, b2) overlap iff
    a1 < b2 and b1 < a2. An appointment ending exactly when the candidate
    starts is not a conflict.
    """

    def __init__(
        self,
        appointments: Iterable[ExistingAppointment] = (),
        leave_blocks: Iterable[LeaveBlock] = ()
    ):
        appointments_by_practitioner: Dict[str, List[ExistingAppointment]] = defaultdict(list)
        for appointment in appointments:
            appointments_by_practitioner[appointment.practitioner_id].append(appointment)

        leave_by_practitioner: Dict[str, List[LeaveBlock]] = defaultdict(list)
        global_leave: List[LeaveBlock] = []
        for block in leave_blocks:
            if block.is_global:
                global_leave.append(block)
            else:
                leave_by_practitioner[block.practitioner_id].append(block)

        self._appointments = {
            practitioner_id: tuple(sorted(items, key=lambda a: a.start))
            for practitioner_id, items in appointments_by_practitioner.items()
        }
        self._leave = {
            practitioner_id: tuple(sorted(items, key=lambda b: b.start))
            for practitioner_id, items in leave_by_practitioner.items()
        }
        self._global_leave = tuple(sorted(global_leave, key=lambda b: b.start))

    def is_available(self, practitioner_id: str, start: DateTime, end: DateTime) -> bool:
        """Return True if nothing blocks the practitioner during [start, end)."""
        return self.find_conflict(practitioner_id, start, end) is None

    def find_conflict(
        self,
        practitioner_id: str,
        start: DateTime,
        end: DateTime
    ) -> Optional[Conflict]:
        """
        Return the first appointment or leave block that overlaps [start, end).

        Appointments are checked before leave; global leave is checked last.
        """
        candidate = TimeRange(start=start, end=end)

        for appointment in self._appointments.get(practitioner_id, ()):
            if appointment.start >= end:
                break
            if candidate.overlaps(appointment.time_range):
                return appointment

        for blocks in (self._leave.get(practitioner_id, ()), self._global_leave):
            for block in blocks:
                if block.start >= end:
                    break
                if candidate.overlaps(block.time_range):
                    return block

        return None
