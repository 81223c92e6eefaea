"""
YAML-file-backed practice data for running searches without a database.
"""

import logging
from datetime import date, datetime, time
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pendulum
import yaml
from pendulum import DateTime
from pydantic import BaseModel, Field

from ..domain.models import (
    ExistingAppointment,
    LeaveBlock,
    Practitioner,
    TimeRange,
    TreatmentType,
)

logger = logging.getLogger(__name__)

# Appointment statuses that occupy the practitioner's calendar
BLOCKING_APPOINTMENT_STATUSES = frozenset({"SCHEDULED", "PENDING", "COMPLETED"})

# Leave request statuses that take the practitioner out of the schedule
APPROVED_LEAVE_STATUSES = frozenset({"APPROVED", "ALTERNATIVE_ACCEPTED"})


class PractitionerRecord(BaseModel):
    id: str
    name: str = ""
    role: Optional[str] = None


class TreatmentTypeRecord(BaseModel):
    id: str
    name: str
    duration: Optional[int] = None  # minutes; falls back to the client default
    color: str = ""


class AppointmentRecord(BaseModel):
    practitioner_id: str
    start: datetime
    end: datetime
    status: str = "SCHEDULED"


class LeaveRequestRecord(BaseModel):
    """
    A leave request as stored by the practice.

    ``practitioner_id`` is empty for practice-wide closures. Partial-day
    requests cover ``start_time``-``end_time`` on ``start_date``; full-day
    requests cover every day from ``start_date`` through ``end_date``.
    """
    practitioner_id: Optional[str] = None
    status: str = "APPROVED"
    leave_type: str = "VACATION"
    start_date: date
    end_date: Optional[date] = None
    partial_day: bool = False
    start_time: Optional[time] = None
    end_time: Optional[time] = None


class PracticeSnapshot(BaseModel):
    """Root of the snapshot file."""
    practitioners: List[PractitionerRecord] = Field(default_factory=list)
    treatment_types: List[TreatmentTypeRecord] = Field(default_factory=list)
    appointments: List[AppointmentRecord] = Field(default_factory=list)
    leave_requests: List[LeaveRequestRecord] = Field(default_factory=list)


class SnapshotPracticeClient:
    """
    Practice data client and treatment catalog backed by a YAML snapshot.

    The file is read on first use, so a missing or broken file surfaces as
    a failure of the data call that needed it.
    """

    def __init__(
        self,
        data_file: Optional[Path] = None,
        timezone: str = "Europe/Amsterdam",
        snapshot: Optional[PracticeSnapshot] = None,
        default_duration_minutes: int = 30
    ):
        if data_file is None and snapshot is None:
            raise ValueError("Either data_file or snapshot is required")
        self.data_file = Path(data_file) if data_file is not None else None
        self.timezone = timezone
        self.default_duration_minutes = default_duration_minutes
        self._snapshot = snapshot
        self._practitioners: Optional[List[Practitioner]] = None
        self._treatment_types: Optional[Dict[str, TreatmentType]] = None
        self._appointments: Optional[List[ExistingAppointment]] = None
        self._leave_blocks: Optional[List[LeaveBlock]] = None

    async def list_practitioners(self, role: Optional[str] = None) -> List[Practitioner]:
        self._ensure_loaded()
        if role:
            return [p for p in self._practitioners if p.has_role(role)]
        return list(self._practitioners)

    async def list_appointments(
        self,
        practitioner_ids: Optional[Sequence[str]],
        date_range: TimeRange
    ) -> List[ExistingAppointment]:
        self._ensure_loaded()
        wanted = set(practitioner_ids) if practitioner_ids is not None else None
        return [
            appointment for appointment in self._appointments
            if (wanted is None or appointment.practitioner_id in wanted)
            and appointment.time_range.overlaps(date_range)
        ]

    async def list_leave_blocks(
        self,
        practitioner_ids: Optional[Sequence[str]],
        date_range: TimeRange
    ) -> List[LeaveBlock]:
        self._ensure_loaded()
        wanted = set(practitioner_ids) if practitioner_ids is not None else None
        return [
            block for block in self._leave_blocks
            if (block.is_global or wanted is None or block.practitioner_id in wanted)
            and block.time_range.overlaps(date_range)
        ]

    async def get_treatment_type(self, treatment_type_id: str) -> Optional[TreatmentType]:
        self._ensure_loaded()
        return self._treatment_types.get(treatment_type_id)

    def _ensure_loaded(self) -> None:
        if self._practitioners is not None:
            return

        snapshot = self._snapshot or self._load_snapshot()

        self._practitioners = [
            Practitioner(id=record.id, role=record.role, name=record.name)
            for record in snapshot.practitioners
        ]
        self._treatment_types = {
            record.id: TreatmentType(
                id=record.id,
                name=record.name,
                default_duration_minutes=(
                    record.duration if record.duration is not None else self.default_duration_minutes
                ),
                color=record.color
            )
            for record in snapshot.treatment_types
        }
        self._appointments = [
            ExistingAppointment(
                practitioner_id=record.practitioner_id,
                start=self._to_local(record.start),
                end=self._to_local(record.end)
            )
            for record in snapshot.appointments
            if record.status.upper() in BLOCKING_APPOINTMENT_STATUSES
        ]
        self._leave_blocks = [
            self.leave_block_from_request(record)
            for record in snapshot.leave_requests
            if record.status.upper() in APPROVED_LEAVE_STATUSES
        ]

        logger.debug(
            "Loaded snapshot: %d practitioners, %d treatment types, %d appointments, %d leave blocks",
            len(self._practitioners),
            len(self._treatment_types),
            len(self._appointments),
            len(self._leave_blocks)
        )

    def _load_snapshot(self) -> PracticeSnapshot:
        """
        Read and validate the snapshot file.

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: If the file is not valid YAML or fails validation
        """
        if not self.data_file.exists():
            raise FileNotFoundError(f"Practice data file not found: {self.data_file}")

        try:
            with open(self.data_file, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {self.data_file}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Practice data file must contain a mapping at the root level.")

        return PracticeSnapshot(**data)

    def leave_block_from_request(self, record: LeaveRequestRecord) -> LeaveBlock:
        """
        Convert a leave request into the interval it blocks.

        A partial-day request without both times is treated as a full day.
        """
        first_day = self._start_of_day(record.start_date)
        reason = record.leave_type

        if record.partial_day and record.start_time and record.end_time:
            return LeaveBlock(
                start=first_day.set(hour=record.start_time.hour, minute=record.start_time.minute),
                end=first_day.set(hour=record.end_time.hour, minute=record.end_time.minute),
                practitioner_id=record.practitioner_id,
                reason=reason
            )

        last_day = self._start_of_day(record.end_date or record.start_date)
        return LeaveBlock(
            start=first_day,
            end=last_day.add(days=1),
            practitioner_id=record.practitioner_id,
            reason=reason
        )

    def _start_of_day(self, day: date) -> DateTime:
        return pendulum.datetime(day.year, day.month, day.day, tz=self.timezone)

    def _to_local(self, value: datetime) -> DateTime:
        """Interpret naive datetimes in the practice timezone."""
        if value.tzinfo is None:
            return pendulum.instance(value, tz=self.timezone)
        return pendulum.instance(value).in_timezone(self.timezone)
