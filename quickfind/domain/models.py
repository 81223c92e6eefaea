"""
Domain models for the appointment availability search.

All models are immutable snapshots: a search reads them once and never
mutates them.
"""

from dataclasses import dataclass
from datetime import time
from typing import List, Optional, Tuple

from pendulum import Date, DateTime


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable half-open time range [start, end).

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() // 60)

    def overlaps(self, other: "TimeRange") -> bool:
        """
        Check if this range overlaps with another.

        Ranges are half-open, so a range ending exactly when the other
        starts does not overlap it.
        """
        return self.start < other.end and other.start < self.end

    def __str__(self) -> str:
        return f"{self.start.format('DD.MM.YYYY HH:mm')} - {self.end.format('HH:mm')}"


@dataclass(frozen=True)
class Practitioner:
    """A clinician who can be booked for appointments."""
    id: str
    role: Optional[str] = None
    name: str = ""

    def display_name(self) -> str:
        """Get display name, falling back to the id."""
        return self.name or self.id

    def has_role(self, role: str) -> bool:
        """Case-insensitive role tag comparison."""
        return self.role is not None and self.role.lower() == role.lower()


@dataclass(frozen=True)
class TreatmentType:
    """A named procedure with a default duration."""
    id: str
    name: str
    default_duration_minutes: int
    color: str = ""  # presentation only

    def __post_init__(self):
        if self.default_duration_minutes <= 0:
            raise ValueError(
                f"Treatment type {self.id!r} needs a positive default duration, "
                f"got {self.default_duration_minutes}"
            )


@dataclass(frozen=True)
class ExistingAppointment:
    """A committed booking. Read-only to the search."""
    practitioner_id: str
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Appointment start {self.start} must be before end {self.end}")

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(start=self.start, end=self.end)


@dataclass(frozen=True)
class LeaveBlock:
    """
    A period during which one practitioner, or the whole practice, is unavailable.

    A block without a practitioner id applies to every practitioner
    (e.g. a clinic closure).
    """
    start: DateTime
    end: DateTime
    practitioner_id: Optional[str] = None
    reason: str = ""

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Leave start {self.start} must be before end {self.end}")

    @property
    def is_global(self) -> bool:
        return self.practitioner_id is None

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(start=self.start, end=self.end)

    def applies_to(self, practitioner_id: str) -> bool:
        """Check whether this block makes the given practitioner unavailable."""
        return self.is_global or self.practitioner_id == practitioner_id


@dataclass(frozen=True)
class CombinationStep:
    """
    One step of a combination appointment.

    ``duration_minutes`` overrides the treatment type's default duration
    when set.
    """
    order: int
    treatment_type: TreatmentType
    practitioner_id: Optional[str]
    duration_minutes: Optional[int] = None

    @property
    def duration(self) -> int:
        """Effective duration of the step in minutes."""
        if self.duration_minutes is None:
            return self.treatment_type.default_duration_minutes
        return self.duration_minutes


@dataclass(frozen=True)
class SearchWindow:
    """
    Daily time-of-day range [start_time, end_time) within which candidates
    are generated.
    """
    start_time: time
    end_time: time
    closed_weekdays: Tuple[int, ...] = ()  # 0=Monday, 6=Sunday

    def is_open_on(self, day: DateTime) -> bool:
        """Check if the practice searches on the given day at all."""
        return day.weekday() not in self.closed_weekdays

    def range_for_day(self, day: DateTime) -> Optional[TimeRange]:
        """
        Get the concrete window for a specific day.
        Returns None if the day is closed.
        """
        if not self.is_open_on(day):
            return None

        start = day.set(
            hour=self.start_time.hour,
            minute=self.start_time.minute,
            second=0,
            microsecond=0
        )
        end = day.set(
            hour=self.end_time.hour,
            minute=self.end_time.minute,
            second=0,
            microsecond=0
        )

        return TimeRange(start=start, end=end)


@dataclass(frozen=True)
class SearchRequest:
    """
    Parameters of one availability search.

    For a single-step search ``treatment_type_id`` names the treatment and
    ``duration_minutes`` optionally overrides its default duration. The
    practitioner is either given explicitly, narrowed with a role filter,
    or left open (all practitioners). Combination searches take their
    steps separately and only use the date and window fields.
    """
    window: SearchWindow
    horizon_days: int = 7
    fixed_date: Optional[Date] = None
    granularity_minutes: int = 15
    treatment_type_id: Optional[str] = None
    duration_minutes: Optional[int] = None
    practitioner_id: Optional[str] = None
    role: Optional[str] = None


@dataclass(frozen=True)
class FoundSlot:
    """
    Represents a found open slot.

    ``order`` is only set when the slot is one step of a combination chain.
    """
    date: Date
    start: DateTime
    end: DateTime
    practitioner_id: str
    treatment_type: TreatmentType
    order: Optional[int] = None

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Slot start {self.start} must be before end {self.end}")

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(start=self.start, end=self.end)

    def sort_key(self) -> Tuple[Date, DateTime]:
        return (self.date, self.start)

    def identity(self) -> Tuple[str, DateTime, DateTime, str]:
        """Key under which two slots count as the same result."""
        return (self.practitioner_id, self.start, self.end, self.treatment_type.id)

    def format_display(self) -> str:
        """
        Format the slot for display.
        Format: Weekday, DD.MM.YYYY | HH:mm - HH:mm (N min)
        """
        return (
            f"{self.start.format('dddd, DD.MM.YYYY')} | "
            f"{self.start.format('HH:mm')} - {self.end.format('HH:mm')} "
            f"({self.duration_minutes} min)"
        )


@dataclass
class SearchOutcome:
    """
    Result of a search call.

    ``results`` holds FoundSlots for single searches and chains (lists of
    FoundSlots) for combination searches. A cancelled outcome carries
    whatever was aggregated before the cancellation point.
    """
    results: List
    cancelled: bool = False

    @property
    def is_complete(self) -> bool:
        return not self.cancelled
