"""
Request validation and resolution of the search space.

Everything here runs synchronously before any search work begins and
raises ``SearchValidationError`` on bad input.
"""

from typing import List, Optional, Sequence

from pendulum import DateTime

from .exceptions import SearchValidationError
from .models import CombinationStep, Practitioner, SearchRequest, SearchWindow


def validate_duration(duration_minutes: int, what: str = "duration") -> int:
    if duration_minutes <= 0:
        raise SearchValidationError(f"{what} must be greater than zero, got {duration_minutes}")
    return duration_minutes


def validate_window(window: SearchWindow) -> SearchWindow:
    if window.start_time >= window.end_time:
        raise SearchValidationError(
            f"Search window start {window.start_time:%H:%M} must be before "
            f"end {window.end_time:%H:%M}"
        )
    invalid_days = [day for day in window.closed_weekdays if day not in range(7)]
    if invalid_days:
        raise SearchValidationError(f"closed weekdays must be between 0 and 6, got {invalid_days}")
    return window


def validate_request(request: SearchRequest, today: DateTime) -> SearchRequest:
    """
    Check the date, window and granularity part of a request.

    A fixed date must fall inside [today, today + horizon).
    """
    validate_window(request.window)
    validate_duration(request.granularity_minutes, "granularity")

    if request.horizon_days < 0:
        raise SearchValidationError(f"horizon must not be negative, got {request.horizon_days}")

    if request.duration_minutes is not None:
        validate_duration(request.duration_minutes)

    if request.fixed_date is not None:
        first_day = today.date()
        last_day = first_day.add(days=request.horizon_days)
        if not first_day <= request.fixed_date < last_day:
            raise SearchValidationError(
                f"Requested date {request.fixed_date.isoformat()} is outside the "
                f"search horizon {first_day.isoformat()} - {last_day.isoformat()} "
                f"(exclusive)"
            )

    return request


def validate_combination_steps(steps: Sequence[CombinationStep]) -> List[CombinationStep]:
    """
    Check a combination and return its steps in execution order.

    Orders must be a permutation of 1..N, every step needs an explicit
    practitioner and a positive duration.
    """
    if len(steps) < 2:
        raise SearchValidationError(
            f"A combination needs at least 2 steps, got {len(steps)}"
        )

    ordered = sorted(steps, key=lambda step: step.order)
    orders = [step.order for step in ordered]
    if orders != list(range(1, len(ordered) + 1)):
        raise SearchValidationError(
            f"Step orders must be 1..{len(ordered)} without gaps or duplicates, got {orders}"
        )

    for step in ordered:
        if not step.practitioner_id:
            raise SearchValidationError(
                f"Step {step.order} ({step.treatment_type.name}) has no practitioner assigned"
            )
        validate_duration(step.duration, f"duration of step {step.order}")

    return ordered


def resolve_practitioners(
    practitioners: Sequence[Practitioner],
    practitioner_id: Optional[str] = None,
    role: Optional[str] = None
) -> List[Practitioner]:
    """
    Resolve the candidate practitioner set for a single-step search.

    The role filter is applied first; an explicit practitioner must be part
    of the filtered set. Caller order is preserved.
    """
    candidates = list(practitioners)
    if role:
        candidates = [p for p in candidates if p.has_role(role)]
        if not candidates:
            raise SearchValidationError(f"No practitioners found with role '{role}'")

    if practitioner_id:
        selected = [p for p in candidates if p.id == practitioner_id]
        if not selected:
            if role:
                raise SearchValidationError(
                    f"Practitioner '{practitioner_id}' does not have role '{role}'"
                )
            raise SearchValidationError(f"Unknown practitioner '{practitioner_id}'")
        return selected[:1]

    if not candidates:
        raise SearchValidationError("No practitioners available to search")

    return candidates


def resolve_days(request: SearchRequest, today: DateTime) -> List[DateTime]:
    """
    Return the start-of-day instants to search, ascending.

    Either exactly the fixed date, or every day in [today, today + horizon).
    """
    first_day = today.start_of("day")
    if request.fixed_date is not None:
        return [
            first_day.set(
                year=request.fixed_date.year,
                month=request.fixed_date.month,
                day=request.fixed_date.day
            )
        ]
    return [first_day.add(days=offset) for offset in range(request.horizon_days)]
