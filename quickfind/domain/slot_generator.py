"""
Fixed-stride candidate start generation.
"""

from typing import Iterator

from pendulum import DateTime

from .models import SearchWindow

DEFAULT_GRANULARITY_MINUTES = 15


class SlotGenerator:
    """
    Produces candidate start instants for one day at a fixed granularity.

    Every call to ``candidate_starts`` returns a fresh generator, so the
    same instance can serve many days and practitioners concurrently.
    """

    def __init__(self, granularity_minutes: int = DEFAULT_GRANULARITY_MINUTES):
        if granularity_minutes <= 0:
            raise ValueError(f"Granularity must be positive, got {granularity_minutes}")
        self.granularity_minutes = granularity_minutes

    def candidate_starts(
        self,
        day: DateTime,
        window: SearchWindow,
        duration_minutes: int
    ) -> Iterator[DateTime]:
        """
        Yield ascending starts ``t`` with ``t >= window start`` and
        ``t + duration <= window end``.

        Closed days yield nothing.
        """
        if duration_minutes <= 0:
            raise ValueError(f"Duration must be positive, got {duration_minutes}")

        day_range = window.range_for_day(day)
        if day_range is None:
            return

        current = day_range.start
        while current.add(minutes=duration_minutes) <= day_range.end:
            yield current
            current = current.add(minutes=self.granularity_minutes)
