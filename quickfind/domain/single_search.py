"""
Open-slot search for a single treatment step.
"""

import logging
from functools import partial
from typing import List, Optional, Sequence

from pendulum import DateTime

from .aggregator import ResultAggregator
from .availability import AvailabilityIndex
from .cancellation import CancellationToken
from .exceptions import SearchValidationError
from .models import FoundSlot, Practitioner, SearchOutcome, SearchWindow, TreatmentType
from .sharding import Shard, ShardResult, run_shards
from .slot_generator import SlotGenerator
from .validation import validate_duration, validate_window

logger = logging.getLogger(__name__)


class SingleSearch:
    """
    Finds open slots for one treatment step across a set of practitioners.

    Algorithm:
    1. Split the work into one shard per (day, practitioner)
    2. In each shard, walk the candidate starts of the day
    3. Keep every candidate the availability index accepts
    4. Merge the shards and sort by (day, start)

    Shards are built day by day, practitioner by practitioner in the
    caller's order, so for identical timestamps the first practitioner in
    the supplied list comes first in the result.
    """

    def __init__(
        self,
        index: AvailabilityIndex,
        generator: SlotGenerator,
        aggregator: Optional[ResultAggregator] = None
    ):
        self.index = index
        self.generator = generator
        self.aggregator = aggregator or ResultAggregator()

    def find_single_slots(
        self,
        *,
        days: Sequence[DateTime],
        practitioners: Sequence[Practitioner],
        window: SearchWindow,
        treatment_type: TreatmentType,
        duration_minutes: int,
        cancel: Optional[CancellationToken] = None,
        max_workers: int = 1
    ) -> SearchOutcome:
        """
        Search all days for all practitioners.

        Returns a SearchOutcome with ``cancelled=True`` if the token fired
        before every shard ran; the results then hold the partial merge.
        """
        validate_duration(duration_minutes)
        validate_window(window)
        if not practitioners:
            raise SearchValidationError("No practitioners available to search")

        shards = self.build_shards(
            days=days,
            practitioners=practitioners,
            window=window,
            treatment_type=treatment_type,
            duration_minutes=duration_minutes,
            cancel=cancel or CancellationToken()
        )
        shard_results = run_shards(shards, max_workers=max_workers)

        return SearchOutcome(
            results=self.aggregator.merge_slots(r.results for r in shard_results),
            cancelled=any(r.cancelled for r in shard_results)
        )

    def build_shards(
        self,
        *,
        days: Sequence[DateTime],
        practitioners: Sequence[Practitioner],
        window: SearchWindow,
        treatment_type: TreatmentType,
        duration_minutes: int,
        cancel: CancellationToken
    ) -> List[Shard]:
        return [
            partial(
                self.search_shard,
                day,
                practitioner.id,
                window,
                treatment_type,
                duration_minutes,
                cancel
            )
            for day in days
            for practitioner in practitioners
        ]

    def search_shard(
        self,
        day: DateTime,
        practitioner_id: str,
        window: SearchWindow,
        treatment_type: TreatmentType,
        duration_minutes: int,
        cancel: CancellationToken
    ) -> ShardResult:
        """Collect the open slots of one practitioner on one day."""
        if cancel.cancelled:
            logger.debug("Skipping %s on %s: search cancelled", practitioner_id, day.to_date_string())
            return ShardResult(cancelled=True)

        slots: List[FoundSlot] = []
        for start in self.generator.candidate_starts(day, window, duration_minutes):
            end = start.add(minutes=duration_minutes)
            if self.index.is_available(practitioner_id, start, end):
                slots.append(
                    FoundSlot(
                        date=day.date(),
                        start=start,
                        end=end,
                        practitioner_id=practitioner_id,
                        treatment_type=treatment_type
                    )
                )

        return ShardResult(results=slots)
