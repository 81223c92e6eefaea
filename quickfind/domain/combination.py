"""
Back-to-back chaining of combination appointments.
"""

import logging
from functools import partial
from typing import List, Optional, Sequence

from pendulum import DateTime

from .aggregator import ResultAggregator
from .availability import AvailabilityIndex
from .cancellation import CancellationToken
from .models import CombinationStep, FoundSlot, SearchOutcome, SearchWindow
from .sharding import Shard, ShardResult, run_shards
from .slot_generator import SlotGenerator
from .validation import validate_combination_steps, validate_window

logger = logging.getLogger(__name__)


class CombinationSequencer:
    """
    Finds chains of slots for a combination appointment.

    Candidates are only generated for the first step. Every later step is
    placed immediately after the previous one ends, so the search is linear
    in candidate starts x steps. A chain is returned only if every step
    fits inside the day's window and its practitioner is free; partial
    chains are dropped.
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

    def find_combination_slots(
        self,
        steps: Sequence[CombinationStep],
        *,
        days: Sequence[DateTime],
        window: SearchWindow,
        cancel: Optional[CancellationToken] = None,
        max_workers: int = 1
    ) -> SearchOutcome:
        """Search every day and return complete chains ordered by first-step start."""
        ordered_steps = validate_combination_steps(steps)
        validate_window(window)
        cancel = cancel or CancellationToken()

        shards: List[Shard] = [
            partial(self.search_day, day, ordered_steps, window, cancel)
            for day in days
        ]
        shard_results = run_shards(shards, max_workers=max_workers)

        return SearchOutcome(
            results=self.aggregator.merge_chains(r.results for r in shard_results),
            cancelled=any(r.cancelled for r in shard_results)
        )

    def search_day(
        self,
        day: DateTime,
        steps: Sequence[CombinationStep],
        window: SearchWindow,
        cancel: CancellationToken
    ) -> ShardResult:
        """Collect all complete chains starting on one day."""
        day_range = window.range_for_day(day)
        if day_range is None:
            return ShardResult()

        chains: List[List[FoundSlot]] = []
        for first_start in self.generator.candidate_starts(day, window, steps[0].duration):
            if cancel.cancelled:
                logger.debug(
                    "Combination search on %s cancelled after %d chains",
                    day.to_date_string(),
                    len(chains)
                )
                return ShardResult(results=chains, cancelled=True)

            chain = self.build_chain(first_start, steps, day_range.end)
            if chain is not None:
                chains.append(chain)

        return ShardResult(results=chains)

    def build_chain(
        self,
        first_start: DateTime,
        steps: Sequence[CombinationStep],
        window_end: DateTime
    ) -> Optional[List[FoundSlot]]:
        """
        Place the steps back to back from ``first_start``.

        Returns None as soon as one step runs past the window or hits a
        conflict.
        """
        chain: List[FoundSlot] = []
        cursor = first_start

        for step in steps:
            end = cursor.add(minutes=step.duration)
            if end > window_end:
                return None
            if not self.index.is_available(step.practitioner_id, cursor, end):
                return None

            chain.append(
                FoundSlot(
                    date=first_start.date(),
                    start=cursor,
                    end=end,
                    practitioner_id=step.practitioner_id,
                    treatment_type=step.treatment_type,
                    order=step.order
                )
            )
            cursor = end

        return chain
