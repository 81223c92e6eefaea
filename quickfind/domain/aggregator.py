"""
Merging of partial search results.
"""

from typing import Iterable, List, Sequence

from .models import FoundSlot


class ResultAggregator:
    """
    Merges per-shard result lists, drops exact duplicates and sorts by
    (day, start).

    The sort is stable and partials are consumed in the order given, so
    for identical timestamps the earlier shard (e.g. the practitioner
    listed first) wins the tie.
    """

    def merge_slots(self, partials: Iterable[Sequence[FoundSlot]]) -> List[FoundSlot]:
        seen = set()
        merged: List[FoundSlot] = []

        for partial in partials:
            for slot in partial:
                key = slot.identity()
                if key in seen:
                    continue
                seen.add(key)
                merged.append(slot)

        merged.sort(key=FoundSlot.sort_key)
        return merged

    def merge_chains(
        self,
        partials: Iterable[Sequence[Sequence[FoundSlot]]]
    ) -> List[List[FoundSlot]]:
        """Same as ``merge_slots`` but for combination chains, ordered by their first step."""
        seen = set()
        merged: List[List[FoundSlot]] = []

        for partial in partials:
            for chain in partial:
                if not chain:
                    continue
                key = tuple(slot.identity() for slot in chain)
                if key in seen:
                    continue
                seen.add(key)
                merged.append(list(chain))

        merged.sort(key=lambda chain: chain[0].sort_key())
        return merged
