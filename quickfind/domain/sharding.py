"""
Running independent search shards on a worker pool.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, List, Sequence

logger = logging.getLogger(__name__)


@dataclass
class ShardResult:
    """Local result buffer of one shard."""
    results: List = field(default_factory=list)
    cancelled: bool = False


Shard = Callable[[], ShardResult]


def run_shards(shards: Sequence[Shard], max_workers: int = 1) -> List[ShardResult]:
    """
    Run shards and return their results in submission order.

    Shards share nothing mutable, so they can run on a thread pool. With
    ``max_workers <= 1`` (or a single shard) they run inline.
    """
    if not shards:
        return []

    if max_workers <= 1 or len(shards) == 1:
        return [shard() for shard in shards]

    workers = min(max_workers, len(shards))
    logger.debug("Running %d shards on %d workers", len(shards), workers)
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="quickfind") as executor:
        futures = [executor.submit(shard) for shard in shards]
        return [future.result() for future in futures]
