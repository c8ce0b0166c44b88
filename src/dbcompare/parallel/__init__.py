"""
Parallel comparison of table pairings.

Tables are independent of each other, so a run can compare several of them
at once on a bounded thread pool.
"""

from .comparer import CancellationError, ParallelComparer
from .helpers import estimate_optimal_workers, get_parallel_comparison_stats

__all__ = [
    "CancellationError",
    "ParallelComparer",
    "estimate_optimal_workers",
    "get_parallel_comparison_stats",
]
