"""
Fork-join helper for independent units of work.

Each unit returns one row (or column) of an output table. Workers only read
shared inputs, so results can be merged by concatenation without locking.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, List, Optional, Sequence, TypeVar
import logging
import os

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def resolve_n_workers(n_workers: Optional[int]) -> int:
    """Translate a user setting into a worker count (None or -1 = all cores)."""
    if n_workers is None or n_workers < 0:
        return os.cpu_count() or 1
    return max(int(n_workers), 1)


def parallel_map(
    func: Callable[[T], R],
    units: Sequence[T],
    n_workers: Optional[int] = 1,
) -> List[R]:
    """
    Apply func to every unit and return the results in input order.

    Args:
        func: Worker function; must not mutate shared state
        units: Explicit list of independent work units
        n_workers: Number of threads (1 runs sequentially)

    Returns:
        List of results aligned with units
    """
    units = list(units)
    n_workers = min(resolve_n_workers(n_workers), max(len(units), 1))

    if n_workers <= 1:
        return [func(unit) for unit in units]

    logger.debug(f"Dispatching {len(units)} work units to {n_workers} threads")

    results: List[Optional[R]] = [None] * len(units)
    with ThreadPoolExecutor(max_workers=n_workers) as executor:
        future_to_idx = {executor.submit(func, unit): idx for idx, unit in enumerate(units)}
        for future in as_completed(future_to_idx):
            results[future_to_idx[future]] = future.result()

    return results  # type: ignore[return-value]
