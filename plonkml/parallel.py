from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


def chunk_ranges(n: int, workers: int) -> list[range]:
    """Splits range(n) into at most ``workers`` contiguous, disjoint chunks."""
    workers = max(1, min(workers, n))
    size, extra = divmod(n, workers)
    o = []
    start = 0
    for i in range(workers):
        stop = start + size + (1 if i < extra else 0)
        if stop > start:
            o.append(range(start, stop))
        start = stop
    return o


def parallel_map(fn: Callable[[T], R], items: Sequence[T], workers: int = 1) -> list[R]:
    """fn over items; results come back in item order whatever order the
    workers finish in. Exceptions propagate from the first failing item."""
    items = list(items)
    if workers <= 1 or len(items) <= 1:
        return [fn(item) for item in items]
    results: list = [None] * len(items)
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = [pool.submit(fn, item) for item in items]
        for i, future in enumerate(futures):
            results[i] = future.result()
    return results
