"""Fixed-size grouping for bulk operations."""

from __future__ import annotations

from typing import Iterable, Iterator, List, TypeVar

__all__ = ["chunkify"]

T = TypeVar("T")


def chunkify(items: Iterable[T], size: int) -> Iterator[List[T]]:
    """Yield consecutive groups of ``size`` items; the last may be shorter.

    Example:
        >>> list(chunkify([1, 2, 3, 4, 5], 2))
        [[1, 2], [3, 4], [5]]
    """
    if size <= 0:
        raise ValueError(f"size must be positive, got {size}")

    chunk: List[T] = []
    for item in items:
        chunk.append(item)
        if len(chunk) == size:
            yield chunk
            chunk = []
    if chunk:
        yield chunk
