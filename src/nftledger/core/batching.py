"""Helpers for splitting work into fixed-size pages."""

from typing import Iterator, Sequence, TypeVar

T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> Iterator[tuple[int, Sequence[T]]]:
    """Yield (offset, slice) pages of at most `size` items, preserving order.

    Args:
        items: Sequence to split
        size: Maximum page length (must be positive)

    Raises:
        ValueError: If size is not positive
    """
    if size <= 0:
        raise ValueError(f"Chunk size must be positive, got {size}")

    for offset in range(0, len(items), size):
        yield offset, items[offset : offset + size]
