"""Split a byte length into contiguous, fixed-size upload parts."""

from __future__ import annotations

from dataclasses import dataclass

# S3-compatible stores number parts 1..10000.
MAX_PARTS = 10_000


@dataclass(frozen=True)
class PartRange:
    """One planned part: bytes ``[start, end)`` of the source.

    Attributes:
        part_number: 1-based part number.
        start: First byte offset (inclusive).
        end: Last byte offset (exclusive).
    """

    part_number: int
    start: int
    end: int

    @property
    def size(self) -> int:
        return self.end - self.start


def plan_parts(total_size: int, chunk_size: int) -> list[PartRange]:
    """Plan the parts covering ``[0, total_size)``.

    Every part is ``chunk_size`` bytes long except possibly the last one.
    A zero-length source yields an empty plan.

    Args:
        total_size: Total byte length of the source (>= 0).
        chunk_size: Maximum part length in bytes (> 0).

    Returns:
        Parts ordered by part number, numbered from 1 without gaps.
    """
    assert chunk_size > 0, "chunk_size must be positive"
    assert total_size >= 0, "total_size must not be negative"

    return [
        PartRange(part_number=index + 1, start=start, end=min(start + chunk_size, total_size))
        for index, start in enumerate(range(0, total_size, chunk_size))
    ]
