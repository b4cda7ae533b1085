"""Resampling of irregular timestamps onto a regular grid."""

from collections import deque
from collections.abc import Sequence
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from journalipy.core.errors import ValidationError


class Sample(str, Enum):
    """Which sample represents a grid bucket.

    ``FIRST`` walks the grid forwards and keeps the earliest sample of each
    half-open bucket ``[g[i], g[i+1])``. ``LAST`` walks it backwards and keeps
    the latest sample of each bucket ``(g[i], g[i+1]]``.
    """

    FIRST = "first"
    LAST = "last"

    @classmethod
    def parse(cls, value: "Sample | str") -> "Sample":
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(f"Unknown sample type: {value!r}") from None


def make_grid(start: datetime, finish: datetime, frequency: timedelta) -> list[datetime]:
    """Grid points ``start, start + frequency, ...`` up to and including ``finish``."""
    if frequency <= timedelta(0):
        raise ValidationError(f"Frequency must be positive: {frequency}")
    grid: list[datetime] = []
    point = start
    while point <= finish:
        grid.append(point)
        point += frequency
    return grid


def coarsen(
    timestamps: Sequence[Any],
    grid: Sequence[Any],
    sample: Sample | str = Sample.LAST,
    missing: bool = False,
) -> list[int | None]:
    """Pick one original index per grid bucket.

    Timestamps are sorted in the sampling direction and consumed bucket by
    bucket: the first timestamp found inside a bucket is kept, later ones in
    the same bucket are discarded, and a timestamp beyond the bucket's far
    edge is held back for the next bucket. Timestamps before the first
    bucket are ignored. The walk stops once timestamps run out.

    Args:
        timestamps: Unordered, comparable timestamps.
        grid: Bucket edges; ``n`` edges define ``n - 1`` buckets.
        sample: ``first`` or ``last`` sample per bucket.
        missing: If True, emit ``None`` for buckets without a sample so the
            result holds exactly one entry per bucket.

    Returns:
        Indices into ``timestamps`` (or ``None`` placeholders), ordered by
        ascending bucket position.
    """
    if not timestamps:
        return []

    forward = Sample.parse(sample) is Sample.FIRST
    order = sorted(range(len(timestamps)), key=timestamps.__getitem__, reverse=not forward)
    pending = deque((timestamps[i], i) for i in order)
    edges = sorted(grid, reverse=not forward)
    buckets = list(zip(edges, edges[1:]))

    selected: list[int | None] = []
    for start, finish in buckets:
        chosen: int | None = None
        while pending:
            value, index = pending.popleft()
            beyond = value >= finish if forward else value <= finish
            if beyond:
                pending.appendleft((value, index))
                break
            inside = value >= start if forward else value <= start
            if inside and chosen is None:
                chosen = index
        if chosen is not None or missing:
            selected.append(chosen)
        if not pending:
            break

    if missing:
        selected.extend([None] * (len(buckets) - len(selected)))
    if not forward:
        selected.reverse()
    return selected
