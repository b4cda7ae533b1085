"""Element-wise predicates over metric series.

Non-finite values (inf, nan) fail every check except the tautology.
"""

import math
import sys
from collections.abc import Sequence

from journalipy.core.errors import ValidationError


class Check:
    """Base class for checks."""

    def __call__(self, series: Sequence[float]) -> list[bool]:
        raise NotImplementedError

    def __repr__(self) -> str:
        params = ", ".join(f"{k}={v!r}" for k, v in vars(self).items())
        return f"{type(self).__name__}({params})"


class Tautology(Check):
    """Every value passes."""

    def __call__(self, series: Sequence[float]) -> list[bool]:
        return [True] * len(series)


class Range(Check):
    """Values must lie within ``[min, max]``."""

    def __init__(self, min: float = -math.inf, max: float = math.inf) -> None:
        if min > max:
            raise ValidationError(f"Range minimum exceeds maximum: {min} > {max}")
        self.min = min
        self.max = max

    def __call__(self, series: Sequence[float]) -> list[bool]:
        return [math.isfinite(x) and self.min <= x <= self.max for x in series]


class Value(Check):
    """Values must equal ``value`` within a relative (and optional absolute) tolerance."""

    def __init__(
        self,
        value: float,
        tolerance: float = math.sqrt(sys.float_info.epsilon),
        absolute: float = 0.0,
    ) -> None:
        if tolerance < 0 or absolute < 0:
            raise ValidationError("Tolerances must be non-negative")
        self.value = value
        self.tolerance = tolerance
        self.absolute = absolute

    def __call__(self, series: Sequence[float]) -> list[bool]:
        return [
            math.isfinite(x)
            and math.isclose(x, self.value, rel_tol=self.tolerance, abs_tol=self.absolute)
            for x in series
        ]
