"""Tests for element-wise checks."""

import math

import pytest

from journalipy.core.errors import ValidationError
from journalipy.core.metrics.check import Range, Tautology, Value

pytestmark = [pytest.mark.metric, pytest.mark.tier(0)]


class TestTautology:
    def test_everything_passes(self) -> None:
        """Tautology passes every value."""
        assert Tautology()([1.0, math.nan, -math.inf]) == [True, True, True]


class TestRange:
    def test_bounds_are_inclusive(self) -> None:
        """Values equal to a bound pass."""
        assert Range(0, 5)([1, 2, 3, 10, 0, 5, -1]) == [True, True, True, False, True, True, False]

    def test_open_bounds_default_to_infinity(self) -> None:
        """Unset bounds leave the range open."""
        assert Range(max=1)([-1e300, 2]) == [True, False]

    def test_non_finite_values_fail(self) -> None:
        """NaN and infinite values always fail."""
        assert Range()([math.inf, math.nan, 1.0]) == [False, False, True]

    def test_rejects_inverted_bounds(self) -> None:
        """A minimum above the maximum is rejected."""
        with pytest.raises(ValidationError, match="minimum exceeds maximum"):
            Range(5, 0)


class TestValue:
    def test_relative_tolerance(self) -> None:
        """Values within the relative tolerance pass."""
        assert Value(100, tolerance=0.01)([100.5, 99.5, 102]) == [True, True, False]

    def test_absolute_tolerance_around_zero(self) -> None:
        """Values near a zero target use the absolute tolerance."""
        assert Value(0, tolerance=0, absolute=0.1)([0.05, -0.2]) == [True, False]

    def test_default_tolerance_is_tight(self) -> None:
        """The default tolerance only passes near-exact values."""
        assert Value(1.0)([1.0, 1.0 + 1e-12, 1.001]) == [True, True, False]

    def test_non_finite_values_fail(self) -> None:
        """NaN and infinite values always fail."""
        assert Value(math.inf)([math.inf]) == [False]

    def test_rejects_negative_tolerance(self) -> None:
        """Negative tolerances are rejected."""
        with pytest.raises(ValidationError):
            Value(1.0, tolerance=-1)
