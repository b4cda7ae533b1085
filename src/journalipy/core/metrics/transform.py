"""Series transforms used by metric evaluation.

Every transform maps a numeric series to ``(output, span)`` where ``span`` is
the range of positions in the input series that the output values stand for.
Transforms that shrink the series (differences, rolling windows) report the
surviving positions so reports can show the right timestamps.
"""

import importlib
import math
from collections.abc import Callable, Sequence
from typing import Any, Literal

from journalipy.core.errors import EvaluationError, ValidationError

Series = Sequence[float]
TransformResult = tuple[list[float], range]


class Transform:
    """Base class for transforms."""

    def __call__(self, values: Series) -> TransformResult:
        raise NotImplementedError

    def __repr__(self) -> str:
        params = ", ".join(f"{k}={v!r}" for k, v in vars(self).items() if not k.startswith("_"))
        return f"{type(self).__name__}({params})"


class Identity(Transform):
    """Pass the series through unchanged."""

    def __call__(self, values: Series) -> TransformResult:
        return list(values), range(len(values))


class Standard(Transform):
    """Shift, scale and clamp: ``clamp((x - shift) / scale, floor, ceiling)``."""

    def __init__(
        self,
        shift: float = 0.0,
        scale: float = 1.0,
        floor: float = -math.inf,
        ceiling: float = math.inf,
    ) -> None:
        if scale == 0:
            raise ValidationError("Scale must be non-zero")
        if floor >= ceiling:
            raise ValidationError("Floor must be less than the ceiling")
        self.shift = float(shift)
        self.scale = float(scale)
        self.floor = float(floor)
        self.ceiling = float(ceiling)

    def __call__(self, values: Series) -> TransformResult:
        result = [
            min(max((v - self.shift) / self.scale, self.floor), self.ceiling) for v in values
        ]
        return result, range(len(values))


class Difference(Transform):
    """Difference against the value ``offset`` positions earlier.

    A negative offset compares against later values. With ``relative`` the
    difference is divided by the lagged value; a zero lagged value either
    raises (``on_zero="error"``) or yields inf/nan (``on_zero="nan"``), which
    every check treats as failing.
    """

    def __init__(
        self,
        offset: int = 1,
        relative: bool = True,
        on_zero: Literal["error", "nan"] = "error",
    ) -> None:
        if on_zero not in ("error", "nan"):
            raise ValidationError(f"Unknown zero-denominator policy: {on_zero!r}")
        self.offset = int(offset)
        self.relative = bool(relative)
        self.on_zero = on_zero

    def __call__(self, values: Series) -> TransformResult:
        n = len(values)
        if self.offset == 0:
            return list(values), range(n)
        span = range(self.offset, n) if self.offset > 0 else range(0, max(n + self.offset, 0))
        result: list[float] = []
        for i in span:
            lagged = values[i - self.offset]
            delta = values[i] - lagged
            if not self.relative:
                result.append(delta)
            elif lagged != 0:
                result.append(delta / lagged)
            elif self.on_zero == "nan":
                result.append(math.copysign(math.inf, delta) if delta else math.nan)
            else:
                raise EvaluationError(
                    f"Relative difference with zero denominator at position {i - self.offset}"
                )
        return result, span


_AGGREGATORS = ("mean", "sum", "min", "max")


class Rolling(Transform):
    """Rolling window aggregate over ``k = min(width, n)`` consecutive values.

    Runs in O(n): sums and means update a running total, minimums and
    maximums keep the window in a circular buffer and only rescan it when
    the extreme value drops out of the window.
    """

    def __init__(self, width: int = 1, aggregator: str = "mean") -> None:
        if int(width) <= 0:
            raise ValidationError("Rolling transform width must be positive")
        if aggregator not in _AGGREGATORS:
            raise ValidationError(
                f"Unknown rolling aggregator: {aggregator!r} (expected one of {', '.join(_AGGREGATORS)})"
            )
        self.width = int(width)
        self.aggregator = aggregator

    def __call__(self, values: Series) -> TransformResult:
        n = len(values)
        if n == 0:
            return [], range(0)
        k = min(self.width, n)
        if self.aggregator in ("sum", "mean"):
            result = self._running_sum(values, k)
            if self.aggregator == "mean":
                result = [total / k for total in result]
        else:
            result = self._running_extreme(values, k, self.aggregator == "min")
        return result, range(k - 1, n)

    @staticmethod
    def _running_sum(values: Series, k: int) -> list[float]:
        state = sum(values[:k])
        result = [state]
        for i in range(k, len(values)):
            state += values[i] - values[i - k]
            result.append(state)
        return result

    @staticmethod
    def _running_extreme(values: Series, k: int, minimum: bool) -> list[float]:
        def better(a: float, b: float) -> bool:
            return a <= b if minimum else a >= b

        def rescan(window: list[float]) -> tuple[float, int]:
            slot = 0
            for i in range(1, len(window)):
                if better(window[i], window[slot]) and window[i] != window[slot]:
                    slot = i
            return window[slot], slot

        window = list(values[:k])
        extreme, slot = rescan(window)
        result = [extreme]
        for i in range(1, len(values) - k + 1):
            incoming, dropped = values[i + k - 1], (i - 1) % k
            window[dropped] = incoming
            if better(incoming, extreme):
                extreme, slot = incoming, dropped
            elif slot == dropped:
                extreme, slot = rescan(window)
            result.append(extreme)
        return result


def resolve_function(path: str) -> Callable[..., Any]:
    """Import a function from ``package.module:name`` or ``package.module.name``."""
    module_name, sep, attr = path.partition(":")
    if not sep:
        module_name, _, attr = path.rpartition(".")
    if not module_name or not attr:
        raise ValidationError(f"Invalid function path: {path!r}")
    try:
        target: Any = importlib.import_module(module_name)
        for part in attr.split("."):
            target = getattr(target, part)
    except (ImportError, AttributeError) as exc:
        raise ValidationError(f"Unable to resolve function {path!r}: {exc}") from exc
    if not callable(target):
        raise ValidationError(f"Not a callable: {path!r}")
    return target


class General(Transform):
    """Apply an external function.

    Element-wise by default: ``f(x, *args, **kwargs)`` for every value. With
    ``elementwise=False`` the whole series is passed once and the function
    must return a series of the same length.
    """

    def __init__(
        self,
        function: Callable[..., Any] | str,
        args: Sequence[Any] = (),
        kwargs: dict[str, Any] | None = None,
        elementwise: bool = True,
    ) -> None:
        self.function = resolve_function(function) if isinstance(function, str) else function
        if not callable(self.function):
            raise ValidationError(f"Not a callable: {function!r}")
        self.args = tuple(args)
        self.kwargs = dict(kwargs or {})
        self.elementwise = elementwise

    def __call__(self, values: Series) -> TransformResult:
        if self.elementwise:
            result = [self.function(v, *self.args, **self.kwargs) for v in values]
        else:
            result = list(self.function(list(values), *self.args, **self.kwargs))
            if len(result) != len(values):
                raise EvaluationError(
                    f"General transform returned {len(result)} values for {len(values)} inputs"
                )
        return result, range(len(values))
