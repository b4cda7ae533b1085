"""Metric evaluation: transforms, checks and the Input -> Output pipeline."""

from journalipy.core.metrics.check import Check, Range, Tautology, Value
from journalipy.core.metrics.pipeline import Failure, Input, Metric, Outcome, Output, Suite
from journalipy.core.metrics.transform import (
    Difference,
    General,
    Identity,
    Rolling,
    Standard,
    Transform,
)

__all__ = [
    "Check",
    "Difference",
    "Failure",
    "General",
    "Identity",
    "Input",
    "Metric",
    "Outcome",
    "Output",
    "Range",
    "Rolling",
    "Standard",
    "Suite",
    "Tautology",
    "Transform",
    "Value",
]
