"""
Infinite domains and support generation.

An independent infinite parameter lives in an ``IntervalSet``; a dependent
parameter group lives in a ``CollectionSet`` with one interval per member.
"""

from __future__ import annotations

import math
import numbers
from dataclasses import dataclass
from collections.abc import Sequence
from typing import Optional, Union

import numpy as np
from beartype import beartype

from infopt.errors import DimensionMismatch, InvalidArgument
from infopt.types import ALL, DEFAULT_SIG_DIGITS, MC_SAMPLE, PUBLIC, UNIFORM_GRID, SupportLabel


@dataclass(frozen=True)
class IntervalSet:
    """Closed interval ``[lower_bound, upper_bound]`` (bounds may be infinite)."""

    lower_bound: float = -math.inf
    upper_bound: float = math.inf

    def __post_init__(self):
        if self.lower_bound > self.upper_bound:
            raise InvalidArgument(
                f"Lower bound {self.lower_bound} exceeds upper bound {self.upper_bound}."
            )

    @property
    def is_finite(self) -> bool:
        return math.isfinite(self.lower_bound) and math.isfinite(self.upper_bound)

    def __contains__(self, value) -> bool:
        return self.lower_bound <= value <= self.upper_bound

    def __str__(self) -> str:
        return f"[{self.lower_bound:g}, {self.upper_bound:g}]"


@dataclass(frozen=True)
class CollectionSet:
    """Cartesian product of intervals, one per member of a dependent group."""

    sets: tuple[IntervalSet, ...]

    def __len__(self) -> int:
        return len(self.sets)

    def __str__(self) -> str:
        return " x ".join(str(s) for s in self.sets)


InfiniteSet = Union[IntervalSet, CollectionSet]


def round_support(value, sig_digits: int = DEFAULT_SIG_DIGITS) -> float:
    """Round ``value`` to ``sig_digits`` significant digits."""
    value = float(value)
    if value == 0.0 or not math.isfinite(value):
        return value
    return float(f"{value:.{sig_digits}g}")


def supports_in_set(supports, domain: InfiniteSet) -> bool:
    """
    Check that every support lies in ``domain``.

    For an ``IntervalSet`` ``supports`` is a scalar or a 1-D sequence. For a
    ``CollectionSet`` it is a matrix with one row per member and one column
    per support point.
    """
    values = np.asarray(supports, dtype=float)
    if values.size == 0:
        return True
    if isinstance(domain, IntervalSet):
        return bool(np.all(values >= domain.lower_bound) and np.all(values <= domain.upper_bound))
    values = values.reshape(len(domain), -1)
    return all(supports_in_set(values[i, :], s) for i, s in enumerate(domain.sets))


def _interval_values(
    domain: IntervalSet, num_supports: int, label: SupportLabel, rng: np.random.Generator
) -> np.ndarray:
    if not domain.is_finite:
        raise InvalidArgument(f"Cannot generate supports over the unbounded domain {domain}.")
    if label == MC_SAMPLE:
        return np.sort(rng.uniform(domain.lower_bound, domain.upper_bound, num_supports))
    return np.linspace(domain.lower_bound, domain.upper_bound, num_supports)


@beartype
def generate_support_values(
    domain: InfiniteSet,
    num_supports: int,
    label: SupportLabel = UNIFORM_GRID,
    rng: Optional[np.random.Generator] = None,
    sig_digits: int = DEFAULT_SIG_DIGITS,
) -> tuple[np.ndarray, SupportLabel]:
    """
    Generate ``num_supports`` support values over ``domain``.

    ``MC_SAMPLE`` draws uniform random samples; every other label produces a
    uniform grid. The grid is tagged with ``label`` except for the query
    labels ``ALL``/``PUBLIC``, which are replaced by ``UNIFORM_GRID``.

    Returns:
        (values, label) where values is 1-D for an ``IntervalSet`` and has one
        row per member for a ``CollectionSet``.
    """
    if num_supports < 0:
        raise InvalidArgument("Number of supports must be nonnegative.")
    if rng is None:
        rng = np.random.default_rng()
    if label in (ALL, PUBLIC):
        label = UNIFORM_GRID
    if isinstance(domain, IntervalSet):
        values = _interval_values(domain, num_supports, label, rng)
    else:
        values = np.vstack([_interval_values(s, num_supports, label, rng) for s in domain.sets])
    rounded = np.vectorize(lambda v: round_support(v, sig_digits), otypes=[float])(values)
    return rounded if rounded.size else values, label


@beartype
def collection_set(bounds: Sequence[tuple[numbers.Real, numbers.Real]]) -> CollectionSet:
    """Build a ``CollectionSet`` from ``[(lb, ub), ...]`` pairs."""
    if len(bounds) == 0:
        raise DimensionMismatch("A collection set needs at least one interval.")
    return CollectionSet(tuple(IntervalSet(float(lb), float(ub)) for lb, ub in bounds))
