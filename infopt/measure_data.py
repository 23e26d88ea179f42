"""
Measure data: how a measure is discretized.

Every measure data type implements the ``AbstractMeasureData`` interface:
the parameters it integrates over, its supports and coefficients, a weight
function, optional integration bounds, whether it is an expectation, and
how to commit its supports to the parameters.

``DiscreteMeasureData`` stores explicit supports and coefficients.
``FunctionalDiscreteMeasureData`` stores a minimum support count and a
coefficient function; its supports are pulled from the parameters on every
query until ``add_supports_to_parameters`` generates the missing ones.
"""

from __future__ import annotations

import math
import numbers
import warnings
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from typing import Optional, Union

import numpy as np
from beartype import beartype

from infopt import parameters
from infopt.errors import DimensionMismatch, DomainError, InvalidArgument
from infopt.refs import GeneralVariableRef
from infopt.sets import CollectionSet, IntervalSet, supports_in_set
from infopt.types import (
    DEFAULT_NUM_SUPPORTS,
    MC_SAMPLE,
    PARAMETER_KINDS,
    UNIFORM_GRID,
    IndexKind,
    SupportLabel,
    generate_unique_label,
)


def default_weight(support) -> float:
    """Weight function that is 1 everywhere."""
    return 1.0


class AbstractMeasureData(ABC):
    """Interface every measure data type implements."""

    @abstractmethod
    def parameter_refs(self) -> Union[GeneralVariableRef, list[GeneralVariableRef]]:
        """Single handle for scalar data, list of handles for multi-dimensional data."""

    @abstractmethod
    def support_label(self) -> SupportLabel:
        pass

    @abstractmethod
    def supports(self) -> np.ndarray:
        """1-D for scalar data, one row per parameter for multi-dimensional data."""

    @abstractmethod
    def coefficients(self) -> np.ndarray:
        pass

    @abstractmethod
    def weight_function(self) -> Callable:
        pass

    @abstractmethod
    def add_supports_to_parameters(self) -> None:
        """Commit the supports of this data to its parameters."""

    @abstractmethod
    def copy(self) -> "AbstractMeasureData":
        pass

    def lower_bound(self):
        return math.nan

    def upper_bound(self):
        return math.nan

    def is_expect(self) -> bool:
        return False

    def parameter_list(self) -> list[GeneralVariableRef]:
        prefs = self.parameter_refs()
        return [prefs] if isinstance(prefs, GeneralVariableRef) else list(prefs)

    def num_supports(self) -> int:
        supps = self.supports()
        return supps.shape[-1] if supps.ndim else 0

    def measure_data_in_hold_bounds(self, bounds: dict) -> bool:
        """Whether the supports respect hold variable ``bounds`` (unchecked by default)."""
        warnings.warn(
            f"Unable to check if hold variable bounds are valid in a measure with data type "
            f"{type(self).__name__}; override measure_data_in_hold_bounds to enable it.",
            stacklevel=2,
        )
        return True


def _check_param(pref: GeneralVariableRef) -> None:
    if pref.kind not in PARAMETER_KINDS:
        raise DomainError(f"{pref} is not an infinite parameter.")
    pref.dispatch()


def _check_params(prefs: Sequence[GeneralVariableRef]) -> None:
    for pref in prefs:
        _check_param(pref)
    only_dep = all(p.kind == IndexKind.DEPENDENT_PARAMETER for p in prefs)
    only_indep = not only_dep and all(p.kind == IndexKind.INDEPENDENT_PARAMETER for p in prefs)
    if not only_dep and not only_indep:
        raise InvalidArgument("Cannot specify a mixture of infinite parameter types.")
    if only_dep and any(p.index.value != prefs[0].index.value for p in prefs):
        raise InvalidArgument("Cannot specify multiple dependent parameter groups for one measure.")
    if only_dep and len(set(prefs)) != len(parameters.group_parameter_refs(prefs[0])):
        raise InvalidArgument(
            "Cannot specify a subset of dependent parameters, consider using nested "
            "one-dimensional measures instead."
        )


def _bounds_vector(bounds, n: int, what: str) -> np.ndarray:
    if bounds is None:
        return np.full(n, math.nan)
    values = np.asarray(bounds, dtype=float).reshape(-1)
    if values.size != n:
        raise DimensionMismatch(f"Parameter references and {what} must have the same dimensions.")
    return values


class _HoldBoundsMixin:
    def measure_data_in_hold_bounds(self, bounds: dict) -> bool:
        supps = self.supports()
        if supps.size == 0:
            return True
        prefs = self.parameter_list()
        rows = supps.reshape(len(prefs), -1)
        for i, pref in enumerate(prefs):
            if pref in bounds and not supports_in_set(rows[i, :], bounds[pref]):
                return False
        return True


class DiscreteMeasureData(_HoldBoundsMixin, AbstractMeasureData):
    """
    Explicit supports and coefficients.

    Args:
        parameter_refs: An infinite parameter, or a list of independent
            parameters, or every member of one dependent group
        coefficients: One coefficient per support point
        supports: Support values (scalar data) or support points, each a
            sequence with one value per parameter (multi-dimensional data)
        label: Label of the supports (a fresh unique label by default)
        weight_function: Weight applied to each support
        lower_bound, upper_bound: Integration bounds (scalar or one per parameter)
        is_expect: Whether the measure is an expectation
        check: Validate the supports against the parameter domains
    """

    def __init__(
        self,
        parameter_refs,
        coefficients,
        supports,
        label: Optional[SupportLabel] = None,
        weight_function: Callable = default_weight,
        lower_bound=None,
        upper_bound=None,
        is_expect: bool = False,
        check: bool = True,
    ):
        coeffs = np.asarray(coefficients, dtype=float).reshape(-1)
        if isinstance(parameter_refs, GeneralVariableRef):
            _check_param(parameter_refs)
            supps = np.asarray(supports, dtype=float).reshape(-1)
            if coeffs.size != supps.size:
                raise DimensionMismatch("The amount of coefficients must match the amount of support points.")
            if check and not supports_in_set(supps, parameters.infinite_set(parameter_refs)):
                raise DomainError("Support points violate parameter domain.")
            prefs = parameter_refs
            n = 1
        else:
            prefs = list(parameter_refs)
            _check_params(prefs)
            n = len(prefs)
            points = [np.asarray(p, dtype=float).reshape(-1) for p in supports]
            if any(p.size != n for p in points):
                raise DimensionMismatch("Parameter references and supports must have the same dimensions.")
            if coeffs.size != len(points):
                raise DimensionMismatch("The amount of coefficients must match the amount of support points.")
            supps = np.column_stack(points) if points else np.zeros((n, 0))
            if check:
                for i, pref in enumerate(prefs):
                    if not supports_in_set(supps[i, :], parameters.infinite_set(pref)):
                        raise DomainError("Support points violate parameter domain.")
        self._parameter_refs = prefs
        self._coefficients = coeffs
        self._supports = supps
        self._label = label if label is not None else generate_unique_label()
        self._weight_function = weight_function
        self._lower_bound = _bounds_vector(lower_bound, n, "bounds")
        self._upper_bound = _bounds_vector(upper_bound, n, "bounds")
        self._is_expect = is_expect

    def parameter_refs(self):
        return self._parameter_refs

    def support_label(self) -> SupportLabel:
        return self._label

    def supports(self) -> np.ndarray:
        return self._supports

    def coefficients(self) -> np.ndarray:
        return self._coefficients

    def weight_function(self) -> Callable:
        return self._weight_function

    def lower_bound(self):
        return self._lower_bound[0] if isinstance(self._parameter_refs, GeneralVariableRef) else self._lower_bound

    def upper_bound(self):
        return self._upper_bound[0] if isinstance(self._parameter_refs, GeneralVariableRef) else self._upper_bound

    def is_expect(self) -> bool:
        return self._is_expect

    def add_supports_to_parameters(self) -> None:
        prefs = self._parameter_refs
        if isinstance(prefs, GeneralVariableRef):
            parameters.add_supports(prefs, self._supports, label=self._label, check=False)
        elif prefs[0].kind == IndexKind.DEPENDENT_PARAMETER:
            parameters.add_supports(prefs, self._supports, label=self._label, check=False)
        else:
            for i, pref in enumerate(prefs):
                parameters.add_supports(pref, self._supports[i, :], label=self._label, check=False)

    def copy(self) -> "DiscreteMeasureData":
        prefs = self._parameter_refs
        multi = not isinstance(prefs, GeneralVariableRef)
        return DiscreteMeasureData(
            list(prefs) if multi else prefs,
            self._coefficients.copy(),
            self._supports.T.copy() if multi else self._supports.copy(),
            label=self._label,
            weight_function=self._weight_function,
            lower_bound=self._lower_bound.copy(),
            upper_bound=self._upper_bound.copy(),
            is_expect=self._is_expect,
            check=False,
        )

    def __repr__(self) -> str:
        return f"DiscreteMeasureData({self.parameter_list()}, {self.num_supports()} supports, {self._label})"


class FunctionalDiscreteMeasureData(_HoldBoundsMixin, AbstractMeasureData):
    """
    Supports pulled lazily from the parameters, coefficients from a function.

    Args:
        parameter_refs: An infinite parameter, or a list of independent
            parameters, or every member of one dependent group
        coeff_func: Maps the support array to the coefficient vector
        min_num_supports: Minimum number of supports carrying ``label``
        label: Label selecting (and tagging generated) supports
        weight_function: Weight applied to each support
        lower_bound, upper_bound: Optional bounds filtering the supports
        is_expect: Whether the measure is an expectation
    """

    def __init__(
        self,
        parameter_refs,
        coeff_func: Callable,
        min_num_supports: int,
        label: SupportLabel,
        weight_function: Callable = default_weight,
        lower_bound=None,
        upper_bound=None,
        is_expect: bool = False,
    ):
        if isinstance(parameter_refs, GeneralVariableRef):
            _check_param(parameter_refs)
            if parameter_refs.kind == IndexKind.DEPENDENT_PARAMETER and min_num_supports != 0:
                raise InvalidArgument("min_num_supports must be 0 for individual dependent parameters.")
            prefs = parameter_refs
            plist = [prefs]
        else:
            prefs = list(parameter_refs)
            _check_params(prefs)
            plist = prefs
        if min_num_supports < 0:
            raise InvalidArgument("Number of supports must be nonnegative.")
        lbs = _bounds_vector(lower_bound, len(plist), "bounds")
        ubs = _bounds_vector(upper_bound, len(plist), "bounds")
        for pref, lb, ub in zip(plist, lbs, ubs):
            if not math.isnan(lb) and not math.isnan(ub):
                if not supports_in_set([lb, ub], parameters.infinite_set(pref)):
                    raise DomainError("Bounds violate infinite set bounds.")
        self._parameter_refs = prefs
        self._coeff_func = coeff_func
        self._min_num_supports = min_num_supports
        self._label = label
        self._weight_function = weight_function
        self._lower_bound = lbs
        self._upper_bound = ubs
        self._is_expect = is_expect

    def parameter_refs(self):
        return self._parameter_refs

    def support_label(self) -> SupportLabel:
        return self._label

    def min_num_supports(self) -> int:
        return self._min_num_supports

    def coefficient_function(self) -> Callable:
        return self._coeff_func

    def weight_function(self) -> Callable:
        return self._weight_function

    def lower_bound(self):
        return self._lower_bound[0] if isinstance(self._parameter_refs, GeneralVariableRef) else self._lower_bound

    def upper_bound(self):
        return self._upper_bound[0] if isinstance(self._parameter_refs, GeneralVariableRef) else self._upper_bound

    def is_expect(self) -> bool:
        return self._is_expect

    def _in_bounds(self, rows: np.ndarray) -> np.ndarray:
        keep = np.ones(rows.shape[1], dtype=bool)
        for i, (lb, ub) in enumerate(zip(self._lower_bound, self._upper_bound)):
            if not math.isnan(lb):
                keep &= rows[i, :] >= lb
            if not math.isnan(ub):
                keep &= rows[i, :] <= ub
        return keep

    def supports(self) -> np.ndarray:
        prefs = self._parameter_refs
        if isinstance(prefs, GeneralVariableRef):
            rows = parameters.supports(prefs, label=self._label).reshape(1, -1)
            return rows[0, self._in_bounds(rows)]
        if prefs[0].kind == IndexKind.DEPENDENT_PARAMETER:
            rows = parameters.supports(prefs, label=self._label)
        else:
            columns = [parameters.supports(p, label=self._label) for p in prefs]
            if len({c.size for c in columns}) > 1:
                raise DimensionMismatch(
                    "Independent parameters of multi-dimensional functional data must have "
                    "the same number of supports."
                )
            rows = np.vstack(columns)
        return rows[:, self._in_bounds(rows)]

    def coefficients(self) -> np.ndarray:
        return np.asarray(self._coeff_func(self.supports()), dtype=float).reshape(-1)

    def _generation_set(self, pref: GeneralVariableRef, i: int) -> IntervalSet:
        lb = self._lower_bound[i]
        ub = self._upper_bound[i]
        if math.isnan(lb) or math.isnan(ub):
            return parameters.infinite_set(pref)
        return IntervalSet(float(lb), float(ub))

    def add_supports_to_parameters(self) -> None:
        needed = self._min_num_supports - self.num_supports()
        if needed <= 0:
            return
        prefs = self._parameter_refs
        if isinstance(prefs, GeneralVariableRef):
            if prefs.kind == IndexKind.DEPENDENT_PARAMETER:
                raise InvalidArgument("min_num_supports must be 0 for individual dependent parameters.")
            parameters.generate_and_add_supports(prefs, self._generation_set(prefs, 0), self._label, needed)
        elif prefs[0].kind == IndexKind.DEPENDENT_PARAMETER:
            sets: list = [None] * len(prefs)
            for i, pref in enumerate(prefs):
                sets[pref.index.param_index] = self._generation_set(pref, i)
            group = parameters.group_parameter_refs(prefs[0])
            parameters.generate_and_add_supports(group, CollectionSet(tuple(sets)), self._label, needed)
        else:
            for i, pref in enumerate(prefs):
                parameters.generate_and_add_supports(pref, self._generation_set(pref, i), self._label, needed)

    def copy(self) -> "FunctionalDiscreteMeasureData":
        prefs = self._parameter_refs
        return FunctionalDiscreteMeasureData(
            prefs if isinstance(prefs, GeneralVariableRef) else list(prefs),
            self._coeff_func,
            self._min_num_supports,
            self._label,
            weight_function=self._weight_function,
            lower_bound=self._lower_bound.copy(),
            upper_bound=self._upper_bound.copy(),
            is_expect=self._is_expect,
        )

    def __repr__(self) -> str:
        return (
            f"FunctionalDiscreteMeasureData({self.parameter_list()}, "
            f"min {self._min_num_supports} supports, {self._label})"
        )


def _finite_bounds(pref: GeneralVariableRef, lower_bound, upper_bound) -> tuple[float, float]:
    domain = parameters.infinite_set(pref)
    lb = domain.lower_bound if lower_bound is None else float(lower_bound)
    ub = domain.upper_bound if upper_bound is None else float(upper_bound)
    if not (math.isfinite(lb) and math.isfinite(ub)):
        raise InvalidArgument(f"Integral of {pref} needs finite bounds.")
    return lb, ub


def _trapezoid_coefficients(lb: float, ub: float) -> Callable:
    def coefficients(supps):
        supps = np.asarray(supps, dtype=float).reshape(-1)
        if supps.size == 1:
            return np.array([ub - lb])
        coeffs = np.zeros(supps.size)
        steps = np.diff(supps)
        coeffs[:-1] += steps / 2
        coeffs[1:] += steps / 2
        return coeffs

    return coefficients


@beartype
def integral_data(
    pref: GeneralVariableRef,
    lower_bound: Optional[numbers.Real] = None,
    upper_bound: Optional[numbers.Real] = None,
    num_supports: int = DEFAULT_NUM_SUPPORTS,
    method: str = "trapezoid",
) -> AbstractMeasureData:
    """
    Measure data of a definite integral over a scalar parameter.

    Methods:
    - ``"trapezoid"``: trapezoid rule on the parameter's uniform grid supports
      inside the bounds (generated on demand). A single support is not a
      trapezoid: it gets the coefficient ``ub - lb``, i.e. the integrand is
      treated as constant over the bounds (a rectangle rule)
    - ``"gauss_legendre"``: Gauss-Legendre nodes and weights stored under a
      unique label
    """
    _check_param(pref)
    if pref.kind != IndexKind.INDEPENDENT_PARAMETER:
        raise InvalidArgument("Built-in integrals are defined over independent parameters.")
    lb, ub = _finite_bounds(pref, lower_bound, upper_bound)
    if num_supports < 0:
        raise InvalidArgument("Number of supports must be nonnegative.")
    if method == "trapezoid":
        return FunctionalDiscreteMeasureData(
            pref, _trapezoid_coefficients(lb, ub), num_supports, UNIFORM_GRID, lower_bound=lb, upper_bound=ub
        )
    if method == "gauss_legendre":
        if num_supports < 1:
            raise InvalidArgument("Gauss-Legendre quadrature needs at least one node.")
        nodes, weights = np.polynomial.legendre.leggauss(num_supports)
        return DiscreteMeasureData(
            pref,
            (ub - lb) / 2 * weights,
            (ub - lb) / 2 * nodes + (ub + lb) / 2,
            lower_bound=lb,
            upper_bound=ub,
        )
    raise InvalidArgument(f"Unknown integral method '{method}'.")


def _sample_average(supps) -> np.ndarray:
    supps = np.asarray(supps, dtype=float)
    n = supps.shape[-1] if supps.ndim else 0
    return np.full(n, 1.0 / n) if n else np.zeros(0)


@beartype
def expect_data(
    prefs: Union[GeneralVariableRef, Sequence[GeneralVariableRef]],
    num_supports: int = DEFAULT_NUM_SUPPORTS,
) -> FunctionalDiscreteMeasureData:
    """Measure data of a sample-average expectation over Monte Carlo supports."""
    return FunctionalDiscreteMeasureData(prefs, _sample_average, num_supports, MC_SAMPLE, is_expect=True)
