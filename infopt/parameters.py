"""
Infinite and finite parameters.

Supports are stored per parameter as ``{value: set of labels}`` so they can
be filtered and deleted by label. Values are rounded to the parameter's
significant digits on insertion, and queries always return them sorted.
A dependent parameter group stores one support per point of its joint
domain, keyed by the tuple of member values.
"""

from __future__ import annotations

import numbers
import warnings
from dataclasses import dataclass, field
from collections.abc import Sequence
from typing import Optional, Union

import numpy as np
from beartype import beartype

from infopt.constraints import delete_derivative_constraints
from infopt.derivative_methods import AbstractDerivativeMethod, FiniteDifference
from infopt.errors import DimensionMismatch, DomainError, InvalidArgument
from infopt.model import InfiniteModel
from infopt.refs import GeneralVariableRef, ParameterRef
from infopt.sets import (
    CollectionSet,
    IntervalSet,
    generate_support_values,
    round_support,
    supports_in_set,
)
from infopt.types import (
    ALL,
    DEFAULT_NUM_SUPPORTS,
    DEFAULT_SIG_DIGITS,
    PARAMETER_KINDS,
    PUBLIC,
    UNIFORM_GRID,
    USER_DEFINED,
    Index,
    IndexKind,
    SupportLabel,
    label_matches,
)


@dataclass
class IndependentParameter:
    """Scalar infinite parameter over an interval."""

    domain: IntervalSet
    supports: dict[float, set[SupportLabel]] = field(default_factory=dict)
    sig_digits: int = DEFAULT_SIG_DIGITS
    derivative_method: AbstractDerivativeMethod = field(default_factory=FiniteDifference)
    has_internal_supports: bool = False
    has_derivative_supports: bool = False
    has_derivative_constraints: bool = False


@dataclass
class DependentParameters:
    """Group of infinite parameters that share their supports."""

    domain: CollectionSet
    names: list[str]
    supports: dict[tuple[float, ...], set[SupportLabel]] = field(default_factory=dict)
    sig_digits: int = DEFAULT_SIG_DIGITS
    has_internal_supports: bool = False


@dataclass(frozen=True)
class FiniteParameter:
    """Parameter with a fixed value; behaves as a constant in expansions."""

    value: float


ParameterRefs = Union[GeneralVariableRef, Sequence[GeneralVariableRef]]


def _check_parameter(pref: GeneralVariableRef) -> ParameterRef:
    if pref.kind not in PARAMETER_KINDS:
        raise DomainError(f"{pref} is not an infinite parameter.")
    return pref.dispatch()


def _check_independent(pref: GeneralVariableRef) -> ParameterRef:
    dref = _check_parameter(pref)
    if pref.kind != IndexKind.INDEPENDENT_PARAMETER:
        raise InvalidArgument(f"{pref} is not an independent infinite parameter.")
    return dref


def _group_positions(prefs: Sequence[GeneralVariableRef]) -> tuple[ParameterRef, list[int]]:
    """Validate that ``prefs`` is one whole dependent group; return (ref, positions)."""
    drefs = [_check_parameter(p) for p in prefs]
    if any(p.kind != IndexKind.DEPENDENT_PARAMETER for p in prefs):
        raise InvalidArgument("Supports of several parameters can only be handled for one dependent group.")
    if any(p.index.value != prefs[0].index.value for p in prefs):
        raise InvalidArgument("Cannot specify multiple dependent parameter groups.")
    positions = [d.position for d in drefs]
    if sorted(positions) != list(range(len(drefs[0].core.names))):
        raise InvalidArgument("Cannot specify a subset of dependent parameters.")
    return drefs[0], positions


def _check_values(values, domain: IntervalSet) -> np.ndarray:
    values = np.atleast_1d(np.asarray(values, dtype=float))
    if not supports_in_set(values, domain):
        raise DomainError("Support points violate parameter domain.")
    return values


@beartype
def add_parameter(
    model: InfiniteModel,
    domain: IntervalSet = IntervalSet(),
    name: str = "",
    supports=None,
    num_supports: int = 0,
    sig_digits: Optional[int] = None,
    derivative_method: Optional[AbstractDerivativeMethod] = None,
) -> GeneralVariableRef:
    """
    Add an independent infinite parameter.

    Args:
        model: Owning model
        domain: Interval the parameter ranges over
        name: Parameter name
        supports: Initial supports (labelled ``USER_DEFINED``)
        num_supports: Number of uniform grid supports to generate when
            ``supports`` is not given
        sig_digits: Significant digits of stored supports (model default if None)
        derivative_method: Method used to evaluate derivatives with respect
            to this parameter (backward finite difference if None)

    Returns:
        Handle of the new parameter
    """
    if supports is not None:
        _check_values(supports, domain)
    if num_supports < 0:
        raise InvalidArgument("Number of supports must be nonnegative.")
    param = IndependentParameter(
        domain,
        sig_digits=model.sig_digits if sig_digits is None else sig_digits,
        derivative_method=derivative_method if derivative_method is not None else FiniteDifference(),
    )
    index = model.register(IndexKind.INDEPENDENT_PARAMETER, param, name)
    model.add_param_object(index, 1)
    pref = model.handle(index)
    if supports is not None:
        add_supports(pref, supports, label=USER_DEFINED, check=False)
    elif num_supports > 0:
        generate_and_add_supports(pref, domain, UNIFORM_GRID, num_supports)
    return pref


@beartype
def add_dependent_parameters(
    model: InfiniteModel,
    domain: CollectionSet,
    names: Sequence[str],
    num_supports: int = 0,
    sig_digits: Optional[int] = None,
) -> list[GeneralVariableRef]:
    """Add a group of dependent infinite parameters, one per interval of ``domain``."""
    if len(names) != len(domain):
        raise DimensionMismatch("Number of names must match the dimension of the collection set.")
    if num_supports < 0:
        raise InvalidArgument("Number of supports must be nonnegative.")
    group = DependentParameters(
        domain, list(names), sig_digits=model.sig_digits if sig_digits is None else sig_digits
    )
    index = model.register(IndexKind.DEPENDENT_PARAMETER, group)
    model.add_param_object(index, len(names))
    prefs = [model.handle(Index(index.kind, index.value, i)) for i in range(len(names))]
    if num_supports > 0:
        generate_and_add_supports(prefs, domain, UNIFORM_GRID, num_supports)
    return prefs


@beartype
def add_finite_parameter(model: InfiniteModel, value: numbers.Real, name: str = "") -> GeneralVariableRef:
    index = model.register(IndexKind.FINITE_PARAMETER, FiniteParameter(float(value)), name)
    return model.handle(index)


@beartype
def parameter_value(fref: GeneralVariableRef) -> float:
    if fref.kind != IndexKind.FINITE_PARAMETER:
        raise DomainError(f"{fref} is not a finite parameter.")
    return fref.dispatch().core.value


@beartype
def infinite_set(pref: GeneralVariableRef) -> IntervalSet:
    """Interval of an independent parameter or of one dependent member."""
    dref = _check_parameter(pref)
    if pref.kind == IndexKind.INDEPENDENT_PARAMETER:
        return dref.core.domain
    return dref.core.domain.sets[dref.position]


def group_parameter_refs(pref: GeneralVariableRef) -> list[GeneralVariableRef]:
    """All members of the group of ``pref`` (just ``[pref]`` if independent)."""
    dref = _check_parameter(pref)
    if pref.kind == IndexKind.INDEPENDENT_PARAMETER:
        return [pref]
    return [pref.model.handle(Index(pref.kind, pref.index.value, i)) for i in range(len(dref.core.names))]


def _selected_keys(core, label: SupportLabel) -> list:
    return sorted(k for k, labels in core.supports.items() if label_matches(labels, label))


@beartype
def supports(pref: ParameterRefs, label: SupportLabel = ALL) -> np.ndarray:
    """
    Supports carrying ``label``, sorted ascending.

    A single handle gives a 1-D array. A whole dependent group (a sequence
    of its members) gives a matrix with one row per member, in the order
    given, and one column per support point.
    """
    if isinstance(pref, GeneralVariableRef):
        dref = _check_parameter(pref)
        keys = _selected_keys(dref.core, label)
        if pref.kind == IndexKind.INDEPENDENT_PARAMETER:
            return np.array(keys, dtype=float)
        return np.array([k[dref.position] for k in keys], dtype=float)
    dref, positions = _group_positions(pref)
    keys = _selected_keys(dref.core, label)
    return np.array([[k[p] for k in keys] for p in positions], dtype=float).reshape(len(positions), len(keys))


@beartype
def num_supports(pref: ParameterRefs, label: SupportLabel = ALL) -> int:
    if isinstance(pref, GeneralVariableRef):
        dref = _check_parameter(pref)
    else:
        dref, _ = _group_positions(pref)
    return len(_selected_keys(dref.core, label))


@beartype
def has_supports(pref: ParameterRefs) -> bool:
    return num_supports(pref) > 0


@beartype
def add_supports(
    pref: ParameterRefs,
    values,
    label: SupportLabel = USER_DEFINED,
    check: bool = True,
) -> None:
    """
    Add support values tagged with ``label``.

    An existing value keeps its labels and gains ``label``. For a dependent
    group ``values`` is a matrix with one row per member.
    """
    if isinstance(pref, GeneralVariableRef):
        dref = _check_parameter(pref)
        if pref.kind == IndexKind.DEPENDENT_PARAMETER:
            raise InvalidArgument("Supports must be added to all the parameters of a dependent group at once.")
        core = dref.core
        values = np.atleast_1d(np.asarray(values, dtype=float))
        if check:
            _check_values(values, core.domain)
        for value in values:
            core.supports.setdefault(round_support(value, core.sig_digits), set()).add(label)
    else:
        dref, positions = _group_positions(pref)
        core = dref.core
        values = np.asarray(values, dtype=float)
        if values.ndim == 1:
            values = values.reshape(len(positions), -1)
        if values.shape[0] != len(positions):
            raise DimensionMismatch("Support matrix must have one row per dependent parameter.")
        ordered = np.empty_like(values)
        ordered[positions, :] = values
        if check and not supports_in_set(ordered, core.domain):
            raise DomainError("Support points violate parameter domain.")
        for column in ordered.T:
            key = tuple(round_support(v, core.sig_digits) for v in column)
            core.supports.setdefault(key, set()).add(label)
    if not label.public:
        core.has_internal_supports = True


def _delete_parameter_derivative_constraints(pref: GeneralVariableRef) -> None:
    model = pref.model
    for dindex in list(model.data_object(pref.index).derivative_indices):
        dref = model.handle(dindex)
        if model.is_valid(dref):
            delete_derivative_constraints(dref)
    pref.dispatch().core.has_derivative_constraints = False


@beartype
def delete_supports(pref: ParameterRefs, label: SupportLabel = ALL) -> None:
    """
    Delete supports by label.

    ``ALL`` clears every support. Any other label is stripped from the
    supports carrying it; supports left without a label are removed.
    Derivative constraints built on the old supports are deleted with a
    warning.
    """
    if isinstance(pref, GeneralVariableRef):
        dref = _check_parameter(pref)
        if pref.kind == IndexKind.DEPENDENT_PARAMETER:
            dref, _ = _group_positions(group_parameter_refs(pref))
    else:
        dref, _ = _group_positions(pref)
    core = dref.core
    if isinstance(core, IndependentParameter) and core.has_derivative_constraints:
        warnings.warn(
            f"Deleting supports of '{dref.gvref}' also deletes the derivative constraints "
            "that were evaluated with them.",
            stacklevel=2,
        )
        _delete_parameter_derivative_constraints(dref.gvref)
    if label == ALL:
        core.supports.clear()
    else:
        for key in list(core.supports):
            labels = core.supports[key]
            if label == PUBLIC:
                labels.difference_update([lb for lb in labels if lb.public])
            else:
                labels.discard(label)
            if not labels:
                del core.supports[key]
    core.has_internal_supports = any(
        not lb.public for labels in core.supports.values() for lb in labels
    )
    if isinstance(core, IndependentParameter) and (
        label in (ALL, core.derivative_method.support_label) or not core.has_internal_supports
    ):
        core.has_derivative_supports = False


@beartype
def generate_and_add_supports(
    pref: ParameterRefs,
    domain: Union[IntervalSet, CollectionSet],
    label: SupportLabel = UNIFORM_GRID,
    num_supports: int = DEFAULT_NUM_SUPPORTS,
) -> None:
    """Generate ``num_supports`` supports over ``domain`` and store them under ``label``."""
    if isinstance(pref, GeneralVariableRef):
        dref = _check_parameter(pref)
        target = pref
    else:
        dref, positions = _group_positions(pref)
        target = [pref[positions.index(i)] for i in range(len(positions))]
    values, label = generate_support_values(
        domain, num_supports, label, dref.model.rng, dref.core.sig_digits
    )
    add_supports(target, values, label=label, check=False)


@beartype
def derivative_method(pref: GeneralVariableRef) -> AbstractDerivativeMethod:
    return _check_independent(pref).core.derivative_method


@beartype
def set_derivative_method(pref: GeneralVariableRef, method: AbstractDerivativeMethod) -> None:
    """
    Change the derivative method of ``pref``.

    Supports generated by the old method are deleted, and so are derivative
    constraints already evaluated with it (with a warning).
    """
    dref = _check_independent(pref)
    core = dref.core
    if core.has_derivative_constraints:
        warnings.warn(
            f"Changing the derivative method of '{pref}' deletes its evaluated derivative constraints.",
            stacklevel=2,
        )
        _delete_parameter_derivative_constraints(pref)
    if core.has_derivative_supports:
        delete_supports(pref, label=core.derivative_method.support_label)
    core.derivative_method = method
    core.has_derivative_supports = False


@beartype
def has_derivative_supports(pref: GeneralVariableRef) -> bool:
    return _check_independent(pref).core.has_derivative_supports


@beartype
def has_derivative_constraints(pref: GeneralVariableRef) -> bool:
    dref = _check_parameter(pref)
    return pref.kind == IndexKind.INDEPENDENT_PARAMETER and dref.core.has_derivative_constraints


@beartype
def has_internal_supports(pref: GeneralVariableRef) -> bool:
    return _check_parameter(pref).core.has_internal_supports
