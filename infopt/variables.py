"""
Decision variables.

- InfiniteVariable: function of one or more infinite parameters
- PointVariable: infinite variable (or derivative) with every parameter fixed
- ReducedVariable: infinite variable (or derivative) with some parameters fixed
- HoldVariable: finite variable, optionally restricted to parameter bounds

Point and reduced variables always refer to the *original* parent and index
their fixed values by position in the parent's flattened parameter list.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from collections.abc import Mapping, Sequence
from typing import Optional, Union

from beartype import beartype

from infopt.errors import DimensionMismatch, DomainError, InvalidArgument
from infopt.model import InfiniteModel, add_dependency
from infopt.refs import GeneralVariableRef
from infopt.sets import IntervalSet, round_support, supports_in_set
from infopt.types import PARAMETER_KINDS, IndexKind


@dataclass
class InfiniteVariable:
    parameter_refs: tuple[GeneralVariableRef, ...]  # flattened
    parameter_nums: list[int]
    object_nums: list[int]


@dataclass
class PointVariable:
    infinite_variable_ref: GeneralVariableRef
    parameter_values: tuple[float, ...]  # parent's flattened parameter order


@dataclass
class ReducedVariable:
    infinite_variable_ref: GeneralVariableRef
    eval_supports: dict[int, float]  # position in parent parameter list -> value
    object_nums: list[int] = field(default_factory=list)


@dataclass
class HoldVariable:
    parameter_bounds: dict[GeneralVariableRef, IntervalSet] = field(default_factory=dict)


_PARENT_KINDS = (IndexKind.INFINITE_VARIABLE, IndexKind.DERIVATIVE)


def _format_value(value: float) -> str:
    return f"{value:.12g}"


def _flatten_parameters(parameter_refs) -> list[GeneralVariableRef]:
    prefs: list[GeneralVariableRef] = []
    for item in parameter_refs:
        if isinstance(item, GeneralVariableRef):
            prefs.append(item)
        else:
            prefs.extend(item)
    return prefs


@beartype
def add_infinite_variable(
    model: InfiniteModel,
    parameter_refs: Sequence[Union[GeneralVariableRef, Sequence[GeneralVariableRef]]],
    name: str = "",
) -> GeneralVariableRef:
    """
    Add a variable that is a function of ``parameter_refs``.

    Each element is an independent parameter or a whole dependent group
    (a sequence of its members).
    """
    prefs = _flatten_parameters(parameter_refs)
    if not prefs:
        raise InvalidArgument("An infinite variable needs at least one infinite parameter.")
    for pref in prefs:
        if pref.kind not in PARAMETER_KINDS:
            raise DomainError(f"{pref} is not an infinite parameter.")
        model.resolve(pref)
    if len(set(prefs)) != len(prefs):
        raise InvalidArgument("Infinite parameters of a variable must be unique.")
    groups: dict = {}
    for pref in prefs:
        groups.setdefault(pref.index.group(), []).append(pref)
    for group, members in groups.items():
        data = model.data_object(group)
        if group.kind == IndexKind.DEPENDENT_PARAMETER and len(members) != len(data.parameter_nums):
            raise InvalidArgument("Cannot specify a subset of dependent parameters.")
    param_nums = sorted(n for p in prefs for n in p.parameter_numbers())
    obj_nums = sorted({model.data_object(g).object_num for g in groups})
    vindex = model.register(IndexKind.INFINITE_VARIABLE, InfiniteVariable(tuple(prefs), param_nums, obj_nums), name)
    for group in groups:
        add_dependency(model.data_object(group).infinite_var_indices, vindex)
    return model.handle(vindex)


def _check_parent(model: InfiniteModel, parent: GeneralVariableRef) -> list[GeneralVariableRef]:
    if parent.kind not in _PARENT_KINDS:
        raise InvalidArgument(f"{parent} must be an infinite variable or a derivative.")
    if parent.model is not model:
        raise InvalidArgument(f"{parent} must belong to the target model.")
    return parent.parameter_list()


def _sig_digits(pref: GeneralVariableRef) -> int:
    return pref.dispatch().core.sig_digits


@beartype
def make_point_variable_ref(
    model: InfiniteModel, parent: GeneralVariableRef, values: Sequence
) -> GeneralVariableRef:
    """Register a point variable fixing every parameter of ``parent``."""
    prefs = _check_parent(model, parent)
    if len(values) != len(prefs):
        raise DimensionMismatch(f"{parent} depends on {len(prefs)} parameters, got {len(values)} values.")
    values = tuple(round_support(v, _sig_digits(p)) for v, p in zip(values, prefs))
    name = f"{parent.name}({', '.join(_format_value(v) for v in values)})"
    vindex = model.register(IndexKind.POINT_VARIABLE, PointVariable(parent, values), name)
    add_dependency(model.data_object(parent.index).point_var_indices, vindex)
    return model.handle(vindex)


@beartype
def make_reduced_variable_ref(
    model: InfiniteModel, parent: GeneralVariableRef, eval_supports: Mapping[int, object]
) -> GeneralVariableRef:
    """Register a reduced variable fixing the positions in ``eval_supports``."""
    prefs = _check_parent(model, parent)
    if any(not 0 <= i < len(prefs) for i in eval_supports):
        raise DimensionMismatch(f"Evaluation positions do not match the parameters of {parent}.")
    if len(eval_supports) >= len(prefs):
        raise InvalidArgument("A reduced variable must leave at least one parameter free.")
    fixed = {i: round_support(v, _sig_digits(prefs[i])) for i, v in sorted(eval_supports.items())}
    obj_nums = sorted({n for i, p in enumerate(prefs) if i not in fixed for n in p.object_numbers()})
    labels = [_format_value(fixed[i]) if i in fixed else p.name for i, p in enumerate(prefs)]
    name = f"{parent.name}({', '.join(labels)})"
    vindex = model.register(IndexKind.REDUCED_VARIABLE, ReducedVariable(parent, fixed, obj_nums), name)
    add_dependency(model.data_object(parent.index).reduced_var_indices, vindex)
    return model.handle(vindex)


@beartype
def add_hold_variable(
    model: InfiniteModel,
    name: str = "",
    parameter_bounds: Optional[Mapping[GeneralVariableRef, IntervalSet]] = None,
) -> GeneralVariableRef:
    """
    Add a finite variable.

    ``parameter_bounds`` restricts the sub-domain of each listed infinite
    parameter over which the variable is meaningful; measures over supports
    outside those bounds cannot use it.
    """
    bounds = dict(parameter_bounds or {})
    for pref, interval in bounds.items():
        if pref.kind not in PARAMETER_KINDS:
            raise DomainError(f"{pref} is not an infinite parameter.")
        domain = pref.dispatch().core.domain
        if pref.kind == IndexKind.DEPENDENT_PARAMETER:
            domain = domain.sets[pref.index.param_index]
        if not supports_in_set([interval.lower_bound, interval.upper_bound], domain):
            raise DomainError(f"Bounds {interval} violate the domain of {pref}.")
    vindex = model.register(IndexKind.HOLD_VARIABLE, HoldVariable(bounds), name)
    if bounds:
        model.has_hold_bounds = True
    return model.handle(vindex)


@beartype
def parameter_bounds(vref: GeneralVariableRef) -> dict[GeneralVariableRef, IntervalSet]:
    if vref.kind != IndexKind.HOLD_VARIABLE:
        raise InvalidArgument(f"{vref} is not a hold variable.")
    return dict(vref.dispatch().core.parameter_bounds)


@beartype
def infinite_variable_ref(vref: GeneralVariableRef) -> GeneralVariableRef:
    """Parent of a point or reduced variable."""
    if vref.kind not in (IndexKind.POINT_VARIABLE, IndexKind.REDUCED_VARIABLE):
        raise InvalidArgument(f"{vref} is not a point or reduced variable.")
    return vref.dispatch().core.infinite_variable_ref


@beartype
def parameter_values(vref: GeneralVariableRef) -> tuple:
    if vref.kind != IndexKind.POINT_VARIABLE:
        raise InvalidArgument(f"{vref} is not a point variable.")
    return vref.dispatch().core.parameter_values


@beartype
def eval_supports(vref: GeneralVariableRef) -> dict[int, float]:
    if vref.kind != IndexKind.REDUCED_VARIABLE:
        raise InvalidArgument(f"{vref} is not a reduced variable.")
    return dict(vref.dispatch().core.eval_supports)


def num_variables(model: InfiniteModel, kind: IndexKind) -> int:
    return model.num_entities(kind)


def all_variables(model: InfiniteModel, kind: IndexKind) -> list[GeneralVariableRef]:
    return model.entities(kind)
