"""
Measure construction and queries.

A measure wraps an expression and a measure data object. Building one
computes which parameter groups the result still depends on and whether the
measure can be evaluated analytically (its expression does not depend on
the measure's own parameters and the integration domain is finite, or it is
an expectation).
"""

from __future__ import annotations

import math
import numbers
from dataclasses import dataclass
from collections.abc import Sequence
from typing import Optional, Union

import numpy as np
from beartype import beartype

from infopt.errors import ConstraintViolation, InvalidArgument
from infopt.expr import (
    all_function_variables,
    copy_expression,
    expression_object_numbers,
    expression_parameter_numbers,
    is_expression,
    model_from_expr,
)
from infopt.measure_data import AbstractMeasureData, expect_data, integral_data
from infopt.model import InfiniteModel, add_dependency
from infopt.refs import GeneralVariableRef
from infopt.types import DEFAULT_NUM_SUPPORTS, IndexKind
from infopt.variables import parameter_bounds


@dataclass
class Measure:
    """
    Core object of a measure.

    ``object_nums``/``parameter_nums`` are those of ``func`` minus the ones
    absorbed by ``data``; ``constant_func`` selects analytic evaluation.
    """

    func: object
    data: AbstractMeasureData
    object_nums: list[int]
    parameter_nums: list[int]
    constant_func: bool


def _check_var_bounds(vref: GeneralVariableRef, data: AbstractMeasureData) -> None:
    if vref.kind == IndexKind.HOLD_VARIABLE:
        bounds = parameter_bounds(vref)
        if bounds and not data.measure_data_in_hold_bounds(bounds):
            raise ConstraintViolation("Measure bounds violate hold variable bounds.")
    elif vref.kind == IndexKind.MEASURE:
        for inner in all_function_variables(measure_function(vref)):
            _check_var_bounds(inner, data)


def build_measure(expr, data: AbstractMeasureData) -> Measure:
    """
    Build (but do not register) a measure of ``expr`` according to ``data``.

    Raises:
        ConstraintViolation: A hold variable in ``expr`` is restricted to
            parameter bounds that the supports of ``data`` violate
    """
    if not is_expression(expr):
        raise InvalidArgument(f"Cannot measure an object of type {type(expr).__name__}.")
    model = model_from_expr(expr)
    if model is not None and model.has_hold_bounds:
        for vref in all_function_variables(expr):
            _check_var_bounds(vref, data)
    expr_obj_nums = expression_object_numbers(expr)
    expr_param_nums = expression_parameter_numbers(expr)
    prefs = data.parameter_list()
    data_obj_nums = {n for p in prefs for n in p.object_numbers()}
    data_param_nums = {n for p in prefs for n in p.parameter_numbers()}
    obj_nums = [n for n in expr_obj_nums if n not in data_obj_nums]
    param_nums = [n for n in expr_param_nums if n not in data_param_nums]
    lb = float(np.atleast_1d(data.lower_bound())[0])
    ub = float(np.atleast_1d(data.upper_bound())[0])
    constant_func = not data_param_nums.intersection(expr_param_nums) and (
        (math.isfinite(lb) and math.isfinite(ub)) or data.is_expect()
    )
    return Measure(copy_expression(expr), data, obj_nums, param_nums, constant_func)


def add_measure(model: InfiniteModel, meas: Measure, name: str = "measure") -> GeneralVariableRef:
    """
    Register ``meas``.

    Supports of its data are committed to the parameters unless the
    measure is analytic.
    """
    vrefs = all_function_variables(meas.func)
    for vref in vrefs:
        model.resolve(vref)
    prefs = meas.data.parameter_list()
    for pref in prefs:
        model.resolve(pref)
    if not meas.constant_func:
        meas.data.add_supports_to_parameters()
    mindex = model.register(IndexKind.MEASURE, meas, name)
    for vref in dict.fromkeys(vrefs + prefs):
        add_dependency(model.data_object(vref.index).measure_indices, mindex)
    return model.handle(mindex)


@beartype
def measure(expr, data: AbstractMeasureData, name: str = "measure") -> GeneralVariableRef:
    """Build and register the measure of ``expr`` according to ``data``."""
    model = model_from_expr(expr)
    if model is None:
        model = data.parameter_list()[0].model
    return add_measure(model, build_measure(expr, data), name)


@beartype
def integral(
    expr,
    pref: GeneralVariableRef,
    lower_bound: Optional[numbers.Real] = None,
    upper_bound: Optional[numbers.Real] = None,
    num_supports: int = DEFAULT_NUM_SUPPORTS,
    method: str = "trapezoid",
    name: str = "integral",
) -> GeneralVariableRef:
    """
    Definite integral of ``expr`` over ``pref``.

    Bounds default to the parameter's domain. See ``integral_data`` for the
    available methods.
    """
    return measure(expr, integral_data(pref, lower_bound, upper_bound, num_supports, method), name)


@beartype
def expect(
    expr,
    prefs: Union[GeneralVariableRef, Sequence[GeneralVariableRef]],
    num_supports: int = DEFAULT_NUM_SUPPORTS,
    name: str = "expect",
) -> GeneralVariableRef:
    """Sample-average expectation of ``expr`` over ``prefs``."""
    return measure(expr, expect_data(prefs, num_supports), name)


def _check_measure(mref: GeneralVariableRef) -> Measure:
    if mref.kind != IndexKind.MEASURE:
        raise InvalidArgument(f"{mref} is not a measure.")
    return mref.dispatch().core


@beartype
def measure_function(mref: GeneralVariableRef):
    return _check_measure(mref).func


@beartype
def measure_data(mref: GeneralVariableRef) -> AbstractMeasureData:
    return _check_measure(mref).data


@beartype
def is_analytic(mref: GeneralVariableRef) -> bool:
    return _check_measure(mref).constant_func


@beartype
def measure_parameter_refs(mref: GeneralVariableRef) -> list[GeneralVariableRef]:
    """Parameters the measure still depends on once evaluated."""
    _check_measure(mref)
    return mref.parameter_list()


def num_measures(model: InfiniteModel) -> int:
    return model.num_entities(IndexKind.MEASURE)


def all_measures(model: InfiniteModel) -> list[GeneralVariableRef]:
    return model.entities(IndexKind.MEASURE)


@beartype
def used_by_measure(vref: GeneralVariableRef) -> bool:
    return bool(vref.dispatch().data.measure_indices)


@beartype
def used_by_constraint(vref: GeneralVariableRef) -> bool:
    return bool(vref.dispatch().data.constraint_indices)


@beartype
def used_by_objective(vref: GeneralVariableRef) -> bool:
    return vref.dispatch().data.in_objective


@beartype
def used_by_derivative(vref: GeneralVariableRef) -> bool:
    return bool(vref.dispatch().data.derivative_indices)


@beartype
def is_used(vref: GeneralVariableRef) -> bool:
    data = vref.dispatch().data
    return bool(
        data.measure_indices
        or data.constraint_indices
        or data.derivative_indices
        or data.point_var_indices
        or data.reduced_var_indices
        or data.in_objective
    )
