"""
Measure expansion.

A measure is replaced by the weighted sum of its expression evaluated at
each support of its data. Evaluation substitutes the measured parameters
by numbers, turns infinite/reduced variables and derivatives into reduced
or point variables, and expands nested measures recursively. Analytic
measures skip discretization altogether.
"""

from __future__ import annotations

from collections.abc import Mapping

import numpy as np
from beartype import beartype

from infopt.constraints import all_constraints, constraint_object, set_constraint_function, set_objective
from infopt.errors import DimensionMismatch, InvalidArgument
from infopt.expr import AffExpr, add_to_expression, all_function_variables, map_variables, scale
from infopt.materialize import reduce_variable
from infopt.measure_data import AbstractMeasureData
from infopt.measures import Measure, all_measures
from infopt.model import InfiniteModel
from infopt.refs import GeneralVariableRef
from infopt.types import PARAMETER_KINDS, IndexKind


def _evaluate_at(expr, fixings: Mapping[GeneralVariableRef, float]):
    def replace(vref: GeneralVariableRef):
        if vref.kind in PARAMETER_KINDS:
            return fixings.get(vref, vref)
        if vref.kind == IndexKind.MEASURE:
            return _evaluate_at(expand(vref), fixings)
        return reduce_variable(vref, fixings)

    return map_variables(expr, replace)


def expand_measure(expr, data: AbstractMeasureData):
    """
    Discretize ``expr`` over the supports of ``data``.

    Returns ``sum(coef * weight(s) * expr(s))`` over every support ``s``.
    """
    prefs = data.parameter_list()
    supps = np.asarray(data.supports(), dtype=float).reshape(len(prefs), -1)
    coeffs = data.coefficients()
    if len(coeffs) != supps.shape[1]:
        raise DimensionMismatch("The amount of coefficients must match the amount of support points.")
    weight = data.weight_function()
    result = AffExpr()
    for j in range(supps.shape[1]):
        point = supps[:, j]
        w = weight(point[0] if len(prefs) == 1 else point)
        fixings = {pref: float(point[i]) for i, pref in enumerate(prefs)}
        result = add_to_expression(result, coeffs[j] * w, _evaluate_at(expr, fixings))
    return result


def analytic_expansion(meas: Measure):
    """
    Closed form of a measure whose expression is constant over its domain.

    Integrals evaluate to ``expr * prod(ub - lb)``, expectations to ``expr``.
    """
    expr = _evaluate_at(meas.func, {})
    if meas.data.is_expect():
        return expr
    lbs = np.atleast_1d(meas.data.lower_bound())
    ubs = np.atleast_1d(meas.data.upper_bound())
    return scale(expr, float(np.prod(ubs - lbs)))


def _check_measure(mref: GeneralVariableRef) -> Measure:
    if mref.kind != IndexKind.MEASURE:
        raise InvalidArgument(f"{mref} is not a measure.")
    return mref.dispatch().core


@beartype
def expand(mref: GeneralVariableRef):
    """
    Expression equivalent to measure ``mref``.

    New point/reduced variables are registered in the model owning ``mref``.
    """
    meas = _check_measure(mref)
    if meas.constant_func:
        return analytic_expansion(meas)
    return expand_measure(meas.func, meas.data)


def _expand_measures_in(expr):
    return map_variables(expr, lambda v: expand(v) if v.kind == IndexKind.MEASURE else v)


def _has_measure(expr) -> bool:
    return any(v.kind == IndexKind.MEASURE for v in all_function_variables(expr))


@beartype
def expand_all_measures(model: InfiniteModel) -> None:
    """
    Replace every measure in the constraints and the objective by its expansion.

    Measures are deleted afterwards, except those still needed by
    derivatives (and the measures nested inside them).
    """
    from infopt.deletion import delete_measure

    for cref in all_constraints(model):
        func = constraint_object(cref).func
        if _has_measure(func):
            set_constraint_function(cref, _expand_measures_in(func))
    if _has_measure(model.objective_function):
        set_objective(model, model.objective_sense, _expand_measures_in(model.objective_function))

    keep = [m for m in all_measures(model) if model.data_object(m.index).derivative_indices]
    kept = set()
    while keep:
        mref = keep.pop()
        if mref in kept:
            continue
        kept.add(mref)
        keep.extend(v for v in all_function_variables(_check_measure(mref).func) if v.kind == IndexKind.MEASURE)
    for mref in all_measures(model):
        if mref not in kept and model.is_valid(mref):
            delete_measure(model, mref)

