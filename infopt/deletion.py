"""
Deletion of measures, derivatives and point/reduced variables.

Every dependent measure, constraint and the objective is rewritten first:
an expression that *is* the deleted entity becomes zero, otherwise only the
terms that use it are removed. Back references are unlinked afterwards and
the entity is removed from the model last.
"""

from __future__ import annotations

from beartype import beartype

from infopt.constraints import delete_derivative_constraints, set_constraint_function, set_objective
from infopt.errors import InvalidArgument
from infopt.expr import AffExpr, all_function_variables, copy_expression, remove_variable
from infopt.measures import all_measures, build_measure
from infopt.model import InfiniteModel, ObjectiveSense, remove_dependency
from infopt.parameters import delete_supports, group_parameter_refs
from infopt.refs import GeneralVariableRef
from infopt.types import IndexKind


def _without(expr, vref: GeneralVariableRef):
    """``expr`` with every term using ``vref`` removed (zero if it is ``vref``)."""
    if isinstance(expr, GeneralVariableRef):
        return AffExpr() if expr == vref else expr
    expr = copy_expression(expr)
    remove_variable(expr, vref)
    return expr


def _remove_from_dependents(model: InfiniteModel, vref: GeneralVariableRef) -> None:
    data = model.data_object(vref.index)
    for mindex in list(data.measure_indices):
        mdata = model.data_object(mindex)
        meas = mdata.core
        if vref in all_function_variables(meas.func):
            mdata.core = build_measure(_without(meas.func, vref), meas.data)
    for cindex in list(data.constraint_indices):
        cref = model.handle(cindex)
        set_constraint_function(cref, _without(model.data_object(cindex).core.func, vref))
    if data.in_objective:
        func = model.objective_function
        if isinstance(func, GeneralVariableRef) and func == vref:
            set_objective(model, ObjectiveSense.FEASIBILITY, AffExpr())
        else:
            set_objective(model, model.objective_sense, _without(func, vref))


def _check_kind(model: InfiniteModel, vref: GeneralVariableRef, kind: IndexKind, what: str):
    dref = model.resolve(vref)
    if vref.kind != kind:
        raise InvalidArgument(f"{vref} is not a {what}.")
    return dref


@beartype
def delete_measure(model: InfiniteModel, mref: GeneralVariableRef) -> None:
    """
    Delete measure ``mref``.

    Derivatives of the measure are deleted too, and so are the supports
    that carry a label unique to this measure.
    """
    dref = _check_kind(model, mref, IndexKind.MEASURE, "measure")
    meas = dref.core
    _remove_from_dependents(model, mref)
    for dindex in list(dref.data.derivative_indices):
        d = model.handle(dindex)
        if model.is_valid(d):
            delete_derivative(model, d)

    prefs = meas.data.parameter_list()
    for vref in dict.fromkeys(all_function_variables(meas.func) + prefs):
        if model.is_valid(vref):
            remove_dependency(model.data_object(vref.index).measure_indices, mref.index)

    label = meas.data.support_label()
    shared = any(
        m != mref and model.data_object(m.index).core.data.support_label() == label for m in all_measures(model)
    )
    if label.unique and not shared:
        if prefs[0].kind == IndexKind.DEPENDENT_PARAMETER:
            delete_supports(group_parameter_refs(prefs[0]), label=label)
        else:
            for pref in prefs:
                delete_supports(pref, label=label)
    model.delete_entity(mref)


@beartype
def delete_derivative(model: InfiniteModel, dref: GeneralVariableRef) -> None:
    """
    Delete derivative ``dref``.

    Cascades to its evaluated constraints, to derivatives taken of it, and
    to the point and reduced variables that evaluate it.
    """
    view = _check_kind(model, dref, IndexKind.DERIVATIVE, "derivative")
    data = view.data
    d = view.core
    if data.derivative_constraint_indices:
        delete_derivative_constraints(dref)
    for dindex in list(data.derivative_indices):
        inner = model.handle(dindex)
        if model.is_valid(inner):
            delete_derivative(model, inner)
    for pindex in list(data.point_var_indices):
        delete_point_variable(model, model.handle(pindex))
    for rindex in list(data.reduced_var_indices):
        delete_reduced_variable(model, model.handle(rindex))
    _remove_from_dependents(model, dref)

    for vref in (d.argument, d.parameter_ref):
        if model.is_valid(vref):
            remove_dependency(model.data_object(vref.index).derivative_indices, dref.index)
    model.deriv_lookup.pop((d.argument, d.parameter_ref), None)
    model.delete_entity(dref)


def _delete_evaluation(model: InfiniteModel, vref: GeneralVariableRef, kind: IndexKind, what: str) -> None:
    view = _check_kind(model, vref, kind, what)
    _remove_from_dependents(model, vref)
    parent = view.core.infinite_variable_ref
    if model.is_valid(parent):
        parent_data = model.data_object(parent.index)
        if kind == IndexKind.POINT_VARIABLE:
            remove_dependency(parent_data.point_var_indices, vref.index)
        else:
            remove_dependency(parent_data.reduced_var_indices, vref.index)
    model.delete_entity(vref)


@beartype
def delete_point_variable(model: InfiniteModel, vref: GeneralVariableRef) -> None:
    """Delete point variable ``vref`` and its terms in constraints, measures and the objective."""
    _delete_evaluation(model, vref, IndexKind.POINT_VARIABLE, "point variable")


@beartype
def delete_reduced_variable(model: InfiniteModel, vref: GeneralVariableRef) -> None:
    _delete_evaluation(model, vref, IndexKind.REDUCED_VARIABLE, "reduced variable")
