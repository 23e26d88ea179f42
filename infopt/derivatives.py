"""
Derivatives of infinite variables, measures and other derivatives.

A derivative is symbolic until it is evaluated: evaluation asks the
derivative method of its operator parameter for residual expressions over
that parameter's supports and adds each of them as an equality constraint.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from beartype import beartype

from infopt.constraints import EqualTo, ScalarConstraint, add_constraint
from infopt.derivative_methods import AbstractDerivativeMethod
from infopt.errors import InvalidArgument
from infopt.materialize import make_reduced_expr
from infopt.model import InfiniteModel, add_dependency
from infopt.parameters import add_supports, supports
from infopt.parameters import derivative_method as _parameter_derivative_method
from infopt.parameters import has_derivative_constraints as _parameter_has_derivative_constraints
from infopt.refs import GeneralVariableRef
from infopt.types import IndexKind

_ARGUMENT_KINDS = (IndexKind.INFINITE_VARIABLE, IndexKind.DERIVATIVE, IndexKind.MEASURE)


@dataclass
class Derivative:
    """``d(argument)/d(parameter_ref)``."""

    argument: GeneralVariableRef
    parameter_ref: GeneralVariableRef


def build_derivative(argument: GeneralVariableRef, pref: GeneralVariableRef) -> Derivative:
    """
    Validate and build (but do not register) a derivative.

    Raises:
        InvalidArgument: ``argument`` cannot be differentiated, ``pref`` is
            not an independent parameter, or ``argument`` does not depend
            on ``pref``
    """
    if argument.kind not in _ARGUMENT_KINDS:
        raise InvalidArgument(f"Cannot differentiate {argument}: it is not an infinite variable, measure or derivative.")
    if pref.kind != IndexKind.INDEPENDENT_PARAMETER:
        raise InvalidArgument(f"Derivatives are only defined with respect to independent parameters, got {pref}.")
    if pref not in argument.parameter_list():
        raise InvalidArgument(f"{argument} does not depend on {pref}.")
    return Derivative(argument, pref)


def add_derivative(model: InfiniteModel, d: Derivative, name: str = "") -> GeneralVariableRef:
    """Register ``d`` unless the same derivative already exists; return its handle."""
    model.resolve(d.argument)
    model.resolve(d.parameter_ref)
    key = (d.argument, d.parameter_ref)
    if key in model.deriv_lookup:
        return model.handle(model.deriv_lookup[key])
    if not name:
        name = f"∂/∂{d.parameter_ref.name}[{d.argument.name}]"
    dindex = model.register(IndexKind.DERIVATIVE, d, name)
    model.deriv_lookup[key] = dindex
    add_dependency(model.data_object(d.argument.index).derivative_indices, dindex)
    add_dependency(model.data_object(d.parameter_ref.index).derivative_indices, dindex)
    return model.handle(dindex)


@beartype
def deriv(argument: GeneralVariableRef, *prefs: GeneralVariableRef) -> GeneralVariableRef:
    """
    Derivative of ``argument`` with respect to each of ``prefs`` in turn.

    ``deriv(y, t, x)`` is ``d/dx (d/dt y)``.
    """
    if not prefs:
        raise InvalidArgument("At least one parameter is needed to build a derivative.")
    dref = argument
    for pref in prefs:
        dref = add_derivative(argument.model, build_derivative(dref, pref))
    return dref


def _check_derivative(dref: GeneralVariableRef) -> Derivative:
    if dref.kind != IndexKind.DERIVATIVE:
        raise InvalidArgument(f"{dref} is not a derivative.")
    return dref.dispatch().core


@beartype
def derivative_argument(dref: GeneralVariableRef) -> GeneralVariableRef:
    return _check_derivative(dref).argument


@beartype
def operator_parameter(dref: GeneralVariableRef) -> GeneralVariableRef:
    return _check_derivative(dref).parameter_ref


@beartype
def derivative_method(ref: GeneralVariableRef) -> AbstractDerivativeMethod:
    """Method used to evaluate a derivative (or the derivatives of a parameter)."""
    if ref.kind == IndexKind.DERIVATIVE:
        ref = operator_parameter(ref)
    return _parameter_derivative_method(ref)


@beartype
def has_derivative_constraints(ref: GeneralVariableRef) -> bool:
    if ref.kind == IndexKind.DERIVATIVE:
        return bool(ref.dispatch().data.derivative_constraint_indices)
    return _parameter_has_derivative_constraints(ref)


@beartype
def derivative_constraints(dref: GeneralVariableRef) -> list[GeneralVariableRef]:
    _check_derivative(dref)
    return [dref.model.handle(c) for c in dref.dispatch().data.derivative_constraint_indices]


def num_derivatives(model: InfiniteModel) -> int:
    return model.num_entities(IndexKind.DERIVATIVE)


def all_derivatives(model: InfiniteModel) -> list[GeneralVariableRef]:
    return model.entities(IndexKind.DERIVATIVE)


def generate_derivative_supports(pref: GeneralVariableRef, method: AbstractDerivativeMethod) -> np.ndarray:
    """Supports ``method`` would add to ``pref`` (empty for non-generative methods)."""
    return method.generate_supports(supports(pref))


@beartype
def add_derivative_supports(pref: GeneralVariableRef) -> None:
    """
    Add the supports required by the derivative method of ``pref``.

    Does nothing for dependent parameters, non-generative methods, or if
    the supports were already added.
    """
    if pref.kind != IndexKind.INDEPENDENT_PARAMETER:
        return
    core = pref.dispatch().core
    if core.has_derivative_supports or not core.derivative_method.is_generative:
        return
    method = core.derivative_method
    new_supports = generate_derivative_supports(pref, method)
    if len(new_supports):
        add_supports(pref, new_supports, label=method.support_label, check=False)
        core.has_derivative_supports = True


def evaluate_derivative(dref: GeneralVariableRef, method: AbstractDerivativeMethod) -> list:
    """
    Residual expressions of ``dref`` under ``method``.

    Point and reduced variables needed by the residuals are registered in
    the model owning ``dref``.
    """
    d = _check_derivative(dref)
    pref = d.parameter_ref
    if method.is_generative:
        add_derivative_supports(pref)
    core = pref.dispatch().core
    ordered = sorted(core.supports)
    is_internal = [method.support_label in core.supports[s] for s in ordered]

    def deriv_at(value: float):
        return make_reduced_expr(dref, pref, value)

    def arg_at(value: float):
        return make_reduced_expr(d.argument, pref, value)

    return method.residuals(ordered, is_internal, deriv_at, arg_at)


@beartype
def evaluate(dref: GeneralVariableRef) -> None:
    """
    Add the constraints that define derivative ``dref`` on its supports.

    Calling it again is a no-op while the generated constraints exist.
    """
    _check_derivative(dref)
    data = dref.dispatch().data
    if data.derivative_constraint_indices:
        return
    model = dref.model
    pref = data.core.parameter_ref
    exprs = evaluate_derivative(dref, _parameter_derivative_method(pref))
    for expr in exprs:
        cref = add_constraint(model, ScalarConstraint(expr, EqualTo(0.0)))
        model.data_object(cref.index).derivative_index = dref.index
        data.derivative_constraint_indices.append(cref.index)
    pref.dispatch().core.has_derivative_constraints = True


@beartype
def evaluate_all_derivatives(model: InfiniteModel) -> None:
    """Evaluate every derivative in the model."""
    for dref in all_derivatives(model):
        evaluate(dref)
