"""
Scalar constraints and the objective.

Constraints are registered like any other entity. Adding or rewriting a
constraint keeps the ``constraint_indices`` back references of every
variable in its function up to date; the objective does the same with the
``in_objective`` flag.
"""

from __future__ import annotations

import numbers
from dataclasses import dataclass
from typing import Union

from beartype import beartype

from infopt.errors import InvalidArgument
from infopt.expr import AffExpr, all_function_variables, copy_expression, is_expression
from infopt.model import InfiniteModel, ObjectiveSense, add_dependency, remove_dependency
from infopt.refs import GeneralVariableRef
from infopt.types import IndexKind


@dataclass(frozen=True)
class EqualTo:
    value: float = 0.0

    def __str__(self) -> str:
        return f"= {self.value:g}"


@dataclass(frozen=True)
class GreaterThan:
    value: float = 0.0

    def __str__(self) -> str:
        return f">= {self.value:g}"


@dataclass(frozen=True)
class LessThan:
    value: float = 0.0

    def __str__(self) -> str:
        return f"<= {self.value:g}"


ScalarSet = Union[EqualTo, GreaterThan, LessThan]


@dataclass
class ScalarConstraint:
    """``func`` in ``set``; ``func`` is any expression over model handles."""

    func: object
    set: ScalarSet

    def __post_init__(self):
        if not is_expression(self.func):
            raise InvalidArgument(f"Constraint function must be an expression, got {type(self.func).__name__}.")

    def __str__(self) -> str:
        return f"{self.func} {self.set}"


def _check_variables(model: InfiniteModel, func) -> list:
    vrefs = all_function_variables(func)
    for vref in vrefs:
        model.resolve(vref)
    return vrefs


@beartype
def add_constraint(model: InfiniteModel, constr: ScalarConstraint, name: str = "") -> GeneralVariableRef:
    """Register ``constr`` and return its handle."""
    vrefs = _check_variables(model, constr.func)
    cindex = model.register(IndexKind.CONSTRAINT, constr, name)
    for vref in vrefs:
        add_dependency(model.data_object(vref.index).constraint_indices, cindex)
    return model.handle(cindex)


def _check_constraint(cref: GeneralVariableRef):
    if cref.kind != IndexKind.CONSTRAINT:
        raise InvalidArgument(f"{cref} is not a constraint.")
    return cref.dispatch()


@beartype
def constraint_object(cref: GeneralVariableRef) -> ScalarConstraint:
    return _check_constraint(cref).core


def set_constraint_function(cref: GeneralVariableRef, func) -> None:
    """Replace the function of ``cref`` and move the back references with it."""
    dref = _check_constraint(cref)
    model = cref.model
    new_vrefs = _check_variables(model, func)
    for vref in all_function_variables(dref.core.func):
        if model.is_valid(vref):
            remove_dependency(model.data_object(vref.index).constraint_indices, cref.index)
    for vref in new_vrefs:
        add_dependency(model.data_object(vref.index).constraint_indices, cref.index)
    dref.data.core = ScalarConstraint(func, dref.core.set)


@beartype
def delete_constraint(cref: GeneralVariableRef) -> None:
    """Remove ``cref`` and every back reference to it."""
    dref = _check_constraint(cref)
    model = cref.model
    for vref in all_function_variables(dref.core.func):
        if model.is_valid(vref):
            remove_dependency(model.data_object(vref.index).constraint_indices, cref.index)
    dindex = dref.data.derivative_index
    if dindex is not None and model.is_valid(model.handle(dindex)):
        remove_dependency(model.data_object(dindex).derivative_constraint_indices, cref.index)
    model.delete_entity(cref)


def num_constraints(model: InfiniteModel) -> int:
    return model.num_entities(IndexKind.CONSTRAINT)


def all_constraints(model: InfiniteModel) -> list[GeneralVariableRef]:
    return model.entities(IndexKind.CONSTRAINT)


@beartype
def set_objective(model: InfiniteModel, sense: ObjectiveSense, func=0.0) -> None:
    """Set the objective sense and function, updating the ``in_objective`` flags."""
    vrefs = _check_variables(model, func)
    for vref in all_function_variables(model.objective_function):
        if model.is_valid(vref):
            model.data_object(vref.index).in_objective = False
    if isinstance(func, numbers.Real):
        func = AffExpr(func)
    model.objective_function = copy_expression(func)
    model.objective_sense = sense
    for vref in vrefs:
        model.data_object(vref.index).in_objective = True


def objective_function(model: InfiniteModel):
    return model.objective_function


def objective_sense(model: InfiniteModel) -> ObjectiveSense:
    return model.objective_sense


@beartype
def delete_derivative_constraints(dref: GeneralVariableRef) -> None:
    """Delete the constraints generated by evaluating derivative ``dref``."""
    if dref.kind != IndexKind.DERIVATIVE:
        raise InvalidArgument(f"{dref} is not a derivative.")
    model = dref.model
    data = dref.dispatch().data
    for cindex in list(data.derivative_constraint_indices):
        delete_constraint(model.handle(cindex))
    data.derivative_constraint_indices.clear()
    pref = data.core.parameter_ref
    param_data = model.data_object(pref.index)
    param_data.core.has_derivative_constraints = any(
        model.data_object(d).derivative_constraint_indices
        for d in param_data.derivative_indices
        if model.is_valid(model.handle(d))
    )
