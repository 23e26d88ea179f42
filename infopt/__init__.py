"""
infopt - Infinite-dimensional optimization modelling core

Models with infinite parameters (time, space, uncertainty), variables that
are functions of them, integral/expectation measures and derivatives, all
discretized over labelled supports into finite algebra.
"""

__version__ = "0.1.0"

from infopt.constraints import (
    EqualTo,
    GreaterThan,
    LessThan,
    ScalarConstraint,
    add_constraint,
    all_constraints,
    constraint_object,
    delete_constraint,
    delete_derivative_constraints,
    num_constraints,
    objective_function,
    objective_sense,
    set_objective,
)
from infopt.deletion import delete_derivative, delete_measure, delete_point_variable, delete_reduced_variable
from infopt.derivative_methods import (
    CollocationTechnique,
    FDTechnique,
    FiniteDifference,
    OrthogonalCollocation,
)
from infopt.derivatives import (
    add_derivative_supports,
    all_derivatives,
    deriv,
    derivative_argument,
    derivative_constraints,
    derivative_method,
    evaluate,
    evaluate_all_derivatives,
    has_derivative_constraints,
    num_derivatives,
    operator_parameter,
)
from infopt.errors import (
    ConstraintViolation,
    DimensionMismatch,
    DomainError,
    InfOptError,
    InsufficientSupports,
    InvalidArgument,
    InvalidReference,
)
from infopt.expansion import expand, expand_all_measures
from infopt.expr import AffExpr, QuadExpr
from infopt.measure_data import (
    DiscreteMeasureData,
    FunctionalDiscreteMeasureData,
    default_weight,
    expect_data,
    integral_data,
)
from infopt.measures import (
    all_measures,
    expect,
    integral,
    is_analytic,
    is_used,
    measure,
    measure_data,
    measure_function,
    measure_parameter_refs,
    num_measures,
    used_by_constraint,
    used_by_derivative,
    used_by_measure,
    used_by_objective,
)
from infopt.model import InfiniteModel, ObjectiveSense
from infopt.parameters import (
    add_dependent_parameters,
    add_finite_parameter,
    add_parameter,
    add_supports,
    delete_supports,
    generate_and_add_supports,
    has_derivative_supports,
    has_internal_supports,
    has_supports,
    infinite_set,
    num_supports,
    parameter_value,
    set_derivative_method,
    supports,
)
from infopt.refs import GeneralVariableRef
from infopt.sets import CollectionSet, IntervalSet, collection_set
from infopt.types import (
    ALL,
    INTERNAL,
    INTERNAL_LOBATTO,
    MC_SAMPLE,
    PUBLIC,
    UNIFORM_GRID,
    USER_DEFINED,
    IndexKind,
    SupportLabel,
    generate_unique_label,
)
from infopt.variables import (
    add_hold_variable,
    add_infinite_variable,
    all_variables,
    eval_supports,
    infinite_variable_ref,
    num_variables,
    parameter_bounds,
    parameter_values,
)

__all__ = [
    "__version__",
    # model
    "InfiniteModel",
    "ObjectiveSense",
    "GeneralVariableRef",
    "IndexKind",
    # sets and labels
    "IntervalSet",
    "CollectionSet",
    "collection_set",
    "SupportLabel",
    "ALL",
    "PUBLIC",
    "USER_DEFINED",
    "UNIFORM_GRID",
    "MC_SAMPLE",
    "INTERNAL",
    "INTERNAL_LOBATTO",
    "generate_unique_label",
    # expressions
    "AffExpr",
    "QuadExpr",
    # parameters
    "add_parameter",
    "add_dependent_parameters",
    "add_finite_parameter",
    "parameter_value",
    "infinite_set",
    "supports",
    "num_supports",
    "has_supports",
    "add_supports",
    "delete_supports",
    "generate_and_add_supports",
    "set_derivative_method",
    "has_derivative_supports",
    "has_internal_supports",
    # variables
    "add_infinite_variable",
    "add_hold_variable",
    "parameter_bounds",
    "infinite_variable_ref",
    "parameter_values",
    "eval_supports",
    "num_variables",
    "all_variables",
    # measures
    "DiscreteMeasureData",
    "FunctionalDiscreteMeasureData",
    "default_weight",
    "integral_data",
    "expect_data",
    "measure",
    "integral",
    "expect",
    "measure_function",
    "measure_data",
    "is_analytic",
    "measure_parameter_refs",
    "num_measures",
    "all_measures",
    "used_by_measure",
    "used_by_constraint",
    "used_by_objective",
    "used_by_derivative",
    "is_used",
    "expand",
    "expand_all_measures",
    # derivatives
    "FDTechnique",
    "CollocationTechnique",
    "FiniteDifference",
    "OrthogonalCollocation",
    "deriv",
    "derivative_argument",
    "operator_parameter",
    "derivative_method",
    "derivative_constraints",
    "has_derivative_constraints",
    "num_derivatives",
    "all_derivatives",
    "add_derivative_supports",
    "evaluate",
    "evaluate_all_derivatives",
    # constraints and objective
    "EqualTo",
    "GreaterThan",
    "LessThan",
    "ScalarConstraint",
    "add_constraint",
    "constraint_object",
    "delete_constraint",
    "delete_derivative_constraints",
    "num_constraints",
    "all_constraints",
    "set_objective",
    "objective_function",
    "objective_sense",
    # deletion
    "delete_measure",
    "delete_derivative",
    "delete_point_variable",
    "delete_reduced_variable",
    # errors
    "InfOptError",
    "InvalidReference",
    "DimensionMismatch",
    "DomainError",
    "InvalidArgument",
    "InsufficientSupports",
    "ConstraintViolation",
]
