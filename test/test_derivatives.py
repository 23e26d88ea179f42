"""Tests for derivatives: methods, support generation, evaluation and deletion."""

from __future__ import annotations

import casadi as ca
import numpy as np
import pytest

from infopt import (
    AffExpr,
    EqualTo,
    FDTechnique,
    FiniteDifference,
    InfiniteModel,
    IntervalSet,
    OrthogonalCollocation,
    ScalarConstraint,
    add_constraint,
    add_dependent_parameters,
    add_derivative_supports,
    add_hold_variable,
    add_infinite_variable,
    add_parameter,
    all_derivatives,
    collection_set,
    constraint_object,
    delete_derivative,
    delete_derivative_constraints,
    delete_supports,
    deriv,
    derivative_argument,
    derivative_constraints,
    derivative_method,
    evaluate,
    evaluate_all_derivatives,
    has_derivative_constraints,
    has_derivative_supports,
    has_internal_supports,
    integral,
    num_constraints,
    num_derivatives,
    num_supports,
    num_variables,
    operator_parameter,
    set_derivative_method,
    supports,
)
from infopt.backends.casadi import CasadiBackend
from infopt.derivative_methods import legendre_polynomial, lobatto_internal_nodes
from infopt.derivatives import evaluate_derivative, generate_derivative_supports
from infopt.errors import InsufficientSupports, InvalidArgument
from infopt.expr import all_function_variables, evaluate_expression
from infopt.types import INTERNAL_LOBATTO, PUBLIC, IndexKind
from infopt.variables import infinite_variable_ref, parameter_values

# ---------------------------------------------------------------------------
# Factory helpers
# ---------------------------------------------------------------------------


def _time_model(method=None, points=(0.0, 1.0, 2.0)):
    """Model with T(t) over t in [0, 2] and the derivative dT/dt."""
    model = InfiniteModel(name="derivatives")
    t = add_parameter(model, IntervalSet(0, 2), "t", supports=list(points), derivative_method=method)
    T = add_infinite_variable(model, [t], "T")
    return model, t, T, deriv(T, t)


def _trajectory(expr, T, f, df) -> dict:
    """Value of every point variable of ``expr`` along ``T = f(t)``, ``dT/dt = df(t)``."""
    values = {}
    for v in all_function_variables(expr):
        x = parameter_values(v)[0]
        values[v] = f(x) if infinite_variable_ref(v) == T else df(x)
    return values


def _residuals(model, T, f, df) -> np.ndarray:
    """Constraint residuals of the model evaluated with CasADi along ``T = f(t)``."""
    backend = CasadiBackend(model)
    func = backend.residual_function()
    x = []
    for parent, values in backend.symbols:
        x.append(f(values[0]) if parent == T else df(values[0]))
    return np.array(func(ca.DM(x))).ravel()


class TestDerivativeConstruction:
    """Building derivative entities."""

    def test_deriv(self) -> None:
        model, t, T, d = _time_model()

        assert d.kind == IndexKind.DERIVATIVE
        assert d.name == "∂/∂t[T]"
        assert derivative_argument(d) == T
        assert operator_parameter(d) == t
        assert d.parameter_list() == [t]
        assert num_derivatives(model) == 1

    def test_existing_derivative_is_reused(self) -> None:
        model, t, T, d = _time_model()
        assert deriv(T, t) == d
        assert all_derivatives(model) == [d]

    def test_nested_derivative(self) -> None:
        model, t, T, d = _time_model()
        d2 = deriv(T, t, t)

        assert derivative_argument(d2) == d
        assert d2.name == "∂/∂t[∂/∂t[T]]"
        assert num_derivatives(model) == 2

    def test_invalid_arguments(self) -> None:
        model, t, T, _ = _time_model()
        s = add_parameter(model, IntervalSet(0, 1), "s")
        z = add_hold_variable(model, "z")
        x = add_dependent_parameters(model, collection_set([(0, 1), (0, 1)]), ["x1", "x2"])
        y = add_infinite_variable(model, [x], "y")

        with pytest.raises(InvalidArgument):
            deriv(z, t)
        with pytest.raises(InvalidArgument):
            deriv(T, s)
        with pytest.raises(InvalidArgument):
            deriv(y, x[0])
        with pytest.raises(InvalidArgument):
            deriv(T)

    def test_method_comes_from_parameter(self) -> None:
        _, t, _, d = _time_model(FiniteDifference(FDTechnique.CENTRAL))
        assert derivative_method(d) == FiniteDifference(FDTechnique.CENTRAL)
        assert derivative_method(t) == derivative_method(d)


class TestFiniteDifference:
    """Finite difference residuals."""

    def test_forward_with_boundary(self) -> None:
        model, t, T, d = _time_model(FiniteDifference(FDTechnique.FORWARD))
        evaluate(d)

        crefs = derivative_constraints(d)
        assert len(crefs) == 2
        assert all(constraint_object(c).set == EqualTo(0.0) for c in crefs)

        # the boundary residual sits at the first support
        boundary = constraint_object(crefs[-1]).func
        deriv_points = [
            parameter_values(v) for v in all_function_variables(boundary) if infinite_variable_ref(v) == d
        ]
        assert deriv_points == [(0.0,)]

    def test_backward_boundary_at_last_support(self) -> None:
        _, _, T, d = _time_model()
        evaluate(d)

        boundary = constraint_object(derivative_constraints(d)[-1]).func
        deriv_points = [
            parameter_values(v) for v in all_function_variables(boundary) if infinite_variable_ref(v) == d
        ]
        assert deriv_points == [(2.0,)]

    @pytest.mark.parametrize(
        "method, count",
        [
            (FiniteDifference(FDTechnique.FORWARD), 3),
            (FiniteDifference(FDTechnique.BACKWARD), 3),
            (FiniteDifference(FDTechnique.CENTRAL), 2),
            (FiniteDifference(FDTechnique.BACKWARD, add_boundary_constraint=False), 2),
        ],
    )
    def test_residual_count(self, method, count) -> None:
        _, _, _, d = _time_model(method, points=(0.0, 0.5, 1.0, 2.0))
        evaluate(d)
        assert len(derivative_constraints(d)) == count

    @pytest.mark.parametrize("technique", list(FDTechnique))
    def test_linear_trajectory_is_exact(self, technique) -> None:
        _, _, T, d = _time_model(FiniteDifference(technique), points=(0.0, 0.3, 1.0, 2.0))
        evaluate(d)

        for cref in derivative_constraints(d):
            func = constraint_object(cref).func
            values = _trajectory(func, T, lambda x: 3 * x + 1, lambda x: 3.0)
            assert evaluate_expression(func, values) == pytest.approx(0.0, abs=1e-12)

    def test_insufficient_supports(self) -> None:
        model, _, _, d = _time_model(points=(0.0,))
        with pytest.raises(InsufficientSupports):
            evaluate(d)
        assert num_constraints(model) == 0

    def test_evaluate_derivative_adds_no_constraints(self) -> None:
        model, t, _, d = _time_model()
        exprs = evaluate_derivative(d, FiniteDifference(FDTechnique.CENTRAL))

        assert len(exprs) == 1
        assert num_constraints(model) == 0
        assert not has_derivative_constraints(d)


class TestCollocation:
    """Orthogonal collocation over Gauss-Lobatto nodes."""

    def test_legendre_polynomial(self) -> None:
        np.testing.assert_allclose(legendre_polynomial(2).coef, [-0.5, 0.0, 1.5])

    def test_lobatto_nodes(self) -> None:
        assert len(lobatto_internal_nodes(0)) == 0
        np.testing.assert_allclose(lobatto_internal_nodes(1), [0.0], atol=1e-12)
        np.testing.assert_allclose(lobatto_internal_nodes(2), [-1 / np.sqrt(5), 1 / np.sqrt(5)])

    def test_invalid_configuration(self) -> None:
        with pytest.raises(InvalidArgument):
            OrthogonalCollocation(1)
        with pytest.raises(InvalidArgument):
            OrthogonalCollocation(3, technique="radau")

    def test_generate_supports(self) -> None:
        method = OrthogonalCollocation(3)
        assert method.num_internal_nodes == 1
        np.testing.assert_allclose(method.generate_supports([0.0, 1.0, 2.0]), [0.5, 1.5])
        with pytest.raises(InsufficientSupports):
            method.generate_supports([0.0])

    def test_non_generative_method(self) -> None:
        _, t, _, _ = _time_model()
        assert len(generate_derivative_supports(t, FiniteDifference())) == 0

        add_derivative_supports(t)
        assert not has_derivative_supports(t)
        assert num_supports(t) == 3

    def test_add_derivative_supports_once(self) -> None:
        _, t, _, _ = _time_model(OrthogonalCollocation(3))
        add_derivative_supports(t)
        add_derivative_supports(t)

        assert has_derivative_supports(t)
        assert has_internal_supports(t)
        np.testing.assert_allclose(supports(t, INTERNAL_LOBATTO), [0.5, 1.5])
        np.testing.assert_allclose(supports(t, PUBLIC), [0.0, 1.0, 2.0])

    def test_dependent_parameters_are_ignored(self) -> None:
        model = InfiniteModel()
        x = add_dependent_parameters(model, collection_set([(0, 1), (0, 1)]), ["x1", "x2"], num_supports=2)
        add_derivative_supports(x[0])
        assert num_supports(x) == 2

    def test_quadratic_trajectory_is_exact(self) -> None:
        model, t, T, d = _time_model(OrthogonalCollocation(3))
        evaluate(d)

        assert len(derivative_constraints(d)) == 4
        residuals = _residuals(model, T, lambda x: x**2, lambda x: 2 * x)
        assert len(residuals) == 4
        np.testing.assert_allclose(residuals, 0.0, atol=1e-9)

    def test_cubic_trajectory_is_exact(self) -> None:
        model, t, T, d = _time_model(OrthogonalCollocation(4))
        evaluate(d)

        assert num_supports(t) == 7
        residuals = _residuals(model, T, lambda x: x**3 - x, lambda x: 3 * x**2 - 1)
        assert len(residuals) == 6
        np.testing.assert_allclose(residuals, 0.0, atol=1e-9)


class TestEvaluation:
    """Evaluation state and its interaction with supports and methods."""

    def test_evaluate_is_idempotent(self) -> None:
        model, t, _, d = _time_model()
        evaluate(d)
        evaluate(d)

        assert num_constraints(model) == 2
        assert has_derivative_constraints(d)
        assert has_derivative_constraints(t)

    def test_evaluate_all_derivatives(self) -> None:
        model, t, T, d = _time_model()
        Y = add_infinite_variable(model, [t], "Y")
        dy = deriv(Y, t)
        evaluate_all_derivatives(model)

        assert len(derivative_constraints(d)) == 2
        assert len(derivative_constraints(dy)) == 2

    def test_delete_derivative_constraints(self) -> None:
        model, t, _, d = _time_model()
        evaluate(d)
        delete_derivative_constraints(d)

        assert num_constraints(model) == 0
        assert not has_derivative_constraints(t)

        evaluate(d)
        assert num_constraints(model) == 2

    def test_deleting_supports_deletes_constraints(self) -> None:
        model, t, _, d = _time_model()
        evaluate(d)

        with pytest.warns(UserWarning):
            delete_supports(t)
        assert num_constraints(model) == 0
        assert derivative_constraints(d) == []

    def test_changing_method_resets_evaluation(self) -> None:
        model, t, _, d = _time_model(OrthogonalCollocation(3))
        evaluate(d)
        assert num_supports(t) == 5

        with pytest.warns(UserWarning):
            set_derivative_method(t, FiniteDifference())
        assert num_constraints(model) == 0
        np.testing.assert_allclose(supports(t), [0.0, 1.0, 2.0])
        assert not has_derivative_supports(t)

    def test_derivative_of_measure(self) -> None:
        model, t, _, _ = _time_model(points=(0.0, 1.0))
        s = add_parameter(model, IntervalSet(0, 1), "s")
        y = add_infinite_variable(model, [t, s], "y")
        inner = integral(y, s, num_supports=2)
        d = deriv(inner, t)
        evaluate(d)

        (cref,) = derivative_constraints(d)
        vrefs = all_function_variables(constraint_object(cref).func)
        assert len(vrefs) == 5
        assert all(v.kind == IndexKind.POINT_VARIABLE for v in vrefs)


class TestDerivativeDeletion:
    """Deleting derivatives cascades through everything built on them."""

    def test_delete_evaluated_derivative(self) -> None:
        model, t, T, d = _time_model(FiniteDifference(FDTechnique.FORWARD))
        evaluate(d)
        assert num_variables(model, IndexKind.POINT_VARIABLE) == 6

        delete_derivative(model, d)

        assert not d.is_valid()
        assert num_constraints(model) == 0
        assert num_variables(model, IndexKind.POINT_VARIABLE) == 4
        assert (T, t) not in model.deriv_lookup
        assert model.data_object(T.index).derivative_indices == []
        assert deriv(T, t) != d

    def test_delete_cascades_to_nested_derivative(self) -> None:
        model, t, T, d = _time_model()
        d2 = deriv(T, t, t)

        delete_derivative(model, d)

        assert not d2.is_valid()
        assert num_derivatives(model) == 0

    def test_delete_rewrites_constraints(self) -> None:
        model, t, T, d = _time_model()
        z = add_hold_variable(model, "z")
        cref = add_constraint(model, ScalarConstraint(d + z, EqualTo(0.0)))

        delete_derivative(model, d)

        assert constraint_object(cref).func == AffExpr(0.0, {z: 1.0})

    def test_delete_requires_derivative(self) -> None:
        model, _, T, _ = _time_model()
        with pytest.raises(InvalidArgument):
            delete_derivative(model, T)
