"""Tests for parameters, supports, variables and the point/reduced variable materializer."""

from __future__ import annotations

import numpy as np
import pytest

from infopt import (
    FiniteDifference,
    InfiniteModel,
    IntervalSet,
    OrthogonalCollocation,
    add_dependent_parameters,
    add_finite_parameter,
    add_hold_variable,
    add_infinite_variable,
    add_parameter,
    add_supports,
    collection_set,
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
from infopt.derivative_methods import FDTechnique
from infopt.errors import DimensionMismatch, DomainError, InvalidArgument
from infopt.materialize import make_reduced_expr, reduce_variable
from infopt.measure_data import DiscreteMeasureData
from infopt.measures import measure
from infopt.parameters import derivative_method
from infopt.types import INTERNAL, MC_SAMPLE, PUBLIC, UNIFORM_GRID, USER_DEFINED, IndexKind
from infopt.variables import (
    eval_supports,
    infinite_variable_ref,
    make_point_variable_ref,
    make_reduced_variable_ref,
    parameter_bounds,
    parameter_values,
)

# ---------------------------------------------------------------------------
# Factory helpers
# ---------------------------------------------------------------------------


def _time_model(num: int = 3) -> tuple[InfiniteModel, object]:
    model = InfiniteModel(name="time", seed=0)
    t = add_parameter(model, IntervalSet(0, 1), "t", num_supports=num)
    return model, t


def _two_parameter_model():
    """Model with y(t, s), both parameters over [0, 1] with supports [0, 1]."""
    model = InfiniteModel(name="ts")
    t = add_parameter(model, IntervalSet(0, 1), "t", supports=[0, 1])
    s = add_parameter(model, IntervalSet(0, 1), "s", supports=[0, 1])
    y = add_infinite_variable(model, [t, s], "y")
    return model, t, s, y


class TestIndependentParameters:
    """Support storage of scalar infinite parameters."""

    def test_user_supports_are_sorted(self) -> None:
        model = InfiniteModel()
        t = add_parameter(model, IntervalSet(0, 2), "t", supports=[2, 0, 1])

        np.testing.assert_allclose(supports(t), [0.0, 1.0, 2.0])
        np.testing.assert_allclose(supports(t, USER_DEFINED), [0.0, 1.0, 2.0])
        assert num_supports(t, UNIFORM_GRID) == 0
        assert has_supports(t)

    def test_uniform_grid(self) -> None:
        _, t = _time_model(3)
        np.testing.assert_allclose(supports(t, UNIFORM_GRID), [0.0, 0.5, 1.0])

    def test_supports_outside_domain(self) -> None:
        model = InfiniteModel()
        with pytest.raises(DomainError):
            add_parameter(model, IntervalSet(0, 1), "t", supports=[0.5, 1.5])
        t = add_parameter(model, IntervalSet(0, 1), "t")
        with pytest.raises(DomainError):
            add_supports(t, [-1.0])

    def test_internal_supports(self) -> None:
        _, t = _time_model(3)
        add_supports(t, [0.25], label=INTERNAL)

        assert has_internal_supports(t)
        assert num_supports(t) == 4
        np.testing.assert_allclose(supports(t, PUBLIC), [0.0, 0.5, 1.0])

        delete_supports(t, label=INTERNAL)
        assert not has_internal_supports(t)
        assert num_supports(t) == 3

    def test_existing_value_gains_label(self) -> None:
        _, t = _time_model(3)
        add_supports(t, [0.5], label=MC_SAMPLE)

        assert num_supports(t) == 3
        np.testing.assert_allclose(supports(t, MC_SAMPLE), [0.5])

        delete_supports(t, label=MC_SAMPLE)
        np.testing.assert_allclose(supports(t), [0.0, 0.5, 1.0])

    def test_delete_all_supports(self) -> None:
        _, t = _time_model(3)
        delete_supports(t)
        assert not has_supports(t)

    def test_supports_are_rounded(self) -> None:
        model = InfiniteModel()
        t = add_parameter(model, IntervalSet(0, 1), "t", sig_digits=3)
        add_supports(t, [0.12345, 0.12349])

        np.testing.assert_allclose(supports(t), [0.123])

    def test_monte_carlo_generation_is_seeded(self) -> None:
        values = []
        for _ in range(2):
            model = InfiniteModel(seed=7)
            t = add_parameter(model, IntervalSet(0, 1), "t")
            generate_and_add_supports(t, IntervalSet(0, 1), MC_SAMPLE, 5)
            values.append(supports(t, MC_SAMPLE))

        assert len(values[0]) == 5
        np.testing.assert_array_equal(values[0], values[1])

    def test_negative_support_count(self) -> None:
        model = InfiniteModel()
        with pytest.raises(InvalidArgument):
            add_parameter(model, IntervalSet(0, 1), "t", num_supports=-1)

    def test_derivative_method(self) -> None:
        _, t = _time_model(3)

        method = derivative_method(t)
        assert isinstance(method, FiniteDifference)
        assert method.technique == FDTechnique.BACKWARD
        assert method.add_boundary_constraint

        set_derivative_method(t, OrthogonalCollocation(3))
        assert derivative_method(t) == OrthogonalCollocation(3)
        assert not has_derivative_supports(t)


class TestDependentParameters:
    """Parameter groups sharing one support set."""

    def _group(self):
        model = InfiniteModel()
        x = add_dependent_parameters(model, collection_set([(0, 1), (0, 2)]), ["x1", "x2"], num_supports=3)
        return model, x

    def test_group_supports(self) -> None:
        _, x = self._group()

        assert supports(x).shape == (2, 3)
        np.testing.assert_allclose(supports(x[1]), [0.0, 1.0, 2.0])
        np.testing.assert_allclose(supports([x[1], x[0]])[0], [0.0, 1.0, 2.0])
        assert infinite_set(x[1]) == IntervalSet(0, 2)

    def test_group_supports_added_together(self) -> None:
        _, x = self._group()
        with pytest.raises(InvalidArgument):
            add_supports(x[0], [0.5])

        add_supports(x, [[0.5], [0.5]])
        assert num_supports(x) == 4

    def test_group_supports_domain(self) -> None:
        _, x = self._group()
        with pytest.raises(DomainError):
            add_supports(x, [[0.5], [3.0]])
        with pytest.raises(DimensionMismatch):
            add_supports(x, [[0.5], [0.5], [0.5]])

    def test_subset_of_group(self) -> None:
        _, x = self._group()
        with pytest.raises(InvalidArgument):
            supports([x[0]])

    def test_name_count_mismatch(self) -> None:
        model = InfiniteModel()
        with pytest.raises(DimensionMismatch):
            add_dependent_parameters(model, collection_set([(0, 1), (0, 2)]), ["x1"])


class TestFiniteParameters:
    def test_value(self) -> None:
        model = InfiniteModel()
        p = add_finite_parameter(model, 2.5, "p")

        assert parameter_value(p) == 2.5
        assert p.kind == IndexKind.FINITE_PARAMETER
        with pytest.raises(DomainError):
            infinite_set(p)


class TestVariables:
    """Infinite, point, reduced and hold variables."""

    def test_infinite_variable_over_group(self) -> None:
        model, t = _time_model()
        x = add_dependent_parameters(model, collection_set([(0, 1), (0, 2)]), ["x1", "x2"])
        y = add_infinite_variable(model, [t, x], "y")

        assert y.parameter_list() == [t, x[0], x[1]]
        assert y.object_numbers() == [0, 1]
        assert y.parameter_numbers() == [0, 1, 2]

        with pytest.raises(InvalidArgument):
            add_infinite_variable(model, [t, [x[0]]], "bad")

    def test_infinite_variable_validation(self) -> None:
        model, t = _time_model()
        z = add_hold_variable(model, "z")

        with pytest.raises(InvalidArgument):
            add_infinite_variable(model, [t, t])
        with pytest.raises(DomainError):
            add_infinite_variable(model, [z])
        with pytest.raises(InvalidArgument):
            add_infinite_variable(model, [])

    def test_point_variable(self) -> None:
        model, t = _time_model()
        T = add_infinite_variable(model, [t], "T")
        p = make_point_variable_ref(model, T, [0.5])

        assert p.name == "T(0.5)"
        assert parameter_values(p) == (0.5,)
        assert infinite_variable_ref(p) == T
        assert p.index in model.data_object(T.index).point_var_indices
        assert p.parameter_list() == []

        with pytest.raises(DimensionMismatch):
            make_point_variable_ref(model, T, [0.5, 0.5])

    def test_reduced_variable(self) -> None:
        model, t, s, y = _two_parameter_model()
        r = make_reduced_variable_ref(model, y, {0: 0.5})

        assert r.name == "y(0.5, s)"
        assert r.parameter_list() == [s]
        assert eval_supports(r) == {0: 0.5}
        assert r.object_numbers() == s.object_numbers()

        with pytest.raises(InvalidArgument):
            make_reduced_variable_ref(model, y, {0: 0.5, 1: 0.5})
        with pytest.raises(DimensionMismatch):
            make_reduced_variable_ref(model, y, {2: 0.5})

    def test_hold_variable_bounds(self) -> None:
        model, t = _time_model()
        z = add_hold_variable(model, "z", {t: IntervalSet(0, 0.5)})

        assert model.has_hold_bounds
        assert parameter_bounds(z) == {t: IntervalSet(0, 0.5)}
        with pytest.raises(DomainError):
            add_hold_variable(model, "w", {t: IntervalSet(0, 5)})


class TestMaterializer:
    """Fixing parameters of infinite variables, derivatives and measures."""

    def test_reduced_then_point_uses_parent_order(self) -> None:
        model, t, s, y = _two_parameter_model()
        r = reduce_variable(y, {s: 0.5})

        assert r.kind == IndexKind.REDUCED_VARIABLE
        assert eval_supports(r) == {1: 0.5}
        assert r.parameter_list() == [t]

        p = reduce_variable(r, {t: 0.25})
        assert p.kind == IndexKind.POINT_VARIABLE
        assert infinite_variable_ref(p) == y
        assert parameter_values(p) == (0.25, 0.5)

    def test_single_parameter_gives_point(self) -> None:
        model, t = _time_model()
        T = add_infinite_variable(model, [t], "T")
        p = make_reduced_expr(T, t, 1.0)

        assert p.kind == IndexKind.POINT_VARIABLE
        assert parameter_values(p) == (1.0,)

    def test_unrelated_fixings_return_same_handle(self) -> None:
        model, t, s, y = _two_parameter_model()
        z = add_hold_variable(model, "z")
        other = add_parameter(model, IntervalSet(0, 1), "u")

        assert reduce_variable(y, {other: 0.5}) == y
        assert reduce_variable(z, {t: 0.5}) == z

    def test_repeated_fixings_are_not_deduplicated(self) -> None:
        model, t = _time_model()
        T = add_infinite_variable(model, [t], "T")

        first = make_reduced_expr(T, t, 0.5)
        second = make_reduced_expr(T, t, 0.5)
        assert first != second
        assert parameter_values(first) == parameter_values(second)

    def test_measure_is_expanded_at_support(self) -> None:
        model, t, s, y = _two_parameter_model()
        mref = measure(y, DiscreteMeasureData(s, [0.5, 0.5], [0, 1]))

        assert mref.parameter_list() == [t]
        expr = make_reduced_expr(mref, t, 0.5)
        points = sorted(parameter_values(v) for v in expr.terms)
        assert points == [(0.5, 0.0), (0.5, 1.0)]
        assert all(c == 0.5 for c in expr.terms.values())
