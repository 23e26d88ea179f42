"""
Derivative discretization methods.

A method turns the sorted supports of an operator parameter into residual
expressions ``lhs - rhs`` that approximate a first order derivative. The
methods here are pure: they receive callables that evaluate the derivative
and its argument at a support value and never touch a model directly.

Methods:
- FiniteDifference: forward, central or backward differences between
  consecutive supports (non-generative)
- OrthogonalCollocation: local polynomial collocation over Gauss-Lobatto
  nodes placed inside every support interval (generative)
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum, auto
from collections.abc import Callable, Sequence

import numpy as np
from numpy.polynomial import Polynomial

from infopt.errors import InsufficientSupports, InvalidArgument
from infopt.expr import AffExpr, add_to_expression
from infopt.types import INTERNAL, INTERNAL_LOBATTO, SupportLabel


class FDTechnique(Enum):
    """Finite difference stencil."""

    FORWARD = auto()
    CENTRAL = auto()
    BACKWARD = auto()


class CollocationTechnique(Enum):
    """Node basis of orthogonal collocation."""

    LOBATTO = auto()  # Roots of the derivative of a Legendre polynomial


class AbstractDerivativeMethod(ABC):
    """
    Interface of a derivative discretization method.

    Generative methods add their own supports to the operator parameter
    before evaluation; they report them through ``generate_supports`` and
    tag them with ``support_label``.
    """

    is_generative = False

    @property
    def support_label(self) -> SupportLabel:
        return INTERNAL

    def generate_supports(self, ordered_supports: Sequence[float]) -> np.ndarray:
        """Extra supports needed by this method (empty for non-generative methods)."""
        return np.array([], dtype=float)

    @abstractmethod
    def residuals(
        self,
        supports: Sequence[float],
        is_internal: Sequence[bool],
        deriv_at: Callable,
        arg_at: Callable,
    ) -> list:
        """
        Build the residual expressions.

        Args:
            supports: All supports of the operator parameter, sorted ascending
            is_internal: Per support, whether it carries this method's label
            deriv_at: Returns the derivative evaluated at a support value
            arg_at: Returns the derivative argument evaluated at a support value

        Returns:
            List of expressions, each to be constrained to zero
        """


def _check_num_supports(supports: Sequence[float]) -> None:
    if len(supports) <= 1:
        raise InsufficientSupports("At least 2 supports are needed for derivative evaluation.")


@dataclass(frozen=True)
class FiniteDifference(AbstractDerivativeMethod):
    """
    Finite difference between consecutive supports.

    With ``n`` supports this produces ``n - 2`` interior residuals plus one
    boundary residual when ``add_boundary_constraint`` is set and the
    technique is forward (first support) or backward (last support).
    """

    technique: FDTechnique = FDTechnique.BACKWARD
    add_boundary_constraint: bool = True

    def __post_init__(self):
        if not isinstance(self.technique, FDTechnique):
            raise InvalidArgument(f"Unsupported finite difference technique {self.technique!r}.")

    def residuals(self, supports, is_internal, deriv_at, arg_at) -> list:
        _check_num_supports(supports)
        n = len(supports)
        exprs = [
            self._difference(i, supports, deriv_at, arg_at, self.technique) for i in range(1, n - 1)
        ]
        if self.add_boundary_constraint and self.technique == FDTechnique.FORWARD:
            exprs.append(self._difference(0, supports, deriv_at, arg_at, FDTechnique.FORWARD))
        elif self.add_boundary_constraint and self.technique == FDTechnique.BACKWARD:
            exprs.append(self._difference(n - 1, supports, deriv_at, arg_at, FDTechnique.BACKWARD))
        return exprs

    @staticmethod
    def _difference(i, supports, deriv_at, arg_at, technique: FDTechnique):
        curr = float(supports[i])
        if technique == FDTechnique.FORWARD:
            nxt = float(supports[i + 1])
            return (nxt - curr) * deriv_at(curr) - arg_at(nxt) + arg_at(curr)
        elif technique == FDTechnique.CENTRAL:
            prev = float(supports[i - 1])
            nxt = float(supports[i + 1])
            return (nxt - prev) * deriv_at(curr) - arg_at(nxt) + arg_at(prev)
        prev = float(supports[i - 1])
        return (curr - prev) * deriv_at(curr) - arg_at(curr) + arg_at(prev)


def legendre_polynomial(n: int) -> Polynomial:
    """Legendre polynomial of degree ``n`` from its binomial expansion."""
    x_minus = Polynomial([-1.0, 1.0])
    x_plus = Polynomial([1.0, 1.0])
    total = Polynomial([0.0])
    for k in range(n + 1):
        total = total + math.comb(n, k) ** 2 * x_minus ** (n - k) * x_plus**k
    return total / 2**n


def lobatto_internal_nodes(n: int) -> np.ndarray:
    """The ``n`` interior Gauss-Lobatto nodes on ``[-1, 1]``, ascending."""
    if n == 0:
        return np.array([], dtype=float)
    roots = legendre_polynomial(n + 1).deriv().roots()
    return np.sort(np.real(roots))


@dataclass(frozen=True)
class OrthogonalCollocation(AbstractDerivativeMethod):
    """
    Orthogonal collocation over Gauss-Lobatto nodes.

    ``num_nodes`` counts both interval endpoints, so every support interval
    receives ``num_nodes - 2`` internal nodes.
    """

    num_nodes: int = 3
    technique: CollocationTechnique = CollocationTechnique.LOBATTO

    is_generative = True

    def __post_init__(self):
        if self.num_nodes < 2:
            raise InvalidArgument("Orthogonal collocation needs at least 2 nodes per interval.")
        if self.technique != CollocationTechnique.LOBATTO:
            raise InvalidArgument(f"Undefined orthogonal collocation technique {self.technique!r}.")

    @property
    def num_internal_nodes(self) -> int:
        return self.num_nodes - 2

    @property
    def support_label(self) -> SupportLabel:
        return INTERNAL_LOBATTO

    def generate_supports(self, ordered_supports) -> np.ndarray:
        _check_num_supports(ordered_supports)
        basis = lobatto_internal_nodes(self.num_internal_nodes)
        supports = np.asarray(ordered_supports, dtype=float)
        nodes = [(ub - lb) / 2 * basis + (ub + lb) / 2 for lb, ub in zip(supports[:-1], supports[1:])]
        return np.concatenate(nodes) if nodes else np.array([], dtype=float)

    def residuals(self, supports, is_internal, deriv_at, arg_at) -> list:
        _check_num_supports(supports)
        supports = np.asarray(supports, dtype=float)
        bounds = [i for i, internal in enumerate(is_internal) if not internal]
        exprs = []
        for start, stop in zip(bounds[:-1], bounds[1:]):
            lb = supports[start]
            points = supports[start + 1 : stop + 1]
            nodes = points - lb
            powers = np.arange(len(nodes))[:, None]
            # transposed derivative-of-monomial and monomial matrices
            m1t = (powers + 1) * nodes[None, :] ** powers
            m2t = nodes[None, :] ** (powers + 1)
            minvt = np.linalg.solve(m1t, m2t)
            for j in range(len(nodes)):
                expr = AffExpr()
                for k in range(len(nodes)):
                    expr = add_to_expression(expr, minvt[k, j], deriv_at(float(points[k])))
                expr = add_to_expression(expr, -1.0, arg_at(float(points[j])))
                expr = add_to_expression(expr, 1.0, arg_at(float(lb)))
                exprs.append(expr)
        return exprs
