"""
CasADi backend.

Converts the finite algebra of a discretized model to CasADi expressions:
- point variables and hold variables become decision symbols
- finite parameters become constants
- constraints become residuals ``func - rhs``

Infinite variables, reduced variables, measures, derivatives and infinite
parameters have no finite meaning; expand measures and evaluate
derivatives before compiling.
"""

import numbers
from typing import Optional, Union

import casadi as ca

from infopt.backends.base import Backend
from infopt.constraints import all_constraints, constraint_object
from infopt.errors import InvalidArgument
from infopt.expr import AffExpr, QuadExpr, all_function_variables
from infopt.model import InfiniteModel, ObjectiveSense
from infopt.refs import GeneralVariableRef
from infopt.types import IndexKind

_FINITE_KINDS = (IndexKind.POINT_VARIABLE, IndexKind.HOLD_VARIABLE, IndexKind.FINITE_PARAMETER)


class CasadiBackend(Backend):
    """
    CasADi backend for the discretized model.

    Point variables are keyed by (parent, parameter values), so repeated
    evaluations of a parent at the same supports share one symbol.

    Args:
        model: The model to compile
        sym_type: Type of CasADi symbols to use - 'SX' (scalar, default) or 'MX' (matrix)
    """

    def __init__(self, model: InfiniteModel, sym_type: str = "SX") -> None:
        super(CasadiBackend, self).__init__(model)

        if sym_type not in ["SX", "MX"]:
            raise ValueError(f"sym_type must be 'SX' or 'MX', got '{sym_type}'")

        self.sym_type = sym_type
        self.sym_class: type[Union[ca.SX, ca.MX]] = ca.SX if sym_type == "SX" else ca.MX

        # Decision symbols in creation order
        self.symbols: dict[object, Union[ca.SX, ca.MX]] = {}

        # Compiled residuals
        self.residuals: list[Union[ca.SX, ca.MX]] = []
        self.residual_names: list[str] = []
        self.f_residual: Optional[ca.Function] = None

    def _symbol_key(self, vref: GeneralVariableRef):
        if vref.kind == IndexKind.POINT_VARIABLE:
            core = vref.dispatch().core
            return (core.infinite_variable_ref, core.parameter_values)
        return vref

    def _convert_ref(self, vref: GeneralVariableRef) -> Union[ca.SX, ca.MX]:
        if vref.kind == IndexKind.FINITE_PARAMETER:
            return self.sym_class(vref.dispatch().core.value)
        if vref.kind not in _FINITE_KINDS:
            raise InvalidArgument(
                f"Cannot convert {vref} ({vref.kind.name.lower()}): "
                "expand measures and evaluate derivatives first."
            )
        key = self._symbol_key(vref)
        if key not in self.symbols:
            self.symbols[key] = self.sym_class.sym(vref.name or f"x{len(self.symbols)}")
        return self.symbols[key]

    def to_backend(self, expr) -> Union[ca.SX, ca.MX]:
        """Convert a number, handle or expression to a CasADi expression."""
        if isinstance(expr, numbers.Real):
            return self.sym_class(float(expr))

        elif isinstance(expr, GeneralVariableRef):
            return self._convert_ref(expr)

        elif isinstance(expr, AffExpr):
            result = self.sym_class(expr.constant)
            for vref, coef in expr.terms.items():
                result = result + coef * self._convert_ref(vref)
            return result

        elif isinstance(expr, QuadExpr):
            result = self.to_backend(expr.aff)
            for pair, coef in expr.terms.items():
                result = result + coef * self._convert_ref(pair.a) * self._convert_ref(pair.b)
            return result

        raise TypeError(f"Unsupported expression type {type(expr).__name__}.")

    to_casadi = to_backend

    @staticmethod
    def is_finite(expr) -> bool:
        """True if every handle in ``expr`` can be converted."""
        return all(v.kind in _FINITE_KINDS for v in all_function_variables(expr))

    def compile(self) -> None:
        """Convert every finite constraint to a residual and build ``f_residual``."""
        self.residuals = []
        self.residual_names = []
        for cref in all_constraints(self.model):
            constr = constraint_object(cref)
            if not self.is_finite(constr.func):
                continue
            self.residuals.append(self.to_backend(constr.func) - constr.set.value)
            self.residual_names.append(cref.name)
        self.f_residual = ca.Function(
            "residuals",
            [self.symbol_vector()],
            [ca.vertcat(*self.residuals) if self.residuals else self.sym_class(0, 1)],
            ["x"],
            ["r"],
        )
        self._compiled = True

    def symbol_vector(self) -> Union[ca.SX, ca.MX]:
        if not self.symbols:
            return self.sym_class(0, 1)
        return ca.vertcat(*self.symbols.values())

    def constraint_residuals(self) -> list[Union[ca.SX, ca.MX]]:
        if not self._compiled:
            self.compile()
        return list(self.residuals)

    def residual_function(self) -> ca.Function:
        """Function mapping the symbol vector ``x`` to the residual vector ``r``."""
        if not self._compiled:
            self.compile()
        return self.f_residual

    def objective(self) -> Union[ca.SX, ca.MX]:
        """Objective as a minimization target (negated for MAX)."""
        func = self.to_backend(self.model.objective_function)
        if self.model.objective_sense == ObjectiveSense.MAX:
            return -func
        return func
