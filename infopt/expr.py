"""
Algebraic expressions over variable handles.

Expressions are a closed set of variants:
- a number (constant)
- a handle (``AbstractVariableRef`` subclass)
- ``AffExpr``: constant + sum of coefficient * handle
- ``QuadExpr``: ``AffExpr`` + sum of coefficient * handle * handle

Handles and expressions support ``+``, ``-``, ``*`` (up to degree two) and
division by numbers. The helpers at the bottom of the module implement the
depth-first visitors used by measures and derivatives.
"""

from __future__ import annotations

import numbers
from collections.abc import Callable, Mapping
from typing import Union


class _ExprOps:
    """Arithmetic operators shared by handles and expressions."""

    __slots__ = ()

    # make numpy scalars defer to the reflected operators below
    __array_ufunc__ = None

    def __add__(self, other):
        if not is_expression(other):
            return NotImplemented
        return add(self, other)

    def __radd__(self, other):
        if not is_expression(other):
            return NotImplemented
        return add(other, self)

    def __sub__(self, other):
        if not is_expression(other):
            return NotImplemented
        return add(self, scale(other, -1.0))

    def __rsub__(self, other):
        if not is_expression(other):
            return NotImplemented
        return add(other, scale(self, -1.0))

    def __mul__(self, other):
        if not is_expression(other):
            return NotImplemented
        return multiply(self, other)

    def __rmul__(self, other):
        if not is_expression(other):
            return NotImplemented
        return multiply(other, self)

    def __truediv__(self, other):
        if not isinstance(other, numbers.Real):
            return NotImplemented
        return scale(self, 1.0 / float(other))

    def __neg__(self):
        return scale(self, -1.0)

    def __pos__(self):
        return self


class AbstractVariableRef(_ExprOps):
    """Base class of every variable/parameter handle."""

    __slots__ = ()


class UnorderedPair:
    """Key of a quadratic term; ``(a, b)`` and ``(b, a)`` are the same key."""

    __slots__ = ("a", "b")

    def __init__(self, a: AbstractVariableRef, b: AbstractVariableRef):
        self.a = a
        self.b = b

    def __eq__(self, other) -> bool:
        if not isinstance(other, UnorderedPair):
            return NotImplemented
        return (self.a == other.a and self.b == other.b) or (
            self.a == other.b and self.b == other.a
        )

    def __hash__(self) -> int:
        return hash(self.a) ^ hash(self.b)

    def __repr__(self) -> str:
        return f"{self.a}*{self.b}"


class AffExpr(_ExprOps):
    """Affine expression ``constant + sum(coef * var)``."""

    __slots__ = ("constant", "terms")

    def __init__(self, constant=0.0, terms=None):
        self.constant = float(constant)
        self.terms: dict[AbstractVariableRef, float] = dict(terms) if terms else {}

    def copy(self) -> "AffExpr":
        return AffExpr(self.constant, self.terms)

    def coefficient(self, vref: AbstractVariableRef) -> float:
        return self.terms.get(vref, 0.0)

    def __eq__(self, other) -> bool:
        if not isinstance(other, AffExpr):
            return NotImplemented
        return self.constant == other.constant and self.terms == other.terms

    __hash__ = None

    def __repr__(self) -> str:
        parts = [f"{c:g} {v}" for v, c in self.terms.items()]
        if self.constant != 0.0 or not parts:
            parts.append(f"{self.constant:g}")
        return " + ".join(parts)


class QuadExpr(_ExprOps):
    """Quadratic expression ``aff + sum(coef * var_a * var_b)``."""

    __slots__ = ("aff", "terms")

    def __init__(self, aff=None, terms=None):
        self.aff = aff.copy() if aff is not None else AffExpr()
        self.terms: dict[UnorderedPair, float] = dict(terms) if terms else {}

    def copy(self) -> "QuadExpr":
        return QuadExpr(self.aff, self.terms)

    def coefficient(self, a: AbstractVariableRef, b: AbstractVariableRef) -> float:
        return self.terms.get(UnorderedPair(a, b), 0.0)

    def __eq__(self, other) -> bool:
        if not isinstance(other, QuadExpr):
            return NotImplemented
        return self.aff == other.aff and self.terms == other.terms

    __hash__ = None

    def __repr__(self) -> str:
        parts = [f"{c:g} {p}" for p, c in self.terms.items()]
        if self.aff.terms or self.aff.constant != 0.0 or not parts:
            parts.append(repr(self.aff))
        return " + ".join(parts)


Expression = Union[numbers.Real, AbstractVariableRef, AffExpr, QuadExpr]


def is_expression(value) -> bool:
    """True if ``value`` is one of the expression variants."""
    return isinstance(value, (numbers.Real, AbstractVariableRef, AffExpr, QuadExpr))


def _as_aff(value) -> AffExpr:
    if isinstance(value, AffExpr):
        return value.copy()
    if isinstance(value, AbstractVariableRef):
        return AffExpr(0.0, {value: 1.0})
    if isinstance(value, numbers.Real):
        return AffExpr(float(value))
    raise TypeError(f"Cannot convert {type(value).__name__} to an affine expression.")


def _as_quad(value) -> QuadExpr:
    if isinstance(value, QuadExpr):
        return value.copy()
    return QuadExpr(_as_aff(value))


def add_to_expression(target, coef, other):
    """
    Add ``coef * other`` into ``target`` in place.

    ``target`` must be an ``AffExpr`` or ``QuadExpr``. An ``AffExpr`` target is
    promoted to a new ``QuadExpr`` when ``other`` is quadratic, so always use
    the returned value.
    """
    coef = float(coef)
    if isinstance(other, QuadExpr) and isinstance(target, AffExpr):
        target = QuadExpr(target)
    aff = target.aff if isinstance(target, QuadExpr) else target
    if isinstance(other, numbers.Real):
        aff.constant += coef * float(other)
    elif isinstance(other, AbstractVariableRef):
        aff.terms[other] = aff.terms.get(other, 0.0) + coef
    elif isinstance(other, AffExpr):
        aff.constant += coef * other.constant
        for vref, c in other.terms.items():
            aff.terms[vref] = aff.terms.get(vref, 0.0) + coef * c
    elif isinstance(other, QuadExpr):
        target = add_to_expression(target, coef, other.aff)
        for pair, c in other.terms.items():
            target.terms[pair] = target.terms.get(pair, 0.0) + coef * c
    else:
        raise TypeError(f"Cannot add {type(other).__name__} to an expression.")
    return target


def add(left, right):
    """Return ``left + right`` as a new expression."""
    if isinstance(left, numbers.Real) and isinstance(right, numbers.Real):
        return float(left) + float(right)
    if isinstance(left, QuadExpr) or isinstance(right, QuadExpr):
        return add_to_expression(_as_quad(left), 1.0, right)
    return add_to_expression(_as_aff(left), 1.0, right)


def scale(value, coef):
    """Return ``coef * value`` as a new expression."""
    coef = float(coef)
    if isinstance(value, numbers.Real):
        return coef * float(value)
    if isinstance(value, AbstractVariableRef):
        return AffExpr(0.0, {value: coef})
    if isinstance(value, AffExpr):
        return AffExpr(coef * value.constant, {v: coef * c for v, c in value.terms.items()})
    if isinstance(value, QuadExpr):
        return QuadExpr(scale(value.aff, coef), {p: coef * c for p, c in value.terms.items()})
    raise TypeError(f"Cannot scale {type(value).__name__}.")


def multiply(left, right):
    """Return ``left * right``; products above degree two raise ``TypeError``."""
    if isinstance(left, numbers.Real):
        return scale(right, left)
    if isinstance(right, numbers.Real):
        return scale(left, right)
    if isinstance(left, QuadExpr) or isinstance(right, QuadExpr):
        raise TypeError("Only expressions up to degree two are supported.")
    a = _as_aff(left)
    b = _as_aff(right)
    result = QuadExpr(AffExpr(a.constant * b.constant))
    for vref, c in b.terms.items():
        result.aff.terms[vref] = result.aff.terms.get(vref, 0.0) + a.constant * c
    for vref, c in a.terms.items():
        result.aff.terms[vref] = result.aff.terms.get(vref, 0.0) + b.constant * c
    for va, ca in a.terms.items():
        for vb, cb in b.terms.items():
            pair = UnorderedPair(va, vb)
            result.terms[pair] = result.terms.get(pair, 0.0) + ca * cb
    return result


def all_function_variables(expr) -> list:
    """Handles appearing in ``expr`` in first-seen order, without duplicates."""
    if isinstance(expr, numbers.Real):
        return []
    if isinstance(expr, AbstractVariableRef):
        return [expr]
    if isinstance(expr, AffExpr):
        return list(expr.terms)
    if isinstance(expr, QuadExpr):
        seen = dict.fromkeys(expr.aff.terms)
        for pair in expr.terms:
            seen.setdefault(pair.a)
            seen.setdefault(pair.b)
        return list(seen)
    raise TypeError(f"Unsupported expression type {type(expr).__name__}.")


def remove_variable(expr, vref: AbstractVariableRef) -> None:
    """Delete every term of ``expr`` involving ``vref`` (in place)."""
    if isinstance(expr, AffExpr):
        expr.terms.pop(vref, None)
    elif isinstance(expr, QuadExpr):
        remove_variable(expr.aff, vref)
        for pair in [p for p in expr.terms if p.a == vref or p.b == vref]:
            del expr.terms[pair]


def copy_expression(expr):
    """Shallow copy; handles and numbers are immutable and returned as is."""
    if isinstance(expr, (AffExpr, QuadExpr)):
        return expr.copy()
    return expr


def map_variables(expr, func: Callable):
    """
    Rebuild ``expr`` with every handle ``v`` replaced by ``func(v)``.

    ``func`` may return a number, a handle or an expression; products of
    mapped quadratic terms must stay within degree two.
    """
    if isinstance(expr, numbers.Real):
        return float(expr)
    if isinstance(expr, AbstractVariableRef):
        return func(expr)
    if isinstance(expr, AffExpr):
        result = AffExpr(expr.constant)
        for vref, c in expr.terms.items():
            result = add_to_expression(result, c, func(vref))
        return result
    if isinstance(expr, QuadExpr):
        result = map_variables(expr.aff, func)
        for pair, c in expr.terms.items():
            result = add_to_expression(result, c, multiply(func(pair.a), func(pair.b)))
        return result
    raise TypeError(f"Unsupported expression type {type(expr).__name__}.")


def evaluate_expression(expr, values: Mapping) -> float:
    """Numeric value of ``expr`` given a value for every handle in it."""
    mapped = map_variables(expr, lambda v: float(values[v]))
    return float(mapped) if isinstance(mapped, numbers.Real) else mapped.constant


def model_from_expr(expr):
    """Owning model of the first handle in ``expr`` (``None`` if there is none)."""
    for vref in all_function_variables(expr):
        return vref.model
    return None


def expression_object_numbers(expr) -> list[int]:
    """Sorted object numbers of the infinite parameter groups ``expr`` depends on."""
    nums: set[int] = set()
    for vref in all_function_variables(expr):
        nums.update(vref.object_numbers())
    return sorted(nums)


def expression_parameter_numbers(expr) -> list[int]:
    """Sorted parameter numbers of the scalar infinite parameters ``expr`` depends on."""
    nums: set[int] = set()
    for vref in all_function_variables(expr):
        nums.update(vref.parameter_numbers())
    return sorted(nums)
