"""
Exception types raised by infopt.

All errors are local precondition failures raised synchronously to the
caller. Every concrete error is also a builtin ``ValueError`` (or
``KeyError`` for stale references) so callers that only care about the
builtin category can keep catching those.
"""


class InfOptError(Exception):
    """Base class for every infopt error."""


class InvalidReference(InfOptError, KeyError):
    """A handle refers to another model or to a deleted entity."""

    def __str__(self) -> str:
        # KeyError quotes its message, which is unhelpful for references
        return str(self.args[0]) if self.args else ""


class DimensionMismatch(InfOptError, ValueError):
    """Array shapes or counts of supports/coefficients/bounds disagree."""


class DomainError(InfOptError, ValueError):
    """A support or bound lies outside a parameter domain, or the wrong kind of entity was given."""


class InvalidArgument(InfOptError, ValueError):
    """An argument is malformed (mixed parameter groups, negative counts, unsupported technique)."""


class InsufficientSupports(InfOptError, ValueError):
    """A discretization scheme needs at least one support interval."""


class ConstraintViolation(InfOptError, ValueError):
    """A measure domain conflicts with hold variable parameter bounds."""
