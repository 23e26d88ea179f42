"""
Type definitions for infopt.

Entity indices, support labels and the numeric defaults used across the
package.
"""

import itertools
from dataclasses import dataclass
from enum import Enum, auto

# Significant digits kept for every stored support value
DEFAULT_SIG_DIGITS = 12

# Default number of supports generated by the built-in measure rules
DEFAULT_NUM_SUPPORTS = 10


class IndexKind(Enum):
    """Kind of entity an index points to (one registry per kind)."""

    INDEPENDENT_PARAMETER = auto()  # Scalar infinite parameter
    DEPENDENT_PARAMETER = auto()  # Group of infinite parameters sharing supports
    FINITE_PARAMETER = auto()  # Fixed scalar value
    INFINITE_VARIABLE = auto()  # Decision function of infinite parameters
    REDUCED_VARIABLE = auto()  # Infinite variable with some parameters fixed
    POINT_VARIABLE = auto()  # Infinite variable with all parameters fixed
    HOLD_VARIABLE = auto()  # Finite decision variable
    MEASURE = auto()  # Integral operator over infinite parameters
    DERIVATIVE = auto()  # First order differential operator
    CONSTRAINT = auto()  # Scalar constraint


PARAMETER_KINDS = (IndexKind.INDEPENDENT_PARAMETER, IndexKind.DEPENDENT_PARAMETER)

VARIABLE_KINDS = (
    IndexKind.INFINITE_VARIABLE,
    IndexKind.REDUCED_VARIABLE,
    IndexKind.POINT_VARIABLE,
    IndexKind.HOLD_VARIABLE,
)


@dataclass(frozen=True)
class Index:
    """
    Typed identifier of a model entity.

    ``value`` is the registry key. Members of a dependent parameter group
    share the group key and are told apart by ``param_index`` (0-based);
    every other kind leaves ``param_index`` at -1.
    """

    kind: IndexKind
    value: int
    param_index: int = -1

    def group(self) -> "Index":
        """Registry key of this index (drops the sub-position)."""
        if self.param_index == -1:
            return self
        return Index(self.kind, self.value)

    def __str__(self) -> str:
        if self.param_index >= 0:
            return f"{self.kind.name}[{self.value}][{self.param_index}]"
        return f"{self.kind.name}[{self.value}]"


@dataclass(frozen=True)
class SupportLabel:
    """
    Tag recording why a support was added to a parameter.

    Public labels are user facing (grids, samples, user supports). Internal
    labels mark supports added by the package itself. Unique labels belong
    to a single measure and are removed together with it.
    """

    name: str
    public: bool = True
    unique: bool = False

    def __str__(self) -> str:
        return self.name


ALL = SupportLabel("All")
PUBLIC = SupportLabel("PublicLabel")
USER_DEFINED = SupportLabel("UserDefined")
UNIFORM_GRID = SupportLabel("UniformGrid")
MC_SAMPLE = SupportLabel("MCSample")
INTERNAL = SupportLabel("InternalLabel", public=False)
INTERNAL_LOBATTO = SupportLabel("InternalGaussLobatto", public=False)

_unique_counter = itertools.count(1)


def generate_unique_label() -> SupportLabel:
    """Return a fresh label owned by exactly one measure."""
    return SupportLabel(f"UniqueMeasure{next(_unique_counter)}", public=False, unique=True)


def label_matches(labels: set, query: SupportLabel) -> bool:
    """True if a support tagged with ``labels`` is selected by ``query``."""
    if query == ALL:
        return True
    if query == PUBLIC:
        return any(label.public for label in labels)
    return query in labels
