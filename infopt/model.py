"""
Infinite model container.

The model is an arena of per-kind ordered registries. Every entity is stored
as a ``DataObject`` holding its core object, its name and the back-reference
lists of the entities that use it. Cross references are ``Index`` values,
never object references, so deleting an entity only requires editing lists.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Optional

import numpy as np

from infopt.errors import InvalidReference
from infopt.expr import AffExpr
from infopt.refs import DispatchVariableRef, GeneralVariableRef, dispatch_variable_ref
from infopt.types import DEFAULT_SIG_DIGITS, Index, IndexKind


class ObjectiveSense(Enum):
    """Direction of the objective."""

    MIN = auto()
    MAX = auto()
    FEASIBILITY = auto()  # No active objective


@dataclass
class DataObject:
    """
    Stored payload of one entity.

    The back-reference lists hold the indices of entities whose definition
    uses this one; they are kept in sync with the forward references in
    those entities' core objects.
    """

    core: Any
    name: str = ""

    # Back references
    infinite_var_indices: list[Index] = field(default_factory=list)
    reduced_var_indices: list[Index] = field(default_factory=list)
    point_var_indices: list[Index] = field(default_factory=list)
    measure_indices: list[Index] = field(default_factory=list)
    constraint_indices: list[Index] = field(default_factory=list)
    derivative_indices: list[Index] = field(default_factory=list)
    in_objective: bool = False

    # Parameters only
    object_num: int = -1
    parameter_nums: list[int] = field(default_factory=list)

    # Derivatives: constraints generated by evaluation
    derivative_constraint_indices: list[Index] = field(default_factory=list)

    # Constraints: derivative that generated this constraint (if any)
    derivative_index: Optional[Index] = None


def add_dependency(indices: list[Index], index: Index) -> None:
    """Append ``index`` to a back-reference list unless it is already there."""
    if index not in indices:
        indices.append(index)


def remove_dependency(indices: list[Index], index: Index) -> None:
    """Remove every occurrence of ``index`` from a back-reference list."""
    indices[:] = [i for i in indices if i != index]


class InfiniteModel:
    """
    Registry of every parameter, variable, measure, derivative and constraint.

    Args:
        name: Model name (used for display only)
        sig_digits: Significant digits kept for stored supports
        seed: Seed of the random generator used for Monte Carlo supports
    """

    def __init__(self, name: str = "", sig_digits: int = DEFAULT_SIG_DIGITS, seed: Optional[int] = None):
        self.name = name
        self.sig_digits = sig_digits
        self.rng = np.random.default_rng(seed)

        self._data: dict[IndexKind, dict[int, DataObject]] = {kind: {} for kind in IndexKind}
        self._counters: dict[IndexKind, int] = {kind: 0 for kind in IndexKind}

        # Position in this list is the object number of a parameter group
        self.param_object_indices: list[Index] = []
        self._last_param_num = -1

        self.objective_function: Any = AffExpr()
        self.objective_sense = ObjectiveSense.FEASIBILITY

        self.has_hold_bounds = False

        # (argument, operator parameter) -> derivative index
        self.deriv_lookup: dict[tuple[GeneralVariableRef, GeneralVariableRef], Index] = {}

    def register(self, kind: IndexKind, core: Any, name: str = "") -> Index:
        """Insert a new entity and return its fresh index."""
        self._counters[kind] += 1
        key = self._counters[kind]
        self._data[kind][key] = DataObject(core, name)
        return Index(kind, key)

    def data_object(self, index: Index) -> DataObject:
        try:
            return self._data[index.kind][index.value]
        except KeyError:
            raise InvalidReference(f"Invalid index {index}: entity does not exist.") from None

    def handle(self, index: Index) -> GeneralVariableRef:
        return GeneralVariableRef(self, index)

    def is_valid(self, vref: GeneralVariableRef) -> bool:
        if vref.model is not self:
            return False
        data = self._data[vref.index.kind].get(vref.index.value)
        if data is None:
            return False
        if vref.index.kind == IndexKind.DEPENDENT_PARAMETER:
            return 0 <= vref.index.param_index < len(data.parameter_nums)
        return True

    def resolve(self, vref: GeneralVariableRef) -> DispatchVariableRef:
        """Return the kind-specific view of ``vref``."""
        if vref.model is not self:
            raise InvalidReference(f"{vref.index} does not belong to model '{self.name}'.")
        if not self.is_valid(vref):
            raise InvalidReference(f"Invalid reference {vref.index}: entity does not exist.")
        return dispatch_variable_ref(vref)

    def core_object(self, vref: GeneralVariableRef) -> Any:
        return self.resolve(vref).core

    def delete_entity(self, vref: GeneralVariableRef) -> None:
        """
        Remove the data object of ``vref``.

        This does not cascade: callers clean up every reference first.
        """
        self.resolve(vref)
        del self._data[vref.index.kind][vref.index.value]

    def entities(self, kind: IndexKind) -> list[GeneralVariableRef]:
        """Handles of one kind in insertion order (one per dependent member)."""
        refs = []
        for key, data in self._data[kind].items():
            if kind == IndexKind.DEPENDENT_PARAMETER:
                refs.extend(self.handle(Index(kind, key, i)) for i in range(len(data.parameter_nums)))
            else:
                refs.append(self.handle(Index(kind, key)))
        return refs

    def num_entities(self, kind: IndexKind) -> int:
        return len(self._data[kind])

    def entity_name(self, vref: GeneralVariableRef) -> str:
        data = self.resolve(vref).data
        if vref.index.kind == IndexKind.DEPENDENT_PARAMETER:
            return data.core.names[vref.index.param_index]
        return data.name

    def set_name(self, vref: GeneralVariableRef, name: str) -> None:
        data = self.resolve(vref).data
        if vref.index.kind == IndexKind.DEPENDENT_PARAMETER:
            data.core.names[vref.index.param_index] = name
        else:
            data.name = name

    def add_param_object(self, index: Index, num_params: int) -> DataObject:
        """Assign an object number and ``num_params`` parameter numbers to a new group."""
        data = self.data_object(index)
        data.object_num = len(self.param_object_indices)
        self.param_object_indices.append(index)
        data.parameter_nums = list(range(self._last_param_num + 1, self._last_param_num + 1 + num_params))
        self._last_param_num += num_params
        return data

    def __repr__(self) -> str:
        counts = ", ".join(
            f"{kind.name.lower()}={len(entries)}" for kind, entries in self._data.items() if entries
        )
        return f"InfiniteModel('{self.name}', {counts})"
