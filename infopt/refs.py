"""
Handles and dispatch references.

A ``GeneralVariableRef`` is the only externally visible representation of a
model entity: the owning model plus a typed ``Index``. It carries no cached
state. Kind-specific behavior lives in the dispatch references returned by
``InfiniteModel.resolve``; every dispatch class implements the same small
capability set (``parameter_list``, ``object_numbers``,
``parameter_numbers``).
"""

from __future__ import annotations

from typing import Any

from infopt.expr import AbstractVariableRef
from infopt.types import Index, IndexKind


class GeneralVariableRef(AbstractVariableRef):
    """
    Handle to any variable-like entity of an ``InfiniteModel``.

    Two handles are equal when they belong to the same model instance and
    carry the same index.
    """

    __slots__ = ("model", "index")

    def __init__(self, model: Any, index: Index):
        self.model = model
        self.index = index

    def __eq__(self, other) -> bool:
        if not isinstance(other, GeneralVariableRef):
            return NotImplemented
        return self.model is other.model and self.index == other.index

    def __hash__(self) -> int:
        return hash((id(self.model), self.index))

    @property
    def kind(self) -> IndexKind:
        return self.index.kind

    @property
    def name(self) -> str:
        return self.model.entity_name(self)

    def dispatch(self) -> "DispatchVariableRef":
        """Resolve against the registry (raises ``InvalidReference`` if stale)."""
        return self.model.resolve(self)

    def is_valid(self) -> bool:
        return self.model.is_valid(self)

    def parameter_list(self) -> list["GeneralVariableRef"]:
        """Flattened infinite parameters this entity still depends on."""
        return self.dispatch().parameter_list()

    def object_numbers(self) -> list[int]:
        return self.dispatch().object_numbers()

    def parameter_numbers(self) -> list[int]:
        return self.dispatch().parameter_numbers()

    def __repr__(self) -> str:
        if self.model.is_valid(self):
            name = self.name
            if name:
                return name
        return f"noname[{self.index}]"


class DispatchVariableRef:
    """Kind-specific view of a handle, valid only while the entity exists."""

    def __init__(self, gvref: GeneralVariableRef):
        self.gvref = gvref

    @property
    def model(self):
        return self.gvref.model

    @property
    def index(self) -> Index:
        return self.gvref.index

    @property
    def data(self):
        return self.gvref.model.data_object(self.gvref.index)

    @property
    def core(self):
        return self.data.core

    def parameter_list(self) -> list[GeneralVariableRef]:
        return []

    def object_numbers(self) -> list[int]:
        return []

    def parameter_numbers(self) -> list[int]:
        return []


class FiniteRef(DispatchVariableRef):
    """Finite parameters, point variables, hold variables and constraints."""


class ParameterRef(DispatchVariableRef):
    """An independent infinite parameter or one member of a dependent group."""

    @property
    def position(self) -> int:
        return max(self.index.param_index, 0)

    def parameter_list(self) -> list[GeneralVariableRef]:
        return [self.gvref]

    def object_numbers(self) -> list[int]:
        return [self.data.object_num]

    def parameter_numbers(self) -> list[int]:
        return [self.data.parameter_nums[self.position]]


class InfiniteVariableRef(DispatchVariableRef):
    def parameter_list(self) -> list[GeneralVariableRef]:
        return list(self.core.parameter_refs)

    def object_numbers(self) -> list[int]:
        return list(self.core.object_nums)

    def parameter_numbers(self) -> list[int]:
        return list(self.core.parameter_nums)


class ReducedVariableRef(DispatchVariableRef):
    """Infinite variable with some positions of its parameter list fixed."""

    def parameter_list(self) -> list[GeneralVariableRef]:
        core = self.core
        prefs = core.infinite_variable_ref.parameter_list()
        return [p for i, p in enumerate(prefs) if i not in core.eval_supports]

    def object_numbers(self) -> list[int]:
        return list(self.core.object_nums)

    def parameter_numbers(self) -> list[int]:
        nums: list[int] = []
        for pref in self.parameter_list():
            nums.extend(pref.parameter_numbers())
        return sorted(nums)


class MeasureRef(DispatchVariableRef):
    """Measure; depends on the parameters its data does not absorb."""

    def parameter_list(self) -> list[GeneralVariableRef]:
        core = self.core
        model = self.model
        prefs: list[GeneralVariableRef] = []
        for obj_num in core.object_nums:
            group = model.param_object_indices[obj_num]
            data = model.data_object(group)
            if group.kind == IndexKind.INDEPENDENT_PARAMETER:
                prefs.append(model.handle(group))
                continue
            for pos, num in enumerate(data.parameter_nums):
                if num in core.parameter_nums:
                    prefs.append(model.handle(Index(group.kind, group.value, pos)))
        return prefs

    def object_numbers(self) -> list[int]:
        return list(self.core.object_nums)

    def parameter_numbers(self) -> list[int]:
        return list(self.core.parameter_nums)


class DerivativeRef(DispatchVariableRef):
    """Derivative; shares the parameter dependencies of its argument."""

    def parameter_list(self) -> list[GeneralVariableRef]:
        return self.core.argument.parameter_list()

    def object_numbers(self) -> list[int]:
        return self.core.argument.object_numbers()

    def parameter_numbers(self) -> list[int]:
        return self.core.argument.parameter_numbers()


_DISPATCH = {
    IndexKind.INDEPENDENT_PARAMETER: ParameterRef,
    IndexKind.DEPENDENT_PARAMETER: ParameterRef,
    IndexKind.FINITE_PARAMETER: FiniteRef,
    IndexKind.INFINITE_VARIABLE: InfiniteVariableRef,
    IndexKind.REDUCED_VARIABLE: ReducedVariableRef,
    IndexKind.POINT_VARIABLE: FiniteRef,
    IndexKind.HOLD_VARIABLE: FiniteRef,
    IndexKind.MEASURE: MeasureRef,
    IndexKind.DERIVATIVE: DerivativeRef,
    IndexKind.CONSTRAINT: FiniteRef,
}


def dispatch_variable_ref(gvref: GeneralVariableRef) -> DispatchVariableRef:
    """Build the kind-specific view of ``gvref`` (no validity check)."""
    return _DISPATCH[gvref.index.kind](gvref)
