"""
Reduced and point variable materialization.

Fixing some infinite parameters of an infinite variable (or derivative)
yields a reduced variable; fixing all of them yields a point variable.
Reduced variables always point at the original parent, so fixing a reduced
variable again composes the fixings in the parent's parameter order.

Each call registers a new entity in the model owning the parent; identical fixings are not deduplicated.
"""

from __future__ import annotations

from collections.abc import Mapping

from infopt.measure_data import DiscreteMeasureData
from infopt.refs import GeneralVariableRef
from infopt.types import INTERNAL, IndexKind
from infopt.variables import make_point_variable_ref, make_reduced_variable_ref


def reduce_variable(vref: GeneralVariableRef, fixings: Mapping[GeneralVariableRef, float]) -> GeneralVariableRef:
    """
    Fix the parameters of ``vref`` that appear in ``fixings``.

    ``vref`` is returned unchanged when it is not an infinite, reduced or
    derivative entity or when none of its free parameters is fixed.
    """
    if vref.kind in (IndexKind.INFINITE_VARIABLE, IndexKind.DERIVATIVE):
        parent = vref
        prefs = vref.parameter_list()
        eval_supports = {i: fixings[p] for i, p in enumerate(prefs) if p in fixings}
        if not eval_supports:
            return vref
    elif vref.kind == IndexKind.REDUCED_VARIABLE:
        core = vref.dispatch().core
        parent = core.infinite_variable_ref
        prefs = parent.parameter_list()
        eval_supports = dict(core.eval_supports)
        for i, pref in enumerate(prefs):
            if i not in eval_supports and pref in fixings:
                eval_supports[i] = fixings[pref]
        if len(eval_supports) == len(core.eval_supports):
            return vref
    else:
        return vref
    if len(eval_supports) == len(prefs):
        return make_point_variable_ref(parent.model, parent, [eval_supports[i] for i in range(len(prefs))])
    return make_reduced_variable_ref(parent.model, parent, eval_supports)


def make_reduced_expr(vref: GeneralVariableRef, pref: GeneralVariableRef, support: float):
    """
    Evaluate ``vref`` at ``pref = support``.

    A measure is expanded over a single-point measure data at ``support``;
    anything else is reduced to a point or reduced variable.
    """
    if vref.kind == IndexKind.MEASURE:
        # Import here to avoid circular imports
        from infopt.expansion import expand_measure

        data = DiscreteMeasureData(pref, [1.0], [support], label=INTERNAL, check=False)
        return expand_measure(vref, data)
    return reduce_variable(vref, {pref: float(support)})
