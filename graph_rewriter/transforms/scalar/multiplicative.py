"""
Multiplicative Family
=====================

Mirrors the additive family for the elementwise ``Mul`` operator and also
folds ``Div`` of two dense constants:

  Mul(Mul(x, 2), 3)       -> Mul(x, 6)
  Div([10.], [0.])        -> [inf]        (floating: IEEE result)
  Div([10], [0])          -> unchanged    (integer: left to the lowered code)

``MatMul`` and the batched matrix products are a different operator and are
never matched.
"""

from __future__ import annotations

from graph_rewriter.core import Op, Const, FamilyRegistry, dense
from graph_rewriter.evaluator import elementwise_div, elementwise_mul
from graph_rewriter.transforms.scalar.associative import AssociativeFamily


@FamilyRegistry.register("multiplicative", opt_level=1, priority=30)
class MultiplicativeFamily(AssociativeFamily):
    op_type = "Mul"
    fold = staticmethod(elementwise_mul)

    def __init__(self):
        super().__init__(name="multiplicative")
        self.add_rule(
            "fold_div",
            Op("Div", Const("c1"), Const("c2"), alias="root"),
            [dense("c1", "c2")],
            self._fold_div,
        )

    def _fold_div(self, match, builder):
        builder.const_root(elementwise_div(match.literal("c1"), match.literal("c2")))
        return builder.get_nodes()
