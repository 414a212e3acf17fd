"""
Subtractive / Unary Family
==========================

Purpose:
--------
Folds ``Sub``, ``Neg`` and ``Sqrt`` over dense constants, and turns a
subtraction of a constant into an addition of its negation so the additive
family can merge it with neighbouring constants.

Rules:
------
- fold_sub:    Sub(c1, c2) -> Const(c1 - c2)
- fold_neg:    Neg(c)      -> Const(-c)
- sub_to_add:  Sub(x, c)   -> Add(x, Const(-c))      x non-constant
- fold_sqrt:   Sqrt(c)     -> Const(sqrt(c))         floating dtypes only

Example:
--------
  Add(Sub(x, 2), 5)
    -> Add(Add(x, -2), 5)      (sub_to_add)
    -> Add(x, Add(-2, 5))      (additive.reassociate_constants)
    -> Add(x, 3)               (additive.fold)
"""

from __future__ import annotations

from graph_rewriter.core import Op, Any, Const, FamilyRegistry, RuleFamily, dense, not_constant
from graph_rewriter.evaluator import elementwise_neg, elementwise_sqrt, elementwise_sub


@FamilyRegistry.register("subtractive", opt_level=1, priority=20)
class SubtractiveFamily(RuleFamily):
    def __init__(self):
        super().__init__(name="subtractive")
        self.add_rule(
            "fold_sub",
            Op("Sub", Const("c1"), Const("c2"), alias="root"),
            [dense("c1", "c2")],
            self._fold_sub,
        )
        self.add_rule(
            "fold_neg",
            Op("Neg", Const("c"), alias="root"),
            [dense("c")],
            self._fold_neg,
        )
        self.add_rule(
            "sub_to_add",
            Op("Sub", Any("x"), Const("c"), alias="root"),
            [dense("c"), not_constant("x")],
            self._sub_to_add,
        )
        self.add_rule(
            "fold_sqrt",
            Op("Sqrt", Const("c"), alias="root"),
            [dense("c")],
            self._fold_sqrt,
        )

    def _fold_sub(self, match, builder):
        builder.const_root(elementwise_sub(match.literal("c1"), match.literal("c2")))
        return builder.get_nodes()

    def _fold_neg(self, match, builder):
        builder.const_root(elementwise_neg(match.literal("c")))
        return builder.get_nodes()

    def _sub_to_add(self, match, builder):
        negated = builder.add_const("negated", elementwise_neg(match.literal("c")))
        builder.replace_root("Add", [match.value("x"), negated])
        return builder.get_nodes()

    def _fold_sqrt(self, match, builder):
        builder.const_root(elementwise_sqrt(match.literal("c")))
        return builder.get_nodes()
