"""
Commutative/Associative Chain Normalization
===========================================

Purpose:
--------
Rewrites chains of a commutative, associative, broadcasting elementwise
operator so that constants move to the right and upwards, where they meet a
sibling constant and get folded. The additive (``Add``) and multiplicative
(``Mul``) families are both instances of ``AssociativeFamily``.

Rules (``op`` stands for the family's operator, x/y are non-constants):
------
1. commute                   op(c, x)                  -> op(x, c)
2. reassociate_constants     op(op(x, c1), c2)         -> op(x, op(c1, c2))
3. reassociate_double        op(op(x, c1), op(y, c2))  -> op(op(x, y), op(c1, c2))
4. reassociate_terms         op(op(x, c), y)           -> op(op(x, y), c)
5. reassociate_terms_mirror  op(x, op(y, c))           -> op(op(x, y), c)
6. fold                      op(c1, c2)                -> Const(c1 op c2)

Every constant operand must be dense (no sparse layout marker). Reordering
rules only fire on integer or floating chains; string concatenation is not
commutative.

Termination:
------------
- commute leaves the constant as right operand of a node whose left operand
  is not a constant, so the pattern can never match its own output.
- reassociate_constants / reassociate_double pair two constants under a new
  node that fold then collapses: the number of constant leaves drops by one.
- reassociate_terms moves a constant one level closer to the chain root;
  a chain has finitely many levels.
- fold removes an operator node.

Precondition:
-------------
Multiplicative re-association is sound only because ``Mul`` is the
broadcasting elementwise product; matrix products are never matched.
"""

from __future__ import annotations

from graph_rewriter.core import (
    Op,
    Any,
    Const,
    RuleFamily,
    arithmetic_dtype,
    dense,
    not_constant,
)
from graph_rewriter.errors import BroadcastError
from graph_rewriter.evaluator import broadcast_shape


class AssociativeFamily(RuleFamily):
    op_type = None
    fold = None

    def __init__(self, name=None):
        super().__init__(name)
        op = self.op_type
        self.add_rule(
            "commute",
            Op(op, Const("c"), Any("x"), alias="root"),
            [dense("c"), arithmetic_dtype("root"), not_constant("x")],
            self._commute,
        )
        self.add_rule(
            "reassociate_constants",
            Op(op, Op(op, Any("x"), Const("c1")), Const("c2"), alias="root"),
            [dense("c1", "c2"), arithmetic_dtype("root"), not_constant("x")],
            self._reassociate_constants,
        )
        self.add_rule(
            "reassociate_double",
            Op(
                op,
                Op(op, Any("x"), Const("c1")),
                Op(op, Any("y"), Const("c2")),
                alias="root",
            ),
            [
                dense("c1", "c2"),
                arithmetic_dtype("root"),
                not_constant("x"),
                not_constant("y"),
            ],
            self._reassociate_double,
        )
        self.add_rule(
            "reassociate_terms",
            Op(op, Op(op, Any("x"), Const("c")), Any("y"), alias="root"),
            [dense("c"), arithmetic_dtype("root"), not_constant("x"), not_constant("y")],
            self._reassociate_terms,
        )
        self.add_rule(
            "reassociate_terms_mirror",
            Op(op, Any("x"), Op(op, Any("y"), Const("c")), alias="root"),
            [dense("c"), arithmetic_dtype("root"), not_constant("x"), not_constant("y")],
            self._reassociate_terms,
        )
        self.add_rule(
            "fold",
            Op(op, Const("c1"), Const("c2"), alias="root"),
            [dense("c1", "c2")],
            self._fold,
        )

    # --- Build functions ---

    def _commute(self, match, builder):
        builder.replace_root(self.op_type, [match.value("x"), match.value("c")])
        return builder.get_nodes()

    def _reassociate_constants(self, match, builder):
        consts = self._pair_constants(match, builder)
        builder.replace_root(self.op_type, [match.value("x"), consts])
        return builder.get_nodes()

    def _reassociate_double(self, match, builder):
        terms = self._pair_terms(match, builder)
        consts = self._pair_constants(match, builder)
        builder.replace_root(self.op_type, [terms, consts])
        return builder.get_nodes()

    def _reassociate_terms(self, match, builder):
        terms = self._pair_terms(match, builder)
        builder.replace_root(self.op_type, [terms, match.value("c")])
        return builder.get_nodes()

    def _fold(self, match, builder):
        builder.const_root(self.fold(match.literal("c1"), match.literal("c2")))
        return builder.get_nodes()

    # --- Helpers ---

    def _pair_constants(self, match, builder):
        c1, c2 = match.literal("c1"), match.literal("c2")
        shape = broadcast_shape(c1.shape, c2.shape)
        return builder.add_node(
            self.op_type,
            "const_operands",
            [match.value("c1"), match.value("c2")],
            builder.dtype_attr(shape),
        )

    def _pair_terms(self, match, builder):
        x, y = match.value("x"), match.value("y")
        return builder.add_node(
            self.op_type,
            "terms",
            [x, y],
            builder.dtype_attr(_static_broadcast(builder.optimizer, x, y)),
        )


def _static_broadcast(optimizer, x, y):
    """Broadcast of two declared shapes, or None when either is not fully known."""
    s_x = optimizer.get_value_shape(x)
    s_y = optimizer.get_value_shape(y)
    if s_x is None or s_y is None or min(s_x + s_y, default=0) < 0:
        return None
    try:
        return broadcast_shape(s_x, s_y)
    except BroadcastError:
        return None
