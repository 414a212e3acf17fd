"""
Shape-Transform Family
======================

Purpose:
--------
Folds data-movement operators applied to dense constants.

Rules:
------
- fold_transpose:             Transpose(c) with a ``perm`` list attribute
                              (no attribute: axes reversed)
- fold_transpose_perm_input:  Transpose(c, perm) with perm a constant input
- fold_unsqueeze:             Unsqueeze(c) with an ``axes`` list attribute
- fold_expand_dims:           ExpandDims(c, axis) with axis a constant input

Example:
--------
  Transpose([[1, 2], [3, 4]], perm=[1, 0]) -> [[1, 3], [2, 4]]
  Unsqueeze(<[2, 3]>, axes=[0])            -> <[1, 2, 3]>, same flat data
"""

from __future__ import annotations

import numpy as np

from graph_rewriter.core import Op, Const, FamilyRegistry, RuleFamily, dense
from graph_rewriter.errors import InvalidAttributeError
from graph_rewriter.evaluator import transpose, unsqueeze


def _int_vector(literal, what):
    if not np.issubdtype(literal.dtype, np.integer) or literal.ndim > 1:
        raise InvalidAttributeError(f"{what} must be an integer scalar or vector")
    return [int(v) for v in np.reshape(literal, [-1])]


@FamilyRegistry.register("shape_transform", opt_level=1, priority=40)
class ShapeTransformFamily(RuleFamily):
    def __init__(self):
        super().__init__(name="shape_transform")
        self.add_rule(
            "fold_transpose",
            Op("Transpose", Const("c"), alias="root"),
            [dense("c")],
            self._fold_transpose,
        )
        self.add_rule(
            "fold_transpose_perm_input",
            Op("Transpose", Const("c"), Const("perm"), alias="root"),
            [dense("c", "perm")],
            self._fold_transpose_perm_input,
        )
        self.add_rule(
            "fold_unsqueeze",
            Op("Unsqueeze", Const("c"), alias="root"),
            [dense("c")],
            self._fold_unsqueeze,
        )
        self.add_rule(
            "fold_expand_dims",
            Op("ExpandDims", Const("c"), Const("axis"), alias="root"),
            [dense("c", "axis")],
            self._fold_expand_dims,
        )

    def _fold_transpose(self, match, builder):
        perm = builder.optimizer.get_node_attr(match.node("root"), "perm")
        builder.const_root(transpose(match.literal("c"), perm))
        return builder.get_nodes()

    def _fold_transpose_perm_input(self, match, builder):
        perm = _int_vector(match.literal("perm"), "Transpose perm")
        builder.const_root(transpose(match.literal("c"), perm))
        return builder.get_nodes()

    def _fold_unsqueeze(self, match, builder):
        root = match.node("root")
        if "axes" not in root.attr:
            raise InvalidAttributeError(f"Unsqueeze '{root.name}' has no axes attribute")
        axes = builder.optimizer.get_node_attr(root, "axes")
        if isinstance(axes, int):
            axes = [axes]
        builder.const_root(unsqueeze(match.literal("c"), axes))
        return builder.get_nodes()

    def _fold_expand_dims(self, match, builder):
        axis = _int_vector(match.literal("axis"), "ExpandDims axis")
        if len(axis) != 1:
            raise InvalidAttributeError("ExpandDims takes exactly one axis")
        builder.const_root(unsqueeze(match.literal("c"), axis))
        return builder.get_nodes()
