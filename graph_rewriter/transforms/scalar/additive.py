"""
Additive Family
===============

Normalizes and folds ``Add`` chains:

  Add(5, x)               -> Add(x, 5)
  Add(Add(x, 3), 4)       -> Add(x, Add(3, 4)) -> Add(x, 7)
  Add(Add(x, 1), Add(y, 2)) -> Add(Add(x, y), 3)
  Add(Add(x, 1), y)       -> Add(Add(x, y), 1)

See ``associative.py`` for the rule list and the termination argument.
"""

from __future__ import annotations

from graph_rewriter.core import FamilyRegistry
from graph_rewriter.evaluator import elementwise_add
from graph_rewriter.transforms.scalar.associative import AssociativeFamily


@FamilyRegistry.register("additive", opt_level=1, priority=10)
class AdditiveFamily(AssociativeFamily):
    op_type = "Add"
    fold = staticmethod(elementwise_add)

    def __init__(self):
        super().__init__(name="additive")
