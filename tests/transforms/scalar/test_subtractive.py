"""
SubtractiveFamily Tests
=======================

Tests for Sub / Neg / Sqrt folding and Sub(x, c) -> Add(x, -c).
"""

import unittest

import numpy as np
import tensorflow.compat.v1 as tf
from tensorflow.python.framework import tensor_util

from graph_rewriter.core import GraphOptimizer, RuleSet
from graph_rewriter.transforms.scalar.additive import AdditiveFamily
from graph_rewriter.transforms.scalar.subtractive import SubtractiveFamily
from graph_rewriter.utils.graph_utils import (
    SPARSE_LAYOUT_ATTR,
    create_node,
    create_const_node,
    make_dtype_attr,
)


tf.disable_v2_behavior()


def typed(op, name, inputs, dtype=np.int32):
    return create_node(op, name, inputs, attr={"T": make_dtype_attr(dtype)})


class SubtractiveFamilyTest(unittest.TestCase):
    def create_graph(self, nodes):
        """Helper to create a GraphDef from node list."""
        graph_def = tf.GraphDef()
        graph_def.node.extend(nodes)
        return graph_def

    def optimize(self, graph, *families):
        families = families or (SubtractiveFamily(),)
        optimizer = GraphOptimizer(graph, RuleSet(families))
        return optimizer.optimize(), optimizer.stats

    def value(self, graph, name):
        node = next(n for n in graph.node if n.name == name)
        self.assertEqual(node.op, "Const")
        return tensor_util.MakeNdarray(node.attr["value"].tensor)

    def test_fold_sub(self):
        graph = self.create_graph(
            [
                create_const_node("a", [5, 5], dtype="int32"),
                create_const_node("b", [7, 1], dtype="int32"),
                typed("Sub", "diff", ["a", "b"]),
            ]
        )
        result, stats = self.optimize(graph)
        self.assertEqual(self.value(result, "diff").tolist(), [-2, 4])
        self.assertEqual(stats["subtractive.fold_sub"], 1)

    def test_fold_neg(self):
        graph = self.create_graph(
            [
                create_const_node("a", [1.5, -2.0], dtype="float32"),
                typed("Neg", "neg", ["a"], dtype=np.float32),
            ]
        )
        result, _ = self.optimize(graph)
        self.assertEqual(self.value(result, "neg").tolist(), [-1.5, 2.0])
        self.assertEqual(self.value(result, "neg").dtype, np.float32)

    def test_fold_sqrt(self):
        graph = self.create_graph(
            [
                create_const_node("a", [4.0, 9.0], dtype="float32"),
                typed("Sqrt", "root", ["a"], dtype=np.float32),
            ]
        )
        result, _ = self.optimize(graph)
        self.assertEqual(self.value(result, "root").tolist(), [2.0, 3.0])

    def test_integer_sqrt_not_folded(self):
        graph = self.create_graph(
            [
                create_const_node("a", [4, 9], dtype="int32"),
                typed("Sqrt", "root", ["a"]),
            ]
        )
        result, stats = self.optimize(graph)
        self.assertEqual(result.SerializeToString(), graph.SerializeToString())
        self.assertEqual(sum(stats.values()), 0)

    def test_sub_to_add(self):
        graph = self.create_graph(
            [
                create_node("Placeholder", "x"),
                create_const_node("c", [2], dtype="int32"),
                typed("Sub", "diff", ["x", "c"]),
            ]
        )
        result, stats = self.optimize(graph)
        nodes = {n.name: n for n in result.node}
        self.assertEqual(nodes["diff"].op, "Add")
        self.assertEqual(nodes["diff"].input[0], "x")
        self.assertEqual(self.value(result, nodes["diff"].input[1]).tolist(), [-2])
        self.assertEqual(nodes["diff"].attr["T"].type, tf.int32.as_datatype_enum)
        self.assertNotIn("c", nodes)
        self.assertEqual(stats["subtractive.sub_to_add"], 1)

    def test_sub_then_add_collapses(self):
        """Add(Sub(x, 2), 5) -> Add(x, 3)."""
        graph = self.create_graph(
            [
                create_node("Placeholder", "x"),
                create_const_node("c2", [2], dtype="int32"),
                typed("Sub", "diff", ["x", "c2"]),
                create_const_node("c5", [5], dtype="int32"),
                typed("Add", "sum", ["diff", "c5"]),
            ]
        )
        result, stats = self.optimize(graph, AdditiveFamily(), SubtractiveFamily())
        nodes = {n.name: n for n in result.node}
        self.assertEqual(nodes["sum"].op, "Add")
        self.assertEqual(nodes["sum"].input[0], "x")
        self.assertEqual(self.value(result, nodes["sum"].input[1]).tolist(), [3])
        self.assertEqual(len(result.node), 3)
        self.assertEqual(
            dict(stats),
            {
                "subtractive.sub_to_add": 1,
                "additive.reassociate_constants": 1,
                "additive.fold": 1,
            },
        )

    def test_sparse_guard(self):
        def sparse_const(name, value, dtype="int32"):
            node = create_const_node(name, value, dtype=dtype)
            node.attr[SPARSE_LAYOUT_ATTR].s = b"csr"
            return node

        cases = [
            [create_const_node("a", [1], dtype="int32"), sparse_const("b", [2]), typed("Sub", "r", ["a", "b"])],
            [sparse_const("a", [1]), typed("Neg", "r", ["a"])],
            [create_node("Placeholder", "x"), sparse_const("c", [2]), typed("Sub", "r", ["x", "c"])],
            [sparse_const("a", [4.0], dtype="float32"), typed("Sqrt", "r", ["a"], dtype=np.float32)],
        ]
        for nodes in cases:
            graph = self.create_graph(nodes)
            result, stats = self.optimize(graph)
            self.assertEqual(result.SerializeToString(), graph.SerializeToString())
            self.assertEqual(sum(stats.values()), 0)


if __name__ == "__main__":
    unittest.main()
