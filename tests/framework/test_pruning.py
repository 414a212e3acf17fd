"""
Pruning Tests - 图裁剪测试
===========================

测试内容：
1. test_fundamental_pruning   - 基础图裁剪（删除不可达节点）
2. test_reference_counts      - 引用计数计算
3. test_preserve_placeholders - Placeholder 节点保留（即使无引用）
4. test_control_edges_keep_nodes_alive - 控制边同样决定可达性
5. test_infer_graph_outputs   - 无消费者节点即为图输出
6. test_update_node_inputs    - 输入重写保留端口和控制标记

验证 prune_unreachable() 的正确性：
- 从输出节点反向遍历，保留可达节点
- 删除不可达的死代码
- 特殊保留 Placeholder（作为图输入）
"""

import unittest
import tensorflow.compat.v1 as tf

from graph_rewriter.utils import (
    create_node,
    compute_reference_counts,
    infer_graph_outputs,
    prune_unreachable,
    update_node_inputs,
)

tf.disable_v2_behavior()


class TestPruning(unittest.TestCase):
    """图裁剪测试套件。"""

    def setUp(self):
        tf.reset_default_graph()

    def test_fundamental_pruning(self):
        """Test fundamental graph pruning."""
        with tf.Graph().as_default():
            tf.placeholder(tf.float32, name="A")
            tf.constant(1.0, name="B")
            add = tf.add(
                tf.placeholder(tf.float32, name="A_"),
                tf.constant(1.0, name="B_"),
                name="Add",
            )
            tf.identity(add, name="Y")
            tf.constant(2.0, name="Z")
            graph_def = tf.get_default_graph().as_graph_def()

        pruned = prune_unreachable(graph_def, ["Y"])
        node_names = [n.name for n in pruned.node]
        self.assertIn("Y", node_names)
        self.assertIn("Add", node_names)
        self.assertIn("B_", node_names)
        self.assertNotIn("Z", node_names)
        self.assertNotIn("B", node_names)

    def test_reference_counts(self):
        graph_def = tf.GraphDef()
        graph_def.node.extend(
            [
                create_node("Placeholder", "a"),
                create_node("Identity", "b", ["a"]),
                create_node("AddN", "c", ["a", "b:0", "^b"]),
            ]
        )
        refs = compute_reference_counts(graph_def)
        self.assertEqual(refs["a"], 2)
        self.assertEqual(refs["b"], 2)
        self.assertEqual(refs["c"], 0)

    def test_preserve_placeholders(self):
        graph_def = tf.GraphDef()
        graph_def.node.extend(
            [
                create_node("Placeholder", "unused_input"),
                create_node("Placeholder", "x"),
                create_node("Const", "dead"),
                create_node("Identity", "y", ["x"]),
            ]
        )
        pruned = prune_unreachable(graph_def, ["y"])
        node_names = [n.name for n in pruned.node]
        self.assertEqual(node_names, ["unused_input", "x", "y"])

    def test_control_edges_keep_nodes_alive(self):
        graph_def = tf.GraphDef()
        graph_def.node.extend(
            [
                create_node("NoOp", "init"),
                create_node("Placeholder", "x"),
                create_node("Identity", "y", ["x", "^init"]),
            ]
        )
        pruned = prune_unreachable(graph_def, ["y"])
        # Nothing to remove: the very same GraphDef comes back
        self.assertIs(pruned, graph_def)

    def test_infer_graph_outputs(self):
        graph_def = tf.GraphDef()
        graph_def.node.extend(
            [
                create_node("Placeholder", "x"),
                create_node("Neg", "n", ["x"]),
                create_node("Identity", "out1", ["n"]),
                create_node("Sqrt", "out2", ["x"]),
            ]
        )
        self.assertEqual(infer_graph_outputs(graph_def), ["out1", "out2"])

    def test_update_node_inputs(self):
        node = create_node("AddN", "n", ["a", "b:1", "^c", "d"])
        update_node_inputs(node, {"a": "x:2", "b": "y", "c": "z", "d": "a"})
        self.assertEqual(list(node.input), ["x:2", "y:1", "^z", "x:2"])


if __name__ == "__main__":
    unittest.main()
