"""
Infrastructure Tests - 基础设施测试
====================================

测试内容：
1. test_pipeline_run             - OptimizationPipeline 执行并保存输出图
2. test_family_resolution        - level / families / add / remove 的规则族解析
3. test_config_file              - JSON 配置文件加载与合并
4. test_debug_mode               - Debug 模式输出 00_initial.pb / final.pb 和日志文件
5. test_fatal_error_reraised     - 致命错误记录后继续抛出
6. test_optimize_graphs          - 多个独立图并发优化，结果保持输入顺序
"""

import json
import logging
import os
import shutil
import tempfile
import unittest

import tensorflow.compat.v1 as tf
from tensorflow.python.framework import tensor_util

from graph_rewriter.errors import DtypeMismatchError, RewriteLimitExceeded
from graph_rewriter.runner import (
    OptimizationPipeline,
    load_config,
    optimize_graph,
    optimize_graphs,
)
from graph_rewriter.utils import (
    create_node,
    create_const_node,
    load_graph,
    save_graph,
    logger as custom_logger,
)

tf.disable_v2_behavior()


def fold_graph(a, b, op="Add", dtype="int32"):
    graph_def = tf.GraphDef()
    graph_def.node.extend(
        [
            create_const_node("a", a, dtype=dtype),
            create_const_node("b", b, dtype=dtype),
            create_node(op, "out", ["a", "b"]),
        ]
    )
    return graph_def


def chain_graph():
    graph_def = tf.GraphDef()
    graph_def.node.extend(
        [
            create_node("Placeholder", "x"),
            create_const_node("c3", [3], dtype="int32"),
            create_node("Add", "inner", ["x", "c3"]),
            create_const_node("c4", [4], dtype="int32"),
            create_node("Add", "out", ["inner", "c4"]),
        ]
    )
    return graph_def


def out_value(graph_def):
    node = next(n for n in graph_def.node if n.name == "out")
    return tensor_util.MakeNdarray(node.attr["value"].tensor).tolist()


class TestInfrastructure(unittest.TestCase):
    def setUp(self):
        self.tmp_dir = tempfile.mkdtemp()
        self._handlers = list(custom_logger.handlers)

    def tearDown(self):
        for handler in list(custom_logger.handlers):
            if handler not in self._handlers:
                custom_logger.removeHandler(handler)
                handler.close()
        shutil.rmtree(self.tmp_dir, ignore_errors=True)

    def test_pipeline_run(self):
        input_path = os.path.join(self.tmp_dir, "in.pbtxt")
        output_path = os.path.join(self.tmp_dir, "nested", "out.pb")
        save_graph(fold_graph([1, 2, 3], [4, 5, 6]), input_path)

        pipeline = OptimizationPipeline(input_graph=input_path, output_graph=output_path)
        result = pipeline.run()

        self.assertEqual([n.name for n in result.node], ["out"])
        self.assertEqual(out_value(result), [5, 7, 9])
        self.assertEqual(pipeline.stats, {"additive.fold": 1})
        self.assertTrue(os.path.exists(output_path))
        self.assertEqual(
            load_graph(output_path).SerializeToString(), result.SerializeToString()
        )

    def test_missing_input(self):
        with self.assertRaises(ValueError):
            OptimizationPipeline().run()
        with self.assertRaises(FileNotFoundError):
            OptimizationPipeline(input_graph=os.path.join(self.tmp_dir, "nope.pb")).run()

    def test_family_resolution(self):
        pipeline = OptimizationPipeline(remove_families=["shape_transform", "unknown"])
        pipeline._resolve_families()
        self.assertEqual(
            pipeline.resolved_families, ["additive", "subtractive", "multiplicative"]
        )

        pipeline = OptimizationPipeline(level=0, add_families=["multiplicative", "additive"])
        pipeline._resolve_families()
        self.assertEqual(pipeline.resolved_families, ["additive", "multiplicative"])

        pipeline = OptimizationPipeline(families=["shape_transform"])
        rule_set = pipeline.build_rule_set()
        self.assertEqual(list(rule_set.families), ["shape_transform"])

        # The additive family is not enabled, so the Add stays
        result = OptimizationPipeline(
            graph_def=fold_graph([1], [2]), families=["multiplicative"]
        ).run()
        self.assertEqual(next(n for n in result.node if n.name == "out").op, "Add")

    def test_config_file(self):
        config_path = os.path.join(self.tmp_dir, "config.json")
        with open(config_path, "w") as f:
            json.dump(
                {
                    "level": 1,
                    "remove_families": ["additive"],
                    "output_nodes": ["out"],
                    "max_iterations": 5,
                },
                f,
            )
        config = load_config(config_path)
        pipeline = OptimizationPipeline(
            graph_def=fold_graph([2, 3], [4, 5], op="Mul"), config=config
        )
        self.assertEqual(pipeline.output_nodes, ["out"])
        self.assertEqual(pipeline.max_iterations, 5)

        result = pipeline.run()
        self.assertEqual(out_value(result), [8, 15])
        self.assertNotIn("additive", pipeline.resolved_families)

        with self.assertRaises(FileNotFoundError):
            load_config(os.path.join(self.tmp_dir, "missing.json"))

    def test_debug_mode(self):
        cwd = os.getcwd()
        os.chdir(self.tmp_dir)
        try:
            pipeline = OptimizationPipeline(graph_def=fold_graph([1], [2]), debug=True)
            pipeline.run()
            debug_dir = os.path.join(self.tmp_dir, pipeline.debug_dir)
            self.assertTrue(os.path.exists(os.path.join(debug_dir, "00_initial.pb")))
            self.assertTrue(os.path.exists(os.path.join(debug_dir, "final.pb")))
            self.assertTrue(os.path.exists(os.path.join(debug_dir, "rewrite.log")))
        finally:
            os.chdir(cwd)

    def test_fatal_error_reraised(self):
        graph_def = tf.GraphDef()
        graph_def.node.extend(
            [
                create_const_node("a", [1], dtype="int32"),
                create_const_node("b", [1.0], dtype="float32"),
                create_node("Add", "out", ["a", "b"]),
            ]
        )
        with self.assertLogs("GraphRewriter", level=logging.ERROR):
            with self.assertRaises(DtypeMismatchError):
                OptimizationPipeline(graph_def=graph_def).run()

        with self.assertRaises(RewriteLimitExceeded):
            OptimizationPipeline(graph_def=chain_graph(), max_iterations=1).run()

    def test_optimize_graph(self):
        result = optimize_graph(fold_graph([10.0], [0.0], op="Div", dtype="float32"))
        self.assertEqual(out_value(result), [float("inf")])

    def test_optimize_graphs(self):
        graphs = [fold_graph([i], [i], op="Mul") for i in range(8)]
        results = optimize_graphs(graphs, max_workers=4)
        self.assertEqual([out_value(g) for g in results], [[i * i] for i in range(8)])

        with self.assertRaises(RewriteLimitExceeded):
            optimize_graphs([fold_graph([1], [2]), chain_graph()], max_iterations=1)


if __name__ == "__main__":
    unittest.main()
