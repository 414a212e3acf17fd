import os
import json
import time
import datetime
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Dict, Any, Iterable

from . import transforms  # noqa: F401  registers all rule families
from .core import GraphOptimizer, FamilyRegistry, RuleSet, DEFAULT_MAX_ITERATIONS
from .utils import load_graph, save_graph, logger as custom_logger
from .utils.logger import LOG_FORMAT


def load_config(path: str) -> Dict[str, Any]:
    """Reads a JSON configuration file for OptimizationPipeline.

    Config file format (JSON):
      {
        "input_graph": "path/to/input.pb",
        "output_graph": "path/to/output.pb",
        "level": 1,
        "debug": true,
        "output_nodes": ["logits"],
        "families": ["additive", "multiplicative"],
        "add_families": ["extra_family"],
        "remove_families": ["shape_transform"],
        "max_iterations": 10000,
        "log_file": "rewrite.log"
      }
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Config file not found: {path}")
    with open(path, "r") as f:
        return json.load(f)


def optimize_graph(
    graph_def,
    rule_set: Optional[RuleSet] = None,
    output_nodes: Optional[Iterable[str]] = None,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    pass_name: str = "rewrite",
):
    """Rewrites one graph to its normal form with the given (or default) rule set."""
    rule_set = rule_set or RuleSet.from_registry()
    optimizer = GraphOptimizer(graph_def, rule_set)
    return optimizer.optimize(
        pass_name=pass_name,
        max_iterations=max_iterations,
        output_nodes=output_nodes,
    )


def optimize_graphs(
    graph_defs: Iterable,
    rule_set: Optional[RuleSet] = None,
    max_workers: Optional[int] = None,
    **kwargs,
) -> List:
    """Rewrites independent graphs concurrently, one GraphOptimizer per graph.

    The rule set is only read. Results keep the order of ``graph_defs``; the
    first fatal error is re-raised to the caller.
    """
    rule_set = rule_set or RuleSet.from_registry()
    graph_defs = list(graph_defs)
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = [
            executor.submit(
                optimize_graph, graph_def, rule_set, pass_name=f"rewrite[{i}]", **kwargs
            )
            for i, graph_def in enumerate(graph_defs)
        ]
        return [future.result() for future in futures]


class OptimizationPipeline:
    """
    A facade class to configure and run the rewrite over one graph.
    """

    def __init__(
        self,
        input_graph: Optional[str] = None,
        output_graph: Optional[str] = None,
        graph_def=None,
        level: int = 1,
        debug: bool = False,
        families: Optional[List[str]] = None,
        add_families: Optional[List[str]] = None,
        remove_families: Optional[List[str]] = None,
        log_file: Optional[str] = None,
        config: Optional[Dict[str, Any]] = None,
        output_nodes: Optional[Iterable[str]] = None,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        rule_set: Optional[RuleSet] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            input_graph (str, optional): Path to input graph (.pb or .pbtxt).
            output_graph (str, optional): Path to save the rewritten graph.
            graph_def (GraphDef, optional): Input graph_def object (takes priority over input_graph).
            level (int): Optimization level selecting registered families. Default 1.
            debug (bool): Dump initial/final graphs into a timestamped directory.
            families (list[str]): Explicit list of families to run (overrides level).
            add_families (list[str]): Families appended to the level's set.
            remove_families (list[str]): Families removed from the set.
            log_file (str): Path to log file.
            config (dict): Configuration overrides; keys match constructor args.
            output_nodes (Iterable[str], optional): Graph outputs. Inferred from
                the graph (nodes without consumers) when omitted.
            max_iterations (int): Rewrite ceiling; exceeding it is fatal.
            rule_set (RuleSet, optional): Prebuilt rule set (skips family resolution).
        """
        self.input_graph = input_graph
        self.graph_def = graph_def
        self.output_graph = output_graph
        self.level = level
        self.debug = debug
        self.families = families
        self.add_families = list(add_families or [])
        self.remove_families = list(remove_families or [])
        self.log_file = log_file
        self.output_nodes = list(output_nodes or [])
        self.max_iterations = max_iterations
        self.rule_set = rule_set

        if config:
            self._apply_config(config)

        self.debug_dir = None
        self.resolved_families = []
        self.stats = {}

    def _apply_config(self, config):
        """Merges configuration dict into instance attributes."""
        if "input_graph" in config and not self.input_graph:
            self.input_graph = config["input_graph"]
        if "output_graph" in config and not self.output_graph:
            self.output_graph = config["output_graph"]
        if "level" in config:
            self.level = config["level"]
        if "debug" in config:
            self.debug = config["debug"] or self.debug
        if "log_file" in config:
            self.log_file = config["log_file"]
        if "families" in config:
            self.families = config["families"]
        if "add_families" in config:
            self.add_families.extend(config["add_families"])
        if "remove_families" in config:
            self.remove_families.extend(config["remove_families"])
        if "output_nodes" in config:
            for node_name in config["output_nodes"]:
                if node_name not in self.output_nodes:
                    self.output_nodes.append(node_name)
        if "max_iterations" in config:
            self.max_iterations = int(config["max_iterations"])

    def _setup_logging_and_debug(self):
        """Configures logging and creates debug directory."""
        if self.debug:
            timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
            self.debug_dir = f"run_{timestamp}"
            os.makedirs(self.debug_dir, exist_ok=True)
            if not self.log_file:
                self.log_file = os.path.join(self.debug_dir, "rewrite.log")

        if self.log_file:
            file_handler = logging.FileHandler(self.log_file)
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
            custom_logger.addHandler(file_handler)
            custom_logger.info(f"Logging to file: {self.log_file}")

    def _resolve_families(self):
        """Determines the final list of rule families."""
        if self.families:
            final_families = list(self.families)
            custom_logger.debug(f"Using explicit family list: {final_families}")
        else:
            final_families = FamilyRegistry.get_families_by_level(self.level)
            custom_logger.info(
                f"Selected families for Level {self.level}: {final_families}"
            )

            for f in self.add_families:
                if f not in final_families:
                    final_families.append(f)
                    custom_logger.debug(f"Added family: {f}")

            for f in self.remove_families:
                if f in final_families:
                    final_families.remove(f)
                    custom_logger.debug(f"Removed family: {f}")
                else:
                    custom_logger.warning(
                        f"Family '{f}' in remove_families was not in the list"
                    )

            final_families.sort(key=FamilyRegistry.get_priority)

        self.resolved_families = final_families

    def build_rule_set(self) -> RuleSet:
        if self.rule_set is not None:
            return self.rule_set
        self._resolve_families()
        return RuleSet.from_registry(names=self.resolved_families)

    def _load_input(self):
        # Priority: graph_def > input_graph
        if self.graph_def is not None:
            custom_logger.debug("Using provided graph_def object")
            return self.graph_def
        if self.input_graph:
            custom_logger.info(f"Loading graph from {self.input_graph}")
            return load_graph(self.input_graph)
        raise ValueError("Either graph_def or input_graph must be provided.")

    def run(self):
        """Executes the rewrite and returns the normalized GraphDef."""
        self._setup_logging_and_debug()
        rule_set = self.build_rule_set()
        graph_def = self._load_input()

        optimizer = GraphOptimizer(graph_def, rule_set)
        initial_node_count = len(optimizer.nodes)
        if self.debug_dir:
            save_graph(graph_def, os.path.join(self.debug_dir, "00_initial.pb"))

        custom_logger.info(
            f"Applying {len(rule_set)} rules from families {list(rule_set.families)}"
        )
        if self.output_nodes:
            custom_logger.info(f"Output nodes ({len(self.output_nodes)}): {self.output_nodes}")

        start_time = time.time()
        try:
            result = optimizer.optimize(
                pass_name="rewrite",
                max_iterations=self.max_iterations,
                output_nodes=self.output_nodes or None,
            )
        except Exception as e:
            custom_logger.error(f"Graph rewrite failed: {e}")
            raise
        total_time = time.time() - start_time
        self.stats = dict(optimizer.stats)

        if self.output_graph:
            custom_logger.info(f"Saving rewritten graph to {self.output_graph}")
            save_graph(result, self.output_graph)
        if self.debug_dir:
            save_graph(result, os.path.join(self.debug_dir, "final.pb"))

        self._log_final_summary(initial_node_count, len(result.node), total_time)
        return result

    def _log_final_summary(self, initial_node_count, final_node_count, total_time):
        """Log final summary with per-rule firing counts."""
        nodes_removed = initial_node_count - final_node_count

        custom_logger.info("=" * 70)
        custom_logger.info("REWRITE SUMMARY")
        custom_logger.info("=" * 70)

        if self.stats:
            custom_logger.info(f"{'Rule':<50} {'Fired':>8}")
            custom_logger.info("-" * 70)
            for rule_name, count in sorted(self.stats.items()):
                custom_logger.info(f"  {rule_name:<48} {count:>8}")
            custom_logger.info("-" * 70)

        custom_logger.info(f"  Total rewrites: {sum(self.stats.values())}")
        custom_logger.info(f"  Total time: {total_time:.3f}s")
        custom_logger.info(
            f"  Nodes: {initial_node_count} -> {final_node_count} (removed: {nodes_removed})"
        )
        custom_logger.info("=" * 70)
