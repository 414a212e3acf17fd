import collections
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import tensorflow.compat.v1 as tf
from tensorflow.python.framework import tensor_util

from .errors import ConstantFoldError, RewriteLimitExceeded
from .evaluator import is_arithmetic_dtype, read_literal
from .utils.logger import (
    logger as logging,
    trace_transformation,
    log_optimization,
    log_match,
)
from .utils.graph_utils import (
    SPARSE_LAYOUT_ATTR,
    GraphBuilder,
    create_node,
    data_inputs,
    extract_base_name,
    get_node_dtype,
    get_node_shape,
    infer_graph_outputs,
    is_control_input,
    prune_unreachable,
    split_input_name,
    update_node_inputs,
)

# Upper bound on rewrites per optimize() call
DEFAULT_MAX_ITERATIONS = 10000


class RewriteResult:
    """Replacement produced by a rule: new nodes plus the designated result.

    ``result`` names the value that takes over the matched root. When it is
    omitted, the new node carrying the root's name is the result.
    """

    def __init__(self, new_nodes=None, result=None):
        self.new_nodes = list(new_nodes or [])
        self.result = result
        self.control_inputs = set()
        self.matched_nodes = set()

    @staticmethod
    def from_nodes(value):
        if value is None:
            return None
        if isinstance(value, RewriteResult):
            return value
        if isinstance(value, (list, tuple)):
            return RewriteResult(list(value))
        raise TypeError(
            f"Rule build must return a list of nodes, a RewriteResult or None, got {type(value).__name__}"
        )

    def designated_result(self, root_name):
        if self.result is not None:
            return self.result
        names = [node.name for node in self.new_nodes]
        if root_name in names:
            return root_name
        return names[-1] if names else None


class GraphOptimizer:
    """
    Rewrite driver: applies registered rules to a GraphDef until a fixpoint.
    Holds the current graph state, its node index and the rule index.
    """

    def __init__(self, graph_def: tf.GraphDef, rule_set: Optional["RuleSet"] = None):
        # Rule indexing for O(1) lookup by op_type
        self.pattern_index: Dict[str, List["RewriteRule"]] = collections.defaultdict(list)
        self.wildcard_rules: List["RewriteRule"] = []
        self.stats = collections.Counter()
        self.current_pass_name = None
        self.output_nodes: List[str] = []
        self.load_state(graph_def)
        if rule_set is not None:
            for rule in rule_set.rules():
                self.add_transformation(rule)

    def load_state(self, graph_def: tf.GraphDef):
        """Restores the optimizer state from a GraphDef."""
        self.graph_def = graph_def
        self._index(graph_def)

    def _index(self, graph_def):
        self.nodes: Dict[str, tf.NodeDef] = {node.name: node for node in graph_def.node}
        self._literal_cache = {}

    def add_transformation(self, rule: "RewriteRule"):
        """Adds a rewrite rule, indexed by the op_type of its root pattern."""
        logging.debug(f"Adding transformation: rule={rule.name} pattern={rule.pattern}")
        op_type = rule.pattern.get_indexed_op_type()
        if op_type is None:
            self.wildcard_rules.append(rule)
        else:
            self.pattern_index[op_type].append(rule)

    def get_literal(self, node):
        """Dense literal of a Const node, decoded once per graph state."""
        literal = self._literal_cache.get(node.name)
        if literal is None:
            literal = read_literal(node)
            self._literal_cache[node.name] = literal
        return literal

    def get_node_attr(self, node_or_name, attr_name, default=None):
        """Returns the unwrapped attribute value of a node."""
        node = (
            self.nodes.get(node_or_name)
            if isinstance(node_or_name, str)
            else node_or_name
        )
        if not node or attr_name not in node.attr:
            return default
        return get_attr_value(node.attr[attr_name])

    def get_value_shape(self, value: str) -> Optional[List[int]]:
        """Declared shape of a value reference such as 'node' or 'node:1'."""
        base_name, port = split_input_name(value)
        return get_node_shape(self.nodes.get(base_name), port)

    @log_optimization
    def optimize(
        self,
        pass_name=None,
        max_iterations=DEFAULT_MAX_ITERATIONS,
        output_nodes: Optional[Iterable[str]] = None,
    ) -> tf.GraphDef:
        """Rewrite to a fixpoint, one rewrite per scan.

        Each scan walks the nodes in graph order and applies the first rule
        that matches, passes its predicates and builds a replacement that
        differs from the node. Unreachable nodes are then discarded and the
        scan restarts. More than ``max_iterations`` rewrites is fatal.
        """
        self.current_pass_name = pass_name
        self.stats = collections.Counter()
        self.output_nodes = (
            list(output_nodes)
            if output_nodes
            else infer_graph_outputs(self.graph_def)
        )
        current_graph_def = self.graph_def
        rewrites = 0

        while True:
            self._index(current_graph_def)
            found = self._find_rewrite(current_graph_def)
            if found is None:
                break
            rule, node, result = found

            rewrites += 1
            if rewrites > max_iterations:
                logging.error(
                    f"Rewrite '{pass_name}' exceeded {max_iterations} iterations "
                    f"(last rule {rule.name} at {node.name})"
                )
                raise RewriteLimitExceeded(max_iterations, rule.name, node.name)

            self.stats[rule.name] += 1
            current_graph_def = self._splice(current_graph_def, node, result)

        current_graph_def = prune_unreachable(
            current_graph_def, self.output_nodes, pass_name, logging
        )
        self.load_state(current_graph_def)
        return current_graph_def

    def rewrite_once(self, output_nodes: Optional[Iterable[str]] = None) -> Optional[str]:
        """Applies a single rewrite to the current graph.

        Returns the name of the rule that fired, or None at a fixpoint. The
        optimizer state holds the rewritten graph afterwards.
        """
        if output_nodes:
            self.output_nodes = list(output_nodes)
        elif not self.output_nodes:
            self.output_nodes = infer_graph_outputs(self.graph_def)

        self._index(self.graph_def)
        found = self._find_rewrite(self.graph_def)
        if found is None:
            return None
        rule, node, result = found
        self.stats[rule.name] += 1
        self.load_state(self._splice(self.graph_def, node, result))
        return rule.name

    def _splice(self, graph_def, node, result):
        graph_def = self._apply_rewrite(graph_def, node, result)
        return prune_unreachable(
            graph_def, self.output_nodes, self.current_pass_name, logging
        )

    def _find_rewrite(self, graph_def) -> Optional[Tuple["RewriteRule", tf.NodeDef, RewriteResult]]:
        for node in graph_def.node:
            candidates = self.pattern_index.get(node.op, []) + self.wildcard_rules
            for rule in candidates:
                result = rule.apply(node, self)
                if result is None or self._is_noop(node, result):
                    continue
                return rule, node, result
        return None

    @staticmethod
    def _is_noop(node, result):
        return len(result.new_nodes) == 1 and result.new_nodes[0] == node

    def _apply_rewrite(self, graph_def, root, result: RewriteResult) -> tf.GraphDef:
        """Splice the replacement in at the root's position."""
        designated = result.designated_result(root.name)
        if designated is None:
            raise ValueError(f"Rewrite of '{root.name}' produced no result value")
        designated_base = extract_base_name(designated)

        new_names = set()
        for new_node in result.new_nodes:
            if new_node.name != root.name and new_node.name in self.nodes:
                raise ValueError(
                    f"Rewrite of '{root.name}' reuses existing node name '{new_node.name}'"
                )
            new_names.add(new_node.name)

        # Carry control dependencies of replaced nodes onto the result
        relevant_controls = sorted(
            ci
            for ci in result.control_inputs
            if extract_base_name(ci) not in result.matched_nodes
        )

        next_graph_def = tf.GraphDef()
        next_graph_def.versions.CopyFrom(graph_def.versions)
        next_graph_def.library.CopyFrom(graph_def.library)
        for node in graph_def.node:
            if node.name != root.name:
                next_graph_def.node.add().CopyFrom(node)
                continue
            for new_node in result.new_nodes:
                added = next_graph_def.node.add()
                added.CopyFrom(new_node)
                if added.name == designated_base:
                    existing = set(added.input)
                    for ci in relevant_controls:
                        if ci not in existing:
                            added.input.append(ci)

        if designated_base != root.name and root.name not in new_names:
            mapping = {root.name: designated}
            for node in next_graph_def.node:
                if node.name not in new_names:
                    update_node_inputs(node, mapping)
            if root.name in self.output_nodes:
                # Keep the graph's output name stable
                identity = create_node("Identity", root.name, [designated])
                for key in ("T", "_output_shapes"):
                    if key in root.attr:
                        identity.attr[key].CopyFrom(root.attr[key])
                next_graph_def.node.add().CopyFrom(identity)

        return next_graph_def


class MatchContext:
    """Bindings produced by a successful match."""

    def __init__(self):
        self.matched_nodes = {}  # alias -> NodeDef
        self.matched_values = {}  # alias -> value reference ("node" or "node:port")
        self.literals = {}  # alias -> read-only ndarray (constant captures)
        self.sparse_markers = {}  # alias -> sparse layout marker, None when dense
        self.all_matched_nodes = set()  # names of nodes the rewrite replaces
        self.control_inputs = set()  # set of "^node_name"

    def node(self, alias):
        return self.matched_nodes[alias]

    def value(self, alias):
        return self.matched_values[alias]

    def literal(self, alias):
        return self.literals[alias]


class Pattern:
    # Whether the matched node belongs to the subgraph being replaced
    consumes_node = True

    def __init__(self, alias=None):
        self.alias = alias

    @log_match
    def match(
        self,
        node: tf.NodeDef,
        optimizer: "GraphOptimizer",
        context: Optional["MatchContext"] = None,
    ) -> Optional["MatchContext"]:
        if context is None:
            context = MatchContext()
        if self._match_internal(node, node.name, optimizer, context):
            return context
        return None

    def _match_internal(self, node, value, optimizer, context):
        if not self._do_match(node, optimizer, context):
            return False
        if self.consumes_node:
            context.all_matched_nodes.add(node.name)
            for input_name in node.input:
                if is_control_input(input_name):
                    context.control_inputs.add(input_name)
        if self.alias:
            context.matched_nodes[self.alias] = node
            context.matched_values[self.alias] = value
        return True

    def _do_match(self, node, optimizer, context):
        raise NotImplementedError()

    def get_indexed_op_type(self):
        """Return op_type for indexing, or None for patterns matching any op."""
        return None


class OpPattern(Pattern):
    def __init__(self, op_type, inputs=None, attrs=None, alias=None):
        super().__init__(alias)
        self.op_type = op_type
        self.inputs = inputs or []  # List of Pattern
        self.attrs = attrs or {}  # Map of attr_name -> attr_value (or predicate)

    def __repr__(self):
        inner = ", ".join(repr(p) for p in self.inputs)
        return f"{self.op_type}({inner})"

    def get_indexed_op_type(self):
        return None if self.op_type == "*" else self.op_type

    def _do_match(self, node, optimizer, context):
        if self.op_type != "*" and node.op != self.op_type:
            return False

        for attr_name, expected in self.attrs.items():
            if attr_name not in node.attr:
                return False
            actual = get_attr_value(node.attr[attr_name])
            if callable(expected):
                if not expected(actual):
                    return False
            elif actual != expected:
                return False

        if self.inputs:
            inputs = data_inputs(node)
            if len(inputs) != len(self.inputs):
                return False
            for input_name, input_pattern in zip(inputs, self.inputs):
                if not self._match_single_input(
                    input_name, input_pattern, optimizer, context
                ):
                    return False
        return True

    def _match_single_input(self, input_name, input_pattern, optimizer, context):
        base_name = extract_base_name(input_name)
        if base_name not in optimizer.nodes:
            return False
        input_node = optimizer.nodes[base_name]
        return input_pattern._match_internal(input_node, input_name, optimizer, context)


class WildcardPattern(Pattern):
    consumes_node = False

    def __repr__(self):
        return f"Any({self.alias or ''})"

    def _do_match(self, node, optimizer, context):
        return True


class ConstPattern(Pattern):
    """Matches a Const node, binding its literal and sparse marker separately."""

    def __repr__(self):
        return f"Const({self.alias or ''})"

    def get_indexed_op_type(self):
        return "Const"

    def _do_match(self, node, optimizer, context):
        if node.op != "Const" or "value" not in node.attr:
            return False
        marker = None
        if SPARSE_LAYOUT_ATTR in node.attr:
            marker = get_attr_value(node.attr[SPARSE_LAYOUT_ATTR])
        literal = None
        if marker is None:
            try:
                literal = optimizer.get_literal(node)
            except (TypeError, ValueError) as e:
                logging.debug(f"Cannot decode literal of {node.name}: {e}")
                return False
        if self.alias:
            context.literals[self.alias] = literal
            context.sparse_markers[self.alias] = marker
        return True


def get_attr_value(attr_proto):
    """Unwraps a TensorFlow AttrValue proto into a Python literal."""
    field = attr_proto.WhichOneof("value")
    if field == "s":
        return attr_proto.s.decode("utf-8")
    if field == "i":
        return attr_proto.i
    if field == "f":
        return attr_proto.f
    if field == "b":
        return attr_proto.b
    if field == "type":
        return attr_proto.type
    if field == "shape":
        return [dim.size for dim in attr_proto.shape.dim]
    if field == "list":
        lst = attr_proto.list
        if len(lst.i):
            return list(lst.i)
        if len(lst.f):
            return list(lst.f)
        if len(lst.s):
            return [s.decode("utf-8") for s in lst.s]
        if len(lst.b):
            return list(lst.b)
        if len(lst.shape):
            return [[dim.size for dim in shape.dim] for shape in lst.shape]
        return []
    if field == "tensor":
        t = tensor_util.MakeNdarray(attr_proto.tensor)
        if t.ndim == 0:
            return t.item()
        return t
    # Fallback to the proto itself for complex types
    return attr_proto


# Helper functions to build patterns
def Op(op_type, *inputs, alias=None, attrs=None):
    return OpPattern(op_type, list(inputs), attrs, alias)


def Any(alias=None):
    return WildcardPattern(alias)


def Const(alias=None):
    return ConstPattern(alias)


# Side-predicates over bindings
def not_constant(alias):
    """The value bound to ``alias`` is not produced by a Const node."""

    def predicate(match):
        return match.matched_nodes[alias].op != "Const"

    predicate.__name__ = f"not_constant({alias})"
    return predicate


def dense(*aliases):
    """None of the constants bound to ``aliases`` carries a sparse marker."""

    def predicate(match):
        return all(match.sparse_markers.get(alias) is None for alias in aliases)

    predicate.__name__ = f"dense({', '.join(aliases)})"
    return predicate


def arithmetic_dtype(alias):
    """The node bound to ``alias`` computes on integers or floats.

    Falls back to the constants' literals when the node declares no type.
    """

    def predicate(match):
        dtype = get_node_dtype(match.matched_nodes[alias])
        if dtype is not None:
            return is_arithmetic_dtype(dtype)
        literals = [lit for lit in match.literals.values() if lit is not None]
        return bool(literals) and all(is_arithmetic_dtype(lit.dtype) for lit in literals)

    predicate.__name__ = f"arithmetic_dtype({alias})"
    return predicate


class RewriteRule:
    """A pattern, its side-predicates and the build function of the replacement."""

    def __init__(
        self,
        name: str,
        pattern: Pattern,
        predicates: Optional[Sequence[Callable[[MatchContext], bool]]] = None,
        build: Optional[Callable] = None,
    ):
        if build is None:
            raise ValueError(f"Rule '{name}' needs a build function")
        self.name = name
        self.pattern = pattern
        self.predicates = list(predicates or [])
        self.build = trace_transformation(build)

    def __repr__(self):
        return f"RewriteRule({self.name}: {self.pattern})"

    def apply(self, node, optimizer) -> Optional[RewriteResult]:
        """Match, check predicates, build. None means the rule does not fire."""
        match = self.pattern.match(node, optimizer)
        if match is None:
            return None
        for predicate in self.predicates:
            if not predicate(match):
                return None

        builder = GraphBuilder(optimizer, node)
        try:
            result = RewriteResult.from_nodes(self.build(match, builder))
        except ConstantFoldError as e:
            logging.debug(f"Rule {self.name} skipped at {node.name}: {e}")
            return None
        if result is not None:
            result.control_inputs = set(match.control_inputs)
            result.matched_nodes = set(match.all_matched_nodes)
        return result


class RuleFamily:
    """An ordered group of rules for one operator family.

    Families are independent of each other; they only meet in the driver's
    shared fixpoint loop.
    """

    def __init__(self, name=None):
        self.name = name or self.__class__.__name__
        self.rules: List[RewriteRule] = []

    def add_rule(self, name, pattern, predicates=None, build=None) -> RewriteRule:
        """Registration surface for new fold/normalize behaviour."""
        rule = RewriteRule(f"{self.name}.{name}", pattern, predicates, build)
        self.rules.append(rule)
        return rule


class FamilyRegistry:
    """Registry of rule family classes."""

    _registered_families = {}
    _family_metadata = {}

    @classmethod
    def register(cls, name, opt_level=1, priority=100):
        """Decorator to register a family class with an optimization level and priority."""

        def decorator(family_cls):
            cls._registered_families[name] = family_cls
            cls._family_metadata[name] = {"opt_level": opt_level, "priority": priority}
            return family_cls

        return decorator

    @classmethod
    def get_family(cls, name, *args, **kwargs):
        """Creates an instance of the family by its registered name."""
        if name not in cls._registered_families:
            raise ValueError(f"Unknown rule family: {name}")
        return cls._registered_families[name](*args, **kwargs)

    @classmethod
    def list_available_families(cls):
        return list(cls._registered_families.keys())

    @classmethod
    def get_priority(cls, name):
        meta = cls._family_metadata.get(name)
        if meta and "priority" in meta:
            return (meta["priority"], name)
        return (100, name)

    @classmethod
    def get_families_by_level(cls, level):
        """Family names enabled at the given optimization level, sorted by priority."""
        candidates = [
            (name, meta["priority"])
            for name, meta in cls._family_metadata.items()
            if meta["opt_level"] <= level
        ]
        candidates.sort(key=lambda x: (x[1], x[0]))
        return [name for name, _ in candidates]


class RuleSet:
    """Ordered collection of rule families handed to the driver."""

    def __init__(self, families: Optional[Iterable[RuleFamily]] = None):
        self.families: Dict[str, RuleFamily] = collections.OrderedDict()
        for family in families or []:
            self.add_family(family)

    @classmethod
    def from_registry(cls, level=1, names=None):
        names = list(names) if names is not None else FamilyRegistry.get_families_by_level(level)
        return cls(FamilyRegistry.get_family(name) for name in names)

    def add_family(self, family: RuleFamily):
        self.families[family.name] = family
        return family

    def get_family(self, name) -> RuleFamily:
        return self.families[name]

    def add_rule(self, family_name, name, pattern, predicates=None, build=None):
        """Adds a rule to ``family_name``, creating the family when needed."""
        family = self.families.get(family_name)
        if family is None:
            family = self.add_family(RuleFamily(family_name))
        return family.add_rule(name, pattern, predicates, build)

    def rules(self):
        for family in self.families.values():
            yield from family.rules

    def __len__(self):
        return sum(len(family.rules) for family in self.families.values())
