"""
Graph manipulation utility functions.

This module provides stateless helpers over ``GraphDef`` protos (node
construction, I/O, reference analysis, reachability pruning) and the
``GraphBuilder`` handle through which rewrite rules construct their
replacement nodes.
"""

import os
import collections
from typing import Dict, Iterable, List, Optional, Set, Tuple

import numpy as np
import tensorflow.compat.v1 as tf
from tensorflow.core.framework import node_def_pb2
from tensorflow.core.framework import attr_value_pb2
from tensorflow.python.framework import tensor_util
from google.protobuf import text_format

from graph_rewriter.errors import FoldInvariantError

# Attribute marking a Const whose payload uses a compressed/sparse encoding.
SPARSE_LAYOUT_ATTR = "sparse_layout"


# =======================
# Graph I/O Operations
# =======================


def create_node(op, name, inputs=None, attr=None):
    """Creates a NodeDef proto."""
    node = node_def_pb2.NodeDef()
    node.op = op
    node.name = name
    if inputs:
        node.input.extend(inputs)
    if attr:
        for k, v in attr.items():
            node.attr[k].CopyFrom(v)
    return node


def create_const_node(name: str, value, dtype: Optional[str] = None, shape: list = None):
    """Creates a Const NodeDef holding ``value`` (array-like) as a dense literal."""
    np_array = np.asarray(value, dtype=np.dtype(dtype) if dtype else None)
    if shape is not None:
        np_array = np.broadcast_to(np_array, shape)
    tf_dtype = tf.as_dtype(np_array.dtype).as_datatype_enum

    node = node_def_pb2.NodeDef()
    node.op = "Const"
    node.name = name
    node.attr["dtype"].CopyFrom(attr_value_pb2.AttrValue(type=tf_dtype))
    node.attr["value"].tensor.CopyFrom(
        tensor_util.make_tensor_proto(np_array, dtype=tf_dtype, shape=list(np_array.shape))
    )
    node.attr["_output_shapes"].CopyFrom(make_output_shapes_attr([list(np_array.shape)]))
    return node


def make_output_shapes_attr(shapes: List[List[int]]) -> attr_value_pb2.AttrValue:
    """
    Creates an AttrValue proto for _output_shapes.

    Args:
        shapes: List of shapes, where each shape is a list of integers.

    Returns:
        attr_value_pb2.AttrValue: The formatted attribute
    """
    attr = attr_value_pb2.AttrValue()
    for shape in shapes:
        shape_proto = attr.list.shape.add()
        for dim in shape:
            shape_proto.dim.add().size = dim
    return attr


def make_dtype_attr(np_dtype) -> attr_value_pb2.AttrValue:
    return attr_value_pb2.AttrValue(type=tf.as_dtype(np_dtype).as_datatype_enum)


def save_graph(graph_def, path):
    """Saves a GraphDef proto to a file (binary or pbtxt)."""
    output_dir = os.path.dirname(path)
    if output_dir and not os.path.exists(output_dir):
        os.makedirs(output_dir, exist_ok=True)

    if path.endswith(".pbtxt"):
        with open(path, "w") as f:
            f.write(text_format.MessageToString(graph_def))
    else:
        with open(path, "wb") as f:
            f.write(graph_def.SerializeToString())


def load_graph(path):
    """Loads a GraphDef proto from a file."""
    if not os.path.exists(path):
        raise FileNotFoundError(f"Graph file not found: {path}")

    graph_def = tf.GraphDef()
    if path.endswith(".pbtxt"):
        with open(path, "r") as f:
            text_format.Merge(f.read(), graph_def)
    else:
        with open(path, "rb") as f:
            graph_def.ParseFromString(f.read())
    return graph_def


# =======================
# Node Inspection
# =======================


def extract_base_name(input_name: str) -> str:
    """
    Extract base node name from input (strip port and control marker).

    Examples:
        'node:0' -> 'node'
        '^control_dep' -> 'control_dep'
        'node' -> 'node'
    """
    return input_name.split(":")[0].lstrip("^")


def split_input_name(input_name: str) -> Tuple[str, int]:
    """Returns (producer, output port) for a data input reference."""
    base, _, port = input_name.lstrip("^").partition(":")
    return base, int(port) if port else 0


def is_control_input(input_name: str) -> bool:
    return input_name.startswith("^")


def data_inputs(node) -> List[str]:
    return [i for i in node.input if not is_control_input(i)]


def canonicalize_axis(axis: Optional[int], rank: Optional[int]) -> Optional[int]:
    """
    Standardizes negative axes for easier comparison.

    Returns:
        Non-negative axis value, or None if it cannot be canonicalized
    """
    if axis is None:
        return None
    if axis >= 0:
        return axis
    if rank is None:
        return None
    return axis + rank


def get_node_shape(node, port: int = 0) -> Optional[List[int]]:
    """Returns the declared output shape of a node (-1 for unknown dims)."""
    if node is None:
        return None
    if "_output_shapes" in node.attr:
        shape_list = node.attr["_output_shapes"].list.shape
        if len(shape_list) > port:
            if shape_list[port].unknown_rank:
                return None
            return [dim.size for dim in shape_list[port].dim]
    if port == 0 and "shape" in node.attr:
        shape = node.attr["shape"].shape
        if shape.unknown_rank:
            return None
        return [dim.size for dim in shape.dim]
    if node.op == "Const" and "value" in node.attr:
        return [dim.size for dim in node.attr["value"].tensor.tensor_shape.dim]
    return None


def get_node_dtype(node) -> Optional[np.dtype]:
    """Returns the declared element type of a node as a numpy dtype."""
    for key in ("T", "dtype"):
        if key in node.attr and node.attr[key].WhichOneof("value") == "type":
            tf_dtype = tf.as_dtype(node.attr[key].type)
            try:
                return np.dtype(tf_dtype.as_numpy_dtype)
            except TypeError:
                return None
    return None


def shapes_compatible(declared: Optional[List[int]], actual: List[int]) -> bool:
    """True when ``actual`` agrees with ``declared`` on every known dimension."""
    if declared is None:
        return True
    if len(declared) != len(actual):
        return False
    return all(d < 0 or d == a for d, a in zip(declared, actual))


# =======================
# Graph Analysis Utilities
# =======================


def compute_reference_counts(graph_def: tf.GraphDef) -> Dict[str, int]:
    """Compute reference count for each node (data and control edges)."""
    reference_counts: Dict[str, int] = collections.defaultdict(int)
    for node in graph_def.node:
        for input_name in node.input:
            reference_counts[extract_base_name(input_name)] += 1
    return reference_counts


def infer_graph_outputs(graph_def: tf.GraphDef) -> List[str]:
    """Nodes nobody consumes are the graph's implicit outputs."""
    refs = compute_reference_counts(graph_def)
    return [
        node.name
        for node in graph_def.node
        if refs[node.name] == 0 and node.op != "Placeholder"
    ]


def update_node_inputs(node: tf.NodeDef, node_mapping: Dict[str, str]):
    """
    Rewrite node's inputs according to node_mapping (old_name -> new reference).
    Control dependency markers are preserved; a data input that carried a port
    keeps it unless the mapping target names its own port.
    """
    updated_inputs = []
    for input_name in node.input:
        is_control = is_control_input(input_name)
        base_name = extract_base_name(input_name)

        # Resolve transitively; stop on cycles
        target = base_name
        visited = {target}
        while extract_base_name(target) in node_mapping:
            target = node_mapping[extract_base_name(target)]
            if target in visited:
                break
            visited.add(target)

        if target == base_name:
            updated_inputs.append(input_name)
        elif is_control:
            updated_inputs.append(f"^{extract_base_name(target)}")
        elif ":" in target or ":" not in input_name:
            updated_inputs.append(target)
        else:
            updated_inputs.append(f"{target}:{input_name.split(':', 1)[1]}")

    del node.input[:]
    node.input.extend(updated_inputs)


def remove_nodes(
    graph_def: tf.GraphDef,
    nodes_to_remove: Set[str],
    pass_name: str = None,
    reason: str = None,
    logger=None,
) -> tf.GraphDef:
    """Create new GraphDef without the specified nodes."""
    pruned_graph_def = tf.GraphDef()
    pruned_graph_def.versions.CopyFrom(graph_def.versions)
    pruned_graph_def.library.CopyFrom(graph_def.library)
    for node in graph_def.node:
        if node.name not in nodes_to_remove:
            pruned_graph_def.node.add().CopyFrom(node)

    if logger and nodes_to_remove:
        prefix = f"[{pass_name}] " if pass_name else ""
        reason_str = f", reason: {reason}" if reason else ""
        for node_name in sorted(nodes_to_remove):
            logger.debug(f"{prefix}Deleted: {node_name}{reason_str}")

    return pruned_graph_def


def prune_unreachable(
    graph_def: tf.GraphDef,
    output_nodes: Iterable[str],
    pass_name: str = None,
    logger=None,
) -> tf.GraphDef:
    """
    Remove every node that no graph output depends on.

    Reachability follows data and control edges backwards from
    ``output_nodes``. Placeholders are graph inputs and are always kept.
    """
    nodes = {node.name: node for node in graph_def.node}
    live = set()
    stack = [name for name in output_nodes if name in nodes]
    while stack:
        name = stack.pop()
        if name in live:
            continue
        live.add(name)
        for input_name in nodes[name].input:
            base_name = extract_base_name(input_name)
            if base_name in nodes and base_name not in live:
                stack.append(base_name)

    dead_nodes = {
        node.name
        for node in graph_def.node
        if node.name not in live and node.op != "Placeholder"
    }
    if not dead_nodes:
        return graph_def
    return remove_nodes(graph_def, dead_nodes, pass_name, "unreachable", logger)


# =======================
# Replacement Construction
# =======================


class GraphBuilder:
    """Construction handle handed to a rule's build function.

    New nodes are named under the matched root (``<root>/<name>``) and made
    unique against the current graph. The node standing in for the root keeps
    the root's name, so its consumers and graph outputs stay wired.
    """

    INHERITED_ATTRS = ("T", "_output_shapes")

    def __init__(self, optimizer, root):
        self.optimizer = optimizer
        self.root = root
        self.nodes = []
        self._taken = set()

    def unique_name(self, base):
        name = base
        suffix = 1
        while name in self.optimizer.nodes or name in self._taken:
            name = f"{base}_{suffix}"
            suffix += 1
        self._taken.add(name)
        return name

    def add_node(self, op, name, inputs=None, attr=None):
        full_name = self.unique_name(f"{self.root.name}/{name}")
        self.nodes.append(create_node(op, full_name, inputs, attr))
        return full_name

    def add_const(self, name, value):
        full_name = self.unique_name(f"{self.root.name}/{name}")
        self.nodes.append(create_const_node(full_name, value))
        return full_name

    def dtype_attr(self, shape=None):
        """Attributes for an intermediate node of the root's element type."""
        attr = {}
        if "T" in self.root.attr:
            attr["T"] = self.root.attr["T"]
        if shape is not None:
            attr["_output_shapes"] = make_output_shapes_attr([shape])
        return attr

    def replace_root(self, op, inputs, attr=None):
        """Emit the node that takes over the root's name and declared output."""
        node = create_node(op, self.root.name, inputs)
        for key in self.INHERITED_ATTRS:
            if key in self.root.attr:
                node.attr[key].CopyFrom(self.root.attr[key])
        for key, value in (attr or {}).items():
            node.attr[key].CopyFrom(value)
        self.nodes.append(node)
        return node.name

    def const_root(self, value):
        """Emit the folded literal for the root, checking its declared output."""
        declared_shape = get_node_shape(self.root)
        if not shapes_compatible(declared_shape, list(value.shape)):
            raise FoldInvariantError(
                f"Folding '{self.root.name}' produced shape {list(value.shape)}, "
                f"declared {declared_shape}"
            )
        declared_dtype = get_node_dtype(self.root)
        if declared_dtype is not None and declared_dtype != value.dtype:
            raise FoldInvariantError(
                f"Folding '{self.root.name}' produced dtype {value.dtype}, "
                f"declared {declared_dtype}"
            )
        self.nodes.append(create_const_node(self.root.name, value))
        return self.root.name

    def get_nodes(self):
        return self.nodes
