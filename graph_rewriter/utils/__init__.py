from .graph_utils import (
    SPARSE_LAYOUT_ATTR,
    extract_base_name,
    split_input_name,
    canonicalize_axis,
    compute_reference_counts,
    infer_graph_outputs,
    update_node_inputs,
    remove_nodes,
    prune_unreachable,
    get_node_shape,
    get_node_dtype,
    # I/O and construction
    create_node,
    create_const_node,
    make_output_shapes_attr,
    make_dtype_attr,
    save_graph,
    load_graph,
    GraphBuilder,
)
from .logger import logger

__all__ = [
    # graph_utils
    "SPARSE_LAYOUT_ATTR",
    "extract_base_name",
    "split_input_name",
    "canonicalize_axis",
    "compute_reference_counts",
    "infer_graph_outputs",
    "update_node_inputs",
    "remove_nodes",
    "prune_unreachable",
    "get_node_shape",
    "get_node_dtype",
    # I/O and construction
    "create_node",
    "create_const_node",
    "make_output_shapes_attr",
    "make_dtype_attr",
    "save_graph",
    "load_graph",
    "GraphBuilder",
    # logger
    "logger",
]
