from .core import (
    GraphOptimizer,
    RewriteResult,
    RewriteRule,
    RuleFamily,
    RuleSet,
    FamilyRegistry,
    OpPattern,
    WildcardPattern,
    ConstPattern,
    Op,
    Any,
    Const,
    not_constant,
    dense,
    arithmetic_dtype,
)
from .errors import (
    GraphRewriteError,
    InternalCompilerError,
    DtypeMismatchError,
    FoldInvariantError,
    RewriteLimitExceeded,
    ConstantFoldError,
    UnsupportedDtypeError,
    DivisionByZeroError,
    BroadcastError,
    InvalidAttributeError,
)
from .utils import (
    create_node,
    create_const_node,
    load_graph,
    save_graph,
    GraphBuilder,
    SPARSE_LAYOUT_ATTR,
)
from .runner import OptimizationPipeline, optimize_graph, optimize_graphs, load_config
from .utils.logger import set_log_level, DEBUG, INFO, WARNING, ERROR

# Import transforms to register all rule families
from . import transforms

__all__ = [
    "GraphOptimizer",
    "RewriteResult",
    "RewriteRule",
    "RuleFamily",
    "RuleSet",
    "FamilyRegistry",
    "OpPattern",
    "WildcardPattern",
    "ConstPattern",
    "Op",
    "Any",
    "Const",
    "not_constant",
    "dense",
    "arithmetic_dtype",
    "GraphRewriteError",
    "InternalCompilerError",
    "DtypeMismatchError",
    "FoldInvariantError",
    "RewriteLimitExceeded",
    "ConstantFoldError",
    "UnsupportedDtypeError",
    "DivisionByZeroError",
    "BroadcastError",
    "InvalidAttributeError",
    "create_node",
    "create_const_node",
    "load_graph",
    "save_graph",
    "GraphBuilder",
    "SPARSE_LAYOUT_ATTR",
    "OptimizationPipeline",
    "optimize_graph",
    "optimize_graphs",
    "load_config",
    "set_log_level",
    "DEBUG",
    "INFO",
    "WARNING",
    "ERROR",
]
