import logging
import functools
import time

# Define Log Levels
DEBUG = logging.DEBUG
INFO = logging.INFO
WARNING = logging.WARNING
ERROR = logging.ERROR

LOG_FORMAT = (
    "%(asctime)s - [%(levelname)s] - %(name)s - [%(filename)s:%(lineno)d] - %(message)s"
)


# Singleton logger setup
def get_logger(name="GraphRewriter"):
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
    return logger


logger = get_logger()


def set_log_level(level):
    logger.setLevel(level)


def trace_transformation(func):
    """Aspect: Log when a rule's build function produces a replacement."""

    @functools.wraps(func)
    def wrapper(match, builder, *args, **kwargs):
        start_time = time.time()
        result = func(match, builder, *args, **kwargs)
        duration = (time.time() - start_time) * 1000

        # Only log when a replacement was actually built
        if result is not None:
            node_count = (
                len(result.new_nodes) if hasattr(result, "new_nodes") else len(result)
            )
            pass_name = getattr(builder.optimizer, "current_pass_name", None)
            prefix = f"[{pass_name}] " if pass_name else ""
            logger.debug(
                f"{prefix}Rule {func.__name__} rewrote {builder.root.name} "
                f"({builder.root.op}), generated {node_count} nodes ({duration:.2f}ms)"
            )
        return result

    return wrapper


def log_optimization(func):
    """Aspect: Log the overall rewrite run."""

    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        pass_name = kwargs.get("pass_name")
        prefix = f"[{pass_name}] " if pass_name else ""
        original_node_count = len(self.graph_def.node)
        logger.info(
            f"{prefix}Starting graph rewrite... ({original_node_count} nodes)"
        )
        start_time = time.time()

        result_graph = func(self, *args, **kwargs)

        duration = time.time() - start_time
        final_node_count = len(result_graph.node)
        logger.info(
            f"{prefix}Rewrite finished in {duration:.3f}s. "
            f"Rewrites: {sum(self.stats.values())}, "
            f"Nodes: {original_node_count} -> {final_node_count}"
        )
        return result_graph

    return wrapper


def log_match(func):
    """Aspect: Log matching attempts (DEBUG level)."""

    @functools.wraps(func)
    def wrapper(self, node, optimizer, context=None):
        res = func(self, node, optimizer, context)
        if res:
            pass_name = getattr(optimizer, "current_pass_name", None)
            prefix = f"[{pass_name}] " if pass_name else ""
            logger.debug(f"{prefix}Matched pattern on node: {node.name} (Op: {node.op})")
        return res

    return wrapper
