"""
Error taxonomy for the rewrite engine.

Two kinds of failures exist:

- ``InternalCompilerError``: an invariant of the compiler was violated
  (mismatched operand dtypes, a fold that disagrees with the declared
  output, a rule set that does not terminate). These abort the rewrite and
  reach the caller as a compilation failure.
- ``ConstantFoldError``: the evaluator cannot produce a literal for this
  particular node (unsupported dtype, integer division by zero, ...). The
  rule is treated as a non-match and the node is left unrewritten.
"""


class GraphRewriteError(Exception):
    """Base class of all errors raised by graph_rewriter."""


class InternalCompilerError(GraphRewriteError):
    """Fatal: the input graph or the rule set broke a compiler invariant."""


class DtypeMismatchError(InternalCompilerError):
    """Operands of an elementwise fold carry different dtypes."""


class FoldInvariantError(InternalCompilerError):
    """A folded literal disagrees with the root's declared shape or dtype."""


class RewriteLimitExceeded(InternalCompilerError):
    """The driver hit its iteration ceiling without reaching a fixpoint."""

    def __init__(self, max_iterations, last_rule=None, last_node=None):
        self.max_iterations = max_iterations
        self.last_rule = last_rule
        self.last_node = last_node
        msg = f"Rewrite did not reach a fixpoint within {max_iterations} rewrites"
        if last_rule:
            msg += f" (last rule: {last_rule} on node '{last_node}')"
        super().__init__(msg)


class ConstantFoldError(GraphRewriteError):
    """Recoverable: the evaluator declines to fold this node."""


class UnsupportedDtypeError(ConstantFoldError):
    pass


class DivisionByZeroError(ConstantFoldError):
    pass


class BroadcastError(ConstantFoldError):
    pass


class InvalidAttributeError(ConstantFoldError):
    """A permutation or axis list is malformed for the operand's rank."""
