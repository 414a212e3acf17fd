"""
Constant Evaluator
==================

Purpose:
--------
Computes, at compile time, the literal produced by an elementwise binary op,
an elementwise unary op, a permutation (transpose) or an axis insertion
(unsqueeze) applied to dense literal operands. Literals are read-only numpy
arrays decoded from the ``value`` tensor of ``Const`` nodes.

Semantics:
----------
- Binary ops broadcast with the usual trailing-dimension rule; both operands
  must share one dtype and the result keeps it.
- Integer arithmetic wraps around; integer division truncates toward zero
  and refuses a zero divisor (the node is left for the lowered code).
- Floating point follows IEEE: x/0 gives inf or nan, sqrt(-1) gives nan.
- Only integer and floating dtypes have arithmetic here; anything else
  raises ``UnsupportedDtypeError`` and the fold is skipped.

Example:
--------
  elementwise_add([1, 2, 3], [4, 5, 6]) -> [5, 7, 9]
  transpose([[1, 2], [3, 4]], perm=[1, 0]) -> [[1, 3], [2, 4]]
  unsqueeze(<shape [2, 3]>, axes=[0]) -> <shape [1, 2, 3]>
"""

from __future__ import annotations

from typing import List, Optional, Sequence

import numpy as np
import tensorflow.compat.v1 as tf
from tensorflow.python.framework import tensor_util

from graph_rewriter.errors import (
    BroadcastError,
    DivisionByZeroError,
    DtypeMismatchError,
    InvalidAttributeError,
    UnsupportedDtypeError,
)
from graph_rewriter.utils.graph_utils import canonicalize_axis


def make_literal(value) -> np.ndarray:
    """Freeze an array so it can be shared by reference between graphs."""
    literal = np.array(value, copy=True)
    literal.setflags(write=False)
    return literal


def read_literal(node) -> np.ndarray:
    """Decodes the dense literal carried by a Const node."""
    return make_literal(tensor_util.MakeNdarray(node.attr["value"].tensor))


def is_arithmetic_dtype(dtype) -> bool:
    """Integer and floating types; the only ones folded or reordered."""
    return np.issubdtype(dtype, np.integer) or np.issubdtype(dtype, np.floating)


def _check_arithmetic_dtype(dtype):
    if not is_arithmetic_dtype(dtype):
        raise UnsupportedDtypeError(f"No compile-time arithmetic for dtype {dtype}")


def _check_binary_operands(a, b):
    if a.dtype != b.dtype:
        raise DtypeMismatchError(
            f"Elementwise fold on mismatched dtypes: {a.dtype} vs {b.dtype}"
        )
    _check_arithmetic_dtype(a.dtype)
    broadcast_shape(a.shape, b.shape)


def broadcast_shape(s1: Sequence[int], s2: Sequence[int]) -> List[int]:
    """Result shape of broadcasting ``s1`` against ``s2``."""
    s1, s2 = list(s1), list(s2)
    if s1 == s2:
        return s1
    try:
        return tf.broadcast_static_shape(
            tf.TensorShape(s1), tf.TensorShape(s2)
        ).as_list()
    except ValueError as e:
        raise BroadcastError(f"Shapes {s1} and {s2} are not broadcast-compatible") from e


def elementwise_add(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    _check_binary_operands(a, b)
    with np.errstate(over="ignore", invalid="ignore"):
        return make_literal(np.add(a, b))


def elementwise_sub(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    _check_binary_operands(a, b)
    with np.errstate(over="ignore", invalid="ignore"):
        return make_literal(np.subtract(a, b))


def elementwise_mul(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    _check_binary_operands(a, b)
    with np.errstate(over="ignore", invalid="ignore"):
        return make_literal(np.multiply(a, b))


def elementwise_div(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    _check_binary_operands(a, b)
    if np.issubdtype(a.dtype, np.integer):
        if np.any(b == 0):
            raise DivisionByZeroError("Integer division by zero in constant folding")
        with np.errstate(over="ignore"):
            quotient = np.floor_divide(a, b)
            # floor -> truncation where the exact quotient is negative and inexact
            adjust = (np.remainder(a, b) != 0) & ((a < 0) != (b < 0))
        return make_literal(np.where(adjust, quotient + 1, quotient).astype(a.dtype))
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        return make_literal(np.divide(a, b))


def elementwise_neg(a: np.ndarray) -> np.ndarray:
    _check_arithmetic_dtype(a.dtype)
    with np.errstate(over="ignore"):
        return make_literal(np.negative(a))


def elementwise_sqrt(a: np.ndarray) -> np.ndarray:
    if not np.issubdtype(a.dtype, np.floating):
        raise UnsupportedDtypeError(f"Sqrt fold needs a floating dtype, got {a.dtype}")
    with np.errstate(invalid="ignore"):
        return make_literal(np.sqrt(a))


def transpose(a: np.ndarray, perm: Optional[Sequence[int]] = None) -> np.ndarray:
    """Permutes axes; output axis ``i`` is input axis ``perm[i]``."""
    rank = a.ndim
    if perm is None:
        perm = list(reversed(range(rank)))
    perm = [int(p) for p in perm]
    if sorted(perm) != list(range(rank)):
        raise InvalidAttributeError(f"perm {perm} is not a permutation of rank {rank}")
    return make_literal(np.transpose(a, perm))


def normalize_unsqueeze_axes(axes: Sequence[int], rank: int) -> List[int]:
    """Canonical, ascending insertion positions in the output tensor."""
    out_rank = rank + len(axes)
    normalized = []
    for axis in axes:
        axis = int(axis)
        canonical = canonicalize_axis(axis, out_rank)
        if not 0 <= canonical < out_rank:
            raise InvalidAttributeError(
                f"Unsqueeze axis {axis} out of range for output rank {out_rank}"
            )
        normalized.append(canonical)
    if len(set(normalized)) != len(normalized):
        raise InvalidAttributeError(f"Duplicate unsqueeze axes {list(axes)}")
    return sorted(normalized)


def unsqueeze(a: np.ndarray, axes: Sequence[int]) -> np.ndarray:
    """Inserts size-1 dimensions; the flat data is unchanged."""
    shape = list(a.shape)
    for axis in normalize_unsqueeze_axes(axes, a.ndim):
        shape.insert(axis, 1)
    return make_literal(np.reshape(a, shape))
