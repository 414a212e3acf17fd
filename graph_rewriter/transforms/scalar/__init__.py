"""
Scalar Transforms - elementwise arithmetic rule families
========================================================

- additive.py       : Add commute / re-associate / fold
- subtractive.py    : Sub, Neg, Sqrt folds and Sub(x, c) -> Add(x, -c)
- multiplicative.py : Mul commute / re-associate / fold, Div fold
- associative.py    : the rule shapes shared by Add and Mul
"""

from .additive import AdditiveFamily
from .subtractive import SubtractiveFamily
from .multiplicative import MultiplicativeFamily

__all__ = [
    'AdditiveFamily',
    'SubtractiveFamily',
    'MultiplicativeFamily',
]
