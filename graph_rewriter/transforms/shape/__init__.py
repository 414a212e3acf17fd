"""
Shape Transforms - data-movement folds
======================================

- shape_fold.py : Transpose / Unsqueeze / ExpandDims over dense constants
"""

from .shape_fold import ShapeTransformFamily

__all__ = [
    'ShapeTransformFamily',
]
