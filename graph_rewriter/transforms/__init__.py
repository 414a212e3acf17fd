"""
Rewrite Rule Families
=====================

Importing this package registers every family with ``FamilyRegistry``.

transforms/
├── scalar/              # elementwise arithmetic
│   ├── additive.py         # Add normalization + fold
│   ├── subtractive.py      # Sub / Neg / Sqrt
│   └── multiplicative.py   # Mul normalization + fold, Div fold
│
└── shape/               # data movement
    └── shape_fold.py       # Transpose / Unsqueeze / ExpandDims fold

Default order (priority):
1. additive        (10)
2. subtractive     (20)
3. multiplicative  (30)
4. shape_transform (40)

Families are independent; the order only decides which rewrite the driver
tries first, not the normal form.
"""

from .scalar import (
    AdditiveFamily,
    SubtractiveFamily,
    MultiplicativeFamily,
)
from .shape import (
    ShapeTransformFamily,
)

__all__ = [
    'AdditiveFamily',
    'SubtractiveFamily',
    'MultiplicativeFamily',
    'ShapeTransformFamily',
]
