"""
Transform Tests - 规则族测试
============================

- scalar/ : additive, subtractive, multiplicative
- shape/  : shape_transform
"""
