"""
Graph Rewriter Test Suite
=========================

测试模块组织：

tests/
├── test_evaluator.py    # 常量求值器（广播、整数除法、IEEE、transpose/unsqueeze）
├── framework/           # 核心框架测试
│   ├── test_core.py              # 模式匹配、谓词、重写驱动
│   ├── test_driver.py            # 不动点、迭代上限、幂等性、确定性
│   ├── test_infrastructure.py    # Pipeline、配置、并发优化
│   ├── test_logging.py           # 日志系统测试
│   └── test_pruning.py           # 图裁剪测试
│
└── transforms/          # 规则族测试
    ├── scalar/
    │   ├── test_additive.py          # Add 规范化与折叠
    │   ├── test_subtractive.py       # Sub / Neg / Sqrt
    │   └── test_multiplicative.py    # Mul 规范化与折叠, Div 折叠
    │
    └── shape/
        └── test_shape_fold.py        # Transpose / Unsqueeze / ExpandDims

运行测试：
    python -m pytest tests/ -v
    python -m pytest tests/framework/ -v
    python -m pytest tests/transforms/ -v
"""
