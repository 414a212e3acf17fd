"""
Framework Tests - 核心框架测试模块
===================================

模块列表：
- test_core.py           : 模式匹配（Op / Const / Any）、谓词、控制依赖
- test_driver.py         : 重写驱动（不动点、迭代上限、错误分类、结果重定向）
- test_infrastructure.py : OptimizationPipeline、配置文件、optimize_graphs
- test_logging.py        : 日志系统配置和级别控制
- test_pruning.py        : 不可达节点删除、引用计数、Placeholder 保留
"""
