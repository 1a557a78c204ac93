"""deployflow - 部署与数据迁移编排引擎"""

__version__ = "0.1.0"
