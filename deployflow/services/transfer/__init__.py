"""数据传输编排模块

拆分说明：
- backup.py: 备份流程 (pull)
- restore.py: 恢复流程 (push)
- orchestrator.py: 按方向分派 + 重建
"""

from deployflow.services.transfer.backup import BackupFlow
from deployflow.services.transfer.orchestrator import DataTransferOrchestrator
from deployflow.services.transfer.restore import RestoreFlow

__all__ = [
    "BackupFlow",
    "DataTransferOrchestrator",
    "RestoreFlow",
]
