"""统一异常体系

所有业务异常继承 DeployflowError。远端命令失败时，异常携带 output
（命令捕获的错误输出），便于调用方写入报告或告警。
CLI 层可据此输出友好提示，并按 code 区分失败类型。
"""

from __future__ import annotations


class DeployflowError(Exception):
    """框架基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str, output: str = "") -> None:
        super().__init__(message)
        self.output = output


class ConfigurationError(DeployflowError):
    """无法为命令解析出有效配置（如项目环境变量文件缺失）"""

    code = "CONFIGURATION_ERROR"


class NotFoundError(DeployflowError):
    """指定的项目、环境或归档不存在"""

    code = "NOT_FOUND"


class InvocationError(DeployflowError):
    """进程无法启动（区别于远端命令以非零状态退出）"""

    code = "INVOCATION_ERROR"


class EnvironmentBusyError(DeployflowError):
    """同一环境上已有操作在执行"""

    code = "ENVIRONMENT_BUSY"


class MaintenanceError(DeployflowError):
    """维护页开启/关闭失败，对所在操作始终是致命的"""

    code = "MAINTENANCE_ERROR"


class PackageGenerationError(DeployflowError):
    """部署包生成失败或结果为空"""

    code = "PACKAGE_GENERATION_ERROR"


class DeployError(DeployflowError):
    """deploy 命令执行失败"""

    code = "DEPLOY_ERROR"


class BackupError(DeployflowError):
    """数据库或资源文件导出失败"""

    code = "BACKUP_ERROR"


class PackagingError(DeployflowError):
    """打包 sspak 归档失败"""

    code = "PACKAGING_ERROR"


class InvalidArchiveError(DeployflowError):
    """归档文件无效且无法自动修复"""

    code = "INVALID_ARCHIVE"


class RestoreError(DeployflowError):
    """数据库或资源文件推送到目标环境失败"""

    code = "RESTORE_ERROR"


class RebuildError(DeployflowError):
    """deploy:migrate 重建失败"""

    code = "REBUILD_ERROR"


class CleanupError(DeployflowError):
    """清理失败（非致命，只做报告）"""

    code = "CLEANUP_ERROR"
