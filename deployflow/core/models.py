"""核心数据模型

项目 / 环境 / 命令 / 数据传输 / 数据归档。
持久化不在本层负责：记录的存取见 core.registry 与 core.archive_store。
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from deployflow.core.exceptions import ConfigurationError

DEFAULT_TIMEOUT = 3600  # 秒

# =========================================================================
# 枚举
# =========================================================================


class TransferMode(str, Enum):
    """数据操作范围"""
    ALL = "all"
    DB = "db"
    ASSETS = "assets"

    @property
    def includes_db(self) -> bool:
        return self in (TransferMode.ALL, TransferMode.DB)

    @property
    def includes_assets(self) -> bool:
        return self in (TransferMode.ALL, TransferMode.ASSETS)

    @property
    def nice(self) -> str:
        return "database and assets" if self is TransferMode.ALL else self.value


MODE_MAP = {
    TransferMode.ALL: "Database and Assets",
    TransferMode.DB: "Database only",
    TransferMode.ASSETS: "Assets only",
}


class TransferDirection(str, Enum):
    """数据传输方向: pull = 从环境备份, push = 恢复到环境"""
    PULL = "pull"
    PUSH = "push"


# =========================================================================
# 项目与环境
# =========================================================================


@dataclass(frozen=True)
class Project:
    """项目定义（只读）"""

    name: str
    repository: str = ""
    env_file: str = ""
    env: dict[str, str] = field(default_factory=dict, hash=False)

    def process_env(self) -> dict[str, str]:
        """解析需要注入远端命令的进程环境变量

        env_file 为 YAML 映射，与内联 env 合并（内联优先）。
        文件缺失或格式错误时抛 ConfigurationError。
        """
        variables: dict[str, str] = {}
        if self.env_file:
            path = Path(self.env_file)
            if not path.is_file():
                raise ConfigurationError(f"项目 {self.name} 的环境变量文件不存在: {path}")
            from deployflow.utils.yaml_io import load_yaml
            try:
                data = load_yaml(path)
            except (ValueError, OSError) as e:
                raise ConfigurationError(f"项目 {self.name} 的环境变量文件无法读取: {e}") from e
            if not data:
                raise ConfigurationError(f"项目 {self.name} 的环境变量文件为空: {path}")
            variables.update({str(k): str(v) for k, v in data.items()})
        variables.update(self.env)
        return variables


@dataclass(frozen=True)
class Environment:
    """可部署的目标环境（一次操作期间不可变）"""

    name: str
    project: Project

    @property
    def full_name(self) -> str:
        return f"{self.project.name}:{self.name}"


# =========================================================================
# 命令
# =========================================================================


@dataclass(frozen=True)
class Command:
    """一次远端任务调用（构造后不可修改）"""

    action: str
    roles: str
    target: str
    line: str
    args: tuple[tuple[str, str], ...] = ()
    env_string: str = ""
    cwd: str | None = None
    timeout: int = DEFAULT_TIMEOUT

    def __post_init__(self) -> None:
        if self.timeout <= 0:
            raise ValueError(f"命令超时必须为正数: {self.timeout}")

    def arg(self, name: str) -> str | None:
        return dict(self.args).get(name)


# =========================================================================
# 数据传输与归档
# =========================================================================


def generate_upload_token(chars: int = 8) -> str:
    """生成关联线下交付文件的上传令牌（大写字母数字）"""
    return secrets.token_hex(max(chars, 8))[:chars].upper()


@dataclass
class DataTransfer:
    """一次数据传输请求，状态由调用方维护"""

    id: int | str
    direction: TransferDirection
    mode: TransferMode
    environment: Environment
    author: str = ""
    data_archive: DataArchive | None = None
    is_backup: bool = False

    def __post_init__(self) -> None:
        self.direction = TransferDirection(self.direction)
        self.mode = TransferMode(self.mode)


@dataclass
class DataArchive:
    """数据库和/或资源文件的归档快照

    archive_file 为空表示占位记录：等待线下文件上传后再关联。
    environment 为备份来源；手动上传时为最终要恢复到的目标环境。
    """

    mode: TransferMode
    environment: Environment
    original_environment: Environment | None = None
    author: str = ""
    is_backup: bool = False
    archive_file: str | None = None
    archive_file_hash: str = ""
    upload_token: str = ""
    id: str = ""
    created: str = ""
    data_transfers: list[int | str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.mode = TransferMode(self.mode)
        if not self.id:
            self.id = secrets.token_hex(6)
        if not self.created:
            self.created = datetime.now(tz=timezone.utc).isoformat()

    @classmethod
    def placeholder(
        cls, environment: Environment, mode: TransferMode | str, author: str = "",
    ) -> DataArchive:
        """为线下交付的文件创建待上传占位记录"""
        return cls(
            mode=TransferMode(mode), environment=environment,
            author=author, upload_token=generate_upload_token(),
        )

    @property
    def is_pending(self) -> bool:
        return not self.archive_file

    @property
    def file_size(self) -> int | None:
        if self.archive_file and Path(self.archive_file).is_file():
            return Path(self.archive_file).stat().st_size
        return None

    def add_transfer(self, transfer: DataTransfer) -> None:
        """关联一次传输；同一归档可先后被多次恢复使用"""
        if transfer.id not in self.data_transfers:
            self.data_transfers.append(transfer.id)
        transfer.data_archive = self

    def to_dict(self) -> dict[str, Any]:
        original = self.original_environment
        return {
            "id": self.id,
            "created": self.created,
            "mode": self.mode.value,
            "project": self.environment.project.name,
            "environment": self.environment.name,
            "original_environment": original.name if original else "",
            "author": self.author,
            "is_backup": self.is_backup,
            "archive_file": self.archive_file,
            "archive_file_hash": self.archive_file_hash,
            "upload_token": self.upload_token,
            "data_transfers": list(self.data_transfers),
        }
