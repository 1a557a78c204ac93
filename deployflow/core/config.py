"""集中配置管理

所有路径、外部工具、告警接收方等配置集中在 Config 中，
由 ServiceContainer 显式传递给各服务，服务本身不读取全局状态。
支持从 YAML 文件加载 + 编程式覆盖。
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any

from deployflow.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "configs/deployflow.yml"


@dataclass
class Config:
    """全局配置"""

    # 目录
    log_path: str = "data/logs"              # 操作日志 + 远端写回的部署历史
    transfer_dir: str = "data/transfers"     # 备份归档存放根目录
    tmp_dir: str = "data/tmp"                # 恢复时的临时解包目录
    registry_file: str = "configs/environments.yml"
    archives_file: str = "data/archives.json"

    # 外部工具
    cap_bin: str = "cap"
    sspak_bin: str = "sspak"
    capfile: str = "data/Capfile"
    capfile_template: str = ""
    environment_dir: str = "configs/deploy"
    ssh_key: str = ""
    base_path: str = "."
    command_timeout: int = 3600

    # 部署包生成（可选）
    package_script: str = ""
    package_dir: str = "data/packages"

    # 告警
    alerts_to: str = ""
    alert_webhook_url: str = ""
    alert_webhook_token: str = ""

    # 部署失败时是否仍然关闭维护页（默认保留，便于人工排查）
    disable_maintenance_on_failure: bool = False

    # 自定义扩展 (放不到字段里的配置项)
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_file(cls, path: str = DEFAULT_CONFIG_PATH) -> Config:
        """从 YAML 文件加载配置，不存在则返回默认"""
        data = load_yaml(path)
        if not data:
            return cls()
        known = {f for f in cls.__dataclass_fields__ if f != "extra"}
        matched = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}
        cfg = cls(**matched)
        cfg.extra = extra
        return cfg

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# 全局单例，首次 import 时不加载文件；由 CLI 入口显式初始化
_current: Config | None = None


def get_config() -> Config:
    """获取当前配置（未初始化则返回默认值）"""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = Config()
    return _current


def init_config(path: str = DEFAULT_CONFIG_PATH) -> Config:
    """从文件初始化全局配置"""
    global _current  # noqa: PLW0603
    _current = Config.from_file(path)
    logger.info("配置已加载: %s", path)
    return _current
