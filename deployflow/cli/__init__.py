"""deployflow 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
"""

from __future__ import annotations

import os
from datetime import datetime, timezone
from typing import Any

import click

from deployflow import __version__
from deployflow.core.exceptions import DeployflowError
from deployflow.core.oplog import FileLog
from deployflow.services.container import ServiceContainer, get_container, reset_container
from deployflow.utils.logger import setup_logging


def _svc() -> Any:
    """获取全局服务容器的快捷方式"""
    return get_container()


def _parse_kv_pairs(pairs: tuple[str, ...]) -> dict[str, str]:
    """解析 key=value 参数对"""
    result: dict[str, str] = {}
    for p in pairs:
        if "=" in p:
            k, v = p.split("=", 1)
            result[k.strip()] = v.strip()
    return result


def _open_log(*parts: str) -> FileLog:
    """为一次顶层操作创建操作日志: <log_path>/<parts>.<时间戳>.log"""
    stamp = datetime.now(tz=timezone.utc).strftime("%Y%m%d%H%M%S")
    name = ".".join([*(p.replace(":", "-") for p in parts), stamp])
    log = FileLog(_svc().config.log_path, name)
    click.echo(f"操作日志: {log.path}")
    return log


def _fail(error: DeployflowError) -> click.ClickException:
    """把业务异常转换为 CLI 错误（退出码 1）"""
    message = f"[{error.code}] {error}"
    if error.output:
        message += f"\n{error.output.strip()}"
    return click.ClickException(message)


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "-c", "config_path", default="configs/deployflow.yml", help="配置文件路径")
def main(config_path: str) -> None:
    """deployflow - 部署与数据迁移编排"""
    setup_logging(
        level=os.getenv("DEPLOYFLOW_LOG_LEVEL", "INFO"),
        json_output=os.getenv("DEPLOYFLOW_LOG_JSON", "") == "1",
    )
    from deployflow.core.config import init_config
    reset_container(ServiceContainer(config=init_config(config_path)))


# 注册各领域子命令
from deployflow.cli.cmd_deploy import register as _reg_deploy  # noqa: E402
from deployflow.cli.cmd_data import register as _reg_data  # noqa: E402

_reg_deploy(main)
_reg_data(main)
