"""命令构建器: 生成一次 Capistrano 远端任务调用

命令行形如:
    env K=V ... cap -f <Capfile> -vv <project:env> <action> ROLES=<roles> -s k=v ...

所有参数和环境变量均经 shlex.quote 转义，防止 shell 注入。
构建后的命令行在执行前写入操作日志，便于审计。
"""

from __future__ import annotations

import logging
import shlex
from pathlib import Path

from deployflow.core.config import Config
from deployflow.core.exceptions import ConfigurationError
from deployflow.core.models import Command, Environment
from deployflow.core.oplog import LogSink

logger = logging.getLogger(__name__)

CAPFILE_PLACEHOLDERS = ("<config root>", "<ssh key>", "<base path>")


class CommandBuilder:
    """远端任务命令构建器"""

    def __init__(self, config: Config) -> None:
        self.config = config

    @property
    def history_path(self) -> str:
        return str(Path(self.config.log_path).resolve())

    def _resolve_env(self, environment: Environment, log: LogSink) -> dict[str, str]:
        try:
            return environment.project.process_env()
        except ConfigurationError as e:
            logger.warning("无法解析项目环境变量，不注入任何变量: %s", e)
            log.append(f"Warning: no environment variables injected: {e}")
            return {}

    def write_capfile(self) -> str:
        """按模板生成 Capfile（未配置模板时直接使用已有 Capfile）"""
        capfile = Path(self.config.capfile)
        if not self.config.capfile_template:
            return str(capfile)
        template = Path(self.config.capfile_template).read_text(encoding="utf-8")
        values = (
            self.config.environment_dir,
            self.config.ssh_key,
            str(Path(self.config.base_path).resolve()),
        )
        for placeholder, value in zip(CAPFILE_PLACEHOLDERS, values):
            template = template.replace(placeholder, value)
        capfile.parent.mkdir(parents=True, exist_ok=True)
        capfile.write_text(template, encoding="utf-8")
        return str(capfile)

    def build(
        self, action: str, roles: str, environment: Environment,
        args: dict[str, str] | None, log: LogSink,
    ) -> Command:
        """构建命令并把命令行写入日志"""
        env = self._resolve_env(environment, log)
        merged = dict(args or {})
        merged["history_path"] = self.history_path

        env_string = ""
        if env:
            env_string = "env " + " ".join(
                shlex.quote(f"{k}={v}") for k, v in env.items()
            ) + " "

        capfile = self.write_capfile()
        parts = [
            self.config.cap_bin, "-f", shlex.quote(capfile), "-vv",
            shlex.quote(environment.full_name), shlex.quote(action),
            "ROLES=" + shlex.quote(roles),
        ]
        for name, value in merged.items():
            parts.append(f"-s {shlex.quote(name)}={shlex.quote(str(value))}")
        line = env_string + " ".join(parts)

        log.append(f"Running command: {line}")
        return Command(
            action=action,
            roles=roles,
            target=environment.full_name,
            line=line,
            args=tuple((k, str(v)) for k, v in merged.items()),
            env_string=env_string.strip(),
            timeout=self.config.command_timeout,
        )

    def local(
        self, action: str, argv: list[str], log: LogSink, *, cwd: str | None = None,
    ) -> Command:
        """构建本地工具调用（sspak、打包脚本等）"""
        line = " ".join(shlex.quote(a) for a in argv)
        log.append(f"Running command: {line}")
        return Command(
            action=action, roles="", target="local", line=line,
            cwd=cwd, timeout=self.config.command_timeout,
        )
