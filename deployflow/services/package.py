"""部署包生成

部署前可选地为指定构建生成一个部署包，deploy 命令通过 build_filename
参数使用它。同名包已存在时直接复用，不重复生成。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

from deployflow.core.oplog import LogSink
from deployflow.services.command import CommandBuilder
from deployflow.services.runner import CommandRunner, run_step
from deployflow.utils.fs import sanitize_name

logger = logging.getLogger(__name__)


class PackageGenerator(Protocol):
    """部署包生成协议，返回包路径；失败返回空字符串"""

    def package_filename(
        self, project_name: str, build: str, repository: str, log: LogSink,
    ) -> str:
        ...


class ScriptPackageGenerator:
    """调用外部脚本生成部署包

    脚本参数: <build> <repository> <输出文件>
    """

    def __init__(
        self, script: str, package_dir: str,
        builder: CommandBuilder, runner: CommandRunner,
    ) -> None:
        self.script = script
        self.package_dir = Path(package_dir)
        self.builder = builder
        self.runner = runner

    def package_path(self, project_name: str, build: str) -> Path:
        return self.package_dir / f"{sanitize_name(project_name)}-{sanitize_name(build)}.tar.gz"

    def package_filename(
        self, project_name: str, build: str, repository: str, log: LogSink,
    ) -> str:
        path = self.package_path(project_name, build)
        if path.is_file():
            log.append(f"Using existing package {path}")
            logger.info("部署包缓存命中: %s", path)
            return str(path)

        self.package_dir.mkdir(parents=True, exist_ok=True)
        log.append(f"Generating package for {build}")
        command = self.builder.local(
            "package", [self.script, build, repository, str(path)], log,
        )
        result = run_step(self.runner, command, log)
        if not result.success or not path.is_file():
            log.append(f"Package generation failed: {result.error_output.strip()}")
            return ""
        log.append(f"Package generated: {path}")
        return str(path)
