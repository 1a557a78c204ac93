"""测试共享 fixture: 脚本化执行器 + 临时配置

FakeRunner 代替真实的 cap / sspak 进程:
  - 记录每一次收到的 Command
  - 按 action 返回预设的 RunResult 或抛出预设异常
  - 可为某个 action 注册副作用（如模拟 sspak 生成归档文件）
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from deployflow.core.config import Config
from deployflow.core.models import Command, Environment, Project
from deployflow.core.oplog import LogSink, MemoryLog
from deployflow.services.runner import RunResult


class FakeRunner:
    """按 action 脚本化的命令执行器"""

    def __init__(self) -> None:
        self.commands: list[Command] = []
        self.results: dict[str, RunResult | Exception] = {}
        self.effects: dict[str, Callable[[Command], None]] = {}

    def fail(self, action: str, output: str = "boom") -> None:
        self.results[action] = RunResult(success=False, error_output=output, returncode=1)

    def raise_on(self, action: str, error: Exception) -> None:
        self.results[action] = error

    def on(self, action: str, effect: Callable[[Command], None]) -> None:
        self.effects[action] = effect

    def run(self, command: Command, log: LogSink) -> RunResult:
        self.commands.append(command)
        scripted = self.results.get(command.action)
        if isinstance(scripted, Exception):
            raise scripted
        if command.action in self.effects:
            self.effects[command.action](command)
        log.append(f"[fake] {command.action}")
        return scripted or RunResult(success=True, returncode=0)

    @property
    def actions(self) -> list[str]:
        return [c.action for c in self.commands]

    def count(self, action: str) -> int:
        return self.actions.count(action)


@pytest.fixture()
def config(tmp_path: Path) -> Config:
    return Config(
        log_path=str(tmp_path / "logs"),
        transfer_dir=str(tmp_path / "transfers"),
        tmp_dir=str(tmp_path / "tmp"),
        registry_file=str(tmp_path / "environments.yml"),
        archives_file=str(tmp_path / "archives.json"),
        capfile=str(tmp_path / "Capfile"),
        package_dir=str(tmp_path / "packages"),
    )


@pytest.fixture()
def project() -> Project:
    return Project(
        name="shop", repository="git@example.com:acme/shop.git",
        env={"APP_ENV": "live"},
    )


@pytest.fixture()
def env(project: Project) -> Environment:
    return Environment(name="prod", project=project)


@pytest.fixture()
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture()
def log() -> MemoryLog:
    return MemoryLog()


@pytest.fixture()
def builder(config: Config):
    from deployflow.services.command import CommandBuilder
    return CommandBuilder(config)
