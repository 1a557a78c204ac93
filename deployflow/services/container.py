"""服务容器: 统一依赖注入

所有服务通过容器获取，同一容器内的实例共享状态（环境锁、注册表等）。
CLI 通过 get_container() 获取服务，而非直接 import 构造。

依赖关系图（→ 表示依赖）:
  maintenance → builder, runner
  deployer    → builder, runner, maintenance, [package_generator], notifier, locks
  transfers   → builder, runner, maintenance, packager, archives, locks
  archives    → registry

用法:
    container = ServiceContainer(config=Config.from_file("configs/deployflow.yml"))
    container.deployer.deploy(env, "abc123", log)

    # 测试时注入脚本化执行器
    container = ServiceContainer(config=cfg, runner=FakeRunner())
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from deployflow.core.archive_store import JsonArchiveStore
    from deployflow.core.config import Config
    from deployflow.core.history import DeployHistory
    from deployflow.core.locks import EnvironmentLocks
    from deployflow.core.registry import EnvironmentRegistry
    from deployflow.services.alerts import AlertNotifier
    from deployflow.services.archive import ArchivePackager
    from deployflow.services.command import CommandBuilder
    from deployflow.services.deploy import DeploymentOrchestrator
    from deployflow.services.maintenance import MaintenanceController
    from deployflow.services.package import PackageGenerator
    from deployflow.services.runner import CommandRunner
    from deployflow.services.transfer import DataTransferOrchestrator

logger = logging.getLogger(__name__)


class ServiceContainer:
    """懒加载服务容器"""

    def __init__(self, config: Config | None = None, runner: CommandRunner | None = None) -> None:
        self._instances: dict[str, object] = {}
        if config is None:
            from deployflow.core.config import get_config
            config = get_config()
        self._config = config
        if runner is not None:
            self._instances["runner"] = runner

    @property
    def config(self) -> Config:
        return self._config

    # ---- 核心 ----

    @property
    def registry(self) -> EnvironmentRegistry:
        if "registry" not in self._instances:
            from deployflow.core.registry import EnvironmentRegistry
            self._instances["registry"] = EnvironmentRegistry(self._config.registry_file)
        return self._instances["registry"]  # type: ignore[return-value]

    @property
    def archives(self) -> JsonArchiveStore:
        if "archives" not in self._instances:
            from deployflow.core.archive_store import JsonArchiveStore
            self._instances["archives"] = JsonArchiveStore(
                self._config.archives_file, self.registry,
            )
        return self._instances["archives"]  # type: ignore[return-value]

    @property
    def history(self) -> DeployHistory:
        if "history" not in self._instances:
            from deployflow.core.history import DeployHistory
            self._instances["history"] = DeployHistory(self._config.log_path)
        return self._instances["history"]  # type: ignore[return-value]

    @property
    def locks(self) -> EnvironmentLocks:
        if "locks" not in self._instances:
            from deployflow.core.locks import EnvironmentLocks
            self._instances["locks"] = EnvironmentLocks()
        return self._instances["locks"]  # type: ignore[return-value]

    # ---- 命令 ----

    @property
    def builder(self) -> CommandBuilder:
        if "builder" not in self._instances:
            from deployflow.services.command import CommandBuilder
            self._instances["builder"] = CommandBuilder(self._config)
        return self._instances["builder"]  # type: ignore[return-value]

    @property
    def runner(self) -> CommandRunner:
        if "runner" not in self._instances:
            from deployflow.services.runner import ProcessRunner
            self._instances["runner"] = ProcessRunner()
        return self._instances["runner"]  # type: ignore[return-value]

    @property
    def maintenance(self) -> MaintenanceController:
        if "maintenance" not in self._instances:
            from deployflow.services.maintenance import MaintenanceController
            self._instances["maintenance"] = MaintenanceController(self.builder, self.runner)
        return self._instances["maintenance"]  # type: ignore[return-value]

    # ---- 编排 ----

    @property
    def notifier(self) -> AlertNotifier:
        if "notifier" not in self._instances:
            from deployflow.services.alerts import LogNotifier, WebhookNotifier
            if self._config.alert_webhook_url:
                self._instances["notifier"] = WebhookNotifier(
                    self._config.alert_webhook_url, token=self._config.alert_webhook_token,
                )
            else:
                self._instances["notifier"] = LogNotifier()
        return self._instances["notifier"]  # type: ignore[return-value]

    @property
    def package_generator(self) -> PackageGenerator | None:
        if not self._config.package_script:
            return None
        if "package_generator" not in self._instances:
            from deployflow.services.package import ScriptPackageGenerator
            self._instances["package_generator"] = ScriptPackageGenerator(
                self._config.package_script, self._config.package_dir,
                self.builder, self.runner,
            )
        return self._instances["package_generator"]  # type: ignore[return-value]

    @property
    def deployer(self) -> DeploymentOrchestrator:
        if "deployer" not in self._instances:
            from deployflow.services.deploy import DeploymentOrchestrator
            self._instances["deployer"] = DeploymentOrchestrator(
                self.builder, self.runner, self.maintenance,
                package_generator=self.package_generator,
                notifier=self.notifier,
                alerts_to=self._config.alerts_to,
                disable_maintenance_on_failure=self._config.disable_maintenance_on_failure,
                locks=self.locks,
            )
        return self._instances["deployer"]  # type: ignore[return-value]

    @property
    def packager(self) -> ArchivePackager:
        if "packager" not in self._instances:
            from deployflow.services.archive import ArchivePackager
            self._instances["packager"] = ArchivePackager(
                self.builder, self.runner, sspak_bin=self._config.sspak_bin,
            )
        return self._instances["packager"]  # type: ignore[return-value]

    @property
    def transfers(self) -> DataTransferOrchestrator:
        if "transfers" not in self._instances:
            from deployflow.services.transfer import DataTransferOrchestrator
            self._instances["transfers"] = DataTransferOrchestrator(
                self.builder, self.runner, self.maintenance, self.packager,
                transfer_dir=self._config.transfer_dir,
                tmp_dir=self._config.tmp_dir,
                store=self.archives,
                locks=self.locks,
            )
        return self._instances["transfers"]  # type: ignore[return-value]


# ---- 全局单例 ----

_global: ServiceContainer | None = None
_global_lock = threading.Lock()


def get_container() -> ServiceContainer:
    """获取全局 ServiceContainer 单例（线程安全）"""
    global _global  # noqa: PLW0603
    if _global is not None:
        return _global
    with _global_lock:
        if _global is None:
            _global = ServiceContainer()
        return _global


def reset_container(container: ServiceContainer | None = None) -> None:
    """重置全局容器（CLI 加载配置后或测试中使用）"""
    global _global  # noqa: PLW0603
    with _global_lock:
        _global = container
