"""部署编排器

流程（线性，一个条件分支）:
  1. deploy_start 钩子
  2. 开启维护页
  3. [可选] 生成部署包
  4. deploy 命令
  5. deploy:cleanup ， 无论第 4 步结果如何都执行一次，失败只报告/告警
  6. 维护页处理: 要求保留 → 重新开启；否则仅在部署成功时关闭
  7. 部署失败 → DeployError；成功 → deploy_end 钩子
"""

from __future__ import annotations

import logging
from contextlib import nullcontext
from typing import TYPE_CHECKING

from deployflow.core.exceptions import (
    CleanupError,
    DeployError,
    DeployflowError,
    MaintenanceError,
    PackageGenerationError,
)
from deployflow.core.hooks import HookList
from deployflow.core.models import Environment
from deployflow.core.oplog import LogSink, trim_for_alert
from deployflow.services.alerts import Alert, AlertNotifier, LogNotifier
from deployflow.services.runner import run_step

if TYPE_CHECKING:
    from deployflow.core.locks import EnvironmentLocks
    from deployflow.services.command import CommandBuilder
    from deployflow.services.maintenance import MaintenanceController
    from deployflow.services.package import PackageGenerator
    from deployflow.services.runner import CommandRunner

logger = logging.getLogger(__name__)


class DeploymentOrchestrator:
    """部署编排器"""

    def __init__(
        self,
        builder: CommandBuilder,
        runner: CommandRunner,
        maintenance: MaintenanceController,
        *,
        package_generator: PackageGenerator | None = None,
        notifier: AlertNotifier | None = None,
        alerts_to: str = "",
        disable_maintenance_on_failure: bool = False,
        locks: EnvironmentLocks | None = None,
    ) -> None:
        self.builder = builder
        self.runner = runner
        self.maintenance = maintenance
        self.package_generator = package_generator
        self.notifier = notifier or LogNotifier()
        self.alerts_to = alerts_to
        self.disable_maintenance_on_failure = disable_maintenance_on_failure
        self.locks = locks
        # 钩子签名: (environment, build, log)
        self.deploy_start = HookList("deploy_start")
        self.deploy_end = HookList("deploy_end")

    def deploy(
        self, environment: Environment, build: str, log: LogSink,
        *, leave_maintenance_page: bool = False,
    ) -> None:
        """把 build 部署到 environment，失败抛类型化异常"""
        guard = self.locks.hold(environment, "deploy") if self.locks else nullcontext()
        with guard:
            self._deploy(environment, build, log, leave_maintenance_page)

    def _deploy(
        self, environment: Environment, build: str, log: LogSink,
        leave_maintenance_page: bool,
    ) -> None:
        project = environment.project
        name = environment.full_name
        args = {"branch": build, "repository": project.repository}

        self.deploy_start.fire(environment, build, log)

        log.append(f"Deploying {build} to {environment.name} (project {project.name})")
        logger.info("开始部署: %s -> %s", build, name, extra={"environment": name})

        self.maintenance.enable(environment, log)

        if self.package_generator is not None:
            args["build_filename"] = self._generate_package(environment, build, log)

        command = self.builder.build("deploy", "web", environment, args, log)
        result = run_step(self.runner, command, log)

        self._cleanup(environment, args, log)

        maintenance_error: MaintenanceError | None = None
        try:
            if leave_maintenance_page:
                self.maintenance.enable(environment, log)
            elif result.success or self.disable_maintenance_on_failure:
                self.maintenance.disable(environment, log)
        except MaintenanceError as e:
            if result.success:
                raise
            # 部署本身已失败，以部署失败为最终错误
            maintenance_error = e
            log.append(f"Maintenance page update failed: {e}")

        if not result.success:
            log.append(f"Deploy of {build} to {name} failed")
            logger.error("部署失败: %s -> %s", build, name, extra={"environment": name})
            raise DeployError(
                f"Deploy of {build} to {name} failed", output=result.error_output,
            ) from (result.invocation_error or maintenance_error)

        log.append(f"Deploy of {build} to {name} finished")
        logger.info("部署完成: %s -> %s", build, name, extra={"environment": name})
        self.deploy_end.fire(environment, build, log)

    def _generate_package(self, environment: Environment, build: str, log: LogSink) -> str:
        project = environment.project
        try:
            filename = self.package_generator.package_filename(  # type: ignore[union-attr]
                project.name, build, project.repository, log,
            )
        except (DeployflowError, OSError) as e:
            raise PackageGenerationError(f"Failed to generate package: {e}") from e
        if not filename:
            raise PackageGenerationError("Failed to generate package.")
        return filename

    def _cleanup(
        self, environment: Environment, args: dict[str, str], log: LogSink,
    ) -> CleanupError | None:
        """deploy:cleanup，失败不影响部署结果，只记录并告警"""
        command = self.builder.build("deploy:cleanup", "web", environment, args, log)
        result = run_step(self.runner, command, log)
        if result.success:
            return None

        error = CleanupError(
            f"deploy:cleanup failed on {environment.full_name}",
            output=result.error_output,
        )
        logger.warning("%s", error)
        if not self.alerts_to:
            log.append("Warning: cleanup has failed, but fine to continue. Needs manual cleanup sometime.")
            return error

        log.append("Warning: cleanup has failed, but fine to continue. Alert sent.")
        alert = Alert(
            recipient=self.alerts_to,
            subject=f"[deployflow] Cleanup failure on {environment.full_name}",
            project_name=environment.project.name,
            environment_name=environment.name,
            log=trim_for_alert(log.content()),
        )
        if not self.notifier.send(alert):
            log.append("Warning: cleanup alert could not be delivered")
        return error

    def ping(self, environment: Environment, log: LogSink) -> bool:
        """deploy:check 检查环境连通性，输出写入日志"""
        command = self.builder.build("deploy:check", "web", environment, None, log)
        result = run_step(self.runner, command, log)
        log.append(
            f"Check of {environment.full_name} {'passed' if result.success else 'failed'}"
        )
        return result.success
