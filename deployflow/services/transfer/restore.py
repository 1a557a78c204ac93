"""恢复流程 (push): 把归档推送到目标环境

工作目录在整个流程中由 private_workdir 管理；恢复收尾（重建 + 删除工作目录）
在成功和失败路径上都恰好执行一次。失败时维护页保持开启，供人工排查。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Callable

from deployflow.core.exceptions import InvalidArchiveError, RestoreError
from deployflow.core.models import DataTransfer, Environment
from deployflow.core.oplog import LogSink
from deployflow.services.archive import ASSETS_DIR, DATABASE_MEMBER
from deployflow.services.runner import run_step
from deployflow.utils.fs import PrivateWorkdir, private_workdir

if TYPE_CHECKING:
    from deployflow.services.archive import ArchivePackager
    from deployflow.services.command import CommandBuilder
    from deployflow.services.maintenance import MaintenanceController
    from deployflow.services.runner import CommandRunner

logger = logging.getLogger(__name__)

Rebuild = Callable[[Environment, LogSink], None]


class RestoreFlow:
    """恢复流程"""

    def __init__(
        self, builder: CommandBuilder, runner: CommandRunner,
        packager: ArchivePackager, maintenance: MaintenanceController, tmp_dir: str,
    ) -> None:
        self.builder = builder
        self.runner = runner
        self.packager = packager
        self.maintenance = maintenance
        self.tmp_dir = tmp_dir

    def workdir_path(self, transfer: DataTransfer) -> Path:
        return Path(self.tmp_dir) / f"transfer-{transfer.id}"

    def run(self, transfer: DataTransfer, log: LogSink, rebuild: Rebuild) -> None:
        environment = transfer.environment
        archive = transfer.data_archive
        if archive is None:
            raise InvalidArchiveError("No archive attached to transfer, transfer aborted.")

        with private_workdir(self.workdir_path(transfer)) as workdir:
            if not self.packager.validate_and_fix(archive, workdir.path, transfer.mode, log):
                log.append("Invalid archive, transfer aborted.")
                raise InvalidArchiveError("Invalid archive, transfer aborted.")

            self.maintenance.enable(environment, log)
            try:
                self._push(transfer, workdir.path, log)
            except RestoreError:
                # 部分失败后仍尝试重建，尽量恢复可用状态
                self._recover(environment, workdir, log, rebuild)
                raise

            log.append("Rebuilding and cleaning up")
            self._recover(environment, workdir, log, rebuild)
            self.maintenance.disable(environment, log)

    def _recover(
        self, environment: Environment, workdir: PrivateWorkdir,
        log: LogSink, rebuild: Rebuild,
    ) -> None:
        try:
            rebuild(environment, log)
        finally:
            workdir.remove()

    def _push_one(
        self, action: str, roles: str, what: str, data_path: Path,
        environment: Environment, log: LogSink,
    ) -> None:
        name = environment.full_name
        log.append(f'Restore of {what} to "{name}" started')
        command = self.builder.build(action, roles, environment, {"data_path": str(data_path)}, log)
        result = run_step(self.runner, command, log)
        if not result.success:
            log.append(f'Restore of {what} to "{name}" failed: {result.error_output.strip()}')
            logger.error("恢复失败 (%s): %s", what, name)
            raise RestoreError(
                f"Restore of {what} to {name} failed", output=result.error_output,
            ) from result.invocation_error
        log.append(f'Restore of {what} to "{name}" done')

    def _push(self, transfer: DataTransfer, workdir: Path, log: LogSink) -> None:
        environment = transfer.environment
        if transfer.mode.includes_db:
            self._push_one(
                "data:pushdb", "db", "database", workdir / DATABASE_MEMBER, environment, log,
            )
        if transfer.mode.includes_assets:
            self._push_one(
                "data:pushassets", "web", "assets", workdir / ASSETS_DIR, environment, log,
            )
