"""数据传输编排器: 按方向分派到备份或恢复流程"""

from __future__ import annotations

import logging
from contextlib import nullcontext
from typing import TYPE_CHECKING

from deployflow.core.exceptions import RebuildError
from deployflow.core.models import DataArchive, DataTransfer, Environment, TransferDirection
from deployflow.core.oplog import LogSink
from deployflow.services.runner import run_step
from deployflow.services.transfer.backup import BackupFlow
from deployflow.services.transfer.restore import RestoreFlow

if TYPE_CHECKING:
    from deployflow.core.archive_store import ArchiveStore
    from deployflow.core.locks import EnvironmentLocks
    from deployflow.services.archive import ArchivePackager
    from deployflow.services.command import CommandBuilder
    from deployflow.services.maintenance import MaintenanceController
    from deployflow.services.runner import CommandRunner

logger = logging.getLogger(__name__)


class DataTransferOrchestrator:
    """备份 / 恢复编排"""

    def __init__(
        self,
        builder: CommandBuilder,
        runner: CommandRunner,
        maintenance: MaintenanceController,
        packager: ArchivePackager,
        *,
        transfer_dir: str,
        tmp_dir: str,
        store: ArchiveStore | None = None,
        locks: EnvironmentLocks | None = None,
    ) -> None:
        self.builder = builder
        self.runner = runner
        self.store = store
        self.locks = locks
        self.backup_flow = BackupFlow(builder, runner, packager, store, transfer_dir)
        self.restore_flow = RestoreFlow(builder, runner, packager, maintenance, tmp_dir)

    def transfer(self, data_transfer: DataTransfer, log: LogSink) -> DataArchive | None:
        """执行一次数据传输；备份返回新归档，恢复返回 None"""
        environment = data_transfer.environment
        operation = f"{data_transfer.direction.value}-{data_transfer.mode.value}"
        guard = self.locks.hold(environment, operation) if self.locks else nullcontext()
        with guard:
            logger.info(
                "数据传输开始: id=%s %s -> %s",
                data_transfer.id, operation, environment.full_name,
                extra={"environment": environment.full_name, "transfer_id": data_transfer.id},
            )
            if data_transfer.direction is TransferDirection.PULL:
                return self.backup(data_transfer, log)
            self.restore(data_transfer, log)
            return None

    def backup(self, data_transfer: DataTransfer, log: LogSink) -> DataArchive:
        """拉取数据并打包；不加环境锁，由 transfer() 负责"""
        return self.backup_flow.run(data_transfer, log)

    def restore(self, data_transfer: DataTransfer, log: LogSink) -> None:
        self.restore_flow.run(data_transfer, log, self.rebuild)
        archive = data_transfer.data_archive
        if archive is not None:
            archive.add_transfer(data_transfer)
            if self.store is not None:
                self.store.save(archive)

    def rebuild(self, environment: Environment, log: LogSink) -> None:
        """deploy:migrate 重建数据库结构并刷新缓存"""
        name = environment.full_name
        command = self.builder.build("deploy:migrate", "web", environment, None, log)
        result = run_step(self.runner, command, log)
        if not result.success:
            log.append(f'Rebuild of "{name}" failed: {result.error_output.strip()}')
            raise RebuildError(
                f"Rebuild of {name} failed", output=result.error_output,
            ) from result.invocation_error
        log.append(f'Rebuild of "{name}" done')
