"""备份流程 (pull): 从环境导出数据库/资源文件并打包为归档

步骤:
1. 创建归档占位记录（尚未关联文件）
2. 创建 0700 工作目录
3. [db] data:getdb
4. [assets] data:getassets
5. sspak 打包
6. 计算哈希、关联文件与传输、持久化
7. 删除散落的导出文件

第 6 步之前任何失败都会删除工作目录。
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from deployflow.core.exceptions import BackupError, PackagingError
from deployflow.core.models import DataArchive, DataTransfer, Environment
from deployflow.core.oplog import LogSink
from deployflow.services.archive import DATABASE_DUMP, file_hash, generate_filepath
from deployflow.services.runner import run_step
from deployflow.utils.fs import PrivateWorkdir

if TYPE_CHECKING:
    from deployflow.core.archive_store import ArchiveStore
    from deployflow.services.archive import ArchivePackager
    from deployflow.services.command import CommandBuilder
    from deployflow.services.runner import CommandRunner

logger = logging.getLogger(__name__)


class BackupFlow:
    """备份流程"""

    def __init__(
        self, builder: CommandBuilder, runner: CommandRunner,
        packager: ArchivePackager, store: ArchiveStore | None, transfer_dir: str,
    ) -> None:
        self.builder = builder
        self.runner = runner
        self.packager = packager
        self.store = store
        self.transfer_dir = transfer_dir

    def _dump(
        self, action: str, roles: str, what: str, data_path: str,
        environment: Environment, log: LogSink,
    ) -> None:
        name = environment.full_name
        log.append(f'Backup of {what} from "{name}" started')
        command = self.builder.build(action, roles, environment, {"data_path": data_path}, log)
        result = run_step(self.runner, command, log)
        if not result.success:
            log.append(f'Backup of {what} from "{name}" failed')
            raise BackupError(
                f"Backup of {what} from {name} failed", output=result.error_output,
            ) from result.invocation_error
        log.append(f'Backup of {what} from "{name}" done')

    def run(self, transfer: DataTransfer, log: LogSink) -> DataArchive:
        environment = transfer.environment
        archive = DataArchive(
            mode=transfer.mode,
            environment=environment,
            original_environment=environment,
            author=transfer.author,
            is_backup=transfer.is_backup,
        )

        workdir = PrivateWorkdir(generate_filepath(archive, transfer, self.transfer_dir)).create()
        logger.info("备份工作目录: %s", workdir.path)
        try:
            if transfer.mode.includes_db:
                self._dump(
                    "data:getdb", "db", "database",
                    str(workdir.path / DATABASE_DUMP), environment, log,
                )
            if transfer.mode.includes_assets:
                self._dump(
                    "data:getassets", "web", "assets",
                    str(workdir.path), environment, log,
                )
            path = self.packager.package(archive, transfer, workdir.path, log)
            self._register(archive, transfer, str(path), log)
        except Exception:
            workdir.remove()
            raise

        self.packager.remove_loose_files(workdir.path, log)
        log.append(f"Creating *.sspak file done: {archive.archive_file}")
        return archive

    def _register(
        self, archive: DataArchive, transfer: DataTransfer, path: str, log: LogSink,
    ) -> None:
        try:
            archive.archive_file_hash = file_hash(path)
            archive.archive_file = path
            archive.add_transfer(transfer)
            if self.store is not None:
                self.store.save(archive)
        except OSError as e:
            log.append(f"Failed to add sspak file: {e}")
            raise PackagingError(f"Failed to add sspak file: {e}") from e
        logger.info("归档已登记: id=%s hash=%s", archive.id, archive.archive_file_hash[:12])
