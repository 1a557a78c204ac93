"""数据归档打包

职责:
- 生成归档文件名与传输工作目录路径
- 调用 sspak 把数据库导出 / 资源目录打成单个 .sspak 归档
- 计算归档内容哈希
- 恢复前校验归档并尽量自动修复

.sspak 是一个 tar 包，内含 database.sql.gz 和/或 assets.tar.gz。
"""

from __future__ import annotations

import hashlib
import logging
import secrets
import shutil
import tarfile
from datetime import date
from pathlib import Path
from typing import TYPE_CHECKING

from deployflow.core.exceptions import CleanupError, PackagingError
from deployflow.core.models import DataArchive, DataTransfer, TransferMode
from deployflow.core.oplog import LogSink
from deployflow.services.runner import run_step
from deployflow.utils.fs import sanitize_name

if TYPE_CHECKING:
    from deployflow.services.command import CommandBuilder
    from deployflow.services.runner import CommandRunner

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIX = ".sspak"
DATABASE_DUMP = "database.sql"
DATABASE_MEMBER = "database.sql.gz"
ASSETS_DIR = "assets"
ASSETS_MEMBER = "assets.tar.gz"


def generate_filename(archive: DataArchive, transfer: DataTransfer, today: date | None = None) -> str:
    """{project}-{environment}-{mode}-{yyyymmdd}-{随机 sha1}，不含扩展名"""
    env = archive.environment
    stamp = (today or date.today()).strftime("%Y%m%d")
    entropy = hashlib.sha1(secrets.token_bytes(32)).hexdigest()  # noqa: S324
    return "-".join([
        sanitize_name(env.project.name), sanitize_name(env.name),
        transfer.mode.value, stamp, entropy,
    ])


def generate_filepath(archive: DataArchive, transfer: DataTransfer, transfer_root: str | Path) -> Path:
    """{transfer_root}/{project}/{environment}/transfer-{id}，不在磁盘上创建"""
    env = archive.environment
    return (
        Path(transfer_root) / sanitize_name(env.project.name)
        / sanitize_name(env.name) / f"transfer-{transfer.id}"
    )


def file_hash(path: str | Path) -> str:
    """分块计算 sha256，避免大归档一次读入内存"""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


class ArchivePackager:
    """sspak 归档打包与校验"""

    def __init__(self, builder: CommandBuilder, runner: CommandRunner, sspak_bin: str = "sspak") -> None:
        self.builder = builder
        self.runner = runner
        self.sspak_bin = sspak_bin

    # ---- 打包 ----

    def package_argv(self, filename: str, workdir: Path, mode: TransferMode) -> list[str]:
        """sspak saveexisting 参数，--db/--assets 与模式严格对应"""
        argv = [self.sspak_bin, "saveexisting", filename]
        if mode.includes_db:
            argv.append(f"--db={workdir / DATABASE_DUMP}")
        if mode.includes_assets:
            argv.append(f"--assets={workdir / ASSETS_DIR}")
        return argv

    def package(
        self, archive: DataArchive, transfer: DataTransfer, workdir: Path, log: LogSink,
    ) -> Path:
        """打包工作目录中的导出文件，返回归档路径"""
        log.append(f"Creating *{ARCHIVE_SUFFIX} file")
        filename = generate_filename(archive, transfer) + ARCHIVE_SUFFIX
        command = self.builder.local(
            "sspak:saveexisting", self.package_argv(filename, workdir, transfer.mode),
            log, cwd=str(workdir),
        )
        result = run_step(self.runner, command, log)
        path = workdir / filename
        if not result.success:
            log.append("Could not package the backup via sspak")
            raise PackagingError(
                "Could not package the backup via sspak", output=result.error_output,
            ) from result.invocation_error
        if not path.is_file():
            log.append(f"sspak did not produce {path}")
            raise PackagingError(f"sspak did not produce {path}")
        logger.info("归档已生成: %s", path)
        return path

    def remove_loose_files(self, workdir: Path, log: LogSink) -> None:
        """打包完成后删除散落的导出文件，归档成为唯一产物"""
        try:
            if (workdir / ASSETS_DIR).exists():
                shutil.rmtree(workdir / ASSETS_DIR)
            (workdir / DATABASE_DUMP).unlink(missing_ok=True)
        except OSError as e:
            log.append("Could not delete temporary files")
            raise CleanupError(f"Could not delete temporary files in {workdir}", output=str(e)) from e

    # ---- 校验与修复 ----

    def validate_and_fix(
        self, archive: DataArchive, workdir: Path, mode: TransferMode, log: LogSink,
    ) -> bool:
        """校验归档并解包到 workdir，成功后 workdir 内为可直接推送的文件

        修复: 资源包顶层只有一个目录但不叫 assets 时，重命名为 assets；
        顶层直接是资源文件时，整体放入 assets 目录。
        """
        if archive.is_pending or not Path(archive.archive_file or "").is_file():
            log.append("Archive file is not available")
            return False
        path = Path(archive.archive_file)  # type: ignore[arg-type]

        if archive.archive_file_hash and file_hash(path) != archive.archive_file_hash:
            log.append(f"Archive hash mismatch for {path.name}")
            return False

        required = []
        if mode.includes_db:
            required.append(DATABASE_MEMBER)
        if mode.includes_assets:
            required.append(ASSETS_MEMBER)

        try:
            with tarfile.open(path) as tf:
                names = {n.removeprefix("./") for n in tf.getnames()}
                missing = [m for m in required if m not in names]
                if missing:
                    log.append(f"Archive is missing {', '.join(missing)} required for mode {mode.value}")
                    return False
                tf.extractall(path=str(workdir), filter="data")  # noqa: S202
            if mode.includes_assets:
                self._extract_assets(workdir, log)
        except (OSError, tarfile.TarError) as e:
            log.append(f"Archive could not be read: {e}")
            logger.error("归档无法读取 %s: %s", path, e)
            return False

        log.append(f"Archive {path.name} is valid")
        return True

    def _extract_assets(self, workdir: Path, log: LogSink) -> None:
        staging = workdir / "assets-extract"
        staging.mkdir(mode=0o700, exist_ok=True)
        with tarfile.open(workdir / ASSETS_MEMBER) as tf:
            tf.extractall(path=str(staging), filter="data")  # noqa: S202
        (workdir / ASSETS_MEMBER).unlink()

        target = workdir / ASSETS_DIR
        entries = list(staging.iterdir())
        if (staging / ASSETS_DIR).is_dir() and len(entries) == 1:
            (staging / ASSETS_DIR).rename(target)
            staging.rmdir()
        elif len(entries) == 1 and entries[0].is_dir():
            log.append(f"Renaming asset folder {entries[0].name} to {ASSETS_DIR}")
            entries[0].rename(target)
            staging.rmdir()
        else:
            log.append(f"Moving top-level asset files into {ASSETS_DIR}")
            staging.rename(target)


def attach_upload(archive: DataArchive, source: str | Path, transfer_root: str | Path) -> Path:
    """把线下交付的归档文件关联到占位记录

    文件复制到 {transfer_root}/{project}/{environment}/upload-{id}.sspak，
    记录哈希。非占位记录或源文件不存在时抛 PackagingError。
    """
    if not archive.is_pending:
        raise PackagingError(f"归档 {archive.id} 已关联文件: {archive.archive_file}")
    src = Path(source)
    if not src.is_file():
        raise PackagingError(f"上传文件不存在: {src}")
    if not tarfile.is_tarfile(src):
        raise PackagingError(f"上传文件不是有效的 {ARCHIVE_SUFFIX} 归档: {src}")

    env = archive.environment
    target_dir = Path(transfer_root) / sanitize_name(env.project.name) / sanitize_name(env.name)
    target_dir.mkdir(parents=True, exist_ok=True)
    target = target_dir / f"upload-{archive.id}{ARCHIVE_SUFFIX}"
    try:
        shutil.copyfile(src, target)
    except OSError as e:
        raise PackagingError(f"无法保存上传文件 {src}", output=str(e)) from e
    archive.archive_file = str(target)
    archive.archive_file_hash = file_hash(target)
    logger.info("上传文件已关联: archive=%s file=%s", archive.id, target)
    return target
