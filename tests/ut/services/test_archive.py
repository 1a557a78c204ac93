"""归档打包 / 校验 / 上传关联测试"""

from __future__ import annotations

import io
import re
import shlex
import tarfile
from datetime import date
from pathlib import Path

import pytest

from deployflow.core.exceptions import CleanupError, PackagingError
from deployflow.core.models import DataArchive, DataTransfer, Environment, Project, TransferMode
from deployflow.services.archive import (
    ArchivePackager,
    attach_upload,
    file_hash,
    generate_filename,
    generate_filepath,
)


def _add_bytes(tf: tarfile.TarFile, name: str, data: bytes) -> None:
    info = tarfile.TarInfo(name)
    info.size = len(data)
    tf.addfile(info, io.BytesIO(data))


def make_sspak(path: Path, *, db: bool = True, assets: bool = True, asset_root: str = "assets") -> Path:
    """构造一个最小的 .sspak（tar，内含 database.sql.gz / assets.tar.gz）"""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as inner:
        _add_bytes(inner, f"{asset_root}/logo.png", b"png")
        _add_bytes(inner, f"{asset_root}/docs/readme.txt", b"hello")
    with tarfile.open(path, "w") as tf:
        if db:
            _add_bytes(tf, "database.sql.gz", b"fake gzip dump")
        if assets:
            _add_bytes(tf, "assets.tar.gz", buf.getvalue())
    return path


@pytest.fixture()
def packager(builder, runner) -> ArchivePackager:
    return ArchivePackager(builder, runner, sspak_bin="sspak")


class TestNaming:
    def test_filename_components(self, env) -> None:
        a = DataArchive(mode="db", environment=env)
        t = DataTransfer(id=5, direction="pull", mode="db", environment=env)
        name = generate_filename(a, t, today=date(2024, 3, 9))
        assert re.fullmatch(r"shop-prod-db-20240309-[0-9a-f]{40}", name)
        assert generate_filename(a, t) != generate_filename(a, t)

    def test_filename_sanitized(self) -> None:
        env = Environment(name="Live EU", project=Project(name="My Shop!"))
        a = DataArchive(mode="all", environment=env)
        t = DataTransfer(id=5, direction="pull", mode="all", environment=env)
        assert generate_filename(a, t).startswith("my_shop-live_eu-all-")

    def test_filepath(self, env, tmp_path) -> None:
        a = DataArchive(mode="db", environment=env)
        t = DataTransfer(id=12, direction="pull", mode="db", environment=env)
        assert generate_filepath(a, t, tmp_path) == tmp_path / "shop" / "prod" / "transfer-12"


class TestPackageArgv:
    @pytest.mark.parametrize("mode, db, assets", [
        (TransferMode.ALL, True, True),
        (TransferMode.DB, True, False),
        (TransferMode.ASSETS, False, True),
    ])
    def test_flags_match_mode(self, packager, tmp_path, mode, db, assets) -> None:
        argv = packager.package_argv("x.sspak", tmp_path, mode)
        assert argv[:3] == ["sspak", "saveexisting", "x.sspak"]
        assert (f"--db={tmp_path / 'database.sql'}" in argv) is db
        assert (f"--assets={tmp_path / 'assets'}" in argv) is assets

    def test_package_runs_in_workdir(self, packager, runner, env, log, tmp_path) -> None:
        def produce(cmd) -> None:
            (Path(cmd.cwd) / shlex.split(cmd.line)[2]).write_bytes(b"sspak")

        runner.on("sspak:saveexisting", produce)
        a = DataArchive(mode="db", environment=env)
        t = DataTransfer(id=1, direction="pull", mode="db", environment=env)
        path = packager.package(a, t, tmp_path, log)
        assert path.parent == tmp_path and path.suffix == ".sspak"
        assert runner.commands[0].cwd == str(tmp_path)

    def test_package_failure(self, packager, runner, env, log, tmp_path) -> None:
        runner.fail("sspak:saveexisting", "disk full")
        a = DataArchive(mode="db", environment=env)
        t = DataTransfer(id=1, direction="pull", mode="db", environment=env)
        with pytest.raises(PackagingError) as exc:
            packager.package(a, t, tmp_path, log)
        assert exc.value.output == "disk full"

    def test_package_missing_output(self, packager, env, log, tmp_path) -> None:
        a = DataArchive(mode="db", environment=env)
        t = DataTransfer(id=1, direction="pull", mode="db", environment=env)
        with pytest.raises(PackagingError, match="did not produce"):
            packager.package(a, t, tmp_path, log)

    def test_remove_loose_files(self, packager, log, tmp_path) -> None:
        (tmp_path / "database.sql").write_text("dump")
        (tmp_path / "assets").mkdir()
        (tmp_path / "assets" / "a.png").write_text("a")
        (tmp_path / "keep.sspak").write_text("k")
        packager.remove_loose_files(tmp_path, log)
        assert [p.name for p in tmp_path.iterdir()] == ["keep.sspak"]

    def test_remove_loose_files_failure(self, packager, log, tmp_path, monkeypatch) -> None:
        (tmp_path / "assets").mkdir()

        def broken(*_a, **_kw) -> None:
            raise PermissionError("denied")

        monkeypatch.setattr("deployflow.services.archive.shutil.rmtree", broken)
        with pytest.raises(CleanupError):
            packager.remove_loose_files(tmp_path, log)


class TestValidateAndFix:
    def _archive(self, env, path: Path, mode: str = "all") -> DataArchive:
        return DataArchive(
            mode=mode, environment=env, archive_file=str(path),
            archive_file_hash=file_hash(path),
        )

    def test_valid_all(self, packager, env, log, tmp_path) -> None:
        a = self._archive(env, make_sspak(tmp_path / "a.sspak"))
        work = tmp_path / "work"
        work.mkdir()
        assert packager.validate_and_fix(a, work, TransferMode.ALL, log) is True
        assert (work / "database.sql.gz").is_file()
        assert (work / "assets" / "logo.png").is_file()
        assert (work / "assets" / "docs" / "readme.txt").is_file()
        assert not (work / "assets.tar.gz").exists()

    def test_asset_folder_renamed(self, packager, env, log, tmp_path) -> None:
        a = self._archive(env, make_sspak(tmp_path / "a.sspak", db=False, asset_root="public"))
        work = tmp_path / "work"
        work.mkdir()
        assert packager.validate_and_fix(a, work, TransferMode.ASSETS, log) is True
        assert (work / "assets" / "logo.png").is_file()
        assert any("Renaming asset folder public" in ln for ln in log.lines)

    def test_missing_member_for_mode(self, packager, env, log, tmp_path) -> None:
        a = self._archive(env, make_sspak(tmp_path / "a.sspak", assets=False), mode="db")
        work = tmp_path / "work"
        work.mkdir()
        assert packager.validate_and_fix(a, work, TransferMode.ALL, log) is False
        assert "assets.tar.gz" in log.lines[-1]

    def test_db_only_mode_ignores_assets(self, packager, env, log, tmp_path) -> None:
        a = self._archive(env, make_sspak(tmp_path / "a.sspak", assets=False), mode="db")
        work = tmp_path / "work"
        work.mkdir()
        assert packager.validate_and_fix(a, work, TransferMode.DB, log) is True

    def test_hash_mismatch(self, packager, env, log, tmp_path) -> None:
        a = self._archive(env, make_sspak(tmp_path / "a.sspak"))
        a.archive_file_hash = "0" * 64
        assert packager.validate_and_fix(a, tmp_path, TransferMode.ALL, log) is False
        assert "hash mismatch" in log.lines[-1]

    def test_pending_archive(self, packager, env, log, tmp_path) -> None:
        a = DataArchive.placeholder(env, "all")
        assert packager.validate_and_fix(a, tmp_path, TransferMode.ALL, log) is False

    def test_not_a_tar(self, packager, env, log, tmp_path) -> None:
        bad = tmp_path / "bad.sspak"
        bad.write_bytes(b"not a tar at all")
        a = self._archive(env, bad)
        assert packager.validate_and_fix(a, tmp_path, TransferMode.ALL, log) is False
        assert "could not be read" in log.lines[-1]


class TestAttachUpload:
    def test_attach(self, env, tmp_path) -> None:
        a = DataArchive.placeholder(env, "all")
        src = make_sspak(tmp_path / "upload.sspak")
        target = attach_upload(a, src, tmp_path / "transfers")
        assert target == tmp_path / "transfers" / "shop" / "prod" / f"upload-{a.id}.sspak"
        assert not a.is_pending
        assert a.archive_file_hash == file_hash(src)

    def test_attach_twice_rejected(self, env, tmp_path) -> None:
        a = DataArchive.placeholder(env, "all")
        src = make_sspak(tmp_path / "upload.sspak")
        attach_upload(a, src, tmp_path / "transfers")
        with pytest.raises(PackagingError, match="已关联"):
            attach_upload(a, src, tmp_path / "transfers")

    def test_attach_non_archive(self, env, tmp_path) -> None:
        src = tmp_path / "notes.txt"
        src.write_text("hello")
        with pytest.raises(PackagingError):
            attach_upload(DataArchive.placeholder(env, "all"), src, tmp_path / "transfers")
