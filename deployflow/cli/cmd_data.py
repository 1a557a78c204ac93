"""CLI: 数据备份 / 恢复 / 归档管理命令"""

from __future__ import annotations

import os
import secrets

import click

from deployflow.cli import _fail, _open_log, _svc
from deployflow.core.exceptions import DeployflowError
from deployflow.core.models import MODE_MAP, DataArchive, DataTransfer, TransferDirection

MODES = click.Choice([m.value for m in MODE_MAP])


def register(group: click.Group) -> None:
    group.add_command(backup)
    group.add_command(restore)
    group.add_command(archive_group)


def _new_transfer_id() -> str:
    return secrets.token_hex(4)


def _author() -> str:
    return os.environ.get("USER", "")


@click.command()
@click.argument("project")
@click.argument("environment")
@click.option("--mode", "-m", type=MODES, default="all", help="备份范围")
def backup(project: str, environment: str, mode: str) -> None:
    """从环境拉取数据并打包为归档"""
    try:
        env = _svc().registry.environment(project, environment)
        transfer = DataTransfer(
            id=_new_transfer_id(), direction=TransferDirection.PULL, mode=mode,
            environment=env, author=_author(), is_backup=True,
        )
        archive = _svc().transfers.transfer(transfer, _open_log(env.full_name, "backup"))
    except DeployflowError as e:
        raise _fail(e) from e
    click.echo(f"备份完成: {archive.id}  {archive.archive_file}")


@click.command()
@click.argument("project")
@click.argument("environment")
@click.argument("archive_id")
@click.option("--mode", "-m", type=MODES, default=None, help="恢复范围（默认与归档一致）")
def restore(project: str, environment: str, archive_id: str, mode: str | None) -> None:
    """把归档 ARCHIVE_ID 恢复到环境"""
    try:
        env = _svc().registry.environment(project, environment)
        archive = _svc().archives.get(archive_id)
        transfer = DataTransfer(
            id=_new_transfer_id(), direction=TransferDirection.PUSH,
            mode=mode or archive.mode, environment=env,
            author=_author(), data_archive=archive,
        )
        _svc().transfers.transfer(transfer, _open_log(env.full_name, "restore"))
    except DeployflowError as e:
        raise _fail(e) from e
    click.echo(f"恢复完成: {archive_id} -> {env.full_name}")


@click.group(name="archive")
def archive_group() -> None:
    """数据归档管理"""


@archive_group.command(name="list")
@click.option("--project", "-p", default=None, help="按项目过滤")
@click.option("--environment", "-e", default=None, help="按环境过滤")
def archive_list(project: str | None, environment: str | None) -> None:
    """列出归档记录"""
    try:
        archives = _svc().archives.query(project=project, environment=environment)
    except DeployflowError as e:
        raise _fail(e) from e
    if not archives:
        click.echo("没有归档记录。")
        return
    for a in archives:
        if a.is_pending:
            state = "待上传 " + a.upload_token
        elif a.file_size is None:
            state = "文件缺失"
        else:
            state = f"可用 {a.file_size} bytes"
        click.echo(
            f"  {a.id:14s} {a.created[:19]}  "
            f"{a.environment.full_name:20s} {a.mode.nice:20s} {state}"
        )


@archive_group.command(name="request-upload")
@click.argument("project")
@click.argument("environment")
@click.option("--mode", "-m", type=MODES, default="all", help="归档范围")
def archive_request_upload(project: str, environment: str, mode: str) -> None:
    """创建待上传占位记录并生成上传令牌"""
    try:
        env = _svc().registry.environment(project, environment)
    except DeployflowError as e:
        raise _fail(e) from e
    archive = DataArchive.placeholder(env, mode, author=_author())
    _svc().archives.save(archive)
    click.echo(f"占位归档已创建: {archive.id}")
    click.echo(f"上传令牌: {archive.upload_token}")


@archive_group.command(name="attach")
@click.argument("token")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
def archive_attach(token: str, path: str) -> None:
    """把线下交付的 .sspak 文件关联到上传令牌对应的占位记录"""
    from deployflow.services.archive import attach_upload

    try:
        archive = _svc().archives.find_by_token(token)
        target = attach_upload(archive, path, _svc().config.transfer_dir)
    except DeployflowError as e:
        raise _fail(e) from e
    _svc().archives.save(archive)
    click.echo(f"文件已关联: {archive.id} -> {target}")
