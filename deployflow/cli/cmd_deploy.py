"""CLI: 部署与维护页命令"""

from __future__ import annotations

import click

from deployflow.cli import _fail, _open_log, _parse_kv_pairs, _svc
from deployflow.core.exceptions import DeployflowError


def register(group: click.Group) -> None:
    group.add_command(deploy)
    group.add_command(maintenance_group)
    group.add_command(ping)
    group.add_command(current_build)
    group.add_command(environments)
    group.add_command(register_project)


@click.command()
@click.argument("project")
@click.argument("environment")
@click.argument("build")
@click.option("--leave-maintenance", is_flag=True, help="部署结束后保留维护页")
def deploy(project: str, environment: str, build: str, leave_maintenance: bool) -> None:
    """把 BUILD 部署到 PROJECT 的 ENVIRONMENT"""
    try:
        env = _svc().registry.environment(project, environment)
        log = _open_log(env.full_name, "deploy")
        _svc().deployer.deploy(env, build, log, leave_maintenance_page=leave_maintenance)
    except DeployflowError as e:
        raise _fail(e) from e
    click.echo(f"部署完成: {build} -> {env.full_name}")


@click.group(name="maintenance")
def maintenance_group() -> None:
    """维护页开关"""


@maintenance_group.command(name="enable")
@click.argument("project")
@click.argument("environment")
def maintenance_enable(project: str, environment: str) -> None:
    """开启维护页"""
    try:
        env = _svc().registry.environment(project, environment)
        _svc().maintenance.enable(env, _open_log(env.full_name, "maintenance"))
    except DeployflowError as e:
        raise _fail(e) from e
    click.echo(f"维护页已开启: {env.full_name}")


@maintenance_group.command(name="disable")
@click.argument("project")
@click.argument("environment")
def maintenance_disable(project: str, environment: str) -> None:
    """关闭维护页"""
    try:
        env = _svc().registry.environment(project, environment)
        _svc().maintenance.disable(env, _open_log(env.full_name, "maintenance"))
    except DeployflowError as e:
        raise _fail(e) from e
    click.echo(f"维护页已关闭: {env.full_name}")


@click.command()
@click.argument("project")
@click.argument("environment")
def ping(project: str, environment: str) -> None:
    """deploy:check 检查环境"""
    try:
        env = _svc().registry.environment(project, environment)
        ok = _svc().deployer.ping(env, _open_log(env.full_name, "ping"))
    except DeployflowError as e:
        raise _fail(e) from e
    click.echo(f"检查{'通过' if ok else '失败'}: {env.full_name}")
    if not ok:
        raise SystemExit(1)


@click.command(name="current-build")
@click.argument("project")
@click.argument("environment")
def current_build(project: str, environment: str) -> None:
    """查看环境当前部署的构建"""
    try:
        env = _svc().registry.environment(project, environment)
    except DeployflowError as e:
        raise _fail(e) from e
    entry = _svc().history.current_build(env)
    if entry is None:
        click.echo(f"没有部署记录: {env.full_name}")
        return
    click.echo(f"{entry['buildname']}  ({entry['datetime']})")


@click.command()
def environments() -> None:
    """列出已注册的项目环境"""
    envs = _svc().registry.list_environments()
    if not envs:
        click.echo("没有已注册的环境。")
        return
    for env in envs:
        click.echo(f"  {env.full_name:30s} {env.project.repository}")


@click.command(name="register-project")
@click.argument("name")
@click.option("--repository", "-r", default="", help="代码仓库地址")
@click.option("--env-file", default="", help="项目环境变量 YAML 文件")
@click.option("--env", "env_vars", multiple=True, help="命令环境变量，格式: KEY=VALUE（可多次指定）")
@click.option("--environment", "-e", "env_names", multiple=True, help="环境名（可多次指定）")
def register_project(
    name: str, repository: str, env_file: str,
    env_vars: tuple[str, ...], env_names: tuple[str, ...],
) -> None:
    """注册或覆盖项目及其环境"""
    project = _svc().registry.register(
        name, repository=repository, env_file=env_file,
        env=_parse_kv_pairs(env_vars), environments=list(env_names),
    )
    click.echo(f"项目已注册: {project.name} ({', '.join(env_names) or '无环境'})")
