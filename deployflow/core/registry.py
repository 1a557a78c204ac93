"""项目/环境注册表: 基于 YAML 文件

文件格式:
    projects:
      shop:
        repository: git@example.com:shop.git
        env_file: configs/env/shop.yml
        env:
          APP_ENV: live
        environments: [uat, prod]
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from deployflow.core.exceptions import NotFoundError
from deployflow.core.models import Environment, Project
from deployflow.utils.yaml_io import load_yaml, save_yaml

logger = logging.getLogger(__name__)


class EnvironmentRegistry:
    """项目与环境注册表"""

    section_key = "projects"

    def __init__(self, registry_file: str) -> None:
        self.registry_file = Path(registry_file)
        self._data: dict[str, Any] = load_yaml(self.registry_file)

    def _section(self) -> dict[str, dict[str, Any]]:
        result: dict[str, dict[str, Any]] = self._data.setdefault(self.section_key, {})
        return result

    def register(
        self, name: str, *, repository: str = "", env_file: str = "",
        env: dict[str, str] | None = None, environments: list[str] | None = None,
    ) -> Project:
        """注册或覆盖项目定义并持久化"""
        self._section()[name] = {
            "repository": repository,
            "env_file": env_file,
            "env": dict(env or {}),
            "environments": list(environments or []),
        }
        save_yaml(self.registry_file, self._data)
        logger.info("项目已注册: %s", name)
        return self.project(name)

    def project(self, name: str) -> Project:
        raw = self._section().get(name)
        if raw is None:
            raise NotFoundError(f"项目不存在: {name}")
        return Project(
            name=name,
            repository=raw.get("repository", ""),
            env_file=raw.get("env_file", ""),
            env={str(k): str(v) for k, v in (raw.get("env") or {}).items()},
        )

    def environment(self, project_name: str, env_name: str) -> Environment:
        project = self.project(project_name)
        names = self._section()[project_name].get("environments") or []
        if env_name not in names:
            raise NotFoundError(f"环境不存在: {project_name}:{env_name}")
        return Environment(name=env_name, project=project)

    def list_environments(self) -> list[Environment]:
        envs: list[Environment] = []
        for project_name, raw in self._section().items():
            project = self.project(project_name)
            envs.extend(
                Environment(name=n, project=project)
                for n in raw.get("environments") or []
            )
        return envs
