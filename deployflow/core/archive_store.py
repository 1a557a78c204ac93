"""数据归档记录存储: JSON 文件

每条记录对应一个 DataArchive；环境引用按 (project, environment) 名称保存，
读取时通过 EnvironmentRegistry 还原为 Environment 对象。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Protocol

from deployflow.core.exceptions import NotFoundError
from deployflow.core.models import DataArchive
from deployflow.core.registry import EnvironmentRegistry
from deployflow.utils.yaml_io import load_json_list, save_json_list

logger = logging.getLogger(__name__)


class ArchiveStore(Protocol):
    """归档记录存储协议"""

    def save(self, archive: DataArchive) -> None:
        ...

    def get(self, archive_id: str) -> DataArchive:
        ...


class JsonArchiveStore:
    """JSON 文件归档存储"""

    def __init__(self, archives_file: str, registry: EnvironmentRegistry) -> None:
        self.archives_file = Path(archives_file)
        self.registry = registry

    def _load(self) -> list[dict[str, Any]]:
        return load_json_list(self.archives_file)

    def save(self, archive: DataArchive) -> None:
        """新增或更新一条归档记录"""
        records = [r for r in self._load() if r.get("id") != archive.id]
        records.append(archive.to_dict())
        save_json_list(self.archives_file, records)
        logger.info("归档记录已保存: id=%s pending=%s", archive.id, archive.is_pending)

    def _hydrate(self, raw: dict[str, Any]) -> DataArchive:
        env = self.registry.environment(raw["project"], raw["environment"])
        original = None
        if raw.get("original_environment"):
            original = self.registry.environment(raw["project"], raw["original_environment"])
        return DataArchive(
            id=raw["id"],
            created=raw.get("created", ""),
            mode=raw["mode"],
            environment=env,
            original_environment=original,
            author=raw.get("author", ""),
            is_backup=bool(raw.get("is_backup")),
            archive_file=raw.get("archive_file"),
            archive_file_hash=raw.get("archive_file_hash", ""),
            upload_token=raw.get("upload_token", ""),
            data_transfers=list(raw.get("data_transfers") or []),
        )

    def get(self, archive_id: str) -> DataArchive:
        for raw in self._load():
            if raw.get("id") == archive_id:
                return self._hydrate(raw)
        raise NotFoundError(f"归档不存在: {archive_id}")

    def find_by_token(self, token: str) -> DataArchive:
        for raw in self._load():
            if raw.get("upload_token") and raw["upload_token"] == token.upper():
                return self._hydrate(raw)
        raise NotFoundError(f"没有匹配上传令牌的归档: {token}")

    def query(self, *, project: str | None = None, environment: str | None = None) -> list[DataArchive]:
        """按项目/环境过滤，按创建时间倒序"""
        records = self._load()
        if project:
            records = [r for r in records if r.get("project") == project]
        if environment:
            records = [r for r in records if r.get("environment") == environment]
        records.sort(key=lambda r: r.get("created", ""), reverse=True)
        return [self._hydrate(r) for r in records]
