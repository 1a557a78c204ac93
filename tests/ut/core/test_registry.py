"""环境注册表 / 归档存储 / 部署历史测试"""

from __future__ import annotations

import pytest

from deployflow.core.archive_store import JsonArchiveStore
from deployflow.core.exceptions import NotFoundError
from deployflow.core.history import DeployHistory, parse_history_line
from deployflow.core.models import DataArchive
from deployflow.core.registry import EnvironmentRegistry


@pytest.fixture()
def registry(tmp_path) -> EnvironmentRegistry:
    reg = EnvironmentRegistry(str(tmp_path / "environments.yml"))
    reg.register(
        "shop", repository="git@example.com:shop.git",
        env={"APP_ENV": "live"}, environments=["uat", "prod"],
    )
    return reg


class TestEnvironmentRegistry:
    def test_environment_lookup(self, registry) -> None:
        env = registry.environment("shop", "prod")
        assert env.full_name == "shop:prod"
        assert env.project.repository == "git@example.com:shop.git"
        assert env.project.env == {"APP_ENV": "live"}

    def test_persisted(self, registry, tmp_path) -> None:
        again = EnvironmentRegistry(str(tmp_path / "environments.yml"))
        assert again.project("shop").name == "shop"

    def test_unknown_project(self, registry) -> None:
        with pytest.raises(NotFoundError, match="项目不存在"):
            registry.environment("blog", "prod")

    def test_unknown_environment(self, registry) -> None:
        with pytest.raises(NotFoundError, match="环境不存在"):
            registry.environment("shop", "staging")

    def test_list_environments(self, registry) -> None:
        names = [e.full_name for e in registry.list_environments()]
        assert names == ["shop:uat", "shop:prod"]


class TestJsonArchiveStore:
    @pytest.fixture()
    def store(self, registry, tmp_path) -> JsonArchiveStore:
        return JsonArchiveStore(str(tmp_path / "archives.json"), registry)

    def test_save_and_get(self, store, registry) -> None:
        env = registry.environment("shop", "prod")
        a = DataArchive(mode="db", environment=env, original_environment=env, author="ops")
        store.save(a)
        got = store.get(a.id)
        assert got.environment == env
        assert got.original_environment == env
        assert got.author == "ops"

    def test_save_is_upsert(self, store, registry) -> None:
        a = DataArchive(mode="db", environment=registry.environment("shop", "prod"))
        store.save(a)
        a.archive_file = "/tmp/x.sspak"
        store.save(a)
        records = store.query()
        assert len(records) == 1
        assert records[0].archive_file == "/tmp/x.sspak"
        assert records[0].file_size is None

    def test_get_missing(self, store) -> None:
        with pytest.raises(NotFoundError):
            store.get("nope")

    def test_find_by_token_case_insensitive(self, store, registry) -> None:
        a = DataArchive.placeholder(registry.environment("shop", "uat"), "all")
        store.save(a)
        assert store.find_by_token(a.upload_token.lower()).id == a.id
        with pytest.raises(NotFoundError):
            store.find_by_token("ZZZZZZZZ")

    def test_query_filters(self, store, registry) -> None:
        store.save(DataArchive(mode="db", environment=registry.environment("shop", "prod")))
        store.save(DataArchive(mode="db", environment=registry.environment("shop", "uat")))
        assert len(store.query(project="shop")) == 2
        assert len(store.query(environment="uat")) == 1
        assert store.query(project="blog") == []


class TestDeployHistory:
    def test_parse_line(self) -> None:
        assert parse_history_line("2024-01-01 12:00:00 => abc123\n") == {
            "buildname": "abc123", "datetime": "2024-01-01 12:00:00",
        }
        assert parse_history_line("garbage") is None

    def test_current_build_is_last_line(self, registry, tmp_path) -> None:
        env = registry.environment("shop", "prod")
        history = DeployHistory(str(tmp_path / "logs"))
        path = history.history_file(env)
        assert path.name == "shop:prod.deploy-history.txt"
        path.parent.mkdir(parents=True)
        path.write_text(
            "2024-01-01 12:00:00 => aaa\n2024-01-02 09:30:00 => bbb\n\n",
            encoding="utf-8",
        )
        assert history.current_build(env)["buildname"] == "bbb"

    def test_no_history(self, registry, tmp_path) -> None:
        history = DeployHistory(str(tmp_path / "logs"))
        assert history.current_build(registry.environment("shop", "prod")) is None
