"""告警投递 / 部署包生成 / 服务容器测试"""

from __future__ import annotations

import json
import urllib.error
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from deployflow.services.alerts import Alert, LogNotifier, WebhookNotifier
from deployflow.services.container import ServiceContainer, get_container, reset_container
from deployflow.services.package import ScriptPackageGenerator


def _alert() -> Alert:
    return Alert(
        recipient="ops@example.com", subject="cleanup failed",
        project_name="shop", environment_name="prod", log="tail",
    )


class TestNotifiers:
    def test_log_notifier(self, caplog) -> None:
        with caplog.at_level("WARNING"):
            assert LogNotifier().send(_alert()) is True
        assert "cleanup failed" in caplog.text

    def test_webhook_rejects_non_http(self) -> None:
        with pytest.raises(ValueError):
            WebhookNotifier("file:///etc/passwd")

    def test_webhook_posts_json(self, monkeypatch) -> None:
        captured = {}

        def fake_urlopen(req, timeout):
            captured["req"] = req
            resp = MagicMock()
            resp.status = 200
            resp.__enter__.return_value = resp
            return resp

        monkeypatch.setattr("deployflow.services.alerts.urllib.request.urlopen", fake_urlopen)
        assert WebhookNotifier("https://hooks.example.com/x", token="t0k").send(_alert()) is True
        req = captured["req"]
        assert req.get_method() == "POST"
        assert req.get_header("Authorization") == "Bearer t0k"
        body = json.loads(req.data.decode("utf-8"))
        assert body["project_name"] == "shop"
        assert body["log"] == "tail"

    def test_webhook_failure_returns_false(self, monkeypatch) -> None:
        def boom(req, timeout):
            raise urllib.error.URLError("unreachable")

        monkeypatch.setattr("deployflow.services.alerts.urllib.request.urlopen", boom)
        assert WebhookNotifier("http://localhost:1/x").send(_alert()) is False


class TestScriptPackageGenerator:
    @pytest.fixture()
    def gen(self, builder, runner, tmp_path) -> ScriptPackageGenerator:
        return ScriptPackageGenerator("/opt/bin/make-package", str(tmp_path / "pkgs"), builder, runner)

    def test_generates(self, gen, runner, log) -> None:
        def produce(cmd) -> None:
            Path(cmd.line.split()[-1]).write_bytes(b"tgz")

        runner.on("package", produce)
        name = gen.package_filename("shop", "abc123", "git@x:shop.git", log)
        assert name.endswith("shop-abc123.tar.gz")
        assert runner.actions == ["package"]

    def test_reuses_existing(self, gen, runner, log) -> None:
        path = gen.package_path("shop", "abc123")
        path.parent.mkdir(parents=True)
        path.write_bytes(b"tgz")
        assert gen.package_filename("shop", "abc123", "", log) == str(path)
        assert runner.commands == []

    def test_failure_returns_empty(self, gen, runner, log) -> None:
        runner.fail("package")
        assert gen.package_filename("shop", "abc123", "", log) == ""


class TestServiceContainer:
    def test_lazy_and_shared(self, config, runner) -> None:
        c = ServiceContainer(config=config, runner=runner)
        assert "deployer" not in c._instances
        assert c.deployer.maintenance is c.maintenance
        assert c.deployer.locks is c.transfers.locks
        assert c.transfers.runner is runner

    def test_package_generator_optional(self, config) -> None:
        assert ServiceContainer(config=config).package_generator is None
        config.package_script = "/opt/bin/make-package"
        assert ServiceContainer(config=config).package_generator is not None

    def test_notifier_selection(self, config) -> None:
        assert isinstance(ServiceContainer(config=config).notifier, LogNotifier)
        config.alert_webhook_url = "https://hooks.example.com/x"
        assert isinstance(ServiceContainer(config=config).notifier, WebhookNotifier)

    def test_global_reset(self, config) -> None:
        c = ServiceContainer(config=config)
        reset_container(c)
        try:
            assert get_container() is c
        finally:
            reset_container()
