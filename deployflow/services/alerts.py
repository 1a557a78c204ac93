"""运维告警

部署后的 deploy:cleanup 失败时通知运维。消息渲染不在本层，
这里只负责把结构化内容（项目、环境、截断后的日志）投递出去:
  - WebhookNotifier: POST JSON 到配置的地址
  - LogNotifier: 未配置地址时写入诊断日志
"""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from dataclasses import asdict, dataclass
from typing import Protocol

logger = logging.getLogger(__name__)


@dataclass
class Alert:
    """告警内容"""

    recipient: str
    subject: str
    project_name: str
    environment_name: str
    log: str


class AlertNotifier(Protocol):
    """告警投递协议，返回是否投递成功"""

    def send(self, alert: Alert) -> bool:
        ...


class LogNotifier:
    """只写诊断日志的告警实现"""

    def send(self, alert: Alert) -> bool:
        logger.warning(
            "告警 -> %s: %s\n%s", alert.recipient, alert.subject, alert.log,
        )
        return True


class WebhookNotifier:
    """通过 HTTP POST 投递告警"""

    def __init__(self, url: str, token: str = "", timeout: int = 10) -> None:
        if not url.startswith(("http://", "https://")):
            raise ValueError(f"告警地址只允许 http/https: {url}")
        self.url = url
        self.token = token
        self.timeout = timeout

    def send(self, alert: Alert) -> bool:
        body = json.dumps(asdict(alert), ensure_ascii=False).encode("utf-8")
        req = urllib.request.Request(
            self.url, data=body, method="POST",
            headers={"Content-Type": "application/json"},
        )
        if self.token:
            req.add_header("Authorization", f"Bearer {self.token}")
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:  # nosec B310
                logger.info("告警已发送: %s (HTTP %s)", alert.subject, resp.status)
            return True
        except urllib.error.HTTPError as e:
            logger.error("告警发送失败 HTTP %s: %s", e.code, e.reason)
        except (urllib.error.URLError, OSError) as e:
            logger.error("告警发送失败: %s", e)
        return False
