"""部署历史查询

远端 deploy 任务会把每次部署追加到
<log_path>/<project>:<env>.deploy-history.txt，每行格式:
    2024-01-01 12:00:00 => <build>
"""

from __future__ import annotations

import logging
from pathlib import Path

from deployflow.core.models import Environment

logger = logging.getLogger(__name__)

SEPARATOR = " => "


def parse_history_line(line: str) -> dict[str, str] | None:
    line = line.strip()
    if SEPARATOR not in line:
        return None
    when, build = line.split(SEPARATOR, 1)
    return {"buildname": build.strip(), "datetime": when.strip()}


class DeployHistory:
    """读取部署历史文件"""

    def __init__(self, log_path: str) -> None:
        self.log_path = Path(log_path)

    def history_file(self, environment: Environment) -> Path:
        return self.log_path / f"{environment.full_name}.deploy-history.txt"

    def current_build(self, environment: Environment) -> dict[str, str] | None:
        """返回最近一次部署 {buildname, datetime}，无记录时返回 None"""
        path = self.history_file(environment)
        if not path.exists():
            return None
        lines = [ln for ln in path.read_text(encoding="utf-8").splitlines() if ln.strip()]
        if not lines:
            return None
        entry = parse_history_line(lines[-1])
        if entry is None:
            logger.warning("无法解析部署历史: %s", path)
        return entry
