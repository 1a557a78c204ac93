"""维护页控制器: maintenance:enable / maintenance:disable

维护页状态关系到线上一致性，失败一律抛 MaintenanceError，不允许静默忽略。
"""

from __future__ import annotations

import logging

from deployflow.core.exceptions import MaintenanceError
from deployflow.core.models import Environment
from deployflow.core.oplog import LogSink
from deployflow.services.command import CommandBuilder
from deployflow.services.runner import CommandRunner, run_step

logger = logging.getLogger(__name__)


class MaintenanceController:
    """维护页开关"""

    def __init__(self, builder: CommandBuilder, runner: CommandRunner) -> None:
        self.builder = builder
        self.runner = runner

    def _toggle(self, action: str, environment: Environment, log: LogSink) -> None:
        command = self.builder.build(action, "web", environment, None, log)
        result = run_step(self.runner, command, log)
        if not result.success:
            logger.error("%s 失败: %s", action, environment.full_name)
            raise MaintenanceError(
                f"{action} failed on {environment.full_name}",
                output=result.error_output,
            ) from result.invocation_error

    def enable(self, environment: Environment, log: LogSink) -> None:
        self._toggle("maintenance:enable", environment, log)
        log.append(f'Maintenance page enabled on "{environment.full_name}"')

    def disable(self, environment: Environment, log: LogSink) -> None:
        self._toggle("maintenance:disable", environment, log)
        log.append(f'Maintenance page disabled on "{environment.full_name}"')
