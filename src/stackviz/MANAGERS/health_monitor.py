# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Periodic health checks of the deployed stack.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .deployment_state_machine import SETTLED_STATES, DeploymentController

logger = logging.getLogger(__name__)


class HealthMonitor:
    """
    Re-runs the status query on a fixed interval while enabled, so the
    deployment state follows containers that start or die on their own.
    """

    def __init__(
        self,
        controller: DeploymentController,
        interval: float = 5.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initializes the health monitor.

        :param controller: Controller whose status check is re-issued.
        :param interval: Seconds between health checks.
        :param sleep: Coroutine used to wait between checks.
        """
        self.controller = controller
        self.interval = interval
        self._sleep = sleep
        self.enabled = False
        self.checks_issued = 0
        self._task: Optional[asyncio.Task] = None

    def toggle(self) -> bool:
        """
        Flips the health monitor on or off.

        :return: Whether the monitor is now enabled.
        """
        if self.enabled:
            self.stop()
        else:
            self.start()
        return self.enabled

    def start(self):
        """
        Starts the monitoring task.
        """
        if self.enabled:
            return
        self.enabled = True
        self._task = asyncio.get_running_loop().create_task(self._monitor_loop())
        logger.info("Health monitor started, interval %.1fs", self.interval)

    def stop(self):
        """
        Stops the monitoring task. A status query already issued still completes.
        """
        if not self.enabled:
            return
        self.enabled = False
        if self._task is not None:
            self._task.cancel()
            self._task = None
        logger.info("Health monitor stopped")

    async def _monitor_loop(self):
        """
        Internal loop that periodically re-enters the status check.
        """
        while self.enabled:
            await self._sleep(self.interval)
            if not self.enabled:
                break

            state = self.controller.state
            if state not in SETTLED_STATES or self.controller.busy:
                logger.debug("Skipping health check in state %s", state.value)
                continue

            self.checks_issued += 1
            self.controller.check()
