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
Execution of compose commands (status query, deploy, kill) for a manifest.
"""
import asyncio
import logging
from typing import List, Optional, Protocol, Sequence, Type

from ..exceptions import CommandError, DeployError, KillError, QueryError

logger = logging.getLogger(__name__)


class ComposeBackend(Protocol):
    """
    The commands the deployment controller issues against a manifest.

    Each coroutine either returns or raises; the controller turns both
    outcomes into a result for its reducer.
    """

    async def query_status(self, path: str) -> str:
        """Returns the container listing for the manifest."""

    async def deploy(self, path: str) -> None:
        """Brings the stack up in the background."""

    async def kill(self, path: str) -> None:
        """Kills every container of the stack."""


class ComposeCliBackend:
    """
    Runs the compose command line tool as a subprocess.
    """

    def __init__(self, command: Optional[Sequence[str]] = None):
        """
        Initializes the backend.

        Args:
            command (Optional[Sequence[str]]): Compose executable and leading
                arguments, e.g. ["docker", "compose"].
        """
        self.command: List[str] = list(command or ["docker-compose"])

    async def query_status(self, path: str) -> str:
        return await self._run(path, ["ps"], QueryError)

    async def deploy(self, path: str) -> None:
        await self._run(path, ["up", "-d"], DeployError)

    async def kill(self, path: str) -> None:
        await self._run(path, ["kill"], KillError)

    async def _run(self, path: str, args: List[str], error: Type[CommandError]) -> str:
        """
        Runs one compose subcommand against a manifest.

        Args:
            path (str): Manifest path.
            args (List[str]): Subcommand and its arguments.
            error (Type[CommandError]): Exception raised on failure.

        Returns:
            str: Standard output of the command.
        """
        command = self.command + ["-f", path] + args
        logger.info("Running command: %s", " ".join(command))
        try:
            # Avoid shell=True for security reasons (CWE-78)
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise error(f"Failed to start {command[0]}: {e}")

        stdout, stderr = await process.communicate()
        out = stdout.decode(errors="replace")
        if process.returncode != 0:
            message = stderr.decode(errors="replace").strip() or f"Exit code: {process.returncode}"
            raise error(message, returncode=process.returncode)
        return out
