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
Session tying the graph, its layout and the deployment lifecycle of one
loaded manifest together.
"""
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from ..exceptions import ParseError, ValidationError
from ..MODELS.graph_model import Graph, GraphModel
from ..MODELS.settings import StackvizSettings
from ..PARSERS.compose_parser import ComposeParser
from ..RUNNERS.compose_runner import ComposeBackend, ComposeCliBackend
from .deployment_state_machine import ControlAction, DeploymentController, DeploymentState
from .health_monitor import HealthMonitor
from .layout_engine import LayoutEngine, Position
from .view_filter import ViewFilter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NodeView:
    """A node as drawn: its position and the shared deployment state."""
    name: str
    position: Position
    state: DeploymentState


class StackSession:
    """
    Owns everything belonging to the currently loaded manifest.

    Loading a manifest replaces the graph wholesale; a manifest that fails to
    parse or validate leaves the previously displayed graph untouched.
    """

    def __init__(self,
                 backend: Optional[ComposeBackend] = None,
                 settings: Optional[StackvizSettings] = None,
                 parser: Optional[ComposeParser] = None,
                 show_error: Optional[Callable[[str], None]] = None,
                 pick_file: Optional[Callable[[], Optional[str]]] = None):
        """
        Initializes the session.

        :param backend: Compose command backend; defaults to the CLI backend.
        :param settings: Session settings.
        :param parser: Manifest parser.
        :param show_error: Presents error messages to the operator.
        :param pick_file: Asks the operator for a manifest path.
        """
        self.settings = settings or StackvizSettings()
        self.parser = parser or ComposeParser()
        self.pick_file = pick_file
        self.graph: Optional[Graph] = None
        self.controller = DeploymentController(
            backend or ComposeCliBackend(self.settings.compose_command),
            show_error=show_error,
        )
        self.layout = LayoutEngine(self.settings)
        self.view = ViewFilter()
        self.health_monitor = HealthMonitor(self.controller, interval=self.settings.health_interval)

    @property
    def state(self) -> DeploymentState:
        return self.controller.state

    def select_file(self):
        """Marks that the operator picked a manifest that is being opened."""
        self.controller.file_selected()

    def open_manifest(self, path: str) -> Graph:
        """
        Loads a manifest: builds its graph and hands the path to the
        deployment lifecycle.

        :param path: Manifest path.
        :return: The new graph.
        :raises ParseError: If the manifest is malformed.
        :raises ValidationError: If its dependencies reference unknown services.
        """
        try:
            graph = GraphModel.from_manifest(self.parser.parse(path))
        except (ParseError, ValidationError) as e:
            logger.error("Failed to load %s: %s", path, e)
            self.controller.open_aborted()
            raise

        self.graph = graph
        restart = self.layout.running
        self.layout.stop()
        self.layout.load(graph)
        if restart:
            self.layout.start()
        logger.info("Loaded %s with %d services", path, len(graph))
        self.controller.manifest_path_changed(path)
        return graph

    def activate(self) -> Optional[ControlAction]:
        """
        Clicks the main deployment button, picking a file when none is loaded.
        """
        action = self.controller.activate()
        if action is ControlAction.OPEN and self.pick_file is not None:
            path = self.pick_file()
            if path:
                self.select_file()
                self.open_manifest(path)
        return action

    def unload(self):
        """Drops the manifest, its graph and its layout."""
        self.health_monitor.stop()
        self.layout.clear()
        self.graph = None
        self.controller.manifest_path_changed("")

    def node_views(self) -> List[NodeView]:
        positions = self.layout.positions()
        state = self.controller.state
        return [NodeView(name, position, state) for name, position in positions.items()]

    async def close(self):
        """Stops periodic tasks and waits for in-flight commands."""
        self.health_monitor.stop()
        self.layout.stop()
        await self.controller.wait_idle()
