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
Force-directed layout of the service graph.

Every node repels every other node and each dependency edge acts as a weak
spring, so connected services gather while the whole graph spreads out.
A cooling factor (alpha) shrinks the forces each tick until the layout
settles.
"""
import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, NamedTuple, Optional, Tuple

from ..MODELS.graph_model import EdgeKind, Graph
from ..MODELS.settings import StackvizSettings

logger = logging.getLogger(__name__)

# Golden angle, used to seed nodes on a phyllotaxis spiral
INITIAL_ANGLE = math.pi * (3 - math.sqrt(5))
INITIAL_RADIUS = 10.0


class Position(NamedTuple):
    x: float
    y: float


@dataclass
class SimulationNode:
    """Mutable simulation state of one service node."""
    name: str
    x: float = 0.0
    y: float = 0.0
    vx: float = 0.0
    vy: float = 0.0


@dataclass(frozen=True)
class EdgePath:
    """Segment drawn for an edge, from source to target position."""
    source: str
    target: str
    kind: EdgeKind
    x1: float
    y1: float
    x2: float
    y2: float


@dataclass(frozen=True)
class ArrowMarker:
    """Arrow head definition placed at the target end of every edge."""
    id: str = "end"
    view_box: str = "0 -5 10 10"
    ref_x: float = 23
    ref_y: float = 0
    width: float = 6
    height: float = 6
    path: str = "M0,-5L10,0L0,5"


TickCallback = Callable[[Dict[str, Position]], None]


def _jiggle(seed: int) -> float:
    """Tiny non-zero offset separating coincident nodes."""
    return ((seed % 7) + 1) * 1e-6


class LayoutEngine:
    """
    Iterative force simulation over the nodes and edges of one graph.
    """

    def __init__(self,
                 settings: Optional[StackvizSettings] = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        """
        Initializes the layout engine.

        :param settings: Force constants and tick interval.
        :param sleep: Coroutine used to wait between clock-driven ticks.
        """
        self.settings = settings or StackvizSettings()
        self._sleep = sleep
        self._graph: Optional[Graph] = None
        self._nodes: List[SimulationNode] = []
        self._links: List[Tuple[int, int, float]] = []
        self.alpha = 1.0
        self.markers: Dict[str, ArrowMarker] = {}
        self._callbacks: List[TickCallback] = []
        self._task: Optional[asyncio.Task] = None

    @property
    def graph(self) -> Optional[Graph]:
        return self._graph

    @property
    def nodes(self) -> List[SimulationNode]:
        return self._nodes

    @property
    def cooled(self) -> bool:
        """True once alpha dropped below alpha_min; the clock stops ticking."""
        return self.alpha < self.settings.alpha_min

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def load(self, graph: Graph) -> None:
        """
        Replaces the simulated graph and reseeds every node.

        :param graph: The new graph.
        """
        self._graph = graph
        self._nodes = []
        for i, node in enumerate(graph.nodes):
            radius = INITIAL_RADIUS * math.sqrt(0.5 + i)
            angle = i * INITIAL_ANGLE
            self._nodes.append(SimulationNode(node.name, radius * math.cos(angle), radius * math.sin(angle)))

        counts = [0] * len(self._nodes)
        pairs = []
        for edge in graph.edges:
            if edge.source == edge.target:
                # A self dependency has no length to relax
                continue
            source, target = graph.index_of(edge.source), graph.index_of(edge.target)
            counts[source] += 1
            counts[target] += 1
            pairs.append((source, target))
        self._links = [(s, t, counts[s] / (counts[s] + counts[t])) for s, t in pairs]
        self.alpha = 1.0
        logger.debug("Layout loaded %d nodes and %d links", len(self._nodes), len(self._links))

    def reheat(self) -> None:
        self.alpha = 1.0

    def tick(self, graph: Graph, dt: float = 1.0) -> Dict[str, Position]:
        """
        Advances the simulation by one step.

        :param graph: Graph to lay out; a different graph than the current
            one restarts the simulation from seeded positions.
        :param dt: Integration step, must be positive.
        :return: Node positions by name.
        """
        if not dt > 0 or math.isinf(dt):
            raise ValueError(f"dt must be a positive finite number, got {dt!r}")
        if graph is not self._graph:
            self.load(graph)

        settings = self.settings
        self.alpha += (0.0 - self.alpha) * settings.alpha_decay
        self._apply_links()
        self._apply_charge()

        keep = 1 - settings.velocity_decay
        for node in self._nodes:
            node.vx *= keep
            node.vy *= keep
            speed = math.hypot(node.vx, node.vy)
            if speed > settings.max_speed:
                node.vx *= settings.max_speed / speed
                node.vy *= settings.max_speed / speed
            node.x += node.vx * dt
            node.y += node.vy * dt
        return self.positions()

    def _apply_links(self) -> None:
        distance = self.settings.link_distance
        strength = self.settings.link_strength
        nodes = self._nodes
        for k, (s, t, bias) in enumerate(self._links):
            source, target = nodes[s], nodes[t]
            dx = target.x + target.vx - source.x - source.vx
            dy = target.y + target.vy - source.y - source.vy
            if dx == 0 and dy == 0:
                dx = _jiggle(k)
            length = math.hypot(dx, dy)
            scale = (length - distance) / length * self.alpha * strength
            dx *= scale
            dy *= scale
            target.vx -= dx * bias
            target.vy -= dy * bias
            source.vx += dx * (1 - bias)
            source.vy += dy * (1 - bias)

    def _apply_charge(self) -> None:
        """Pairwise repulsion; O(n^2), fine for compose-sized graphs."""
        min_sq = self.settings.distance_min ** 2
        charge = self.settings.charge_strength * self.alpha
        nodes = self._nodes
        count = len(nodes)
        for i in range(count):
            a = nodes[i]
            for j in range(i + 1, count):
                b = nodes[j]
                dx = b.x - a.x
                dy = b.y - a.y
                if dx == 0 and dy == 0:
                    dx = _jiggle(i + j)
                    dy = _jiggle(i * j)
                dist_sq = dx * dx + dy * dy
                if dist_sq < min_sq:
                    dist_sq = math.sqrt(min_sq * dist_sq)
                weight = charge / dist_sq
                a.vx -= dx * weight
                a.vy -= dy * weight
                b.vx += dx * weight
                b.vy += dy * weight

    def positions(self) -> Dict[str, Position]:
        return {node.name: Position(node.x, node.y) for node in self._nodes}

    def energy(self) -> float:
        """Kinetic energy of the simulation."""
        return sum(node.vx ** 2 + node.vy ** 2 for node in self._nodes) / 2

    def edge_paths(self, graph: Optional[Graph] = None) -> List[EdgePath]:
        """
        Segments for drawing the edges of the current layout.

        :param graph: Restrict to these edges, e.g. a filtered view; defaults
            to the simulated graph.
        """
        graph = graph or self._graph
        if graph is None:
            return []
        positions = self.positions()
        paths = []
        for edge in graph.edges:
            if edge.source not in positions or edge.target not in positions:
                continue
            start, end = positions[edge.source], positions[edge.target]
            paths.append(EdgePath(edge.source, edge.target, edge.kind, start.x, start.y, end.x, end.y))
        return paths

    def on_tick(self, callback: TickCallback) -> Callable[[], None]:
        """
        Registers a callback receiving the positions after each clock tick.

        :return: A callable that removes the callback.
        """
        self._callbacks.append(callback)

        def unsubscribe():
            if callback in self._callbacks:
                self._callbacks.remove(callback)
        return unsubscribe

    def start(self, graph: Optional[Graph] = None) -> None:
        """
        Starts ticking on the event loop clock until the layout cools down.

        :param graph: Graph to lay out; defaults to the loaded one.
        """
        if graph is not None and graph is not self._graph:
            self.load(graph)
        if self._graph is None:
            raise RuntimeError("No graph loaded")
        self.markers.setdefault("end", ArrowMarker())
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        """
        Stops the clock and removes the arrow markers.
        """
        if self._task is not None:
            self._task.cancel()
            self._task = None
        self.markers.clear()

    def clear(self) -> None:
        """
        Stops the clock and drops the graph with every simulated node.
        """
        self.stop()
        self._graph = None
        self._nodes = []
        self._links = []
        self.alpha = 1.0

    async def _run(self) -> None:
        while not self.cooled:
            await self._sleep(self.settings.tick_interval)
            positions = self.tick(self._graph)
            for callback in list(self._callbacks):
                callback(positions)
        logger.debug("Layout cooled down")
