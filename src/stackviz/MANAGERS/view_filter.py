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
Edge visibility for the graph view.
"""
import logging
from typing import Callable, FrozenSet, Iterable, List, Union

from ..MODELS.graph_model import DependencyEdge, EdgeKind, Graph

logger = logging.getLogger(__name__)

ViewMode = Union[None, str, EdgeKind, Iterable[Union[str, EdgeKind]]]


class ViewFilter:
    """
    Chooses which edge kinds are drawn.

    Only visibility changes: hidden edges stay in the graph and keep pulling
    on their nodes in the layout.
    """

    def __init__(self, mode: ViewMode = EdgeKind.DEPENDS_ON):
        self._visible: FrozenSet[EdgeKind] = self._resolve(mode)
        self._listeners: List[Callable[[FrozenSet[EdgeKind]], None]] = []

    @property
    def visible_kinds(self) -> FrozenSet[EdgeKind]:
        return self._visible

    @property
    def markers_visible(self) -> bool:
        """Arrow heads are shown whenever any edge kind is."""
        return bool(self._visible)

    def set_view(self, mode: ViewMode) -> None:
        """
        Selects the visible edge kinds.

        :param mode: A kind, its name, several kinds, or None to hide all edges.
        :raises ValueError: For an unknown kind.
        """
        visible = self._resolve(mode)
        if visible == self._visible:
            return
        self._visible = visible
        logger.debug("Visible edge kinds: %s", sorted(k.value for k in visible))
        for listener in list(self._listeners):
            listener(visible)

    def is_visible(self, kind: Union[str, EdgeKind]) -> bool:
        return EdgeKind(kind) in self._visible

    def visible_edges(self, graph: Graph) -> List[DependencyEdge]:
        return [edge for edge in graph.edges if edge.kind in self._visible]

    def on_change(self, listener: Callable[[FrozenSet[EdgeKind]], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    @staticmethod
    def _resolve(mode: ViewMode) -> FrozenSet[EdgeKind]:
        if mode is None:
            return frozenset()
        if isinstance(mode, (str, EdgeKind)):
            return frozenset({EdgeKind(mode)})
        return frozenset(EdgeKind(kind) for kind in mode)
