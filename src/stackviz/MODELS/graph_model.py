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
Models for the service dependency graph: nodes, edges and the immutable graph
built from a parsed manifest.
"""
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict

from ..exceptions import ValidationError


class EdgeKind(str, Enum):
    """
    Relations between services that can be drawn as edges.
    """
    DEPENDS_ON = "depends_on"
    LINKS = "links"


class ServiceNode(BaseModel):
    """
    A service declared in the manifest. The name is its stable key.
    """
    model_config = ConfigDict(frozen=True)

    name: str


class DependencyEdge(BaseModel):
    """
    Directed relation meaning "source needs target".
    """
    model_config = ConfigDict(frozen=True)

    source: str
    target: str
    kind: EdgeKind = EdgeKind.DEPENDS_ON

    @property
    def key(self) -> Tuple[str, str, EdgeKind]:
        return (self.source, self.target, self.kind)


class Manifest(BaseModel):
    """
    Raw node and edge lists produced by a manifest parser, before validation.
    """
    nodes: List[str] = []
    edges: List[DependencyEdge] = []


RawEdge = Union[DependencyEdge, Tuple[str, str], Tuple[str, str, Union[EdgeKind, str]]]


class Graph:
    """
    Immutable set of service nodes and the dependency edges between them.

    Never patched in place: loading another manifest builds a new Graph.
    """
    __slots__ = ("_nodes", "_edges", "_index")

    def __init__(self, nodes: Sequence[ServiceNode], edges: Sequence[DependencyEdge]):
        self._nodes: Tuple[ServiceNode, ...] = tuple(nodes)
        self._edges: Tuple[DependencyEdge, ...] = tuple(edges)
        self._index: Dict[str, int] = {node.name: i for i, node in enumerate(self._nodes)}

    def __setattr__(self, name, value):
        if hasattr(self, "_index"):
            raise AttributeError("Graph is immutable")
        object.__setattr__(self, name, value)

    @property
    def nodes(self) -> Tuple[ServiceNode, ...]:
        return self._nodes

    @property
    def edges(self) -> Tuple[DependencyEdge, ...]:
        return self._edges

    @property
    def names(self) -> List[str]:
        return [node.name for node in self._nodes]

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[ServiceNode]:
        return iter(self._nodes)

    def __contains__(self, name: object) -> bool:
        return name in self._index

    def index_of(self, name: str) -> int:
        """Position of a node in ``nodes``."""
        return self._index[name]

    def node(self, name: str) -> ServiceNode:
        return self._nodes[self._index[name]]

    def edges_of_kind(self, kind: EdgeKind) -> List[DependencyEdge]:
        return [edge for edge in self._edges if edge.kind == kind]

    def dependencies(self, name: str) -> List[str]:
        """Targets of the edges leaving ``name``."""
        return [edge.target for edge in self._edges if edge.source == name]

    def dependents(self, name: str) -> List[str]:
        """Sources of the edges entering ``name``."""
        return [edge.source for edge in self._edges if edge.target == name]

    def degree(self, name: str) -> int:
        """Number of edge endpoints attached to ``name``, self loops counted twice."""
        return sum((edge.source == name) + (edge.target == name) for edge in self._edges)

    def __repr__(self) -> str:
        return f"Graph(nodes={len(self._nodes)}, edges={len(self._edges)})"


class GraphModel:
    """
    Validating builder for :class:`Graph`.
    """

    @staticmethod
    def build(nodes: Iterable[str], edges: Iterable[RawEdge] = ()) -> Graph:
        """
        Builds a graph from raw node names and edges.

        :param nodes: Service names. Each must be unique and non-empty.
        :param edges: DependencyEdge instances or (source, target[, kind]) tuples.
        :return: The validated graph.
        :raises ValidationError: If any name is duplicated or empty, or an edge
            references an unknown node.
        """
        problems: List[str] = []
        names: List[str] = []
        seen = set()
        for name in nodes:
            if not isinstance(name, str) or not name:
                problems.append(f"invalid node name {name!r}")
                continue
            if name in seen:
                problems.append(f"duplicate node '{name}'")
                continue
            seen.add(name)
            names.append(name)

        built_edges: List[DependencyEdge] = []
        edge_keys = set()
        for raw in edges:
            try:
                edge = GraphModel._coerce_edge(raw)
            except ValueError as e:
                problems.append(str(e))
                continue
            for endpoint in (edge.source, edge.target):
                if endpoint not in seen:
                    problems.append(
                        f"edge {edge.source} -> {edge.target} references unknown node '{endpoint}'"
                    )
            # The same relation declared twice collapses to one edge
            if edge.key not in edge_keys:
                edge_keys.add(edge.key)
                built_edges.append(edge)

        if problems:
            raise ValidationError(problems)
        return Graph([ServiceNode(name=name) for name in names], built_edges)

    @staticmethod
    def from_manifest(manifest: Manifest) -> Graph:
        return GraphModel.build(manifest.nodes, manifest.edges)

    @staticmethod
    def _coerce_edge(raw: RawEdge) -> DependencyEdge:
        if isinstance(raw, DependencyEdge):
            return raw
        if isinstance(raw, (tuple, list)) and len(raw) in (2, 3):
            kind: Optional[Union[EdgeKind, str]] = raw[2] if len(raw) == 3 else EdgeKind.DEPENDS_ON
            try:
                kind = EdgeKind(kind)
            except ValueError:
                raise ValueError(f"unknown edge kind {kind!r}")
            return DependencyEdge(source=raw[0], target=raw[1], kind=kind)
        raise ValueError(f"malformed edge {raw!r}")
