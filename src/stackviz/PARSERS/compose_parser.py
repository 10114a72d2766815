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
Parser that turns a docker-compose.yml file into raw graph input.
"""
import logging
from typing import Any, Dict, List

import yaml

from ..exceptions import ParseError
from ..MODELS.graph_model import DependencyEdge, EdgeKind, Manifest

logger = logging.getLogger(__name__)


class ComposeParser:
    """
    Parser for docker-compose.yml files.

    Only the service topology is read: service names, ``depends_on`` and
    ``links``. Edges are returned as declared; references to services that
    are not defined are left for graph validation to reject.
    """

    def parse(self, compose_path: str) -> Manifest:
        """
        Parses a compose file from a path.

        :param compose_path: Path to the compose file.
        :return: Raw nodes and edges.
        :raises ParseError: If the file cannot be read or is malformed.
        """
        try:
            with open(compose_path, 'r') as f:
                content = f.read()
        except OSError as e:
            raise ParseError(f"cannot read manifest: {e.strerror or e}", path=compose_path)
        try:
            return self.parse_from_string(content)
        except ParseError as e:
            raise ParseError(str(e), path=compose_path) from e

    def parse_from_string(self, content: str) -> Manifest:
        """
        Parses a compose file from a string.

        :param content: YAML content of the compose file.
        :return: Raw nodes and edges.
        :raises ParseError: If the content is not a compose document.
        """
        if not content.strip():
            return Manifest()
        try:
            data = yaml.safe_load(content)
        except (yaml.YAMLError, ValueError) as e:
            raise ParseError(f"invalid YAML: {e}")
        if not data:
            data = {}
        if not isinstance(data, dict):
            raise ParseError("top level of a compose file must be a mapping")

        services = data.get('services') or {}
        if not isinstance(services, dict):
            raise ParseError("'services' must be a mapping")

        nodes: List[str] = []
        edges: List[DependencyEdge] = []
        for name, spec in services.items():
            name = str(name)
            if spec is None:
                spec = {}
            if not isinstance(spec, dict):
                raise ParseError(f"service '{name}' must be a mapping")
            nodes.append(name)
            edges.extend(self._parse_service_edges(name, spec))

        logger.debug("Parsed %d services and %d edges", len(nodes), len(edges))
        return Manifest(nodes=nodes, edges=edges)

    def _parse_service_edges(self, name: str, spec: Dict[str, Any]) -> List[DependencyEdge]:
        """
        Reads the dependency edges leaving a single service.

        :param name: The name of the service.
        :param spec: The service specification dictionary.
        :return: Edges with the service as source.
        """
        edges = []
        for target in self._to_list(spec.get('depends_on'), 'depends_on', name):
            edges.append(DependencyEdge(source=name, target=target, kind=EdgeKind.DEPENDS_ON))

        # links entries are "service" or "service:alias"
        for link in self._to_list(spec.get('links'), 'links', name):
            target = link.split(':', 1)[0]
            edges.append(DependencyEdge(source=name, target=target, kind=EdgeKind.LINKS))
        return edges

    def _to_list(self, val: Any, key: str, service: str) -> List[str]:
        """
        Normalizes the list and mapping forms of a compose reference list.

        :param val: The raw value.
        :param key: The compose key, for error messages.
        :param service: The owning service, for error messages.
        :return: A list of service names.
        """
        if val is None:
            return []
        if isinstance(val, str):
            return [val]
        if isinstance(val, dict):
            return [str(k) for k in val.keys()]
        if isinstance(val, list):
            return [str(v) for v in val]
        raise ParseError(f"'{key}' of service '{service}' must be a list or mapping")
