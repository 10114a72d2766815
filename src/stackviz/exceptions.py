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
Exceptions raised by stackviz.
"""
from typing import List, Optional


class StackvizError(Exception):
    """Base class for all stackviz errors."""


class ValidationError(StackvizError):
    """
    A service graph could not be built.

    Raised for duplicated or empty node names and for edges whose endpoints
    are not declared nodes. No partial graph is ever returned.

    Attributes:
        problems: Every problem found, one message per entry.
    """

    def __init__(self, problems: List[str]):
        self.problems = list(problems)
        super().__init__("Invalid service graph: " + "; ".join(self.problems))


class ParseError(StackvizError):
    """
    A manifest could not be read or is malformed.

    Attributes:
        path: Manifest path, if the content came from a file.
    """

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        if path:
            message = f"{path}: {message}"
        super().__init__(message)


class CommandError(StackvizError):
    """An external compose command failed."""

    command = "compose"

    def __init__(self, message: str, returncode: Optional[int] = None):
        self.message = message
        self.returncode = returncode
        super().__init__(message)


class QueryError(CommandError):
    """The status query failed."""

    command = "ps"


class DeployError(CommandError):
    """The deploy command failed."""

    command = "up"


class KillError(CommandError):
    """The kill command failed."""

    command = "kill"
