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
Logging configuration for the stackviz CLI.
"""
import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def setup_logging(level: str = "INFO") -> logging.Handler:
    """
    Attaches a stderr handler to the ``stackviz`` logger.

    :param level: Level name, e.g. "DEBUG".
    :return: The handler, to be passed to :func:`teardown_logging`.
    """
    logger = logging.getLogger("stackviz")
    logger.setLevel(level.upper())

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    return handler


def teardown_logging(handler: logging.Handler) -> None:
    """Detaches and closes a handler returned by :func:`setup_logging`."""
    logging.getLogger("stackviz").removeHandler(handler)
    handler.close()
