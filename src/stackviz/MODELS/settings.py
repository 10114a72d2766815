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
Runtime settings: layout constants, timing and the compose command.
"""
from typing import Annotated, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class StackvizSettings(BaseSettings):
    """
    Settings for a stackviz session.

    Values come from the defaults below, then a .env file, then
    ``STACKVIZ_*`` variables from the process environment.
    """
    model_config = SettingsConfigDict(env_prefix="STACKVIZ_", env_file=".env", extra="ignore")

    # Layout
    link_distance: float = Field(130.0, gt=0)
    link_strength: float = Field(0.01, gt=0, le=1)
    charge_strength: float = Field(30.0, ge=0)
    distance_min: float = Field(1.0, gt=0)
    velocity_decay: float = Field(0.4, gt=0, lt=1)
    alpha_min: float = Field(0.001, gt=0, lt=1)
    alpha_ticks: int = Field(300, gt=0)
    max_speed: float = Field(100.0, gt=0)
    tick_interval: float = Field(1 / 60, gt=0)

    # Deployment
    health_interval: float = Field(5.0, gt=0)
    # A plain command line such as "docker compose", not JSON
    compose_command: Annotated[List[str], NoDecode] = ["docker-compose"]

    log_level: str = "INFO"

    @field_validator("compose_command", mode="before")
    @classmethod
    def _split_command(cls, value):
        if isinstance(value, str):
            return value.split()
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    @property
    def alpha_decay(self) -> float:
        """Per-tick cooling rate that takes alpha from 1 to alpha_min in alpha_ticks."""
        return 1 - self.alpha_min ** (1 / self.alpha_ticks)
