"""Typed schema of the operator-edited config file.

Example (TOML)::

    token = "s3cret"

    [[actions]]
    name = "deploy-site"
    script = "/srv/site/deploy.sh"
    cwd = "/srv/site"
    timeout = 120

    [docker]
    sock = "/var/run/docker.sock"

    [[docker.containers]]
    name = "web"
    allow = ["restart", "update"]
    image = "ghcr.io/acme/web:stable"

All models are frozen: a loaded ``Config`` is never mutated, only replaced.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_DOCKER_SOCK = "/var/run/docker.sock"
DEFAULT_ACTION_TIMEOUT = 300.0


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)


class Action(_Frozen):
    """A named shell command or script that can be triggered remotely.

    ``script`` and ``command`` are mutually exclusive; that rule is checked
    when the action is invoked, so one broken entry never blocks a reload.
    """

    name: str
    script: str | None = None
    command: str | tuple[str, ...] | None = None
    cwd: str | None = None
    timeout: float = Field(default=DEFAULT_ACTION_TIMEOUT, gt=0)


class Container(_Frozen):
    """A Docker container the agent may operate on."""

    name: str
    allow: tuple[str, ...] = ()
    image: str | None = None
    compose_file: str | None = Field(default=None, alias="composeFile")
    service: str | None = None

    @property
    def compose_service(self) -> str:
        return self.service or self.name


class DockerSettings(_Frozen):
    sock: str = DEFAULT_DOCKER_SOCK
    containers: tuple[Container, ...] = ()


class Config(_Frozen):
    """Process-wide configuration snapshot."""

    token: str | None = None
    actions: tuple[Action, ...] = ()
    docker: DockerSettings | None = None

    @field_validator("actions", mode="before")
    @classmethod
    def _actions_from_mapping(cls, value: Any) -> Any:
        # Older config.json files keyed actions by name: {"deploy": {"script": ...}}
        if isinstance(value, dict):
            return [
                {**body, "name": name} if isinstance(body, dict) else body
                for name, body in value.items()
            ]
        return value

    @property
    def containers(self) -> tuple[Container, ...]:
        return self.docker.containers if self.docker else ()
