"""Result types returned by actions and Docker operations.

Results are created per request and discarded once the response is sent.
``to_dict`` produces the JSON wire shape (camelCase keys, unset optional
fields omitted).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ActionResult:
    """Outcome of running a configured action."""

    ok: bool
    error: str | None = None
    exit_code: int | None = None
    stdout: str | None = None
    stderr: str | None = None

    @classmethod
    def failure(cls, error: str) -> ActionResult:
        return cls(ok=False, error=error)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"ok": self.ok}
        if self.error is not None:
            data["error"] = self.error
        if self.exit_code is not None:
            data["exitCode"] = self.exit_code
        if self.stdout is not None:
            data["stdout"] = self.stdout
        if self.stderr is not None:
            data["stderr"] = self.stderr
        return data


@dataclass
class DockerResult:
    """Outcome of a container restart or update."""

    ok: bool
    message: str
    steps_completed: list[str] = field(default_factory=list)
    rolled_back: bool = False

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"ok": self.ok, "message": self.message}
        if self.steps_completed:
            data["steps"] = list(self.steps_completed)
        if self.rolled_back:
            data["rolledBack"] = True
        return data
