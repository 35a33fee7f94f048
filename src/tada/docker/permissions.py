"""Allow-list check for remote container operations."""

from __future__ import annotations

from collections.abc import Sequence

from tada.schema import Container


def find_container(containers: Sequence[Container], name: str) -> Container | None:
    return next((c for c in containers if c.name == name), None)


def check_permission(containers: Sequence[Container], name: str, action: str) -> str | None:
    """Return why *action* on container *name* is denied, or None if allowed."""
    container = find_container(containers, name)
    if container is None:
        return f'Container "{name}" is not in the allowed list'
    if action not in container.allow:
        allowed = ", ".join(container.allow) or "none"
        return (
            f'Action "{action}" is not allowed for container "{name}" '
            f"(allowed: {allowed})"
        )
    return None
