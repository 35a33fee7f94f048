"""Docker integration: Engine API client, update orchestrator, allow-list."""

from tada.docker.client import DockerAPIError, DockerClient, split_image_reference
from tada.docker.orchestrator import ContainerOrchestrator, RollbackAction, UpdateStep
from tada.docker.permissions import check_permission, find_container

__all__ = [
    "ContainerOrchestrator",
    "DockerAPIError",
    "DockerClient",
    "RollbackAction",
    "UpdateStep",
    "check_permission",
    "find_container",
    "split_image_reference",
]
