"""Container update orchestrator: swaps a running container for a new image.

Two update paths:

* **compose**: ``docker compose pull`` then ``up -d`` for the service; the
  compose tool owns convergence, so no rollback is attempted.
* **direct API**: a step-indexed protocol against the Docker Engine API

  1. INSPECT the existing container
  2. RESOLVE_IMAGE (explicit override, else the container's current image)
  3. PULL the image
  4. STOP the running container
  5. RENAME it to ``<name>-old`` as a live backup
  6. CREATE a new container under the original name
  7. START the new container
  8. CLEANUP the backup (best effort)

Every failure transition has a named rollback plan (``ROLLBACK_PLAN``).
Whatever step fails, the original container is left running under its
original name unless the update fully succeeds.
"""

from __future__ import annotations

import asyncio
import shlex
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from tada.docker.client import DockerAPIError, DockerClient
from tada.logging import get_logger
from tada.models import DockerResult
from tada.schema import Container

log = get_logger("tada.docker.orchestrator")

BACKUP_SUFFIX = "-old"


class UpdateStep(Enum):
    """Steps of a direct-API update, in execution order."""

    INSPECT = "inspect"
    RESOLVE_IMAGE = "resolve_image"
    PULL = "pull"
    STOP = "stop"
    RENAME = "rename"
    CREATE = "create"
    START = "start"
    CLEANUP = "cleanup"


class RollbackAction(Enum):
    """Compensating actions used by the rollback plans."""

    REMOVE_NEW = "remove_new"
    RESTORE_NAME = "restore_name"
    RESTART_ORIGINAL = "restart_original"


ROLLBACK_PLAN: dict[UpdateStep, tuple[RollbackAction, ...]] = {
    UpdateStep.INSPECT: (),
    UpdateStep.RESOLVE_IMAGE: (),
    UpdateStep.PULL: (),
    UpdateStep.STOP: (RollbackAction.RESTART_ORIGINAL,),
    UpdateStep.RENAME: (RollbackAction.RESTART_ORIGINAL,),
    UpdateStep.CREATE: (RollbackAction.RESTORE_NAME, RollbackAction.RESTART_ORIGINAL),
    UpdateStep.START: (
        RollbackAction.REMOVE_NEW,
        RollbackAction.RESTORE_NAME,
        RollbackAction.RESTART_ORIGINAL,
    ),
}

# Endpoint fields that can be passed back to container create
_ENDPOINT_KEYS = ("IPAMConfig", "Links", "Aliases", "DriverOpts", "MacAddress")


class StepFailed(Exception):
    """A protocol step failed; ``message`` is reported to the caller."""

    def __init__(self, step: UpdateStep, message: str) -> None:
        self.step = step
        self.message = message
        super().__init__(message)


def build_create_body(info: dict[str, Any], image: str) -> dict[str, Any]:
    """Build a create request that clones *info* except for the image."""
    body: dict[str, Any] = {**(info.get("Config") or {}), "Image": image}
    body["HostConfig"] = info.get("HostConfig") or {}

    networks = (info.get("NetworkSettings") or {}).get("Networks") or {}
    if networks:
        short_id = str(info.get("Id", ""))[:12]
        endpoints: dict[str, dict[str, Any]] = {}
        for network, endpoint in networks.items():
            settings = {k: endpoint[k] for k in _ENDPOINT_KEYS if (endpoint or {}).get(k)}
            if "Aliases" in settings:
                # Docker adds the short container id as an alias; it belongs to the old one
                settings["Aliases"] = [a for a in settings["Aliases"] if a != short_id]
            endpoints[network] = settings
        body["NetworkingConfig"] = {"EndpointsConfig": endpoints}
    return body


class StandaloneUpdate:
    """One direct-API update run and the context its steps share."""

    def __init__(self, docker: DockerClient, container: Container) -> None:
        self._docker = docker
        self._container = container
        self.name = container.name
        self.backup_name = f"{container.name}{BACKUP_SUFFIX}"
        self.info: dict[str, Any] = {}
        self.image = ""

        self._steps: dict[UpdateStep, Callable[[], Awaitable[None]]] = {
            UpdateStep.INSPECT: self._inspect,
            UpdateStep.RESOLVE_IMAGE: self._resolve_image,
            UpdateStep.PULL: self._pull,
            UpdateStep.STOP: self._stop,
            UpdateStep.RENAME: self._rename,
            UpdateStep.CREATE: self._create,
            UpdateStep.START: self._start,
        }
        self._rollbacks: dict[RollbackAction, Callable[[], Awaitable[None]]] = {
            RollbackAction.REMOVE_NEW: self._remove_new,
            RollbackAction.RESTORE_NAME: self._restore_name,
            RollbackAction.RESTART_ORIGINAL: self._restart_original,
        }

    async def run(self) -> DockerResult:
        result = DockerResult(ok=False, message="")

        for step, handler in self._steps.items():
            log.debug("update_step", container=self.name, step=step.value)
            try:
                await handler()
            except StepFailed as exc:
                return await self._fail(result, exc)
            result.steps_completed.append(step.value)

        await self._cleanup()
        result.steps_completed.append(UpdateStep.CLEANUP.value)
        result.ok = True
        result.message = f'Container "{self.name}" updated with image "{self.image}"'
        return result

    async def _fail(self, result: DockerResult, exc: StepFailed) -> DockerResult:
        log.warning(
            "update_step_failed", container=self.name, step=exc.step.value, error=exc.message
        )
        result.message = exc.message

        plan = ROLLBACK_PLAN[exc.step]
        if not plan:
            return result

        failed = await self._rollback(plan)
        if failed:
            result.message += f" (rollback incomplete: {', '.join(failed)} failed)"
            log.error("update_rollback_incomplete", container=self.name, failed=failed)
        else:
            result.rolled_back = True
            result.message += ", rolled back"
            log.info("update_rolled_back", container=self.name, step=exc.step.value)
        return result

    async def _rollback(self, plan: tuple[RollbackAction, ...]) -> list[str]:
        """Run every action in *plan*; return the names of those that failed."""
        failed: list[str] = []
        for action in plan:
            try:
                await self._rollbacks[action]()
            except DockerAPIError as exc:
                log.error(
                    "update_rollback_action_failed",
                    container=self.name,
                    action=action.value,
                    error=str(exc),
                )
                failed.append(action.value)
        return failed

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _inspect(self) -> None:
        try:
            self.info = await self._docker.inspect_container(self.name)
        except DockerAPIError as exc:
            if exc.status == 404:
                raise StepFailed(UpdateStep.INSPECT, f'Container "{self.name}" not found') from exc
            raise StepFailed(UpdateStep.INSPECT, str(exc)) from exc

    async def _resolve_image(self) -> None:
        self.image = self._container.image or (self.info.get("Config") or {}).get("Image") or ""
        if not self.image:
            raise StepFailed(
                UpdateStep.RESOLVE_IMAGE,
                f'Cannot determine image for container "{self.name}"',
            )

    async def _pull(self) -> None:
        try:
            await self._docker.pull_image(self.image)
        except DockerAPIError as exc:
            raise StepFailed(UpdateStep.PULL, str(exc)) from exc

    async def _stop(self) -> None:
        try:
            await self._docker.stop_container(self.name)
        except DockerAPIError as exc:
            raise StepFailed(UpdateStep.STOP, f"Failed to stop container: {exc}") from exc

    async def _rename(self) -> None:
        try:
            await self._docker.rename_container(self.name, self.backup_name)
        except DockerAPIError as exc:
            raise StepFailed(
                UpdateStep.RENAME, f"Failed to rename old container: {exc}"
            ) from exc

    async def _create(self) -> None:
        body = build_create_body(self.info, self.image)
        try:
            await self._docker.create_container(self.name, body)
        except DockerAPIError as exc:
            raise StepFailed(
                UpdateStep.CREATE, f"Failed to create new container: {exc}"
            ) from exc

    async def _start(self) -> None:
        try:
            await self._docker.start_container(self.name)
        except DockerAPIError as exc:
            raise StepFailed(UpdateStep.START, f"Failed to start new container: {exc}") from exc

    async def _cleanup(self) -> None:
        try:
            await self._docker.remove_container(self.backup_name, force=True)
        except DockerAPIError as exc:
            log.warning("update_backup_cleanup_failed", container=self.backup_name, error=str(exc))

    # ------------------------------------------------------------------
    # Rollback actions
    # ------------------------------------------------------------------

    async def _remove_new(self) -> None:
        await self._docker.remove_container(self.name, force=True)

    async def _restore_name(self) -> None:
        await self._docker.rename_container(self.backup_name, self.name)

    async def _restart_original(self) -> None:
        await self._docker.start_container(self.name)


async def compose_update(container: Container) -> DockerResult:
    """Pull and recreate a compose service in one shell invocation."""
    if not container.compose_file:
        return DockerResult(
            ok=False, message=f'Container "{container.name}" has no compose file configured'
        )
    compose = f"docker compose -f {shlex.quote(container.compose_file)}"
    service = shlex.quote(container.compose_service)
    cmd = f"{compose} pull {service} && {compose} up -d {service}"

    log.info("compose_update_started", container=container.name, cmd=cmd)
    try:
        proc = await asyncio.create_subprocess_exec(
            "sh",
            "-c",
            cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await proc.communicate()
    except OSError as exc:
        return DockerResult(ok=False, message=f"Compose update failed: {exc}")

    if proc.returncode != 0:
        output = stderr.decode(errors="replace").strip() or stdout.decode(errors="replace").strip()
        log.warning("compose_update_failed", container=container.name, rc=proc.returncode)
        return DockerResult(ok=False, message=f"Compose update failed: {output}")
    return DockerResult(ok=True, message=f'Container "{container.name}" updated via compose')


class ContainerOrchestrator:
    """Runs restarts and updates, at most one in flight per container name.

    The locks live only in this process; they do not survive a restart.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def is_busy(self, name: str) -> bool:
        lock = self._locks.get(name)
        return lock is not None and lock.locked()

    def _lock_for(self, name: str) -> asyncio.Lock:
        return self._locks.setdefault(name, asyncio.Lock())

    @staticmethod
    def _busy_result(name: str) -> DockerResult:
        return DockerResult(
            ok=False, message=f'An operation on container "{name}" is already in progress'
        )

    async def restart(self, docker: DockerClient, name: str) -> DockerResult:
        lock = self._lock_for(name)
        if lock.locked():
            return self._busy_result(name)

        async with lock:
            try:
                await docker.restart_container(name)
            except DockerAPIError as exc:
                log.warning("container_restart_failed", container=name, error=str(exc))
                return DockerResult(
                    ok=False, message=f"Restart failed (HTTP {exc.status}): {exc.body}"
                )
            log.info("container_restarted", container=name)
            return DockerResult(ok=True, message=f'Container "{name}" restarted')

    async def update(self, docker: DockerClient, container: Container) -> DockerResult:
        lock = self._lock_for(container.name)
        if lock.locked():
            return self._busy_result(container.name)

        async with lock:
            start = time.monotonic()
            mode = "compose" if container.compose_file else "api"
            log.info("container_update_started", container=container.name, mode=mode)
            if container.compose_file:
                result = await compose_update(container)
            else:
                result = await StandaloneUpdate(docker, container).run()
            log.info(
                "container_update_finished",
                container=container.name,
                ok=result.ok,
                duration_seconds=round(time.monotonic() - start, 2),
            )
            return result
