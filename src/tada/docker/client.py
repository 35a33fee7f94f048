"""Minimal async client for the Docker Engine API over a Unix socket.

Only the handful of endpoints the agent needs are wrapped. Each call opens
its own short-lived ``httpx.AsyncClient``; the client object itself holds
nothing but the socket path, so swapping it on config reload is free.
Calls have no timeout: a pull or stop runs until Docker answers.
"""

from __future__ import annotations

import json
from typing import Any
from urllib.parse import quote

import httpx

from tada.logging import get_logger
from tada.schema import DEFAULT_DOCKER_SOCK

log = get_logger("tada.docker.client")

_BASE_URL = "http://docker"


class DockerAPIError(Exception):
    """A Docker API call failed (non-2xx response or transport error).

    ``status`` is 0 when no HTTP response was received.
    """

    def __init__(self, operation: str, status: int, body: str) -> None:
        self.operation = operation
        self.status = status
        self.body = body
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.status == 0:
            return f"{self.operation} failed: {self.body}"
        return f"{self.operation} failed (HTTP {self.status}): {self.body}"


def split_image_reference(image: str) -> tuple[str, str]:
    """Split an image reference into ``(fromImage, tag)`` for the pull API.

    A colon only denotes a tag when it appears after the last slash, so
    ``registry:5000/app`` keeps its port and gets the ``latest`` tag.
    Digest references are returned whole with an empty tag.
    """
    if "@" in image:
        return image, ""
    last_colon = image.rfind(":")
    if last_colon == -1 or "/" in image[last_colon:]:
        return image, "latest"
    return image[:last_colon], image[last_colon + 1 :]


def _json(operation: str, resp: httpx.Response) -> dict[str, Any]:
    try:
        data = resp.json()
    except ValueError as exc:
        raise DockerAPIError(operation, resp.status_code, f"invalid JSON response: {exc}") from exc
    if not isinstance(data, dict):
        raise DockerAPIError(operation, resp.status_code, "unexpected response shape")
    return data


def _container_path(name: str, suffix: str = "") -> str:
    return f"/containers/{quote(name, safe='')}{suffix}"


class DockerClient:
    """Docker Engine API client bound to one socket path."""

    def __init__(
        self,
        sock: str = DEFAULT_DOCKER_SOCK,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._sock = sock
        self._transport = transport

    @property
    def sock(self) -> str:
        return self._sock

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        body: dict[str, Any] | None = None,
        accept: tuple[int, ...] = (),
    ) -> httpx.Response:
        transport = self._transport or httpx.AsyncHTTPTransport(uds=self._sock)
        try:
            async with httpx.AsyncClient(
                transport=transport, base_url=_BASE_URL, timeout=None
            ) as client:
                resp = await client.request(method, path, params=params, json=body)
        except httpx.HTTPError as exc:
            raise DockerAPIError(operation, 0, str(exc) or type(exc).__name__) from exc

        if not resp.is_success and resp.status_code not in accept:
            raise DockerAPIError(operation, resp.status_code, resp.text.strip())
        return resp

    # ------------------------------------------------------------------
    # System / images
    # ------------------------------------------------------------------

    async def info(self) -> dict[str, Any]:
        resp = await self._request("Info", "GET", "/info")
        return _json("Info", resp)

    async def pull_image(self, image: str) -> None:
        """Pull *image*, failing on errors reported inside the progress stream."""
        from_image, tag = split_image_reference(image)
        params = {"fromImage": from_image}
        if tag:
            params["tag"] = tag
        resp = await self._request("Pull", "POST", "/images/create", params=params)

        # Docker answers 200 and reports registry errors as progress messages
        for line in resp.text.splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                message = json.loads(line)
            except ValueError:
                continue
            if isinstance(message, dict) and message.get("error"):
                raise DockerAPIError("Pull", resp.status_code, str(message["error"]))

    # ------------------------------------------------------------------
    # Containers
    # ------------------------------------------------------------------

    async def inspect_container(self, name: str) -> dict[str, Any]:
        resp = await self._request("Inspect", "GET", _container_path(name, "/json"))
        return _json("Inspect", resp)

    async def create_container(self, name: str, body: dict[str, Any]) -> dict[str, Any]:
        resp = await self._request(
            "Create", "POST", "/containers/create", params={"name": name}, body=body
        )
        return _json("Create", resp)

    async def start_container(self, name: str) -> None:
        # 304: already running
        await self._request("Start", "POST", _container_path(name, "/start"), accept=(304,))

    async def stop_container(self, name: str) -> None:
        # 304: already stopped
        await self._request("Stop", "POST", _container_path(name, "/stop"), accept=(304,))

    async def restart_container(self, name: str) -> None:
        await self._request("Restart", "POST", _container_path(name, "/restart"))

    async def rename_container(self, name: str, new_name: str) -> None:
        await self._request(
            "Rename", "POST", _container_path(name, "/rename"), params={"name": new_name}
        )

    async def remove_container(self, name: str, force: bool = False) -> None:
        params = {"force": "true"} if force else None
        await self._request("Remove", "DELETE", _container_path(name), params=params)

    async def ping(self) -> str | None:
        """Check the socket and return the server version, or None if unreachable."""
        try:
            info = await self.info()
        except DockerAPIError as exc:
            log.warning("docker_connection_failed", sock=self._sock, error=str(exc))
            return None
        version = str(info.get("ServerVersion", "unknown"))
        log.info("docker_connected", sock=self._sock, server_version=version)
        return version
