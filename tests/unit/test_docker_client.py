"""Tests for tada.docker.client."""

from __future__ import annotations

import json

import httpx
import pytest

from tada.docker.client import DockerAPIError, DockerClient, split_image_reference

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _client(handler) -> tuple[DockerClient, list[httpx.Request]]:
    """Return a client whose requests are answered by *handler* and recorded."""
    seen: list[httpx.Request] = []

    def _record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    return DockerClient("/tmp/docker.sock", transport=httpx.MockTransport(_record)), seen


# ---------------------------------------------------------------------------
# split_image_reference
# ---------------------------------------------------------------------------


class TestSplitImageReference:
    """Tests for split_image_reference()."""

    @pytest.mark.parametrize(
        ("image", "expected"),
        [
            ("nginx", ("nginx", "latest")),
            ("nginx:1.27", ("nginx", "1.27")),
            ("ghcr.io/acme/web:stable", ("ghcr.io/acme/web", "stable")),
            ("registry:5000/app", ("registry:5000/app", "latest")),
            ("registry:5000/app:v2", ("registry:5000/app", "v2")),
            ("nginx@sha256:abc123", ("nginx@sha256:abc123", "")),
        ],
    )
    def test_split(self, image: str, expected: tuple[str, str]) -> None:
        assert split_image_reference(image) == expected


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class TestRequests:
    """Tests for individual endpoint wrappers."""

    async def test_inspect(self) -> None:
        client, seen = _client(lambda r: httpx.Response(200, json={"Id": "abc"}))
        info = await client.inspect_container("web")
        assert info == {"Id": "abc"}
        assert seen[0].method == "GET"
        assert seen[0].url.path == "/containers/web/json"

    async def test_inspect_404_raises(self) -> None:
        client, _ = _client(lambda r: httpx.Response(404, text="No such container: web"))
        with pytest.raises(DockerAPIError) as excinfo:
            await client.inspect_container("web")
        assert excinfo.value.status == 404
        assert "No such container" in str(excinfo.value)

    async def test_pull_params(self) -> None:
        client, seen = _client(lambda r: httpx.Response(200, text='{"status":"Done"}\n'))
        await client.pull_image("ghcr.io/acme/web:stable")
        params = seen[0].url.params
        assert seen[0].url.path == "/images/create"
        assert params["fromImage"] == "ghcr.io/acme/web"
        assert params["tag"] == "stable"

    async def test_pull_digest_has_no_tag_param(self) -> None:
        client, seen = _client(lambda r: httpx.Response(200, text=""))
        await client.pull_image("nginx@sha256:abc")
        assert "tag" not in seen[0].url.params

    async def test_pull_error_in_stream(self) -> None:
        body = "\n".join(
            [
                json.dumps({"status": "Pulling from acme/web"}),
                json.dumps({"errorDetail": {"message": "denied"}, "error": "denied"}),
            ]
        )
        client, _ = _client(lambda r: httpx.Response(200, text=body))
        with pytest.raises(DockerAPIError, match="denied"):
            await client.pull_image("acme/web")

    async def test_start_accepts_304(self) -> None:
        client, _ = _client(lambda r: httpx.Response(304))
        await client.start_container("web")

    async def test_stop_accepts_304(self) -> None:
        client, _ = _client(lambda r: httpx.Response(304))
        await client.stop_container("web")

    async def test_restart_failure_raises(self) -> None:
        client, _ = _client(lambda r: httpx.Response(500, text="boom"))
        with pytest.raises(DockerAPIError, match="Restart failed"):
            await client.restart_container("web")

    async def test_rename_params(self) -> None:
        client, seen = _client(lambda r: httpx.Response(204))
        await client.rename_container("web", "web-old")
        assert seen[0].url.path == "/containers/web/rename"
        assert seen[0].url.params["name"] == "web-old"

    async def test_create_sends_body(self) -> None:
        client, seen = _client(lambda r: httpx.Response(201, json={"Id": "new"}))
        created = await client.create_container("web", {"Image": "nginx:2"})
        assert created == {"Id": "new"}
        assert seen[0].url.params["name"] == "web"
        assert json.loads(seen[0].content) == {"Image": "nginx:2"}

    async def test_remove_force(self) -> None:
        client, seen = _client(lambda r: httpx.Response(204))
        await client.remove_container("web-old", force=True)
        assert seen[0].method == "DELETE"
        assert seen[0].url.params["force"] == "true"

    async def test_transport_error_status_zero(self) -> None:
        def _boom(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("socket missing", request=request)

        client, _ = _client(_boom)
        with pytest.raises(DockerAPIError) as excinfo:
            await client.info()
        assert excinfo.value.status == 0

    async def test_invalid_json_raises_api_error(self) -> None:
        client, _ = _client(lambda r: httpx.Response(200, text="<html>"))
        with pytest.raises(DockerAPIError, match="invalid JSON"):
            await client.info()


class TestPing:
    """Tests for ping()."""

    async def test_ping_returns_version(self) -> None:
        client, _ = _client(lambda r: httpx.Response(200, json={"ServerVersion": "27.1.0"}))
        assert await client.ping() == "27.1.0"

    async def test_ping_failure_returns_none(self) -> None:
        client, _ = _client(lambda r: httpx.Response(500, text="down"))
        assert await client.ping() is None
