from __future__ import annotations

import json

import httpx
import pytest

from relay_console.tools.sandbox import RunloopClient, SandboxConfigurationError, SandboxError


def _client(handler) -> RunloopClient:
    client = RunloopClient(
        api_key="rl-test",
        base_url="https://runloop.test",
        transport=httpx.MockTransport(handler),
    )
    client.poll_interval = 0
    return client


def test_missing_api_key_is_a_configuration_error() -> None:
    with pytest.raises(SandboxConfigurationError, match="RUNLOOP_API_KEY"):
        RunloopClient(api_key="")


async def test_devbox_lifecycle() -> None:
    calls: list[tuple[str, str]] = []
    states = iter(["provisioning", "initializing", "running"])

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append((request.method, request.url.path))
        assert request.headers["Authorization"] == "Bearer rl-test"

        if request.url.path == "/v1/devboxes":
            return httpx.Response(200, json={"id": "dbx_1", "status": "provisioning"})
        if request.url.path == "/v1/devboxes/dbx_1":
            return httpx.Response(200, json={"id": "dbx_1", "status": next(states)})
        if request.url.path == "/v1/devboxes/dbx_1/execute_sync":
            assert json.loads(request.content) == {"command": "echo hi"}
            return httpx.Response(200, json={"stdout": "hi\n", "stderr": None, "exit_status": 0})
        if request.url.path == "/v1/devboxes/dbx_1/shutdown":
            return httpx.Response(200, json={"id": "dbx_1", "status": "shutdown"})
        return httpx.Response(404)

    client = _client(handler)
    devbox = await client.create()
    result = await devbox.exec("echo hi")
    await devbox.shutdown()
    await client.close()

    assert devbox.id == "dbx_1"
    assert result.stdout == "hi\n"
    assert result.stderr == ""
    assert result.exit_code == 0
    assert calls.count(("GET", "/v1/devboxes/dbx_1")) == 3
    assert calls[-1] == ("POST", "/v1/devboxes/dbx_1/shutdown")


async def test_devbox_failing_to_provision_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(200, json={"id": "dbx_2", "status": "provisioning"})
        return httpx.Response(200, json={"id": "dbx_2", "status": "failure"})

    client = _client(handler)
    with pytest.raises(SandboxError, match="failure"):
        await client.create_devbox()
    await client.close()


async def test_provisioning_times_out() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(200, json={"id": "dbx_3", "status": "provisioning"})
        return httpx.Response(200, json={"id": "dbx_3", "status": "provisioning"})

    client = _client(handler)
    client.provision_timeout = 0
    with pytest.raises(SandboxError, match="not running"):
        await client.create_devbox()
    await client.close()


async def test_http_errors_become_sandbox_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(402, text="insufficient credits")

    client = _client(handler)
    with pytest.raises(SandboxError, match="402"):
        await client.create_devbox()
    await client.close()


async def test_missing_exit_status_is_reported_as_none() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"stdout": "", "stderr": "killed"})

    client = _client(handler)
    result = await client.execute("dbx_4", "sleep 999")
    await client.close()

    assert result.exit_code is None
    assert result.stderr == "killed"
