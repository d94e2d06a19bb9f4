"""Remote sandbox (devbox) client.

A devbox is an ephemeral remote machine provisioned for exactly one run:
- create() provisions it and waits until it accepts commands
- Devbox.exec() runs one shell command and returns stdout/stderr/exit code
- Devbox.shutdown() tears it down

RunloopClient talks to the Runloop REST API with a bearer token.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any

import httpx
from pydantic import BaseModel

from relay_console.config import get_settings


logger = logging.getLogger(__name__)

# Devbox states from which it will never become runnable
TERMINAL_DEVBOX_STATES = {"failure", "shutdown", "suspended"}


class SandboxError(RuntimeError):
    """Raised when the sandbox provider rejects or fails a request."""


class SandboxConfigurationError(SandboxError):
    """Raised when the sandbox provider credential is missing."""


class CommandResult(BaseModel):
    """Output of one command executed on a devbox."""
    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = None


class Devbox:
    """Handle on a provisioned devbox."""

    def __init__(self, client: "DevboxClient", devbox_id: str):
        self.client = client
        self.id = devbox_id

    async def exec(self, command: str) -> CommandResult:
        return await self.client.execute(self.id, command)

    async def shutdown(self) -> None:
        await self.client.shutdown(self.id)


class DevboxClient(ABC):
    """Abstract base class for sandbox providers."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name (e.g., 'runloop')."""
        ...

    @abstractmethod
    async def create_devbox(self) -> str:
        """Provision a devbox, wait until it is running and return its ID."""
        ...

    @abstractmethod
    async def execute(self, devbox_id: str, command: str) -> CommandResult:
        """Run a shell command synchronously on the devbox."""
        ...

    @abstractmethod
    async def shutdown(self, devbox_id: str) -> None:
        """Tear the devbox down."""
        ...

    async def create(self) -> Devbox:
        devbox_id = await self.create_devbox()
        return Devbox(self, devbox_id)

    async def close(self) -> None:
        """Release client resources."""


class RunloopClient(DevboxClient):
    """Runloop API client using the public REST endpoints."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.runloop_api_key
        self.base_url = base_url or settings.runloop_base_url
        self.provision_timeout = settings.sandbox_provision_timeout_seconds
        self.poll_interval = settings.sandbox_poll_interval_seconds

        if not self.api_key:
            raise SandboxConfigurationError("RUNLOOP_API_KEY is not configured")

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout or settings.sandbox_request_timeout_seconds,
            transport=transport,
        )

    @property
    def provider_name(self) -> str:
        return "runloop"

    async def _request(self, method: str, path: str, json: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            response = await self._client.request(method, path, json=json)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise SandboxError(
                f"Runloop {method} {path} failed with {e.response.status_code}: {e.response.text}"
            ) from e
        except httpx.HTTPError as e:
            raise SandboxError(f"Runloop {method} {path} failed: {e}") from e
        return response.json() if response.content else {}

    async def create_devbox(self) -> str:
        data = await self._request("POST", "/v1/devboxes", json={})
        devbox_id = data.get("id")
        if not devbox_id:
            raise SandboxError("Runloop did not return a devbox id")

        if data.get("status") != "running":
            await self._await_running(devbox_id)
        return devbox_id

    async def _await_running(self, devbox_id: str) -> None:
        deadline = time.monotonic() + self.provision_timeout
        while True:
            data = await self._request("GET", f"/v1/devboxes/{devbox_id}")
            status = data.get("status")
            if status == "running":
                return
            if status in TERMINAL_DEVBOX_STATES:
                raise SandboxError(f"Devbox {devbox_id} entered state '{status}' while provisioning")
            if time.monotonic() >= deadline:
                raise SandboxError(
                    f"Devbox {devbox_id} not running after {self.provision_timeout:.0f}s (last state '{status}')"
                )
            await asyncio.sleep(self.poll_interval)

    async def execute(self, devbox_id: str, command: str) -> CommandResult:
        data = await self._request(
            "POST",
            f"/v1/devboxes/{devbox_id}/execute_sync",
            json={"command": command},
        )
        return CommandResult(
            stdout=data.get("stdout") or "",
            stderr=data.get("stderr") or "",
            exit_code=data.get("exit_status"),
        )

    async def shutdown(self, devbox_id: str) -> None:
        await self._request("POST", f"/v1/devboxes/{devbox_id}/shutdown")

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
