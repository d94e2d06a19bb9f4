from __future__ import annotations

import os
import tempfile

# Point the engine at a throwaway SQLite file before relay_console is imported.
_DB_DIR = tempfile.mkdtemp(prefix="relay-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/relay.db"
os.environ["RUNLOOP_API_KEY"] = ""
os.environ["CHAT_API_KEY"] = ""
os.environ["CONNECTORS_HOSTNAME"] = ""
os.environ["CONNECTORS_IDENTITY_TOKEN"] = ""

from typing import AsyncIterator

import httpx
import pytest

from relay_console.api.main import create_app
from relay_console.api.routes import get_devbox_client_factory
from relay_console.database.session import async_session_maker, drop_db, engine, init_db
from relay_console.database.storage import Storage
from relay_console.tools.sandbox import CommandResult, DevboxClient


class FakeDevboxClient(DevboxClient):
    """In-memory sandbox that records every call.

    Args:
        fail_on: substring -> exit code (int) or exception raised by exec
        create_error: raised by create_devbox
        shutdown_error: raised by shutdown
    """

    def __init__(
        self,
        fail_on: dict[str, int | Exception] | None = None,
        create_error: Exception | None = None,
        shutdown_error: Exception | None = None,
    ):
        self.fail_on = fail_on or {}
        self.create_error = create_error
        self.shutdown_error = shutdown_error
        self.commands: list[str] = []
        self.created: list[str] = []
        self.shutdowns: list[str] = []
        self.closed = False

    @property
    def provider_name(self) -> str:
        return "fake"

    async def create_devbox(self) -> str:
        if self.create_error:
            raise self.create_error
        devbox_id = f"devbox-{len(self.created) + 1}"
        self.created.append(devbox_id)
        return devbox_id

    async def execute(self, devbox_id: str, command: str) -> CommandResult:
        self.commands.append(command)
        for needle, outcome in self.fail_on.items():
            if needle in command:
                if isinstance(outcome, Exception):
                    raise outcome
                return CommandResult(stdout="", stderr="boom", exit_code=outcome)
        return CommandResult(stdout="ok\n", stderr="", exit_code=0)

    async def shutdown(self, devbox_id: str) -> None:
        self.shutdowns.append(devbox_id)
        if self.shutdown_error:
            raise self.shutdown_error

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
async def database() -> AsyncIterator[None]:
    await drop_db()
    await init_db()
    yield
    # Pooled aiosqlite connections are bound to this test's event loop.
    await engine.dispose()


@pytest.fixture
async def storage(database) -> AsyncIterator[Storage]:
    async with async_session_maker() as session:
        yield Storage(session)


@pytest.fixture
def devbox() -> FakeDevboxClient:
    return FakeDevboxClient()


@pytest.fixture
def app(devbox: FakeDevboxClient):
    application = create_app()
    application.dependency_overrides[get_devbox_client_factory] = lambda: (lambda: devbox)
    return application


@pytest.fixture
async def client(app, database) -> AsyncIterator[httpx.AsyncClient]:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
    await app.state.dispatcher.drain()


@pytest.fixture
async def robot(client: httpx.AsyncClient) -> dict:
    response = await client.post(
        "/api/robot/create",
        json={"name": "Nova", "mode": "calm", "safetyLevel": "balanced"},
    )
    assert response.status_code == 200
    return response.json()
