"""CLI entrypoint (Typer + Rich).

Commands:
- `relay serve`                 - run the API server
- `relay seed`                  - create tables and insert demo data
- `relay pack "<command>"`      - preview the instruction pack for a command
- `relay run <robot> "<command>"` - submit a run to a server and follow it
"""

from __future__ import annotations

import asyncio
import time

import httpx
import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from relay_console.agent.planner import generate_instruction_pack
from relay_console.config import get_settings
from relay_console.schemas import RobotMode, RunStatus, SafetyLevel

app = typer.Typer(help="Relay robot companion console.")
console = Console()

TERMINAL_STATUSES = {RunStatus.COMPLETE.value, RunStatus.FAILED.value}


@app.command()
def serve(
    host: str = typer.Option(None, help="Bind address"),
    port: int = typer.Option(None, help="Port"),
    reload: bool = typer.Option(False, help="Reload on code changes"),
):
    """Run the API server."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "relay_console.api.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload,
    )


@app.command()
def seed():
    """Create tables and insert demo robots, runs and journal entries."""
    from relay_console.database.seed import seed_database
    from relay_console.database.session import close_db, get_session, init_db
    from relay_console.database.storage import Storage

    async def _seed() -> bool:
        await init_db()
        try:
            async with get_session() as db:
                return await seed_database(Storage(db))
        finally:
            await close_db()

    if asyncio.run(_seed()):
        console.print("[green]Seeded demo data.[/green]")
    else:
        console.print("[yellow]Robots already exist; nothing seeded.[/yellow]")


@app.command()
def pack(
    command: str,
    robot: str = typer.Option("Robot", help="Robot name"),
    mode: RobotMode = typer.Option(RobotMode.CALM),
    safety: SafetyLevel = typer.Option(SafetyLevel.BALANCED),
    context: str = typer.Option(None, help="Extra constraints"),
    urgency: int = typer.Option(50, min=0, max=100),
):
    """Preview the instruction pack generated for a command."""
    instruction_pack = generate_instruction_pack(
        robot, mode.value, safety.value, command, context, urgency
    )
    console.print(Markdown(instruction_pack.to_markdown()))


@app.command()
def run(
    robot_id: str,
    command: str,
    context: str = typer.Option(None, help="Extra constraints"),
    urgency: int = typer.Option(50, min=0, max=100),
    api_url: str = typer.Option("http://localhost:8000", "--api", help="Console API base URL"),
    poll_seconds: float = typer.Option(3.0, "--poll", help="Polling interval"),
):
    """Submit a run and follow it until it completes or fails."""
    with httpx.Client(base_url=api_url, timeout=30.0) as client:
        response = client.post(
            "/api/run/create",
            json={"robotId": robot_id, "command": command, "context": context, "urgency": urgency},
        )
        if response.status_code != 200:
            console.print(f"[red]Run rejected ({response.status_code}):[/red] {response.text}")
            raise typer.Exit(code=1)

        data = response.json()
        run_id = data["id"]
        console.print(f"Run [bold]{run_id}[/bold] is {data['status']}")

        with console.status("Waiting for devbox execution..."):
            while data["status"] not in TERMINAL_STATUSES:
                time.sleep(poll_seconds)
                data = client.get(f"/api/run/{run_id}").raise_for_status().json()

    output = data.get("runloopOutput") or {}
    table = Table(title=f"Devbox {output.get('devboxId') or '-'}")
    table.add_column("Step")
    table.add_column("Exit", justify="right")
    table.add_column("Result")
    for step in output.get("steps", []):
        table.add_row(
            step["stepTitle"],
            str(step["exitCode"]),
            "[green]ok[/green]" if step["success"] else f"[red]{step['stderr'] or 'failed'}[/red]",
        )
    console.print(table)

    summary = (data.get("aiSummary") or {}).get("run_summary") or output.get("error")
    colour = "green" if data["status"] == RunStatus.COMPLETE.value else "red"
    console.print(f"[{colour}]{data['status']}[/{colour}] {summary or ''}")
    if data["status"] != RunStatus.COMPLETE.value:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
