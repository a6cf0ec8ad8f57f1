"""Drive one transaction through the orchestrator against a simulated RPC node."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import httpx
import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from txflow.classification import format_for_log
from txflow.cli.deps import get_container
from txflow.domain import (
    ConfirmationResult,
    ConfirmationStatus,
    OrchestratorState,
    SubmissionResult,
    TransactionContext,
    TransactionRequest,
    TransactionResult,
)

# Load .env file
_env_path = Path(__file__).parent.parent / ".env"
if _env_path.exists():
    load_dotenv(_env_path)

app = typer.Typer(help="Simulate a transaction against a mocked RPC node")
console = Console()


class SimulatedNode:
    """Mock RPC node failing a fixed number of submissions before accepting."""

    def __init__(self, *, failing_submits: int, failure_status: int, pending_polls: int) -> None:
        self.failing_submits = failing_submits
        self.failure_status = failure_status
        self.pending_polls = pending_polls
        self.submits = 0
        self.polls = 0

    def handle(self, request: httpx.Request) -> httpx.Response:
        if request.method == "POST" and request.url.path == "/transactions":
            self.submits += 1
            if self.submits <= self.failing_submits:
                return httpx.Response(
                    self.failure_status,
                    json={"error": {"status": self.failure_status, "message": "node busy"}},
                    headers={"Retry-After": "1"},
                )
            return httpx.Response(200, json={"hash": f"sim-{self.submits:04d}"})

        if request.method == "GET" and request.url.path.startswith("/transactions/"):
            self.polls += 1
            if self.polls <= self.pending_polls:
                return httpx.Response(200, json={"status": "PENDING", "confirmations": 0})
            return httpx.Response(200, json={"status": "CONFIRMED", "confirmations": 1})

        return httpx.Response(404, json={"message": f"No route for {request.url.path}"})


async def _run(
    node: SimulatedNode,
    payload: dict[str, Any],
) -> tuple[TransactionResult[Any], list[OrchestratorState]]:
    container = get_container()
    orchestrator = container.new_orchestrator()
    snapshots: list[OrchestratorState] = []
    orchestrator.subscribe(snapshots.append)

    async with httpx.AsyncClient(
        base_url="https://rpc.simulated.test",
        transport=httpx.MockTransport(node.handle),
    ) as client:

        async def submit(body: dict[str, Any], ctx: TransactionContext) -> SubmissionResult[Any]:
            response = await client.post(
                "/transactions",
                json=body,
                headers={"X-Correlation-Id": ctx.correlation_id},
            )
            response.raise_for_status()
            return SubmissionResult(handle=response.json()["hash"], data=body)

        async def confirm(handle: str, _ctx: TransactionContext) -> ConfirmationResult:
            response = await client.get(f"/transactions/{handle}")
            response.raise_for_status()
            data = response.json()
            return ConfirmationResult(
                status=ConfirmationStatus(data["status"]),
                confirmations=data.get("confirmations"),
            )

        result = await orchestrator.execute(
            TransactionRequest(
                operation="simulate.submit",
                input=payload,
                submit=submit,
                confirm=confirm,
            )
        )
    return result, snapshots


@app.command()
def main(
    failing_submits: int = typer.Option(1, min=0, help="Submissions rejected before success"),
    failure_status: int = typer.Option(503, help="HTTP status returned for rejected submissions"),
    pending_polls: int = typer.Option(2, min=0, help="Polls answered PENDING before confirming"),
    payload: str = typer.Option('{"amount": 10}', help="JSON payload to submit"),
) -> None:
    """Run a single simulated transaction and print its phase history."""

    try:
        body = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise typer.BadParameter("payload must be valid JSON") from exc

    node = SimulatedNode(
        failing_submits=failing_submits,
        failure_status=failure_status,
        pending_polls=pending_polls,
    )
    result, snapshots = asyncio.run(_run(node, body))

    table = Table(title="Phase history")
    table.add_column("#", justify="right")
    table.add_column("Phase")
    table.add_column("Attempt", justify="right")
    table.add_column("Confirmations", justify="right")
    for index, snapshot in enumerate(snapshots):
        table.add_row(
            str(index),
            snapshot.phase.value,
            str(snapshot.attempt),
            str(snapshot.confirmations),
        )
    console.print(table)

    console.print(f"Submissions: {node.submits}  Polls: {node.polls}")
    if result.success:
        console.print(f"[green]Confirmed[/green] {result.tx_hash} ({result.correlation_id})")
        return
    if result.error is not None:
        console.print(f"[red]Failed[/red] {result.error.orchestrator_code.value}")
        console.print(format_for_log(result.error), markup=False)
    raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
