"""Typer CLI wiring txflow services."""

from __future__ import annotations

import json
import logging
from typing import Any

import typer

from txflow.classification import (
    CONTRACT_ERRORS,
    classify,
    contract_error_table,
    format_for_log,
)
from txflow.domain import ErrorDomain, ProgramId
from txflow.utils import build_idempotency_key

from .deps import get_container

app = typer.Typer(help="txflow command-line interface")


def _parse_domain(value: str | None) -> ErrorDomain | None:
    if value is None:
        return None
    try:
        return ErrorDomain(value.upper())
    except ValueError as exc:
        choices = ", ".join(domain.value for domain in ErrorDomain)
        raise typer.BadParameter(f"domain must be one of {choices}") from exc


def _parse_program(value: str | None) -> ProgramId:
    if value is None:
        return get_container().settings.default_program
    try:
        return ProgramId(value.lower())
    except ValueError as exc:
        choices = ", ".join(program.value for program in ProgramId)
        raise typer.BadParameter(f"program must be one of {choices}") from exc


def _parse_raw(value: str) -> Any:
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return value


@app.callback()
def main() -> None:
    """Configure logging from the resolved settings."""

    settings = get_container().settings
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command("show-settings")
def show_settings() -> None:
    """Print the resolved application settings."""

    settings = get_container().settings
    typer.echo("Environment:\t" + settings.environment)
    typer.echo("Log Level:\t" + settings.log_level)
    typer.echo(f"Max Attempts:\t{settings.max_attempts}")
    typer.echo(f"Initial Backoff:\t{settings.initial_backoff_ms}ms")
    typer.echo(f"Backoff Multiplier:\t{settings.backoff_multiplier}")
    typer.echo(f"Max Backoff:\t{settings.max_backoff_ms}ms")
    typer.echo(f"Poll Interval:\t{settings.poll_interval_ms}ms")
    typer.echo(f"Confirmation Timeout:\t{settings.confirmation_timeout_ms}ms")
    typer.echo(f"Dedupe TTL:\t{settings.dedupe_ttl_ms}ms")
    typer.echo("Default Program:\t" + settings.default_program.value)


@app.command("classify")
def classify_command(
    raw: str,
    domain: str | None = typer.Option(None, help="Skip detection and use this domain"),
    program: str | None = typer.Option(None, help="Program used for contract codes"),
) -> None:
    """Classify a raw failure given as JSON or plain text."""

    error = classify(_parse_raw(raw), _parse_domain(domain), program=_parse_program(program))
    payload = error.model_dump(mode="json", exclude={"original_error"})
    typer.echo(json.dumps(payload, indent=2, sort_keys=True))
    typer.echo(format_for_log(error))


@app.command("contract-codes")
def contract_codes(
    program: str | None = typer.Option(None, help="Program whose table to print"),
) -> None:
    """List the execution codes a program can return."""

    program_id = _parse_program(program)
    typer.echo(f"Program: {program_id.value}")
    for numeric, code in sorted(contract_error_table(program_id).items()):
        template = CONTRACT_ERRORS[code]
        typer.echo(f"{numeric}\t{code}\t{template.severity.value}\t{template.message}")


@app.command("idempotency-key")
def idempotency_key(
    operation: str,
    scope: str | None = typer.Option(None, help="Key scope, defaults to global"),
    signer: str | None = typer.Option(None, help="Signer address"),
    program_address: str | None = typer.Option(None, help="Program address"),
    payload: str | None = typer.Option(None, help="JSON payload to fingerprint"),
) -> None:
    """Print the deterministic idempotency key for an operation."""

    parsed_payload: Any = None
    if payload is not None:
        try:
            parsed_payload = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise typer.BadParameter("payload must be valid JSON") from exc

    try:
        key = build_idempotency_key(
            operation,
            scope=scope,
            signer_address=signer,
            program_address=program_address,
            payload=parsed_payload,
        )
    except ValueError as exc:
        typer.echo(str(exc))
        raise typer.Exit(code=1) from exc
    typer.echo(key)


__all__ = ["app"]
