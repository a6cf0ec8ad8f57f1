"""Unified entry point for failure classification."""

from __future__ import annotations

from typing import Any

from txflow.domain import ErrorDomain, NormalizedError, ProgramId

from .api import classify_api
from .catalog import UNKNOWN_ERROR
from .contract import DEFAULT_PROGRAM, classify_contract_execution
from .network import classify_network
from .raw import RawFailure, inspect_failure
from .signer import classify_signer

SIGNER_KEYWORDS = ("freighter", "user declined", "user rejected", "not connected", "wallet")
NETWORK_KEYWORDS = ("simulation", "failed to fetch", "networkerror", "soroban", "horizon")


def _looks_like_contract(failure: RawFailure) -> bool:
    return failure.contract_code is not None or "error(contract" in failure.lowered


def _looks_like_signer(failure: RawFailure) -> bool:
    msg = failure.lowered
    return any(keyword in msg for keyword in SIGNER_KEYWORDS)


def _looks_like_network(failure: RawFailure) -> bool:
    if failure.transport_fault is not None:
        return True
    msg = failure.lowered
    return any(keyword in msg for keyword in NETWORK_KEYWORDS)


def classify(
    raw: Any,
    hint: ErrorDomain | str | None = None,
    context: dict[str, Any] | None = None,
    *,
    program: ProgramId | str = DEFAULT_PROGRAM,
) -> NormalizedError:
    """Convert any failure value into a ``NormalizedError``.

    A value that is already normalized keeps its code and severity; only the
    context is merged. With a ``hint`` the matching domain classifier is used
    directly. Otherwise the domain is detected in this order:

    1. contract execution code or ``Error(Contract, #N)`` diagnostic
    2. signer keywords
    3. network keywords or a transport exception (API when the value carries
       a backend body, RPC otherwise)
    4. any HTTP status (API)
    5. ``UNKNOWN``

    A bare integer is indistinguishable from an execution code and is
    therefore classified as a contract failure.
    """

    failure = inspect_failure(raw)
    if failure.normalized is not None:
        return failure.normalized.with_context(context)

    domain = _coerce_hint(hint)
    if domain is not None:
        return _classify_hinted(raw, failure, domain, context, program)

    if _looks_like_contract(failure):
        return classify_contract_execution(raw, program, context)
    if _looks_like_signer(failure):
        return classify_signer(raw, context)
    if _looks_like_network(failure):
        if failure.has_backend_body:
            return classify_api(raw, context)
        return classify_network(raw, context)
    if failure.status is not None:
        return classify_api(raw, context)

    return UNKNOWN_ERROR.build(raw, context, message=f"Unexpected error: {failure.text[:200]}")


def _coerce_hint(hint: ErrorDomain | str | None) -> ErrorDomain | None:
    if hint is None:
        return None
    try:
        return ErrorDomain(str(hint).upper())
    except ValueError:
        # Unrecognized hints fall back to detection.
        return None


def _classify_hinted(
    raw: Any,
    failure: RawFailure,
    hint: ErrorDomain,
    context: dict[str, Any] | None,
    program: ProgramId | str,
) -> NormalizedError:
    if hint is ErrorDomain.RPC:
        return classify_network(raw, context)
    if hint is ErrorDomain.API:
        return classify_api(raw, context)
    if hint is ErrorDomain.WALLET:
        return classify_signer(raw, context)
    if hint is ErrorDomain.CONTRACT:
        return classify_contract_execution(raw, program, context)
    return UNKNOWN_ERROR.build(raw, context, message=f"Unexpected error: {failure.text[:200]}")


__all__ = ["NETWORK_KEYWORDS", "SIGNER_KEYWORDS", "classify"]
