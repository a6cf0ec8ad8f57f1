"""Classification of ledger RPC and transport failures."""

from __future__ import annotations

from typing import Any

from txflow.domain import ErrorDomain, ErrorSeverity, NormalizedError

from .catalog import ErrorTemplate, clip
from .raw import TransportFault, inspect_failure

UNREACHABLE_MARKERS = ("failed to fetch", "networkerror", "connection refused")
TIMEOUT_MARKERS = ("abort", "timeout", "timed out")
RESOURCE_LIMIT_MARKERS = ("resource_limit_exceeded", "cpu limit")
EXPIRY_RESULT_CODES = frozenset({"tx_too_late", "tx_bad_seq"})

RPC_NODE_UNAVAILABLE = ErrorTemplate(
    code="RPC_NODE_UNAVAILABLE",
    domain=ErrorDomain.RPC,
    severity=ErrorSeverity.RETRYABLE,
    message="RPC node is unreachable. Check the network connection.",
    retry_after_ms=3_000,
)
RPC_CONNECTION_TIMEOUT = ErrorTemplate(
    code="RPC_CONNECTION_TIMEOUT",
    domain=ErrorDomain.RPC,
    severity=ErrorSeverity.RETRYABLE,
    message="RPC request timed out.",
    retry_after_ms=5_000,
)
RPC_RESOURCE_LIMIT_EXCEEDED = ErrorTemplate(
    code="RPC_RESOURCE_LIMIT_EXCEEDED",
    domain=ErrorDomain.RPC,
    severity=ErrorSeverity.FATAL,
    message="Transaction exceeds ledger resource limits.",
)
RPC_SIMULATION_FAILED = ErrorTemplate(
    code="RPC_SIMULATION_FAILED",
    domain=ErrorDomain.RPC,
    severity=ErrorSeverity.FATAL,
    message="Transaction simulation failed.",
)
RPC_TX_EXPIRED = ErrorTemplate(
    code="RPC_TX_EXPIRED",
    domain=ErrorDomain.RPC,
    severity=ErrorSeverity.RETRYABLE,
    message="Transaction expired or sequence number mismatch. Rebuild and resubmit.",
    retry_after_ms=1_000,
)
RPC_TX_REJECTED = ErrorTemplate(
    code="RPC_TX_REJECTED",
    domain=ErrorDomain.RPC,
    severity=ErrorSeverity.FATAL,
    message="Transaction rejected by the network.",
)
RPC_INVALID_RESPONSE = ErrorTemplate(
    code="RPC_INVALID_RESPONSE",
    domain=ErrorDomain.RPC,
    severity=ErrorSeverity.FATAL,
    message="RPC returned an invalid or malformed response.",
)
RPC_UNKNOWN = ErrorTemplate(
    code="RPC_UNKNOWN",
    domain=ErrorDomain.RPC,
    severity=ErrorSeverity.RETRYABLE,
    message="Unrecognized RPC error.",
    retry_after_ms=2_000,
)


def classify_network(raw: Any, context: dict[str, Any] | None = None) -> NormalizedError:
    """Map an RPC or transport failure to a normalized error.

    Unrecognized shapes fail open toward RETRYABLE.
    """

    failure = inspect_failure(raw)
    lowered = failure.lowered

    if failure.transport_fault is TransportFault.UNREACHABLE or any(
        marker in lowered for marker in UNREACHABLE_MARKERS
    ):
        return RPC_NODE_UNAVAILABLE.build(raw, context)

    if failure.transport_fault is TransportFault.TIMEOUT or any(
        marker in lowered for marker in TIMEOUT_MARKERS
    ):
        return RPC_CONNECTION_TIMEOUT.build(raw, context)

    if failure.simulation_error is not None:
        if any(marker in failure.simulation_error.lower() for marker in RESOURCE_LIMIT_MARKERS):
            return RPC_RESOURCE_LIMIT_EXCEEDED.build(raw, context)
        return RPC_SIMULATION_FAILED.build(
            raw,
            context,
            message=f"Contract simulation failed: {clip(failure.simulation_error)}",
        )

    if failure.result_codes:
        if EXPIRY_RESULT_CODES.intersection(failure.result_codes):
            return RPC_TX_EXPIRED.build(raw, context)
        return RPC_TX_REJECTED.build(
            raw,
            context,
            message=f"Transaction rejected by the network: {', '.join(failure.result_codes[:3])}",
        )

    if failure.status == 400:
        return RPC_INVALID_RESPONSE.build(raw, context)

    return RPC_UNKNOWN.build(
        raw,
        context,
        message=f"Unrecognized RPC error: {clip(failure.text)}",
    )


__all__ = ["classify_network"]
