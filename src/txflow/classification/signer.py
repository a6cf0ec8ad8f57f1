"""Classification of signing-device (wallet) failures.

Signer adapters surface failures as free-form messages rather than typed
errors, so detection is phrase based. End users can usually act on these,
which is why the fallback is USER_ACTIONABLE rather than FATAL.
"""

from __future__ import annotations

from typing import Any

from txflow.domain import ErrorDomain, ErrorSeverity, NormalizedError

from .catalog import ErrorTemplate, clip
from .raw import inspect_failure

WALLET_NOT_INSTALLED = ErrorTemplate(
    code="WALLET_NOT_INSTALLED",
    domain=ErrorDomain.WALLET,
    severity=ErrorSeverity.USER_ACTIONABLE,
    message="Wallet extension is not installed.",
)
WALLET_NOT_CONNECTED = ErrorTemplate(
    code="WALLET_NOT_CONNECTED",
    domain=ErrorDomain.WALLET,
    severity=ErrorSeverity.USER_ACTIONABLE,
    message="Wallet is not connected. Please connect a wallet.",
)
WALLET_USER_REJECTED = ErrorTemplate(
    code="WALLET_USER_REJECTED",
    domain=ErrorDomain.WALLET,
    severity=ErrorSeverity.USER_ACTIONABLE,
    message="Transaction was rejected by the user.",
)
WALLET_NETWORK_MISMATCH = ErrorTemplate(
    code="WALLET_NETWORK_MISMATCH",
    domain=ErrorDomain.WALLET,
    severity=ErrorSeverity.USER_ACTIONABLE,
    message="Wallet is connected to the wrong network.",
)
WALLET_INSUFFICIENT_BALANCE = ErrorTemplate(
    code="WALLET_INSUFFICIENT_BALANCE",
    domain=ErrorDomain.WALLET,
    severity=ErrorSeverity.USER_ACTIONABLE,
    message="Insufficient wallet balance for this operation.",
)
WALLET_SIGN_FAILED = ErrorTemplate(
    code="WALLET_SIGN_FAILED",
    domain=ErrorDomain.WALLET,
    severity=ErrorSeverity.RETRYABLE,
    message="Transaction signing failed.",
    retry_after_ms=1_000,
)
WALLET_UNKNOWN = ErrorTemplate(
    code="WALLET_UNKNOWN",
    domain=ErrorDomain.WALLET,
    severity=ErrorSeverity.USER_ACTIONABLE,
    message="Wallet error.",
)


def _not_installed(msg: str) -> bool:
    return (
        ("freighter" in msg and ("not found" in msg or "not installed" in msg))
        or "extension not found" in msg
        or "extension not installed" in msg
        or "no se encontró freighter" in msg
    )


def _not_connected(msg: str) -> bool:
    return "not connected" in msg or "no public key" in msg


def _user_rejected(msg: str) -> bool:
    return any(
        phrase in msg
        for phrase in ("user declined", "user rejected", "declined by user", "user denied")
    )


def _network_mismatch(msg: str) -> bool:
    return any(
        phrase in msg for phrase in ("network mismatch", "wrong network", "network not supported")
    )


def _insufficient_balance(msg: str) -> bool:
    return "insufficient" in msg and "balance" in msg


def _sign_failed(msg: str) -> bool:
    return "sign" in msg and ("fail" in msg or "error" in msg)


_MATCHERS = (
    (_not_installed, WALLET_NOT_INSTALLED),
    (_not_connected, WALLET_NOT_CONNECTED),
    (_user_rejected, WALLET_USER_REJECTED),
    (_network_mismatch, WALLET_NETWORK_MISMATCH),
    (_insufficient_balance, WALLET_INSUFFICIENT_BALANCE),
    (_sign_failed, WALLET_SIGN_FAILED),
)


def classify_signer(raw: Any, context: dict[str, Any] | None = None) -> NormalizedError:
    """Map a signing-device failure to a normalized error."""

    failure = inspect_failure(raw)
    msg = failure.lowered
    for matches, template in _MATCHERS:
        if matches(msg):
            return template.build(raw, context)
    return WALLET_UNKNOWN.build(raw, context, message=f"Wallet error: {clip(failure.text)}")


__all__ = ["classify_signer"]
