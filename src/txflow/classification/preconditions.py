"""Checks to run before any side-effecting call is made."""

from __future__ import annotations

from txflow.domain import ErrorDomain, ErrorSeverity, NormalizedError


def validate_preconditions(
    *,
    require_signer: bool = False,
    signer_address: str | None = None,
    expected_network: str | None = None,
    current_network: str | None = None,
    program_address: str | None = None,
) -> NormalizedError | None:
    """Return the first failing precondition, or ``None`` when all pass.

    ``program_address`` is only checked when supplied; an explicitly blank
    address means the program was never configured.
    """

    if require_signer and not (signer_address or "").strip():
        return NormalizedError(
            code="WALLET_NOT_CONNECTED",
            domain=ErrorDomain.WALLET,
            severity=ErrorSeverity.USER_ACTIONABLE,
            message="Wallet must be connected before this action.",
        )

    if (
        expected_network is not None
        and current_network is not None
        and current_network != expected_network
    ):
        return NormalizedError(
            code="WALLET_NETWORK_MISMATCH",
            domain=ErrorDomain.WALLET,
            severity=ErrorSeverity.USER_ACTIONABLE,
            message=f'Wrong network. Expected "{expected_network}", got "{current_network}".',
            context={"expected_network": expected_network, "current_network": current_network},
        )

    if program_address is not None and not program_address.strip():
        return NormalizedError(
            code="CONTRACT_NOT_INITIALIZED",
            domain=ErrorDomain.CONTRACT,
            severity=ErrorSeverity.FATAL,
            message="Contract address is not configured.",
        )

    return None


__all__ = ["validate_preconditions"]
