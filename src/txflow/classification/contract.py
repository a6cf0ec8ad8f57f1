"""Classification of remote program (contract) execution failures.

Execution codes are small integers whose meaning depends on the deployed
program: slot 4 is an invalid amount for the prize pool but an invalid bound
for the random generator. Slots 1-3 are shared by every program.
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from txflow.domain import ErrorDomain, ErrorSeverity, NormalizedError, ProgramId

from .catalog import ErrorTemplate
from .raw import inspect_failure

DEFAULT_PROGRAM = ProgramId.COIN_FLIP


def _template(code: str, severity: ErrorSeverity, message: str) -> ErrorTemplate:
    return ErrorTemplate(
        code=code,
        domain=ErrorDomain.CONTRACT,
        severity=severity,
        message=message,
    )


_FATAL = ErrorSeverity.FATAL
_USER = ErrorSeverity.USER_ACTIONABLE

CONTRACT_ERRORS: Mapping[str, ErrorTemplate] = MappingProxyType(
    {
        template.code: template
        for template in (
            _template("CONTRACT_ALREADY_INITIALIZED", _FATAL, "Contract is already initialized."),
            _template("CONTRACT_NOT_INITIALIZED", _FATAL, "Contract has not been initialized."),
            _template(
                "CONTRACT_NOT_AUTHORIZED", _USER, "Caller is not authorized to perform this action."
            ),
            _template("CONTRACT_INVALID_AMOUNT", _USER, "Amount must be greater than zero."),
            _template(
                "CONTRACT_INSUFFICIENT_FUNDS", _USER, "Insufficient funds in the prize pool."
            ),
            _template(
                "CONTRACT_GAME_ALREADY_RESERVED",
                _FATAL,
                "Funds are already reserved for this game.",
            ),
            _template(
                "CONTRACT_RESERVATION_NOT_FOUND",
                _FATAL,
                "No active reservation found for this game.",
            ),
            _template(
                "CONTRACT_PAYOUT_EXCEEDS_RESERVATION",
                _FATAL,
                "Payout amount exceeds the reserved funds.",
            ),
            _template("CONTRACT_OVERFLOW", _FATAL, "Arithmetic overflow detected in contract."),
            _template("CONTRACT_INVALID_BOUND", _USER, "Randomness bound must be at least 2."),
            _template(
                "CONTRACT_DUPLICATE_REQUEST_ID",
                _FATAL,
                "A randomness request with this ID already exists.",
            ),
            _template(
                "CONTRACT_REQUEST_NOT_FOUND",
                _FATAL,
                "Randomness request not found or not yet fulfilled.",
            ),
            _template(
                "CONTRACT_ALREADY_FULFILLED",
                _FATAL,
                "This randomness request has already been fulfilled.",
            ),
            _template(
                "CONTRACT_UNAUTHORIZED_CALLER",
                _USER,
                "This contract is not authorized to request randomness.",
            ),
            _template("CONTRACT_NOT_FOUND", _FATAL, "The requested puzzle was not found."),
            _template("CONTRACT_UNKNOWN", _FATAL, "Unknown contract error."),
        )
    }
)

CONTRACT_UNKNOWN = CONTRACT_ERRORS["CONTRACT_UNKNOWN"]

SHARED_CODES: Mapping[int, str] = MappingProxyType(
    {
        1: "CONTRACT_ALREADY_INITIALIZED",
        2: "CONTRACT_NOT_INITIALIZED",
        3: "CONTRACT_NOT_AUTHORIZED",
    }
)

_PROGRAM_CODES: dict[ProgramId, dict[int, str]] = {
    ProgramId.PRIZE_POOL: {
        4: "CONTRACT_INVALID_AMOUNT",
        5: "CONTRACT_INSUFFICIENT_FUNDS",
        6: "CONTRACT_GAME_ALREADY_RESERVED",
        7: "CONTRACT_RESERVATION_NOT_FOUND",
        8: "CONTRACT_PAYOUT_EXCEEDS_RESERVATION",
        9: "CONTRACT_OVERFLOW",
    },
    ProgramId.RANDOM_GENERATOR: {
        4: "CONTRACT_INVALID_BOUND",
        5: "CONTRACT_DUPLICATE_REQUEST_ID",
        6: "CONTRACT_REQUEST_NOT_FOUND",
        7: "CONTRACT_ALREADY_FULFILLED",
        8: "CONTRACT_UNAUTHORIZED_CALLER",
    },
    ProgramId.ACCESS_CONTROL: {},
    ProgramId.PATTERN_PUZZLE: {
        4: "CONTRACT_NOT_FOUND",
        5: "CONTRACT_GAME_ALREADY_RESERVED",
    },
    ProgramId.COIN_FLIP: {},
}


def contract_error_table(program: ProgramId) -> dict[int, str]:
    """Return the execution-code table for ``program``, shared slots included."""

    return {**SHARED_CODES, **_PROGRAM_CODES.get(program, {})}


def extract_execution_code(raw: Any) -> int | None:
    """Pull the integer execution code out of a raw failure, if any."""

    return inspect_failure(raw).contract_code


def classify_contract_execution(
    raw: Any,
    program: ProgramId | str = DEFAULT_PROGRAM,
    context: dict[str, Any] | None = None,
) -> NormalizedError:
    """Map a program execution failure to a normalized error."""

    try:
        program_id = ProgramId(str(program).lower())
    except ValueError:
        table: dict[int, str] = {}
    else:
        table = contract_error_table(program_id)

    numeric = extract_execution_code(raw)
    code = CONTRACT_UNKNOWN.code
    if numeric is not None:
        code = table.get(numeric, CONTRACT_UNKNOWN.code)
    return CONTRACT_ERRORS[code].build(raw, context)


__all__ = [
    "CONTRACT_ERRORS",
    "DEFAULT_PROGRAM",
    "SHARED_CODES",
    "classify_contract_execution",
    "contract_error_table",
    "extract_execution_code",
]
