"""Failure classification: raw failures in, ``NormalizedError`` out."""

from .api import classify_api
from .classifier import classify
from .contract import (
    CONTRACT_ERRORS,
    SHARED_CODES,
    classify_contract_execution,
    contract_error_table,
    extract_execution_code,
)
from .exceptions import ClassifiedError
from .network import classify_network
from .preconditions import validate_preconditions
from .raw import RawFailure, RawKind, TransportFault, inspect_failure
from .signer import classify_signer
from .telemetry import enrich_for_telemetry, format_for_log

__all__ = [
    "CONTRACT_ERRORS",
    "SHARED_CODES",
    "ClassifiedError",
    "RawFailure",
    "RawKind",
    "TransportFault",
    "classify",
    "classify_api",
    "classify_contract_execution",
    "classify_network",
    "classify_signer",
    "contract_error_table",
    "enrich_for_telemetry",
    "extract_execution_code",
    "format_for_log",
    "inspect_failure",
    "validate_preconditions",
]
