"""Shape probes that turn an arbitrary failure value into a ``RawFailure``.

Classifiers never look at raw values directly. Each probe below is total: it
either recognizes the shape and returns the extracted facts, or returns
``None`` and lets the next probe try. The first match wins.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from enum import StrEnum
from typing import Any

import httpx

from txflow.domain import NormalizedError

from .exceptions import ClassifiedError

CONTRACT_DIAGNOSTIC = re.compile(r"Error\s*\(\s*Contract\s*,\s*#(\d+)\s*\)")


class RawKind(StrEnum):
    """Tag describing which probe recognized the raw value."""

    NORMALIZED = "normalized"
    HTTP_STATUS = "http_status"
    TRANSPORT = "transport"
    EXCEPTION = "exception"
    MAPPING = "mapping"
    TEXT = "text"
    NUMBER = "number"
    EMPTY = "empty"
    OTHER = "other"


class TransportFault(StrEnum):
    """Failure that happened before any response was received."""

    TIMEOUT = "timeout"
    UNREACHABLE = "unreachable"


@dataclass(frozen=True, slots=True)
class RawFailure:
    """Facts extracted from a raw failure value."""

    kind: RawKind
    value: Any
    message: str = ""
    status: int | None = None
    contract_code: int | None = None
    transport_fault: TransportFault | None = None
    simulation_error: str | None = None
    result_codes: tuple[str, ...] = ()
    backend_message: str | None = None
    has_backend_body: bool = False
    retry_after_ms: int | None = None
    normalized: NormalizedError | None = None

    @property
    def lowered(self) -> str:
        return self.message.lower()

    @property
    def text(self) -> str:
        """Message when one exists, otherwise a printable rendering of the value."""

        return self.message or safe_str(self.value)


def safe_str(value: Any) -> str:
    try:
        return str(value)
    except Exception:  # arbitrary __str__ implementations
        return f"<unprintable {type(value).__name__}>"


def _attr(raw: Any, name: str) -> Any:
    try:
        return getattr(raw, name, None)
    except Exception:  # properties may raise anything
        return None


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def _diagnostic_code(message: str) -> int | None:
    match = CONTRACT_DIAGNOSTIC.search(message)
    if match is None:
        return None
    return int(match.group(1))


def _result_codes(body: Mapping[str, Any]) -> tuple[str, ...]:
    node: Any = body
    for key in ("response", "data", "extras", "result_codes"):
        if not isinstance(node, Mapping):
            return ()
        node = node.get(key)
    if not isinstance(node, Mapping):
        return ()
    codes: list[str] = []
    for value in node.values():
        if isinstance(value, str):
            codes.append(value)
        elif isinstance(value, list | tuple):
            codes.extend(item for item in value if isinstance(item, str))
    return tuple(codes)


def _retry_after_ms(headers: httpx.Headers) -> int | None:
    raw = headers.get("retry-after")
    if not raw:
        return None
    raw = raw.strip()
    if raw.isdigit():
        return int(raw) * 1000
    try:
        target = parsedate_to_datetime(raw)
    except (TypeError, ValueError):
        return None
    if target.tzinfo is None:
        target = target.replace(tzinfo=UTC)
    delta = (target - datetime.now(UTC)).total_seconds()
    return max(0, round(delta * 1000))


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except (ValueError, RuntimeError):
        # Undecodable or unread body.
        return None


@dataclass(slots=True)
class _BodyFacts:
    message: str = ""
    status: int | None = None
    contract_code: int | None = None
    simulation_error: str | None = None
    result_codes: tuple[str, ...] = ()
    backend_message: str | None = None
    has_backend_body: bool = False


def _body_facts(body: Mapping[str, Any]) -> _BodyFacts:
    facts = _BodyFacts()
    error = body.get("error")
    message = body.get("message")
    nested = error if isinstance(error, Mapping) else None

    if isinstance(message, str):
        facts.message = message
    elif nested is not None and isinstance(nested.get("message"), str):
        facts.message = nested["message"]
    elif isinstance(error, str):
        facts.message = error

    if nested is not None and isinstance(nested.get("message"), str):
        facts.backend_message = nested["message"]
    elif isinstance(message, str):
        facts.backend_message = message

    nested_status = _as_int(nested.get("status")) if nested is not None else None
    facts.status = nested_status if nested_status is not None else _as_int(body.get("status"))
    facts.contract_code = _as_int(body.get("code"))
    if facts.contract_code is None:
        facts.contract_code = _diagnostic_code(facts.message)
    facts.simulation_error = error if isinstance(error, str) else None
    facts.result_codes = _result_codes(body)
    facts.has_backend_body = nested is not None or isinstance(message, str)
    return facts


def _probe_normalized(raw: Any) -> RawFailure | None:
    if isinstance(raw, ClassifiedError):
        error = raw.error
    elif isinstance(raw, NormalizedError):
        error = raw
    else:
        return None
    return RawFailure(
        kind=RawKind.NORMALIZED,
        value=raw,
        message=error.message,
        normalized=error,
    )


def _probe_http_status(raw: Any) -> RawFailure | None:
    if not isinstance(raw, httpx.HTTPStatusError):
        return None
    response = raw.response
    body = _response_body(response)
    facts = _body_facts(body) if isinstance(body, Mapping) else _BodyFacts()
    return RawFailure(
        kind=RawKind.HTTP_STATUS,
        value=raw,
        message=facts.message or safe_str(raw),
        status=facts.status if facts.status is not None else response.status_code,
        backend_message=facts.backend_message,
        has_backend_body=True,
        retry_after_ms=_retry_after_ms(response.headers),
    )


def _probe_transport(raw: Any) -> RawFailure | None:
    if isinstance(raw, httpx.TimeoutException | TimeoutError):
        fault = TransportFault.TIMEOUT
    elif isinstance(raw, httpx.TransportError | ConnectionError):
        fault = TransportFault.UNREACHABLE
    else:
        return None
    return RawFailure(
        kind=RawKind.TRANSPORT,
        value=raw,
        message=safe_str(raw) or type(raw).__name__,
        transport_fault=fault,
    )


def _probe_exception(raw: Any) -> RawFailure | None:
    if not isinstance(raw, BaseException):
        return None
    if len(raw.args) == 1 and isinstance(raw.args[0], Mapping):
        facts = _body_facts(raw.args[0])
    else:
        facts = _BodyFacts(message=safe_str(raw))
        facts.contract_code = _diagnostic_code(facts.message)

    status = facts.status
    if status is None:
        status = _as_int(_attr(raw, "status"))
    if status is None:
        status = _as_int(_attr(raw, "status_code"))
    contract_code = _as_int(_attr(raw, "code"))
    if contract_code is None:
        contract_code = facts.contract_code

    return RawFailure(
        kind=RawKind.EXCEPTION,
        value=raw,
        message=facts.message,
        status=status,
        contract_code=contract_code,
        simulation_error=facts.simulation_error,
        result_codes=facts.result_codes,
        backend_message=facts.backend_message,
        has_backend_body=facts.has_backend_body,
    )


def _probe_mapping(raw: Any) -> RawFailure | None:
    if not isinstance(raw, Mapping):
        return None
    facts = _body_facts(raw)
    return RawFailure(
        kind=RawKind.MAPPING,
        value=raw,
        message=facts.message,
        status=facts.status,
        contract_code=facts.contract_code,
        simulation_error=facts.simulation_error,
        result_codes=facts.result_codes,
        backend_message=facts.backend_message,
        has_backend_body=facts.has_backend_body,
    )


def _probe_text(raw: Any) -> RawFailure | None:
    if not isinstance(raw, str):
        return None
    return RawFailure(
        kind=RawKind.TEXT,
        value=raw,
        message=raw,
        contract_code=_diagnostic_code(raw),
    )


def _probe_number(raw: Any) -> RawFailure | None:
    code = _as_int(raw)
    if code is None:
        return None
    # A bare integer is indistinguishable from a contract execution code.
    return RawFailure(kind=RawKind.NUMBER, value=raw, message=str(raw), contract_code=code)


def _probe_empty(raw: Any) -> RawFailure | None:
    if raw is not None:
        return None
    return RawFailure(kind=RawKind.EMPTY, value=raw)


_PROBES: tuple[Callable[[Any], RawFailure | None], ...] = (
    _probe_normalized,
    _probe_http_status,
    _probe_transport,
    _probe_exception,
    _probe_mapping,
    _probe_text,
    _probe_number,
    _probe_empty,
)


def inspect_failure(raw: Any) -> RawFailure:
    """Run the probe chain and return the first recognized shape."""

    if isinstance(raw, RawFailure):
        return raw
    for probe in _PROBES:
        result = probe(raw)
        if result is not None:
            return result
    message = _attr(raw, "message")
    return RawFailure(
        kind=RawKind.OTHER,
        value=raw,
        message=message if isinstance(message, str) else "",
    )


__all__ = [
    "CONTRACT_DIAGNOSTIC",
    "RawFailure",
    "RawKind",
    "TransportFault",
    "inspect_failure",
    "safe_str",
]
