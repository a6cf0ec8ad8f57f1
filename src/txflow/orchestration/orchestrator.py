"""Transaction orchestrator driving validate, submit and confirm phases."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime
from typing import Any, NoReturn, TypeVar
from uuid import uuid4

from txflow.classification import classify, format_for_log
from txflow.domain import (
    ConfirmationStatus,
    CorrelationId,
    ErrorDomain,
    ErrorSeverity,
    NormalizedError,
    OrchestratorError,
    OrchestratorErrorCode,
    OrchestratorState,
    RetryPolicy,
    TransactionContext,
    TransactionPhase,
    TransactionRequest,
    TransactionResult,
)
from txflow.domain.transaction import (
    DEFAULT_CONFIRMATION_TIMEOUT_MS,
    DEFAULT_POLL_INTERVAL_MS,
)
from txflow.utils.time import from_millis, utc_now

from .exceptions import InvalidTransitionError
from .observers import StateListener, SubscriberRegistry, Unsubscribe
from .state_machine import ensure_transition

InputT = TypeVar("InputT")
DataT = TypeVar("DataT")

Clock = Callable[[], datetime]
Sleep = Callable[[float], Awaitable[None]]


def _new_correlation_id() -> CorrelationId:
    return CorrelationId(f"tx-{uuid4().hex}")


def _read_confirmation(
    confirmation: Any,
) -> tuple[ConfirmationStatus | None, int | None, NormalizedError | None]:
    """Pull status, count and error from a result object or a mapping."""

    if isinstance(confirmation, Mapping):
        status = confirmation.get("status")
        count = confirmation.get("confirmations")
        error = confirmation.get("error")
    else:
        status = getattr(confirmation, "status", None)
        count = getattr(confirmation, "confirmations", None)
        error = getattr(confirmation, "error", None)

    try:
        parsed = ConfirmationStatus(str(status).upper()) if status is not None else None
    except ValueError:
        parsed = None
    if isinstance(count, bool) or not isinstance(count, int):
        count = None
    if error is not None and not isinstance(error, NormalizedError):
        error = classify(error)
    return parsed, count, error


class _Failed(Exception):
    """Internal signal carrying a terminal failure out of a phase helper."""

    def __init__(self, result: TransactionResult[Any]) -> None:
        super().__init__(result.correlation_id)
        self.result = result


class TransactionOrchestrator:
    """Runs one side-effectful operation at a time through its lifecycle.

    Every phase change replaces the state snapshot and is pushed to the
    subscribers in order. Collaborator failures never escape ``execute``;
    they are classified and reported through the returned result.

    The confirmation deadline runs from the start of ``execute``. ``confirm``
    is still polled at least once when submission backoff has used it up.
    """

    def __init__(
        self,
        *,
        retry_policy: RetryPolicy | None = None,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
        confirmation_timeout_ms: int = DEFAULT_CONFIRMATION_TIMEOUT_MS,
        clock: Clock | None = None,
        sleep: Sleep | None = None,
        correlation_id_factory: Callable[[], str] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._retry_policy = retry_policy or RetryPolicy()
        self._poll_interval_ms = poll_interval_ms
        self._confirmation_timeout_ms = confirmation_timeout_ms
        self._clock = clock or utc_now
        self._sleep = sleep or asyncio.sleep
        self._new_correlation_id = correlation_id_factory or _new_correlation_id
        self._logger = logger or logging.getLogger(__name__)
        self._subscribers = SubscriberRegistry(logger=self._logger)
        self._state = OrchestratorState()

    def get_state(self) -> OrchestratorState:
        return self._state

    def subscribe(self, listener: StateListener) -> Unsubscribe:
        """Register ``listener`` and immediately hand it the current snapshot."""

        unsubscribe = self._subscribers.add(listener)
        self._subscribers.deliver(listener, self._state)
        return unsubscribe

    def reset(self) -> None:
        self._state = OrchestratorState()
        self._subscribers.notify(self._state)

    @property
    def is_busy(self) -> bool:
        return self._state.phase is not TransactionPhase.IDLE and not self._state.is_terminal

    async def execute(
        self, request: TransactionRequest[InputT, DataT]
    ) -> TransactionResult[DataT]:
        """Drive ``request`` to CONFIRMED or FAILED and return the outcome."""

        if self.is_busy:
            return self._reject_duplicate(request)

        correlation_id = self._new_correlation_id()
        started_at = self._clock()
        self._state = OrchestratorState(
            operation=request.operation,
            correlation_id=correlation_id,
            started_at=started_at,
        )
        self._logger.info(
            "Starting %s (correlation_id=%s)", request.operation, correlation_id
        )

        try:
            self._transition(TransactionPhase.VALIDATING)
            self._validate(request)
            handle, data = await self._submit_with_retry(request)
            self._transition(TransactionPhase.SUBMITTED, handle=handle, data=data)
            confirmations = await self._confirm_until_settled(request, handle)
            self._transition(
                TransactionPhase.CONFIRMED,
                confirmations=confirmations,
                settled_at=self._clock(),
            )
        except _Failed as failed:
            return failed.result
        except InvalidTransitionError:
            return self._result_from_state()

        self._logger.info(
            "%s confirmed (correlation_id=%s, handle=%s, confirmations=%s)",
            request.operation,
            correlation_id,
            handle,
            confirmations,
        )
        return TransactionResult(
            success=True,
            correlation_id=correlation_id,
            state=self._state,
            handle=handle,
            data=data,
            confirmations=confirmations,
        )

    def _validate(self, request: TransactionRequest[Any, Any]) -> None:
        context = self._failure_context(request, TransactionPhase.VALIDATING)

        if request.validate_preconditions is not None:
            try:
                outcome: Any = request.validate_preconditions()
            except Exception as exc:
                outcome = exc
            if outcome is not None:
                self._fail(
                    OrchestratorErrorCode.PRECONDITION_FAILED, classify(outcome, context=context)
                )

        if request.validate_input is not None:
            try:
                outcome = request.validate_input(request.input)
            except Exception as exc:
                outcome = exc
            if outcome is not None:
                self._fail(OrchestratorErrorCode.INVALID_INPUT, classify(outcome, context=context))

    async def _submit_with_retry(
        self, request: TransactionRequest[Any, DataT]
    ) -> tuple[str, DataT | None]:
        policy = request.retry_policy or self._retry_policy

        for attempt in range(1, policy.max_attempts + 1):
            self._transition(TransactionPhase.SUBMITTING, attempt=attempt)
            context = self._transaction_context(request)
            try:
                submission: Any = await request.submit(request.input, context)
            except Exception as exc:
                submission = exc

            if isinstance(submission, BaseException | NormalizedError):
                error = classify(
                    submission,
                    context={
                        **self._failure_context(request, TransactionPhase.SUBMITTING),
                        "attempt": attempt,
                    },
                )
                if error.is_retryable and attempt < policy.max_attempts:
                    wait_ms = policy.backoff_ms(attempt)
                    self._logger.warning(
                        "Attempt %s/%s of %s failed, retrying in %sms: %s",
                        attempt,
                        policy.max_attempts,
                        request.operation,
                        wait_ms,
                        format_for_log(error),
                    )
                    self._transition(TransactionPhase.RETRYING)
                    await self._sleep(wait_ms / 1000)
                    continue
                self._fail(OrchestratorErrorCode.SUBMISSION_FAILED, error)

            handle = getattr(submission, "handle", None)
            if not isinstance(handle, str) or not handle.strip():
                self._fail(
                    OrchestratorErrorCode.SUBMISSION_FAILED,
                    NormalizedError(
                        code="API_VALIDATION_ERROR",
                        domain=ErrorDomain.API,
                        severity=ErrorSeverity.FATAL,
                        message="Submission returned an empty transaction hash.",
                    ),
                )
            return handle.strip(), getattr(submission, "data", None)

        self._fail(
            OrchestratorErrorCode.SUBMISSION_FAILED,
            NormalizedError(
                code="UNKNOWN",
                domain=ErrorDomain.UNKNOWN,
                severity=ErrorSeverity.FATAL,
                message="Submission retry budget exhausted.",
            ),
        )

    async def _confirm_until_settled(
        self, request: TransactionRequest[Any, Any], handle: str
    ) -> int:
        poll_interval_ms = request.poll_interval_ms
        if poll_interval_ms is None:
            poll_interval_ms = self._poll_interval_ms
        timeout_ms = request.confirmation_timeout_ms
        if timeout_ms is None:
            timeout_ms = self._confirmation_timeout_ms
        started_at = self._state.started_at or self._clock()
        deadline = from_millis(timeout_ms)

        self._transition(TransactionPhase.CONFIRMING)

        # The first poll always happens, even when submission used up the deadline.
        while True:
            context = self._transaction_context(request)
            try:
                confirmation: Any = await request.confirm(handle, context)
            except Exception as exc:
                error = classify(
                    exc,
                    context={
                        **self._failure_context(request, TransactionPhase.CONFIRMING),
                        "handle": handle,
                    },
                )
                if not error.is_retryable:
                    self._fail(OrchestratorErrorCode.CONFIRMATION_FAILED, error)
                self._logger.warning(
                    "Poll for %s failed, will retry: %s", handle, format_for_log(error)
                )
            else:
                status, confirmations, attached = _read_confirmation(confirmation)
                if status is None:
                    self._fail(
                        OrchestratorErrorCode.CONFIRMATION_FAILED,
                        NormalizedError(
                            code="RPC_INVALID_RESPONSE",
                            domain=ErrorDomain.RPC,
                            severity=ErrorSeverity.FATAL,
                            message=(
                                "Confirmation returned an unrecognized result: "
                                f"{type(confirmation).__name__}"
                            ),
                            original_error=confirmation,
                        ),
                    )
                if confirmations is None:
                    confirmations = self._state.confirmations
                if status == ConfirmationStatus.CONFIRMED:
                    return confirmations
                if status == ConfirmationStatus.FAILED:
                    self._fail(
                        OrchestratorErrorCode.CONFIRMATION_FAILED,
                        attached
                        or NormalizedError(
                            code="RPC_TX_REJECTED",
                            domain=ErrorDomain.RPC,
                            severity=ErrorSeverity.FATAL,
                            message="Transaction confirmation failed.",
                        ),
                    )
                self._transition(TransactionPhase.CONFIRMING, confirmations=confirmations)

            await self._sleep(poll_interval_ms / 1000)
            if self._clock() - started_at > deadline:
                break

        self._fail(
            OrchestratorErrorCode.TIMEOUT,
            NormalizedError(
                code="RPC_CONNECTION_TIMEOUT",
                domain=ErrorDomain.RPC,
                severity=ErrorSeverity.RETRYABLE,
                message=f"Transaction {handle} was not confirmed within {timeout_ms}ms.",
            ),
        )

    def _transition(self, phase: TransactionPhase, **changes: Any) -> None:
        current = self._state.phase
        try:
            ensure_transition(current, phase)
        except InvalidTransitionError as exc:
            error = self._make_error(
                OrchestratorErrorCode.INVALID_STATE,
                NormalizedError(
                    code="UNKNOWN",
                    domain=ErrorDomain.UNKNOWN,
                    severity=ErrorSeverity.FATAL,
                    message=f"Invalid transaction phase transition: {current} -> {phase}",
                ),
            )
            self._logger.error("%s", format_for_log(error))
            self._state = self._state.model_copy(
                update={
                    "phase": TransactionPhase.FAILED,
                    "correlation_id": error.correlation_id,
                    "error": error,
                    "settled_at": self._clock(),
                }
            )
            self._subscribers.notify(self._state)
            raise InvalidTransitionError(str(exc)) from exc

        update: dict[str, Any] = {**changes, "phase": phase}
        if phase in (TransactionPhase.CONFIRMED, TransactionPhase.FAILED):
            update.setdefault("settled_at", self._clock())
        self._state = self._state.model_copy(update=update)
        self._logger.debug(
            "Transition %s -> %s (correlation_id=%s)",
            current,
            phase,
            self._state.correlation_id,
        )
        self._subscribers.notify(self._state)

    def _fail(self, code: OrchestratorErrorCode, cause: NormalizedError) -> NoReturn:
        """Move to FAILED and unwind the current ``execute`` call."""

        error = self._make_error(code, cause)
        self._transition(TransactionPhase.FAILED, error=error, settled_at=self._clock())
        self._logger.warning("Transaction failed: %s", format_for_log(error))
        raise _Failed(self._result_from_state())

    def _make_error(
        self, code: OrchestratorErrorCode, cause: NormalizedError
    ) -> OrchestratorError:
        correlation_id = self._state.correlation_id or self._new_correlation_id()
        return OrchestratorError(
            code=cause.code,
            domain=cause.domain,
            severity=cause.severity,
            message=cause.message,
            original_error=cause.original_error,
            context={
                **cause.context,
                "correlation_id": correlation_id,
                "phase": self._state.phase.value,
            },
            retry_after_ms=cause.retry_after_ms,
            orchestrator_code=code,
            correlation_id=correlation_id,
        )

    def _reject_duplicate(self, request: TransactionRequest[Any, Any]) -> TransactionResult[Any]:
        error = self._make_error(
            OrchestratorErrorCode.DUPLICATE_IN_FLIGHT,
            NormalizedError(
                code="API_VALIDATION_ERROR",
                domain=ErrorDomain.API,
                severity=ErrorSeverity.USER_ACTIONABLE,
                message="Another transaction is already in progress.",
            ),
        )
        self._logger.warning(
            "Rejected %s while %s is %s",
            request.operation,
            self._state.operation,
            self._state.phase,
        )
        return TransactionResult(
            success=False,
            correlation_id=error.correlation_id,
            state=self._state,
            error=error,
        )

    def _result_from_state(self) -> TransactionResult[Any]:
        state = self._state
        return TransactionResult(
            success=False,
            correlation_id=state.correlation_id or "",
            state=state,
            handle=state.handle,
            data=state.data,
            confirmations=state.confirmations,
            error=state.error,
        )

    def _transaction_context(self, request: TransactionRequest[Any, Any]) -> TransactionContext:
        return TransactionContext(
            correlation_id=self._state.correlation_id or "",
            operation=request.operation,
            attempt=self._state.attempt,
            started_at=self._state.started_at or self._clock(),
        )

    def _failure_context(
        self, request: TransactionRequest[Any, Any], phase: TransactionPhase
    ) -> dict[str, Any]:
        return {
            "correlation_id": self._state.correlation_id,
            "operation": request.operation,
            "phase": phase.value,
        }


__all__ = ["Clock", "Sleep", "TransactionOrchestrator"]
