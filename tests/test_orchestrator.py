from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
import pytest

from txflow.classification import ClassifiedError
from txflow.domain import (
    ConfirmationResult,
    ConfirmationStatus,
    ErrorDomain,
    ErrorSeverity,
    NormalizedError,
    OrchestratorErrorCode,
    OrchestratorState,
    RetryPolicy,
    SubmissionResult,
    TransactionContext,
    TransactionPhase,
    TransactionRequest,
)
from txflow.orchestration import TransactionOrchestrator

SubmitFn = Callable[[Any, TransactionContext], Awaitable[SubmissionResult[Any]]]
ConfirmFn = Callable[[str, TransactionContext], Awaitable[ConfirmationResult]]


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class FakeClock:
    """Clock that only moves when the orchestrator sleeps."""

    def __init__(self) -> None:
        self.now = datetime(2024, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def _error(severity: ErrorSeverity, code: str = "RPC_NODE_UNAVAILABLE") -> NormalizedError:
    return NormalizedError(
        code=code,
        domain=ErrorDomain.RPC,
        severity=severity,
        message=f"{code} for test",
    )


async def _confirmed(_handle: str, _ctx: TransactionContext) -> ConfirmationResult:
    return ConfirmationResult(status=ConfirmationStatus.CONFIRMED, confirmations=1)


async def _accepted(_input: Any, _ctx: TransactionContext) -> SubmissionResult[Any]:
    return SubmissionResult(handle="tx-hash")


def _request(
    operation: str = "coinFlip.play",
    *,
    submit: SubmitFn = _accepted,
    confirm: ConfirmFn = _confirmed,
    **kwargs: Any,
) -> TransactionRequest[Any, Any]:
    return TransactionRequest(
        operation=operation,
        input=kwargs.pop("input", {"wager": 10}),
        submit=submit,
        confirm=confirm,
        **kwargs,
    )


def _orchestrator(**kwargs: Any) -> TransactionOrchestrator:
    kwargs.setdefault("sleep", SleepRecorder())
    kwargs.setdefault("correlation_id_factory", lambda: "corr-test")
    return TransactionOrchestrator(**kwargs)


def _phases(orchestrator: TransactionOrchestrator) -> list[TransactionPhase]:
    phases: list[TransactionPhase] = []
    orchestrator.subscribe(lambda state: phases.append(state.phase))
    return phases


def test_happy_path_confirms() -> None:
    seen: list[TransactionContext] = []

    async def submit(_input: Any, ctx: TransactionContext) -> SubmissionResult[Any]:
        seen.append(ctx)
        return SubmissionResult(handle="abc123", data={"accepted": True})

    orchestrator = _orchestrator(correlation_id_factory=lambda: "corr-happy")
    phases = _phases(orchestrator)

    result = asyncio.run(orchestrator.execute(_request(submit=submit)))

    assert result.success is True
    assert result.correlation_id == "corr-happy"
    assert result.tx_hash == "abc123"
    assert result.data == {"accepted": True}
    assert result.confirmations == 1
    assert result.state.phase is TransactionPhase.CONFIRMED
    assert result.state.settled_at is not None
    assert result.state.started_at is not None
    assert result.state.started_at <= result.state.settled_at
    assert seen[0].correlation_id == "corr-happy"
    assert seen[0].operation == "coinFlip.play"
    assert seen[0].attempt == 1
    assert phases == [
        TransactionPhase.IDLE,
        TransactionPhase.VALIDATING,
        TransactionPhase.SUBMITTING,
        TransactionPhase.SUBMITTED,
        TransactionPhase.CONFIRMING,
        TransactionPhase.CONFIRMED,
    ]


def test_pool_fund_retries_retryable_submissions() -> None:
    calls = 0

    async def submit(_input: Any, _ctx: TransactionContext) -> SubmissionResult[Any]:
        nonlocal calls
        calls += 1
        if calls < 3:
            raise ClassifiedError(_error(ErrorSeverity.RETRYABLE))
        return SubmissionResult(handle="retry123", data={"done": True})

    async def confirm(_handle: str, _ctx: TransactionContext) -> ConfirmationResult:
        return ConfirmationResult(status=ConfirmationStatus.CONFIRMED, confirmations=2)

    sleep = SleepRecorder()
    orchestrator = _orchestrator(sleep=sleep)
    phases = _phases(orchestrator)

    result = asyncio.run(
        orchestrator.execute(
            _request(
                "pool.fund",
                input={"amount": 100},
                submit=submit,
                confirm=confirm,
                retry_policy=RetryPolicy(
                    max_attempts=3, initial_backoff_ms=1, backoff_multiplier=1
                ),
            )
        )
    )

    assert calls == 3
    assert result.success is True
    assert result.state.attempt == 3
    assert result.confirmations == 2
    assert sleep.calls == [0.001, 0.001]
    assert phases.count(TransactionPhase.RETRYING) == 2


def test_backoff_grows_exponentially() -> None:
    async def submit(_input: Any, _ctx: TransactionContext) -> SubmissionResult[Any]:
        raise httpx.ConnectError("connection refused")

    sleep = SleepRecorder()
    orchestrator = _orchestrator(sleep=sleep)

    result = asyncio.run(orchestrator.execute(_request(submit=submit)))

    assert result.success is False
    assert result.error is not None
    assert result.error.orchestrator_code is OrchestratorErrorCode.SUBMISSION_FAILED
    assert result.error.code == "RPC_NODE_UNAVAILABLE"
    assert result.state.attempt == 3
    assert sleep.calls == [0.5, 1.0]


def test_non_retryable_submission_fails_immediately() -> None:
    calls = 0

    async def submit(_input: Any, _ctx: TransactionContext) -> SubmissionResult[Any]:
        nonlocal calls
        calls += 1
        raise ClassifiedError(_error(ErrorSeverity.FATAL, "RPC_TX_REJECTED"))

    sleep = SleepRecorder()
    orchestrator = _orchestrator(sleep=sleep)

    result = asyncio.run(orchestrator.execute(_request(submit=submit)))

    assert calls == 1
    assert sleep.calls == []
    assert result.error is not None
    assert result.error.orchestrator_code is OrchestratorErrorCode.SUBMISSION_FAILED
    assert result.error.code == "RPC_TX_REJECTED"
    assert result.error.context["correlation_id"] == "corr-test"
    assert result.error.context["phase"] == "SUBMITTING"
    assert result.state.phase is TransactionPhase.FAILED


def test_returned_failure_value_is_not_a_handle() -> None:
    async def submit(_input: Any, _ctx: TransactionContext) -> Any:
        return _error(ErrorSeverity.USER_ACTIONABLE, "WALLET_USER_REJECTED")

    result = asyncio.run(_orchestrator().execute(_request(submit=submit)))

    assert result.success is False
    assert result.error is not None
    assert result.error.code == "WALLET_USER_REJECTED"
    assert result.error.orchestrator_code is OrchestratorErrorCode.SUBMISSION_FAILED


def test_blank_handle_is_fatal() -> None:
    async def submit(_input: Any, _ctx: TransactionContext) -> SubmissionResult[Any]:
        return SubmissionResult(handle="   ")

    result = asyncio.run(_orchestrator().execute(_request(submit=submit)))

    assert result.error is not None
    assert result.error.orchestrator_code is OrchestratorErrorCode.SUBMISSION_FAILED
    assert result.error.code == "API_VALIDATION_ERROR"
    assert result.error.severity is ErrorSeverity.FATAL


def test_precondition_failure_never_submits() -> None:
    calls = 0

    async def submit(_input: Any, _ctx: TransactionContext) -> SubmissionResult[Any]:
        nonlocal calls
        calls += 1
        return SubmissionResult(handle="never")

    precondition = NormalizedError(
        code="WALLET_NOT_CONNECTED",
        domain=ErrorDomain.WALLET,
        severity=ErrorSeverity.USER_ACTIONABLE,
        message="Wallet must be connected before this action.",
    )
    orchestrator = _orchestrator()
    phases = _phases(orchestrator)

    result = asyncio.run(
        orchestrator.execute(
            _request(
                "badge.award",
                submit=submit,
                validate_preconditions=lambda: precondition,
            )
        )
    )

    assert calls == 0
    assert result.success is False
    assert result.error is not None
    assert result.error.orchestrator_code is OrchestratorErrorCode.PRECONDITION_FAILED
    assert result.error.code == "WALLET_NOT_CONNECTED"
    assert phases == [TransactionPhase.IDLE, TransactionPhase.VALIDATING, TransactionPhase.FAILED]
    assert result.state.settled_at is not None


def test_invalid_input_never_submits() -> None:
    invalid = NormalizedError(
        code="API_VALIDATION_ERROR",
        domain=ErrorDomain.API,
        severity=ErrorSeverity.USER_ACTIONABLE,
        message="wager must be positive",
    )

    result = asyncio.run(
        _orchestrator().execute(
            _request(input={"wager": -1}, validate_input=lambda _input: invalid)
        )
    )

    assert result.error is not None
    assert result.error.orchestrator_code is OrchestratorErrorCode.INVALID_INPUT
    assert result.error.message == "wager must be positive"


def test_raising_validator_is_classified() -> None:
    def explode() -> None:
        raise ValueError("validator bug")

    result = asyncio.run(_orchestrator().execute(_request(validate_preconditions=explode)))

    assert result.success is False
    assert result.error is not None
    assert result.error.orchestrator_code is OrchestratorErrorCode.PRECONDITION_FAILED
    assert result.error.domain is ErrorDomain.UNKNOWN
    assert isinstance(result.error.original_error, ValueError)


def test_confirmation_failure_uses_attached_error() -> None:
    rejected = _error(ErrorSeverity.FATAL, "RPC_TX_REJECTED")

    async def confirm(_handle: str, _ctx: TransactionContext) -> ConfirmationResult:
        return ConfirmationResult(status=ConfirmationStatus.FAILED, error=rejected)

    result = asyncio.run(_orchestrator().execute(_request(confirm=confirm)))

    assert result.error is not None
    assert result.error.orchestrator_code is OrchestratorErrorCode.CONFIRMATION_FAILED
    assert result.error.message == rejected.message
    assert result.state.handle == "tx-hash"


def test_confirmation_failure_without_error_is_generic_rejection() -> None:
    async def confirm(_handle: str, _ctx: TransactionContext) -> ConfirmationResult:
        return ConfirmationResult(status=ConfirmationStatus.FAILED)

    result = asyncio.run(_orchestrator().execute(_request(confirm=confirm)))

    assert result.error is not None
    assert result.error.code == "RPC_TX_REJECTED"
    assert result.error.message == "Transaction confirmation failed."


def test_retryable_poll_error_keeps_polling() -> None:
    calls = 0

    async def confirm(_handle: str, _ctx: TransactionContext) -> ConfirmationResult:
        nonlocal calls
        calls += 1
        if calls == 1:
            raise httpx.ReadTimeout("slow node")
        return ConfirmationResult(status=ConfirmationStatus.CONFIRMED, confirmations=4)

    result = asyncio.run(_orchestrator().execute(_request(confirm=confirm)))

    assert calls == 2
    assert result.success is True
    assert result.confirmations == 4


def test_fatal_poll_error_fails_confirmation() -> None:
    async def confirm(_handle: str, _ctx: TransactionContext) -> ConfirmationResult:
        raise ClassifiedError(_error(ErrorSeverity.FATAL, "RPC_INVALID_RESPONSE"))

    result = asyncio.run(_orchestrator().execute(_request(confirm=confirm)))

    assert result.error is not None
    assert result.error.orchestrator_code is OrchestratorErrorCode.CONFIRMATION_FAILED
    assert result.error.code == "RPC_INVALID_RESPONSE"


def test_pending_confirmation_times_out() -> None:
    clock = FakeClock()
    calls = 0

    async def confirm(_handle: str, _ctx: TransactionContext) -> ConfirmationResult:
        nonlocal calls
        calls += 1
        return ConfirmationResult(status=ConfirmationStatus.PENDING)

    async def submit(_input: Any, _ctx: TransactionContext) -> SubmissionResult[Any]:
        return SubmissionResult(handle="slowtx")

    orchestrator = _orchestrator(clock=clock, sleep=clock.sleep)
    result = asyncio.run(
        orchestrator.execute(
            _request(
                "tx.timeout.case",
                submit=submit,
                confirm=confirm,
                confirmation_timeout_ms=2_000,
                poll_interval_ms=1_000,
            )
        )
    )

    assert calls == 3
    assert result.success is False
    assert result.error is not None
    assert result.error.orchestrator_code is OrchestratorErrorCode.TIMEOUT
    assert result.error.code == "RPC_CONNECTION_TIMEOUT"
    assert result.error.severity is ErrorSeverity.RETRYABLE
    assert result.error.message == "Transaction slowtx was not confirmed within 2000ms."
    assert result.state.phase is TransactionPhase.FAILED
    assert result.state.settled_at == clock.now


@pytest.mark.asyncio
async def test_duplicate_execution_is_rejected_while_in_flight() -> None:
    release = asyncio.Event()
    calls = 0

    async def submit(_input: Any, _ctx: TransactionContext) -> SubmissionResult[Any]:
        nonlocal calls
        calls += 1
        await release.wait()
        return SubmissionResult(handle="done")

    orchestrator = _orchestrator()
    first = asyncio.create_task(orchestrator.execute(_request("first", submit=submit)))
    await asyncio.sleep(0)
    assert orchestrator.get_state().phase is TransactionPhase.SUBMITTING

    second = await orchestrator.execute(_request("second", submit=submit))

    assert second.success is False
    assert second.error is not None
    assert second.error.orchestrator_code is OrchestratorErrorCode.DUPLICATE_IN_FLIGHT
    assert second.error.severity is ErrorSeverity.USER_ACTIONABLE
    assert orchestrator.get_state().operation == "first"
    assert calls == 1

    release.set()
    result = await first
    assert result.success is True

    again = await orchestrator.execute(_request("third"))
    assert again.success is True


@pytest.mark.asyncio
async def test_independent_orchestrators_run_concurrently() -> None:
    first, second = _orchestrator(), _orchestrator()
    results = await asyncio.gather(
        first.execute(_request("one")),
        second.execute(_request("two")),
    )
    assert [result.success for result in results] == [True, True]


@pytest.mark.asyncio
async def test_cancellation_propagates() -> None:
    async def submit(_input: Any, _ctx: TransactionContext) -> SubmissionResult[Any]:
        raise asyncio.CancelledError

    with pytest.raises(asyncio.CancelledError):
        await _orchestrator().execute(_request(submit=submit))


def test_raising_subscriber_does_not_affect_others(caplog: pytest.LogCaptureFixture) -> None:
    def broken(_state: OrchestratorState) -> None:
        raise RuntimeError("listener bug")

    orchestrator = _orchestrator()
    with caplog.at_level(logging.ERROR):
        orchestrator.subscribe(broken)
        phases = _phases(orchestrator)
        result = asyncio.run(orchestrator.execute(_request()))

    assert result.success is True
    assert phases[-1] is TransactionPhase.CONFIRMED
    assert "State listener" in caplog.text


def test_unsubscribe_stops_notifications() -> None:
    orchestrator = _orchestrator()
    seen: list[TransactionPhase] = []
    unsubscribe = orchestrator.subscribe(lambda state: seen.append(state.phase))
    unsubscribe()

    asyncio.run(orchestrator.execute(_request()))

    assert seen == [TransactionPhase.IDLE]


def test_reset_returns_to_idle_and_notifies() -> None:
    async def submit(_input: Any, _ctx: TransactionContext) -> SubmissionResult[Any]:
        raise ClassifiedError(_error(ErrorSeverity.FATAL))

    orchestrator = _orchestrator()
    asyncio.run(orchestrator.execute(_request(submit=submit)))
    assert orchestrator.get_state().phase is TransactionPhase.FAILED

    phases = _phases(orchestrator)
    orchestrator.reset()

    state = orchestrator.get_state()
    assert state.phase is TransactionPhase.IDLE
    assert state.error is None
    assert state.correlation_id is None
    assert phases == [TransactionPhase.FAILED, TransactionPhase.IDLE]


def test_illegal_transition_fails_with_invalid_state() -> None:
    orchestrator = _orchestrator()
    confirm_calls = 0

    async def submit(_input: Any, _ctx: TransactionContext) -> SubmissionResult[Any]:
        orchestrator.reset()
        return SubmissionResult(handle="orphan")

    async def confirm(_handle: str, _ctx: TransactionContext) -> ConfirmationResult:
        nonlocal confirm_calls
        confirm_calls += 1
        return ConfirmationResult(status=ConfirmationStatus.CONFIRMED)

    result = asyncio.run(orchestrator.execute(_request(submit=submit, confirm=confirm)))

    assert result.success is False
    assert result.error is not None
    assert result.error.orchestrator_code is OrchestratorErrorCode.INVALID_STATE
    assert result.state.phase is TransactionPhase.FAILED
    assert result.state.settled_at is not None
    assert confirm_calls == 0


def test_terminal_orchestrator_accepts_a_new_execution() -> None:
    orchestrator = _orchestrator()
    first = asyncio.run(orchestrator.execute(_request("first")))
    second = asyncio.run(orchestrator.execute(_request("second")))

    assert first.success and second.success
    assert orchestrator.get_state().operation == "second"


def test_mapping_confirmation_is_accepted() -> None:
    async def confirm(_handle: str, _ctx: TransactionContext) -> Any:
        return {"status": "confirmed", "confirmations": 4}

    orchestrator = _orchestrator()
    result = asyncio.run(orchestrator.execute(_request(confirm=confirm)))

    assert result.success is True
    assert result.confirmations == 4
    assert result.state.phase is TransactionPhase.CONFIRMED


def test_mapping_confirmation_failure_classifies_attached_error() -> None:
    async def confirm(_handle: str, _ctx: TransactionContext) -> Any:
        return {"status": "FAILED", "error": {"error": {"status": 503}}}

    result = asyncio.run(_orchestrator().execute(_request(confirm=confirm)))

    assert result.success is False
    assert result.error is not None
    assert result.error.orchestrator_code is OrchestratorErrorCode.CONFIRMATION_FAILED
    assert result.error.code == "API_SERVER_ERROR"


def test_unrecognized_confirmation_fails_and_frees_the_slot() -> None:
    async def confirm(_handle: str, _ctx: TransactionContext) -> Any:
        return object()

    orchestrator = _orchestrator()
    result = asyncio.run(orchestrator.execute(_request(confirm=confirm)))

    assert result.success is False
    assert result.error is not None
    assert result.error.orchestrator_code is OrchestratorErrorCode.CONFIRMATION_FAILED
    assert result.error.code == "RPC_INVALID_RESPONSE"
    assert result.error.severity is ErrorSeverity.FATAL
    assert result.state.phase is TransactionPhase.FAILED

    again = asyncio.run(orchestrator.execute(_request("next")))
    assert again.success is True


def test_backoff_is_capped() -> None:
    policy = RetryPolicy(initial_backoff_ms=500, backoff_multiplier=2, max_backoff_ms=3_000)

    assert policy.backoff_ms(1) == 500
    assert policy.backoff_ms(3) == 2_000
    assert policy.backoff_ms(10) == 3_000
    assert policy.backoff_ms(5_000) == 3_000
    assert RetryPolicy(initial_backoff_ms=0).backoff_ms(5_000) == 0


def test_long_retry_budget_settles_without_overflow() -> None:
    async def submit(_input: Any, _ctx: TransactionContext) -> SubmissionResult[Any]:
        raise TimeoutError("node timed out")

    sleep = SleepRecorder()
    orchestrator = _orchestrator(sleep=sleep)
    result = asyncio.run(
        orchestrator.execute(
            _request(
                submit=submit,
                retry_policy=RetryPolicy(
                    max_attempts=1_100, initial_backoff_ms=1, backoff_multiplier=2
                ),
            )
        )
    )

    assert result.success is False
    assert result.error is not None
    assert result.error.orchestrator_code is OrchestratorErrorCode.SUBMISSION_FAILED
    assert result.state.phase is TransactionPhase.FAILED
    assert result.state.attempt == 1_100
    assert len(sleep.calls) == 1_099
    assert max(sleep.calls) == 60.0


def _assert_settled_only_when_terminal(snapshots: list[OrchestratorState]) -> None:
    for state in snapshots:
        assert (state.settled_at is not None) == state.is_terminal, state.phase


def test_settled_at_only_on_terminal_snapshots_when_confirmed() -> None:
    orchestrator = _orchestrator()
    snapshots: list[OrchestratorState] = []
    orchestrator.subscribe(snapshots.append)

    result = asyncio.run(orchestrator.execute(_request()))

    assert result.success is True
    assert len(snapshots) == 6
    _assert_settled_only_when_terminal(snapshots)
    assert snapshots[-1].phase is TransactionPhase.CONFIRMED


def test_settled_at_only_on_terminal_snapshots_after_retries_fail() -> None:
    async def submit(_input: Any, _ctx: TransactionContext) -> SubmissionResult[Any]:
        raise ClassifiedError(_error(ErrorSeverity.RETRYABLE))

    orchestrator = _orchestrator()
    snapshots: list[OrchestratorState] = []
    orchestrator.subscribe(snapshots.append)

    result = asyncio.run(
        orchestrator.execute(
            _request(submit=submit, retry_policy=RetryPolicy(max_attempts=2))
        )
    )

    assert result.success is False
    assert TransactionPhase.RETRYING in [state.phase for state in snapshots]
    _assert_settled_only_when_terminal(snapshots)
    assert snapshots[-1].phase is TransactionPhase.FAILED


def test_subscriber_added_mid_flight_sees_the_same_final_snapshot() -> None:
    orchestrator = _orchestrator()
    early: list[OrchestratorState] = []
    late: list[OrchestratorState] = []
    orchestrator.subscribe(early.append)

    async def submit(_input: Any, _ctx: TransactionContext) -> SubmissionResult[Any]:
        orchestrator.subscribe(late.append)
        return SubmissionResult(handle="joined")

    result = asyncio.run(orchestrator.execute(_request(submit=submit)))

    assert result.success is True
    assert late[0].phase is TransactionPhase.SUBMITTING
    assert late[0] is early[2]
    assert [state.phase for state in late[1:]] == [
        TransactionPhase.SUBMITTED,
        TransactionPhase.CONFIRMING,
        TransactionPhase.CONFIRMED,
    ]
    assert late[-1] is early[-1]
    assert late[-1] is orchestrator.get_state()


def test_confirmation_is_polled_once_after_slow_submission() -> None:
    clock = FakeClock()
    submits = 0
    polls = 0

    async def submit(_input: Any, _ctx: TransactionContext) -> SubmissionResult[Any]:
        nonlocal submits
        submits += 1
        if submits == 1:
            raise ClassifiedError(_error(ErrorSeverity.RETRYABLE))
        return SubmissionResult(handle="late")

    async def confirm(_handle: str, _ctx: TransactionContext) -> ConfirmationResult:
        nonlocal polls
        polls += 1
        return ConfirmationResult(status=ConfirmationStatus.CONFIRMED, confirmations=1)

    orchestrator = _orchestrator(clock=clock, sleep=clock.sleep)
    result = asyncio.run(
        orchestrator.execute(
            _request(
                submit=submit,
                confirm=confirm,
                retry_policy=RetryPolicy(max_attempts=2, initial_backoff_ms=5_000),
                confirmation_timeout_ms=2_000,
            )
        )
    )

    assert polls == 1
    assert result.success is True


def test_pending_after_slow_submission_times_out_after_one_poll() -> None:
    clock = FakeClock()
    polls = 0

    async def submit(_input: Any, _ctx: TransactionContext) -> SubmissionResult[Any]:
        await clock.sleep(5)
        return SubmissionResult(handle="late")

    async def confirm(_handle: str, _ctx: TransactionContext) -> ConfirmationResult:
        nonlocal polls
        polls += 1
        return ConfirmationResult(status=ConfirmationStatus.PENDING)

    orchestrator = _orchestrator(clock=clock, sleep=clock.sleep)
    result = asyncio.run(
        orchestrator.execute(
            _request(
                submit=submit,
                confirm=confirm,
                confirmation_timeout_ms=2_000,
                poll_interval_ms=1_000,
            )
        )
    )

    assert polls == 1
    assert result.error is not None
    assert result.error.orchestrator_code is OrchestratorErrorCode.TIMEOUT
