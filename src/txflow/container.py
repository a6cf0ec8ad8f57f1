"""Service container wiring application components."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from txflow.config import AppSettings
from txflow.domain import RetryPolicy
from txflow.orchestration import TransactionOrchestrator
from txflow.utils import InFlightRegistry

OrchestratorFactory = Callable[[], TransactionOrchestrator]


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ServiceContainer:
    """Aggregates shared services built from one set of settings."""

    settings: AppSettings
    retry_policy: RetryPolicy
    in_flight: InFlightRegistry
    orchestrator_factory: OrchestratorFactory

    def new_orchestrator(self) -> TransactionOrchestrator:
        """Return a fresh orchestrator; one per concurrent operation."""

        return self.orchestrator_factory()


def build_container(settings: AppSettings | None = None) -> ServiceContainer:
    """Construct the primary service container."""

    resolved_settings = settings or AppSettings.from_env()
    retry_policy = resolved_settings.retry_policy()
    in_flight = InFlightRegistry(default_ttl_ms=resolved_settings.dedupe_ttl_ms)

    def orchestrator_factory() -> TransactionOrchestrator:
        return TransactionOrchestrator(
            retry_policy=retry_policy,
            poll_interval_ms=resolved_settings.poll_interval_ms,
            confirmation_timeout_ms=resolved_settings.confirmation_timeout_ms,
            logger=logger,
        )

    return ServiceContainer(
        settings=resolved_settings,
        retry_policy=retry_policy,
        in_flight=in_flight,
        orchestrator_factory=orchestrator_factory,
    )


__all__ = ["OrchestratorFactory", "ServiceContainer", "build_container"]
