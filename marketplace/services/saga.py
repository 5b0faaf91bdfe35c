# marketplace/services/saga.py
"""
Minimal synchronous saga: ordered steps, each with an optional compensation.

On failure the compensations of the steps that already completed run in
reverse order, then the step error is re-raised. A failing compensation is
logged as critical and the remaining compensations still run.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

import structlog

logger = structlog.get_logger()


@dataclass
class SagaStep:
    name: str
    action: Callable[[dict], Any]
    compensate: Callable[[Any], None] | None = None


@dataclass
class SagaReport:
    results: dict = field(default_factory=dict)
    compensations_run: int = 0
    compensations_failed: int = 0

    @property
    def rollback_complete(self) -> bool:
        return self.compensations_failed == 0


class Saga:
    def __init__(self, name: str, **context):
        self.name = name
        self.steps: list = []
        self.log = logger.bind(saga=name, **context)
        self.report = SagaReport()

    def step(self, name: str, action, compensate=None) -> "Saga":
        self.steps.append(SagaStep(name=name, action=action, compensate=compensate))
        return self

    def run(self) -> dict:
        """Run every step; each action receives the results recorded so far."""
        completed = []
        for step in self.steps:
            try:
                value = step.action(self.report.results)
            except Exception as e:
                self.log.info("saga_step_failed", step=step.name, error=str(e))
                self._compensate(completed)
                raise
            self.report.results[step.name] = value
            completed.append((step, value))
        return self.report.results

    def _compensate(self, completed):
        for step, value in reversed(completed):
            if step.compensate is None:
                continue
            try:
                step.compensate(value)
                self.report.compensations_run += 1
            except Exception as e:
                self.report.compensations_failed += 1
                self.log.critical(
                    "saga_compensation_failed",
                    step=step.name,
                    error=repr(e),
                    action="manual reconciliation required",
                )
