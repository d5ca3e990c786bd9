"""Ordered step interpreter for multi-collaborator transactions.

A saga is a list of named steps. Fatal steps abort the run on the first failure
and surface an ``AppError``; best-effort steps turn failures into warnings that
travel with the successful result. Steps never run out of order and nothing is
rolled back automatically.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Sequence

from app.pdv.core.error_catalog import AppError, ErrorDefinition
from app.pdv.core.logging import log_json

logger = logging.getLogger("pdv.saga")


@dataclass(frozen=True)
class SagaWarning:
    step: str
    message: str
    code: str | None = None


@dataclass(frozen=True)
class SagaStep:
    name: str
    action: Callable[[], object]
    fatal: bool = False
    failure: ErrorDefinition | None = None


@dataclass
class SagaResult:
    completed_steps: list[str] = field(default_factory=list)
    warnings: list[SagaWarning] = field(default_factory=list)


StepErrorHook = Callable[[SagaStep, Exception], None]


def _error_message(exc: Exception) -> str:
    if isinstance(exc, AppError):
        details = exc.details
        if isinstance(details, dict) and details.get("message"):
            return str(details["message"])
        return exc.error.message
    return str(exc) or exc.__class__.__name__


class SagaRunner:
    def __init__(self, name: str, *, on_step_error: StepErrorHook | None = None, trace_id: str = ""):
        self.name = name
        self.on_step_error = on_step_error
        self.trace_id = trace_id

    def run(self, steps: Sequence[SagaStep]) -> SagaResult:
        result = SagaResult()
        for step in steps:
            try:
                step.action()
            except Exception as exc:
                if self.on_step_error is not None:
                    self.on_step_error(step, exc)
                if step.fatal:
                    self._log_failure(step, exc, level=logging.ERROR)
                    if isinstance(exc, AppError):
                        raise
                    if step.failure is None:
                        raise
                    raise AppError(
                        step.failure,
                        details={"step": step.name, "message": _error_message(exc)},
                    ) from exc
                self._log_failure(step, exc, level=logging.WARNING)
                result.warnings.append(
                    SagaWarning(
                        step=step.name,
                        message=_error_message(exc),
                        code=exc.error.code if isinstance(exc, AppError) else None,
                    )
                )
                continue
            result.completed_steps.append(step.name)
        return result

    def _log_failure(self, step: SagaStep, exc: Exception, *, level: int) -> None:
        log_json(
            logger,
            {
                "event": "saga_step_failed",
                "saga": self.name,
                "step": step.name,
                "fatal": step.fatal,
                "error_class": exc.__class__.__name__,
                "message": _error_message(exc),
                "trace_id": self.trace_id,
            },
            level=level,
        )
