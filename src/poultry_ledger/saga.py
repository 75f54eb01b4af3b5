"""Ordered, resumable execution of a ledger mutation and its follow-up writes.

A mutation such as "edit a purchase" is several independent store writes:
the source row, a compensating cash log entry, and one lot check per
affected product type. The store offers no transaction spanning them, so a
:class:`MutationSaga` runs them in order, records what happened to each, and
lets the caller resume from the step that failed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional

from . import log
from .errors import PartialMutationError, StoreError


class StepStatus(str, Enum):
    PENDING = "pending"
    DONE = "done"
    FAILED = "failed"


@dataclass
class SagaStep:
    """One named write within a saga."""

    name: str
    action: Callable[[], Any]
    affects_cash: bool = False
    status: StepStatus = StepStatus.PENDING
    result: Any = None
    error: Optional[StoreError] = None


@dataclass(frozen=True)
class SagaReport:
    """Snapshot of a saga's progress, attached to :class:`PartialMutationError`."""

    label: str
    completed: tuple[str, ...]
    failed: Optional[str]
    pending: tuple[str, ...]
    error: Optional[str]
    drifted: bool

    def describe(self) -> str:
        parts = [f"{self.label}: completed={list(self.completed)}"]
        if self.failed:
            parts.append(f"failed={self.failed} ({self.error})")
        if self.pending:
            parts.append(f"pending={list(self.pending)}")
        if self.drifted:
            parts.append("cash balance drifted")
        return ", ".join(parts)


@dataclass
class MutationSaga:
    """Run named steps in order and report precisely where a failure happened.

    The first step is the source write. When it fails nothing has been
    applied and the original :class:`StoreError` propagates. When a later
    step fails, :class:`PartialMutationError` is raised with a
    :class:`SagaReport`; calling :meth:`resume` retries from the failed step.
    """

    label: str
    steps: List[SagaStep] = field(default_factory=list)

    def add_step(self, name: str, action: Callable[[], Any], *, affects_cash: bool = False) -> "MutationSaga":
        self.steps.append(SagaStep(name=name, action=action, affects_cash=affects_cash))
        return self

    def run(self) -> "MutationSaga":
        for index, step in enumerate(self.steps):
            if step.status is StepStatus.DONE:
                continue
            try:
                step.result = step.action()
            except StoreError as exc:
                step.status = StepStatus.FAILED
                step.error = exc
                if index == 0:
                    log.error("%s aborted before any write: %s", self.label, exc)
                    raise
                report = self.report()
                log.error("Partial mutation: %s", report.describe())
                raise PartialMutationError(report.describe(), report, saga=self) from exc
            step.status = StepStatus.DONE
            step.error = None
        return self

    def resume(self) -> "MutationSaga":
        """Retry every step that has not completed yet."""

        log.info("Resuming %s", self.label)
        return self.run()

    def result(self, name: str) -> Any:
        for step in self.steps:
            if step.name == name:
                return step.result
        raise KeyError(name)

    def report(self) -> SagaReport:
        failed = next((step for step in self.steps if step.status is StepStatus.FAILED), None)
        source_written = bool(self.steps) and self.steps[0].status is StepStatus.DONE
        return SagaReport(
            label=self.label,
            completed=tuple(step.name for step in self.steps if step.status is StepStatus.DONE),
            failed=failed.name if failed else None,
            pending=tuple(step.name for step in self.steps if step.status is StepStatus.PENDING),
            error=str(failed.error) if failed else None,
            drifted=source_written
            and any(step.affects_cash and step.status is not StepStatus.DONE for step in self.steps),
        )
