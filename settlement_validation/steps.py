"""Ordered step execution with per-step failure isolation.

A step never aborts the run: any exception raised by its action becomes a
failed ``StepResult``. A screenshot is attempted after every step, passed or
failed, so N requested steps always yield N results with N capture attempts.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

from settlement_validation.errors import ArtifactCaptureError

logger = logging.getLogger(__name__)

PASSED_DETAILS = "Assertions passed."

Action = Callable[[], Awaitable[Any]]
Capture = Callable[[str], Awaitable[str]]


@dataclass(frozen=True)
class StepResult:
    step: int
    title: str
    screenshot: Optional[str]
    screenshot_path: Optional[str]
    passed: bool
    details: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step,
            "title": self.title,
            "screenshot": self.screenshot,
            "screenshotPath": self.screenshot_path,
            "pass": self.passed,
            "details": self.details,
        }

    def to_check(self) -> Dict[str, Any]:
        """Role reports list steps as named checks."""
        return {"name": self.title, "pass": self.passed, "details": self.details}


@dataclass
class _Outcome:
    passed: bool = False
    details: str = ""
    screenshot_path: Optional[str] = None
    notes: List[str] = field(default_factory=list)


def describe_error(exc: BaseException) -> str:
    message = str(exc).strip()
    return message or exc.__class__.__name__


class StepRunner:
    """Runs named actions in order and keeps the append-only result list."""

    def __init__(self, capture: Optional[Capture] = None, passed_details: str = PASSED_DETAILS) -> None:
        self._capture = capture
        self._passed_details = passed_details
        self._results: List[StepResult] = []

    @property
    def results(self) -> List[StepResult]:
        return list(self._results)

    @property
    def all_passed(self) -> bool:
        return all(r.passed for r in self._results)

    def failed(self) -> List[StepResult]:
        return [r for r in self._results if not r.passed]

    def screenshot_paths(self) -> List[str]:
        return [r.screenshot_path for r in self._results if r.screenshot_path]

    @asynccontextmanager
    async def _artifact_scope(self, artifact_name: Optional[str], outcome: _Outcome) -> AsyncIterator[_Outcome]:
        try:
            yield outcome
        finally:
            if artifact_name and self._capture is not None:
                try:
                    outcome.screenshot_path = await self._capture(artifact_name)
                except Exception as exc:  # noqa: BLE001 - recorded on the step
                    error = ArtifactCaptureError(f"Screenshot failed: {describe_error(exc)}")
                    logger.warning("%s", error)
                    outcome.passed = False
                    outcome.notes.append(str(error))

    async def run_step(
        self,
        index: int,
        title: str,
        artifact_name: Optional[str],
        action: Action,
    ) -> StepResult:
        outcome = _Outcome()
        logger.info("Step %d: %s", index, title)
        async with self._artifact_scope(artifact_name, outcome):
            try:
                await action()
            except Exception as exc:  # noqa: BLE001 - a step failure never stops the run
                outcome.passed = False
                outcome.details = describe_error(exc)
                logger.info("Step %d failed: %s", index, outcome.details)
            else:
                outcome.passed = True
                outcome.details = self._passed_details

        details = " ".join([outcome.details, *outcome.notes]).strip()
        result = StepResult(
            step=index,
            title=title,
            screenshot=artifact_name,
            screenshot_path=outcome.screenshot_path,
            passed=outcome.passed,
            details=details,
        )
        self._results.append(result)
        return result
