"""Report aggregation, serialization and exit-code mapping."""
from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, TextIO

from settlement_validation.models import SessionSignals
from settlement_validation.steps import StepResult

logger = logging.getLogger(__name__)

VALIDATION_START = "VALIDATION_RESULT_START"
VALIDATION_END = "VALIDATION_RESULT_END"
ROLE_REPORT_START = "ROLE_VALIDATION_REPORT_START"
ROLE_REPORT_END = "ROLE_VALIDATION_REPORT_END"

EXIT_OK = 0
EXIT_FAILED = 1


def ui_inconsistencies(signals: SessionSignals) -> List[str]:
    found: List[str] = []
    if signals.page_errors:
        found.append(f"JavaScript errors captured: {' | '.join(signals.page_errors)}")
    if signals.response_errors:
        found.append(f"HTTP errors captured: {' | '.join(signals.response_errors)}")
    return found


def state_inconsistencies(results: Sequence[StepResult]) -> List[str]:
    return [f"Step {r.step} ({r.title}): {r.details}" for r in results if not r.passed]


@dataclass
class FlowReport:
    """Single-session end-to-end report."""

    base_url: str
    results: List[StepResult]
    signals: SessionSignals
    screenshots: List[str]
    entities: Dict[str, Optional[int]] = field(default_factory=dict)

    @property
    def passed(self) -> bool:
        return bool(self.results) and all(r.passed for r in self.results)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "baseUrl": self.base_url,
            "customerId": self.entities.get("customerId"),
            "merchantId": self.entities.get("merchantId"),
            "transactionId": self.entities.get("transactionId"),
            "pass": self.passed,
            "results": [r.to_dict() for r in self.results],
            "uiInconsistencies": ui_inconsistencies(self.signals),
            "stateInconsistencies": state_inconsistencies(self.results),
            "screenshots": list(self.screenshots),
            "dialogs": list(self.signals.dialogs),
        }


@dataclass
class RoleReport:
    """One role's scenario inside the dual-role flow."""

    role: str
    username: str
    results: List[StepResult] = field(default_factory=list)
    signals: SessionSignals = field(default_factory=SessionSignals)
    details: Dict[str, Any] = field(default_factory=dict)
    fatal_error: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.fatal_error is None and all(r.passed for r in self.results)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "role": self.role,
            "username": self.username,
            "pass": self.passed,
            "checks": [r.to_check() for r in self.results],
            "screenshots": [r.screenshot_path for r in self.results if r.screenshot_path],
            "details": dict(self.details),
            "uiInconsistencies": ui_inconsistencies(self.signals),
            "stateInconsistencies": state_inconsistencies(self.results),
            "dialogs": list(self.signals.dialogs),
        }
        if self.fatal_error is not None:
            data["fatalError"] = self.fatal_error
        return data


@dataclass
class CombinedRoleReport:
    base_url: str
    admin: RoleReport
    user: RoleReport
    generated_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def overall_pass(self) -> bool:
        return self.admin.passed and self.user.passed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "baseUrl": self.base_url,
            "generatedAt": self.generated_at,
            "overallPass": self.overall_pass,
            "admin": self.admin.to_dict(),
            "user": self.user.to_dict(),
        }


def fatal_report(
    error: BaseException,
    results: Sequence[StepResult] = (),
    screenshots: Sequence[str] = (),
) -> Dict[str, Any]:
    """Minimal report for a flow that died outside any step."""
    return {
        "fatalError": str(error) or error.__class__.__name__,
        "pass": False,
        "results": [r.to_dict() for r in results],
        "screenshots": list(screenshots),
    }


def emit(report: Dict[str, Any], start: str, end: str, stream: Optional[TextIO] = None) -> None:
    """Print the report between literal markers so callers can cut it out of stdout."""
    out = stream or sys.stdout
    out.write(f"{start}\n")
    out.write(json.dumps(report, indent=2, default=str))
    out.write(f"\n{end}\n")
    out.flush()


def write_report(report: Dict[str, Any], path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(report, indent=2, default=str), encoding="utf-8")
    logger.info("Report written to %s", path)
    return path


def exit_code(passed: bool) -> int:
    return EXIT_OK if passed else EXIT_FAILED
