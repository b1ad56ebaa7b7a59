"""Pure checks over extracted state.

Each checker returns None when the invariant holds and raises
``InvariantViolationError`` otherwise, so it can be called directly inside a
step action.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence

from settlement_validation.errors import InvariantViolationError
from settlement_validation.lock_monitor import LockObservation
from settlement_validation.models import TERMINAL_STATUSES, TransactionStatus

_RANK = {
    TransactionStatus.CAPTURED: 0,
    TransactionStatus.PROCESSING: 1,
    TransactionStatus.SETTLED: 2,
    TransactionStatus.FAILED: 2,
}

# A retry hands a PROCESSING row back to CAPTURED; the only allowed step down.
_RETRY = (TransactionStatus.PROCESSING, TransactionStatus.CAPTURED)

FORBIDDEN = 403


def _as_status(value: Any) -> TransactionStatus:
    if isinstance(value, TransactionStatus):
        return value
    status = TransactionStatus.parse(str(value))
    if status is None:
        raise InvariantViolationError(f"Unknown transaction status observed: '{value}'.")
    return status


def check_forward_progress(
    trajectory: Sequence[Any],
    *,
    require_terminal: bool = True,
    require_processing: bool = False,
    expected_terminal: Optional[Iterable[Any]] = None,
) -> TransactionStatus:
    """Assert the observed trajectory only moves forward towards a terminal status.

    ``trajectory`` holds distinct statuses in first-seen order. PROCESSING ->
    CAPTURED is a backend retry and is accepted; nothing may follow a terminal
    status. Returns the last status of the trajectory.
    """
    if not trajectory:
        raise InvariantViolationError("No transaction status was observed.")

    statuses = [_as_status(s) for s in trajectory]
    for previous, current in zip(statuses, statuses[1:]):
        if (previous, current) == _RETRY:
            continue
        if previous.is_terminal or _RANK[current] <= _RANK[previous]:
            seen = " -> ".join(s.value for s in statuses)
            raise InvariantViolationError(
                f"Transaction status moved backwards or out of a terminal state: {seen}."
            )

    final = statuses[-1]
    if require_terminal and not final.is_terminal:
        raise InvariantViolationError(
            f"Expected terminal status SETTLED/FAILED, got {final.value}."
        )
    if expected_terminal is not None:
        allowed = {_as_status(s) for s in expected_terminal}
        if final not in allowed:
            names = "/".join(sorted(s.value for s in allowed))
            raise InvariantViolationError(f"Expected final status {names}, found '{final.value}'.")
    if require_processing and TransactionStatus.PROCESSING not in statuses:
        raise InvariantViolationError(
            "Did not observe PROCESSING state in UI during CAPTURED -> SETTLED transition."
        )
    return final


def check_terminal_status(status: Optional[str], expected: Iterable[str] = ("SETTLED", "FAILED")) -> str:
    expected = list(expected)
    if status is None or status not in expected:
        raise InvariantViolationError(
            f"Expected status {'/'.join(expected)}, found '{status or 'missing'}'."
        )
    return status


def check_mutual_exclusion(observation: LockObservation) -> None:
    if observation.max_holders > 1:
        raise InvariantViolationError("UI displayed multiple lock holders simultaneously.")


def check_liveness(observation: LockObservation) -> None:
    if not observation.complete:
        raise InvariantViolationError(
            "Did not observe both lock acquired and lock released states in dashboard "
            f"(active={observation.saw_active}, released={observation.saw_released})."
        )


@dataclass(frozen=True)
class SettledSnapshot:
    """Status and log count for one transaction at one point in time."""

    status: Optional[str]
    log_count: int


def check_idempotency(before: SettledSnapshot, after: SettledSnapshot) -> None:
    if after.status != before.status:
        raise InvariantViolationError(
            f"Transaction moved from {before.status} to '{after.status or 'missing'}'."
        )
    if after.log_count != before.log_count:
        raise InvariantViolationError(
            "Duplicate settlement detected for settled transaction. "
            f"Log count before={before.log_count}, after={after.log_count}."
        )


def check_write_rejected(statuses: Mapping[str, int], expected: int = FORBIDDEN) -> None:
    """Every privileged write attempted by a restricted session must be rejected."""
    wrong = {endpoint: status for endpoint, status in statuses.items() if status != expected}
    if wrong:
        listed = ", ".join(f"{endpoint} returned {status}" for endpoint, status in wrong.items())
        raise InvariantViolationError(f"Expected {expected} for restricted writes: {listed}.")


def check_controls_hidden(visibility: Mapping[str, bool]) -> None:
    visible = [selector for selector, shown in visibility.items() if shown]
    if visible:
        raise InvariantViolationError(
            f"Admin-only controls visible to restricted role: {', '.join(visible)}."
        )


def check_roles(identity: Dict[str, Any], required: str, forbidden: Optional[str] = None) -> None:
    roles = [str(r) for r in identity.get("roles") or []]
    if required not in roles:
        raise InvariantViolationError(f"Expected role {required} for {identity.get('username')}, got {roles}.")
    if forbidden and forbidden in roles:
        raise InvariantViolationError(f"Role {forbidden} must not be granted to {identity.get('username')}.")


def is_terminal(status: Optional[str]) -> bool:
    parsed = TransactionStatus.parse(status) if status else None
    return parsed in TERMINAL_STATUSES
