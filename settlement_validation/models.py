"""Typed records for the settlement dashboard entities.

All of these are read-only observations of backend state. They are rebuilt
from the live page (or the REST API) on every read and never cached.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class TransactionStatus(str, Enum):
    CAPTURED = "CAPTURED"
    PROCESSING = "PROCESSING"
    SETTLED = "SETTLED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @classmethod
    def parse(cls, value: str) -> Optional["TransactionStatus"]:
        """Return the status for a cell value, or None for anything unknown."""
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


TERMINAL_STATUSES = frozenset({TransactionStatus.SETTLED, TransactionStatus.FAILED})

_RETRY_CELL = re.compile(r"^\s*(\d+)\s*/\s*(\d+)\s*$")


def parse_int(value: Any) -> Optional[int]:
    """Parse a leading integer the way the dashboard renders ids ("12", " 7 ")."""
    if value is None:
        return None
    match = re.match(r"^\s*([+-]?\d+)", str(value))
    if not match:
        return None
    return int(match.group(1))


@dataclass(frozen=True)
class Customer:
    id: int
    name: str
    email: str

    @classmethod
    def from_row(cls, row: List[str]) -> Optional["Customer"]:
        if len(row) < 3:
            return None
        customer_id = parse_int(row[0])
        if customer_id is None:
            return None
        return cls(id=customer_id, name=row[1], email=row[2])


@dataclass(frozen=True)
class Merchant:
    id: int
    name: str
    bank_account: str
    settlement_cycle: str

    @classmethod
    def from_row(cls, row: List[str]) -> Optional["Merchant"]:
        if len(row) < 4:
            return None
        merchant_id = parse_int(row[0])
        if merchant_id is None:
            return None
        return cls(id=merchant_id, name=row[1], bank_account=row[2], settlement_cycle=row[3])


@dataclass(frozen=True)
class Transaction:
    id: int
    amount: str
    status: str
    retry: str
    created_at: str

    @property
    def status_enum(self) -> Optional[TransactionStatus]:
        return TransactionStatus.parse(self.status)

    @property
    def retry_count(self) -> Optional[int]:
        match = _RETRY_CELL.match(self.retry)
        return int(match.group(1)) if match else None

    @property
    def max_retries(self) -> Optional[int]:
        match = _RETRY_CELL.match(self.retry)
        return int(match.group(2)) if match else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "amount": self.amount,
            "status": self.status,
            "retry": self.retry,
            "createdAt": self.created_at,
        }


@dataclass(frozen=True)
class SettlementLogEntry:
    id: int
    transaction_id: Optional[int]
    attempt_number: str
    result: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "transactionId": self.transaction_id,
            "attemptNumber": self.attempt_number,
            "result": self.result,
            "message": self.message,
        }


@dataclass(frozen=True)
class StatsSnapshot:
    """Point-in-time projection of ``GET /api/settlements/stats``."""

    total_transactions: int = 0
    captured: int = 0
    processing: int = 0
    settled: int = 0
    failed: int = 0
    exception_queued: int = 0
    average_retry_count: float = 0.0
    lock_held: bool = False
    lock_holder: Optional[str] = None
    last_run_time: Optional[str] = None
    last_processed_count: int = 0
    last_run_source: Optional[str] = None
    last_lock_acquired_at: Optional[str] = None
    last_lock_released_at: Optional[str] = None
    run_count_total: int = 0
    lock_skipped_total: int = 0

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "StatsSnapshot":
        def _int(key: str) -> int:
            value = data.get(key)
            return int(value) if value is not None else 0

        return cls(
            total_transactions=_int("totalTransactions"),
            captured=_int("captured"),
            processing=_int("processing"),
            settled=_int("settled"),
            failed=_int("failed"),
            exception_queued=_int("exceptionQueued"),
            average_retry_count=float(data.get("averageRetryCount") or 0.0),
            lock_held=bool(data.get("lockHeld")),
            lock_holder=data.get("lockHolder"),
            last_run_time=data.get("lastRunTime"),
            last_processed_count=_int("lastProcessedCount"),
            last_run_source=data.get("lastRunSource"),
            last_lock_acquired_at=data.get("lastLockAcquiredAt"),
            last_lock_released_at=data.get("lastLockReleasedAt"),
            run_count_total=_int("runCountTotal"),
            lock_skipped_total=_int("lockSkippedTotal"),
        )

    @property
    def status_total(self) -> int:
        return self.captured + self.processing + self.settled + self.failed


@dataclass
class SessionSignals:
    """Append-only logs filled by page event hooks for one session."""

    dialogs: List[Dict[str, str]] = field(default_factory=list)
    page_errors: List[str] = field(default_factory=list)
    response_errors: List[str] = field(default_factory=list)

    def dialog_matching(self, needle: str, since: int = 0) -> Optional[Dict[str, str]]:
        """First dialog at or after index ``since`` whose message contains ``needle``."""
        needle = needle.lower()
        for dialog in self.dialogs[since:]:
            if needle in dialog.get("message", "").lower():
                return dialog
        return None
