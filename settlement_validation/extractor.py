"""Turn the dashboard's rendered tables into typed records.

Tables are captured as plain cell text. The first row is always the header and
is dropped. Rows that are too short or whose id cell is not an integer are
skipped silently because a table can be read in the middle of a re-render.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, List, Optional, Sequence

from settlement_validation.models import (
    Customer,
    Merchant,
    SettlementLogEntry,
    Transaction,
    parse_int,
)

if TYPE_CHECKING:
    from settlement_validation.browser import Browser

CUSTOMERS_TABLE = "customersTable"
MERCHANTS_TABLE = "merchantsTable"
TRANSACTIONS_TABLE = "transactionsTable"
LOGS_TABLE = "logsTable"

MIN_RECORD_CELLS = 5

Row = List[str]

# Runs inside the page: header row dropped, cell text trimmed.
TABLE_ROWS_SCRIPT = """
(trs) => trs.slice(1).map((tr) =>
    Array.from(tr.querySelectorAll("td")).map((td) => (td.textContent || "").trim())
)
"""


def parse_transactions(rows: Iterable[Sequence[str]]) -> List[Transaction]:
    transactions: List[Transaction] = []
    for row in rows:
        if len(row) < MIN_RECORD_CELLS:
            continue
        tx_id = parse_int(row[0])
        if tx_id is None:
            continue
        transactions.append(
            Transaction(id=tx_id, amount=row[1], status=row[2], retry=row[3], created_at=row[4])
        )
    return transactions


def parse_logs(rows: Iterable[Sequence[str]]) -> List[SettlementLogEntry]:
    entries: List[SettlementLogEntry] = []
    for row in rows:
        if len(row) < MIN_RECORD_CELLS:
            continue
        log_id = parse_int(row[0])
        if log_id is None:
            continue
        entries.append(
            SettlementLogEntry(
                id=log_id,
                transaction_id=parse_int(row[1]),
                attempt_number=row[2],
                result=row[3],
                message=row[4],
            )
        )
    return entries


def find_customer_row(rows: Iterable[Sequence[str]], name: str, email: str) -> Optional[Sequence[str]]:
    for row in rows:
        if len(row) >= 3 and row[1] == name and row[2] == email:
            return row
    return None


def find_merchant_row(
    rows: Iterable[Sequence[str]], name: str, bank_account: str, cycle: str
) -> Optional[Sequence[str]]:
    for row in rows:
        if len(row) >= 4 and row[1] == name and row[2] == bank_account and row[3] == cycle:
            return row
    return None


def find_transaction(transactions: Iterable[Transaction], transaction_id: int) -> Optional[Transaction]:
    for tx in transactions:
        if tx.id == transaction_id:
            return tx
    return None


def max_transaction_id(transactions: Iterable[Transaction]) -> int:
    return max((tx.id for tx in transactions), default=0)


def newest_transaction_after(
    transactions: Iterable[Transaction], previous_max_id: int, amount_prefix: str
) -> Optional[Transaction]:
    """Pick the newest transaction created after ``previous_max_id`` for an amount."""
    candidates = [
        tx for tx in transactions if tx.id > previous_max_id and tx.amount.startswith(amount_prefix)
    ]
    if not candidates:
        return None
    return max(candidates, key=lambda tx: tx.id)


def logs_for(entries: Iterable[SettlementLogEntry], transaction_id: int) -> List[SettlementLogEntry]:
    return [entry for entry in entries if entry.transaction_id == transaction_id]


class StateExtractor:
    """Snapshot reads over the live dashboard tables."""

    def __init__(self, browser: "Browser") -> None:
        self._browser = browser

    async def read_table(self, table_id: str) -> List[Row]:
        rows = await self._browser.eval_all(f"#{table_id} tr", TABLE_ROWS_SCRIPT)
        return [list(row) for row in rows or []]

    async def transactions(self) -> List[Transaction]:
        return parse_transactions(await self.read_table(TRANSACTIONS_TABLE))

    async def logs(self, transaction_id: Optional[int] = None) -> List[SettlementLogEntry]:
        entries = parse_logs(await self.read_table(LOGS_TABLE))
        if transaction_id is None:
            return entries
        return logs_for(entries, transaction_id)

    async def find_customer(self, name: str, email: str) -> Optional[Customer]:
        row = find_customer_row(await self.read_table(CUSTOMERS_TABLE), name, email)
        return Customer.from_row(list(row)) if row else None

    async def find_merchant(self, name: str, bank_account: str, cycle: str) -> Optional[Merchant]:
        row = find_merchant_row(await self.read_table(MERCHANTS_TABLE), name, bank_account, cycle)
        return Merchant.from_row(list(row)) if row else None

    async def transaction(self, transaction_id: int) -> Optional[Transaction]:
        return find_transaction(await self.transactions(), transaction_id)

    async def transaction_status(self, transaction_id: int) -> Optional[str]:
        tx = await self.transaction(transaction_id)
        return tx.status if tx else None
