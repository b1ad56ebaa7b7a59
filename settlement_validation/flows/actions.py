"""Dashboard actions shared by the end-to-end and role flows.

Each action drives the session, waits for the backend to converge through the
poller and raises a harness error when it does not, so it can be used directly
as (part of) a step action.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from settlement_validation.errors import ConvergenceTimeoutError, InvariantViolationError, RowNotFoundError
from settlement_validation.extractor import max_transaction_id, newest_transaction_after
from settlement_validation.invariants import (
    SettledSnapshot,
    check_forward_progress,
    check_liveness,
    is_terminal,
    check_mutual_exclusion,
)
from settlement_validation.lock_monitor import LockActivityMonitor, LockObservation
from settlement_validation.models import SettlementLogEntry, Transaction, TransactionStatus
from settlement_validation.poller import Trajectory, poll_until, track_trajectory
from settlement_validation.session import SessionController

logger = logging.getLogger(__name__)

ACTIVITY_PANEL = "#settlementActivity"


@dataclass(frozen=True)
class Pacing:
    """Sleep lengths used while driving the dashboard."""

    section_settle: float = 0.3
    loader_settle: float = 0.25
    row_interval: float = 0.5
    transaction_interval: float = 0.5
    settlement_interval: float = 1.0
    lock_interval: float = 1.0
    log_interval: float = 0.5
    trigger_spacing: float = 0.3


E2E_PACING = Pacing()
ROLE_PACING = Pacing(
    section_settle=0.25,
    loader_settle=0.15,
    row_interval=0.25,
    transaction_interval=0.3,
    settlement_interval=0.3,
    lock_interval=0.25,
    log_interval=0.25,
    trigger_spacing=0.2,
)


class DashboardActions:
    """High level operations on the dashboard for one session."""

    def __init__(self, session: SessionController, pacing: Pacing = E2E_PACING) -> None:
        self.session = session
        self.pacing = pacing

    async def goto(self, label: str) -> None:
        await self.session.navigate_to_section(label, settle=self.pacing.section_settle)

    async def load(self, *names: str) -> None:
        await self.session.invoke_loaders(names, settle=self.pacing.loader_settle)

    # ---- object creation ---------------------------------------------------------
    async def create_customer(self, name: str, email: str, form: str, timeout: float) -> int:
        await self.goto("Customers")
        await self.load("loadCustomers")

        mark = len(self.session.signals.dialogs)
        await self.session.browser.fill("#customerName", name)
        await self.session.browser.fill("#customerEmail", email)
        await self.session.browser.click_text(form, "Create")

        extractor = self.session.extractor
        try:
            customer = await poll_until(
                lambda: self.load("loadCustomers"),
                lambda: extractor.find_customer(name, email),
                timeout=timeout,
                interval=self.pacing.row_interval,
                description=f"customer row ({name}, {email})",
            )
        except ConvergenceTimeoutError:
            rejection = self.session.signals.dialog_matching("customer creation failed", since=mark)
            if rejection:
                raise RowNotFoundError(f"Customer creation failed: {rejection['message']}")
            raise RowNotFoundError("Customer row not found in customers table.")
        return customer.id

    async def create_merchant(self, name: str, bank_account: str, cycle: str, form: str, timeout: float) -> int:
        await self.goto("Merchants")
        await self.load("loadMerchants")

        mark = len(self.session.signals.dialogs)
        await self.session.browser.fill("#merchantName", name)
        await self.session.browser.fill("#merchantBank", bank_account)
        await self.session.browser.fill("#merchantCycle", cycle)
        await self.session.browser.click_text(form, "Create")

        extractor = self.session.extractor
        try:
            merchant = await poll_until(
                lambda: self.load("loadMerchants"),
                lambda: extractor.find_merchant(name, bank_account, cycle),
                timeout=timeout,
                interval=self.pacing.row_interval,
                description=f"merchant row ({name}, {bank_account}, {cycle})",
            )
        except ConvergenceTimeoutError:
            rejection = self.session.signals.dialog_matching("merchant creation failed", since=mark)
            if rejection:
                raise RowNotFoundError(f"Merchant creation failed: {rejection['message']}")
            raise RowNotFoundError("Merchant row not found in merchants table.")
        return merchant.id

    async def create_transaction(
        self,
        customer_id: Optional[int],
        merchant_id: Optional[int],
        amount: str,
        form: str,
        timeout: float,
    ) -> Transaction:
        if customer_id is None or merchant_id is None:
            raise RowNotFoundError(
                f"Cannot create a transaction without customer and merchant ids "
                f"(customerId={customer_id}, merchantId={merchant_id})."
            )
        await self.goto("Transactions")
        await self.load("loadTransactions")

        extractor = self.session.extractor
        previous_max = max_transaction_id(await extractor.transactions())

        mark = len(self.session.signals.dialogs)
        await self.session.browser.fill("#customerId", str(customer_id))
        await self.session.browser.fill("#merchantId", str(merchant_id))
        await self.session.browser.fill("#amount", amount)
        await self.session.browser.click_text(form, "Create")

        async def _created() -> Optional[Transaction]:
            return newest_transaction_after(await extractor.transactions(), previous_max, amount)

        try:
            created = await poll_until(
                lambda: self.load("loadTransactions"),
                _created,
                timeout=timeout,
                interval=self.pacing.transaction_interval,
                description=f"transaction for amount {amount}",
            )
        except ConvergenceTimeoutError:
            rejection = self.session.signals.dialog_matching("transaction creation failed", since=mark)
            if rejection:
                raise RowNotFoundError(f"Transaction creation failed: {rejection['message']}")
            raise RowNotFoundError("New transaction was not found after submission.")

        if created.status != TransactionStatus.CAPTURED.value:
            raise InvariantViolationError(
                f"Expected new transaction status CAPTURED, found '{created.status}'."
            )
        return created

    # ---- settlement --------------------------------------------------------------
    async def current_status(self, transaction_id: int) -> Optional[str]:
        return await self.session.extractor.transaction_status(transaction_id)

    async def settle(
        self,
        transaction_id: Optional[int],
        timeout: float,
        targets: Sequence[str] = ("SETTLED",),
        require_processing: bool = True,
        require_start: Optional[str] = "CAPTURED",
    ) -> Trajectory[str]:
        """Trigger settlement and track the status trajectory to a terminal status.

        Raises ConvergenceTimeoutError (``last_seen`` is the trajectory) when no
        terminal status shows up in time, and InvariantViolationError when the
        trajectory or its terminal status is wrong.
        """
        if transaction_id is None:
            raise RowNotFoundError("No transaction id available (transaction step failed).")
        await self.goto("Transactions")
        await self.load("loadTransactions")

        start = await self.current_status(transaction_id)
        if start is None:
            raise RowNotFoundError(f"Transaction {transaction_id} missing before trigger.")
        if require_start and start != require_start:
            raise InvariantViolationError(f"Expected starting status {require_start}, found '{start}'.")

        await self.session.trigger_settlement(times=1, spacing=0)

        async def _observe() -> str:
            status = await self.current_status(transaction_id)
            if status is None:
                raise RowNotFoundError(f"Transaction {transaction_id} disappeared from table.")
            return status

        trajectory = await track_trajectory(
            lambda: self.load("loadTransactions", "loadStats"),
            _observe,
            lambda status: status in targets or is_terminal(status),
            timeout=timeout,
            interval=self.pacing.settlement_interval,
            initial=[start],
            description=f"transaction {transaction_id} settlement",
        )
        check_forward_progress(
            trajectory.states,
            require_terminal=True,
            require_processing=require_processing,
            expected_terminal=targets,
        )
        return trajectory

    # ---- lock --------------------------------------------------------------------
    async def observe_lock(self, monitor: LockActivityMonitor, timeout: float, triggers: int = 3) -> LockObservation:
        """Force overlapping triggers and watch the activity panel for one window."""
        await self.goto("Dashboard")
        await self.load("loadStats")

        monitor.start()
        try:
            await self.session.trigger_settlement(times=triggers, spacing=self.pacing.trigger_spacing)

            async def _observe() -> Optional[bool]:
                text = await self.session.browser.inner_text(ACTIVITY_PANEL)
                monitor.observe(text)
                return True if monitor.complete else None

            try:
                await poll_until(
                    lambda: self.load("loadStats"),
                    _observe,
                    timeout=timeout,
                    interval=self.pacing.lock_interval,
                    description="lock active and released",
                )
            except ConvergenceTimeoutError:
                logger.info("Lock window closed before both lock states were seen")
        finally:
            observation = monitor.stop()

        check_mutual_exclusion(observation)
        check_liveness(observation)
        return observation

    # ---- logs --------------------------------------------------------------------
    async def transaction_logs(self, transaction_id: int) -> List[SettlementLogEntry]:
        return await self.session.extractor.logs(transaction_id)

    async def wait_for_logs(self, transaction_id: Optional[int], timeout: float) -> List[SettlementLogEntry]:
        if transaction_id is None:
            raise RowNotFoundError("No transaction id available (transaction step failed).")
        await self.goto("Settlement Logs")
        try:
            return await poll_until(
                lambda: self.load("loadLogs"),
                lambda: self._non_empty_logs(transaction_id),
                timeout=timeout,
                interval=self.pacing.log_interval,
                description=f"logs for transaction {transaction_id}",
            )
        except ConvergenceTimeoutError:
            raise RowNotFoundError(f"No settlement logs found for transaction {transaction_id}.")

    async def _non_empty_logs(self, transaction_id: int) -> Optional[List[SettlementLogEntry]]:
        entries = await self.transaction_logs(transaction_id)
        return entries or None

    async def settled_snapshot(self, transaction_id: int) -> SettledSnapshot:
        """Status from the transactions table and log count from the logs table."""
        await self.goto("Transactions")
        await self.load("loadTransactions")
        status = await self.current_status(transaction_id)
        await self.goto("Settlement Logs")
        await self.load("loadLogs")
        return SettledSnapshot(status=status, log_count=len(await self.transaction_logs(transaction_id)))
