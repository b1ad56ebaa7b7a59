"""Single-session end-to-end validation of the settlement dashboard.

Eight fixed steps: load the application, create a customer, a merchant and a
transaction, settle it, watch the lock indicator, check the settlement logs
and finally re-trigger settlement to prove the settled transaction is not
processed twice. Each step is isolated by the step runner, so a failing step
still leaves a result (and a screenshot) for every later one.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

import anyio

from settlement_validation.config import ValidationConfig
from settlement_validation.errors import InvariantViolationError, RowNotFoundError, SectionNotVisibleError
from settlement_validation.flows.actions import E2E_PACING, DashboardActions
from settlement_validation.invariants import check_idempotency, check_terminal_status
from settlement_validation.lock_monitor import LockActivityMonitor
from settlement_validation.report import FlowReport
from settlement_validation.session import HIDDEN_CLASS, SessionController, on_login_route
from settlement_validation.steps import StepRunner

logger = logging.getLogger(__name__)

SCREENSHOTS = (
    "step1_homepage.png",
    "step2_customer_created.png",
    "step3_merchant_created.png",
    "step4_transaction_captured.png",
    "step5_transaction_settled.png",
    "step6_lock_status.png",
    "step7_logs.png",
    "step8_idempotency.png",
)

DASHBOARD_TITLE = "Settlement Engine"


@dataclass(frozen=True)
class EndToEndData:
    customer_name: str = "Test User"
    customer_email: str = "testuser1@example.com"
    merchant_name: str = "Test Merchant"
    bank_account: str = "123456789"
    settlement_cycle: str = "DAILY"
    amount: str = "1000"


class EndToEndFlow:
    """Runs the eight end-to-end steps against one browser session."""

    def __init__(self, config: ValidationConfig, data: Optional[EndToEndData] = None) -> None:
        self.config = config
        self.data = data or EndToEndData()
        self.session = SessionController(config, name="e2e")
        self.actions = DashboardActions(self.session, E2E_PACING)
        self.runner = StepRunner(capture=self.session.screenshot)

        self.customer_id: Optional[int] = None
        self.merchant_id: Optional[int] = None
        self.transaction_id: Optional[int] = None

    def screenshot_paths(self) -> List[str]:
        return [str(self.config.screenshot_dir / name) for name in SCREENSHOTS]

    async def run(self) -> FlowReport:
        self.config.screenshot_dir.mkdir(parents=True, exist_ok=True)
        async with self.session:
            steps = [
                ("Load Application", self.load_application),
                ("Create Customer", self.create_customer),
                ("Create Merchant", self.create_merchant),
                ("Create Transaction", self.create_transaction),
                ("Trigger Settlement", self.trigger_settlement),
                ("Verify Lock Indicator", self.verify_lock_indicator),
                ("Verify Logs", self.verify_logs),
                ("Idempotency Test", self.idempotency_test),
            ]
            for index, ((title, action), artifact) in enumerate(zip(steps, SCREENSHOTS), start=1):
                await self.runner.run_step(index, title, artifact, action)

        return FlowReport(
            base_url=self.config.base_url,
            results=self.runner.results,
            signals=self.session.signals,
            screenshots=self.screenshot_paths(),
            entities={
                "customerId": self.customer_id,
                "merchantId": self.merchant_id,
                "transactionId": self.transaction_id,
            },
        )

    # ---- steps -------------------------------------------------------------------
    async def load_application(self) -> None:
        browser = self.session.browser
        timeouts = self.config.timeouts
        await browser.goto("/", timeout=int(timeouts.page_load * 1000))

        # Secured deployments redirect to the login form first.
        if on_login_route(browser.current_url):
            profile = self.config.admin
            await self.session.authenticate(profile.username, profile.password)

        await browser.wait_for_selector("#dashboard", timeout=timeouts.navigation)
        await anyio.sleep(1.2)

        if await browser.has_class("#dashboard", HIDDEN_CLASS):
            raise SectionNotVisibleError("dashboard")

        title = await browser.title()
        if DASHBOARD_TITLE not in title:
            raise InvariantViolationError(f"Unexpected page title: '{title}'")

        signals = self.session.signals
        if signals.page_errors:
            raise InvariantViolationError(f"JavaScript errors detected: {' | '.join(signals.page_errors)}")
        if signals.response_errors:
            raise InvariantViolationError(f"HTTP errors detected: {' | '.join(signals.response_errors)}")

    async def create_customer(self) -> None:
        self.customer_id = await self.actions.create_customer(
            self.data.customer_name,
            self.data.customer_email,
            form="#customers",
            timeout=self.config.timeouts.row_creation,
        )

    async def create_merchant(self) -> None:
        self.merchant_id = await self.actions.create_merchant(
            self.data.merchant_name,
            self.data.bank_account,
            self.data.settlement_cycle,
            form="#merchants",
            timeout=self.config.timeouts.row_creation,
        )

    async def create_transaction(self) -> None:
        created = await self.actions.create_transaction(
            self.customer_id,
            self.merchant_id,
            self.data.amount,
            form="#transactions",
            timeout=self.config.timeouts.transaction_creation,
        )
        self.transaction_id = created.id

    async def trigger_settlement(self) -> None:
        trajectory = await self.actions.settle(
            self.transaction_id,
            timeout=self.config.timeouts.settlement,
            targets=("SETTLED",),
            require_processing=True,
        )
        logger.info("Transaction %s trajectory: %s", self.transaction_id, " -> ".join(trajectory.as_list()))

    async def verify_lock_indicator(self) -> None:
        observation = await self.actions.observe_lock(
            LockActivityMonitor(),
            timeout=self.config.timeouts.lock_window,
            triggers=3,
        )
        logger.info(
            "Lock window: %d observations, active=%s released=%s",
            observation.observations,
            observation.saw_active,
            observation.saw_released,
        )

    async def verify_logs(self) -> None:
        transaction_id = self._require_transaction()
        await self.actions.goto("Settlement Logs")
        await self.actions.load("loadLogs")

        entries = await self.actions.transaction_logs(transaction_id)
        if not entries:
            raise RowNotFoundError(f"No settlement logs found for transaction {transaction_id}.")

        first_attempt = next((e for e in entries if e.attempt_number == "1"), None)
        if first_attempt is None:
            raise RowNotFoundError(f"No attemptNumber=1 log found for transaction {transaction_id}.")
        if first_attempt.result != "SETTLED":
            raise InvariantViolationError(
                f"Expected attemptNumber=1 result SETTLED, found '{first_attempt.result}'."
            )

    async def idempotency_test(self) -> None:
        transaction_id = self._require_transaction()
        before = await self.actions.settled_snapshot(transaction_id)
        check_terminal_status(before.status, expected=("SETTLED",))

        await self.session.trigger_settlement(times=1, spacing=1.5)
        await self.actions.load("loadTransactions", "loadLogs", "loadStats")

        after = await self.actions.settled_snapshot(transaction_id)
        check_idempotency(before, after)

    def _require_transaction(self) -> int:
        if self.transaction_id is None:
            raise RowNotFoundError("No transaction id available (transaction step failed).")
        return self.transaction_id


async def run_end_to_end(config: ValidationConfig) -> FlowReport:
    return await EndToEndFlow(config).run()
