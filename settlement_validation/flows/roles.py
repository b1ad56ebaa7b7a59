"""Dual-role validation: a privileged and a restricted session side by side.

The admin scenario walks the full creation-through-settlement path and
observes the lock indicator. The user scenario proves the restricted role
neither sees admin controls nor gets past the backend on write endpoints.
Each scenario owns its own browser session; only their reports are merged.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

import anyio

from settlement_validation.api_client import SettlementApiClient
from settlement_validation.config import RoleProfile, ValidationConfig
from settlement_validation.errors import InvariantViolationError, RowNotFoundError
from settlement_validation.flows.actions import ROLE_PACING, DashboardActions
from settlement_validation.invariants import check_controls_hidden, check_roles, check_write_rejected
from settlement_validation.lock_monitor import LockActivityMonitor
from settlement_validation.report import CombinedRoleReport, RoleReport
from settlement_validation.session import SessionController
from settlement_validation.steps import StepRunner, describe_error

logger = logging.getLogger(__name__)

ADMIN_CONTROLS = (
    "#customerForm",
    "#merchantForm",
    "#transactionForm",
    "#reconciliationControls",
    "#triggerSettlementBtn",
)

# (navigation label, loader) pairs a restricted user must still be able to open.
READ_ONLY_SECTIONS = (
    ("Customers", "loadCustomers"),
    ("Merchants", "loadMerchants"),
    ("Transactions", "loadTransactions"),
    ("Reconciliation", "loadExceptionQueue"),
    ("Settlement Logs", "loadLogs"),
)

LOCK_PRELOAD_AMOUNT = "2500"


def run_tag() -> str:
    """Millisecond timestamp used to keep names and artifacts unique per run."""
    return str(int(time.time() * 1000))


class RoleScenario:
    """Shared plumbing: one session, one step runner, one role report."""

    def __init__(self, config: ValidationConfig, profile: RoleProfile, tag: str) -> None:
        self.config = config
        self.profile = profile
        self.tag = tag
        self.session = SessionController(config, name=profile.name, screenshot_dir=config.report_dir)
        self.actions = DashboardActions(self.session, ROLE_PACING)
        self.runner = StepRunner(capture=self.session.screenshot, passed_details="Passed")
        self.report = RoleReport(role=profile.role, username=profile.username, signals=self.session.signals)

    def artifact(self, index: int, slug: str) -> str:
        return f"{self.profile.name}_{self.tag}_step{index}_{slug}.png"

    async def check(self, index: int, title: str, slug: str, action: Callable[[], Awaitable[Any]]) -> None:
        await self.runner.run_step(index, title, self.artifact(index, slug), action)

    async def run(self) -> RoleReport:
        """Log in, run every check and return the role report.

        Failures inside checks are recorded by the step runner. Anything that
        fails outside a check (browser launch, login) ends the scenario and is
        stored as the report's fatal error.
        """
        self.config.report_dir.mkdir(parents=True, exist_ok=True)
        try:
            async with self.session:
                await self.session.authenticate(self.profile.username, self.profile.password)
                await self.checks()
        except Exception as exc:  # noqa: BLE001 - reported, never re-raised
            self.report.fatal_error = describe_error(exc)
            logger.error("%s scenario aborted: %s", self.profile.role, self.report.fatal_error)
        self.report.results = self.runner.results
        return self.report

    async def checks(self) -> None:
        raise NotImplementedError

    async def verify_dashboard(self) -> None:
        info = (await self.session.auth_info()).lower()
        if self.profile.auth_marker not in info:
            raise InvariantViolationError(f"Unexpected auth info: {info}")

    async def logout(self) -> None:
        await self.session.logout()

    async def api_session(self) -> SettlementApiClient:
        api = SettlementApiClient(self.config.base_url, timeout=self.config.timeouts.navigation)
        try:
            await api.login(self.profile.username, self.profile.password)
        except Exception:
            await api.close()
            raise
        return api


class AdminScenario(RoleScenario):
    def __init__(self, config: ValidationConfig, tag: str) -> None:
        super().__init__(config, config.admin, tag)
        self.customer_name = f"Role Test Customer {tag}"
        self.customer_email = f"role.admin.{tag}@example.com"
        self.merchant_name = f"Role Test Merchant {tag}"
        self.bank_account = f"ACC{tag[-8:]}"
        self.customer_id: Optional[int] = None
        self.merchant_id: Optional[int] = None
        self.transaction_id: Optional[int] = None

    async def checks(self) -> None:
        await self.check(1, "Admin login + dashboard visible", "dashboard", self.verify_dashboard)
        await self.check(2, "Admin creates customer", "customer", self.create_customer)
        await self.check(3, "Admin creates merchant", "merchant", self.create_merchant)
        await self.check(4, "Admin creates transaction", "transaction_created", self.create_transaction)
        await self.check(5, "Admin triggers settlement + state transition", "after_settlement", self.settle)
        await self.check(6, "Admin lock indicator behavior", "lock_indicator", self.lock_indicator)
        await self.check(7, "Admin API snapshot consistent", "api_snapshot", self.api_snapshot)
        await self.check(8, "Admin sees settlement logs for transaction", "logs", self.logs)
        await self.check(9, "Admin logout", "logout", self.logout)

        self.report.details.update(
            customerId=self.customer_id,
            merchantId=self.merchant_id,
            transactionId=self.transaction_id,
        )

    async def create_customer(self) -> None:
        self.customer_id = await self.actions.create_customer(
            self.customer_name,
            self.customer_email,
            form="#customerForm",
            timeout=self.config.timeouts.row_creation,
        )

    async def create_merchant(self) -> None:
        self.merchant_id = await self.actions.create_merchant(
            self.merchant_name,
            self.bank_account,
            "DAILY",
            form="#merchantForm",
            timeout=self.config.timeouts.row_creation,
        )

    async def create_transaction(self) -> None:
        created = await self.actions.create_transaction(
            self.customer_id,
            self.merchant_id,
            "1000",
            form="#transactionForm",
            timeout=self.config.timeouts.transaction_creation,
        )
        self.transaction_id = created.id

    async def settle(self) -> None:
        trajectory = await self.actions.settle(
            self.transaction_id,
            timeout=self.config.timeouts.settlement,
            targets=("SETTLED", "FAILED"),
            require_processing=False,
            require_start=None,
        )
        self.report.details["transactionTerminalStatus"] = trajectory.last
        self.report.details["transactionSeenStates"] = trajectory.as_list()

    async def lock_indicator(self) -> None:
        if self.customer_id is None or self.merchant_id is None:
            raise RowNotFoundError("Lock test needs the customer and merchant created earlier.")

        # A fresh CAPTURED transaction keeps the lock held long enough to be rendered.
        status = await self.session.fetch_status(
            "POST",
            f"/transactions?customerId={self.customer_id}&merchantId={self.merchant_id}"
            f"&amount={LOCK_PRELOAD_AMOUNT}",
        )
        if status != 200:
            raise InvariantViolationError(f"Failed to preload transaction for lock test. HTTP {status}")

        observation = await self.actions.observe_lock(
            LockActivityMonitor(),
            timeout=self.config.timeouts.admin_lock_window,
            triggers=3,
        )
        self.report.details["lockObservations"] = observation.observations

    async def api_snapshot(self) -> None:
        api = await self.api_session()
        async with api:
            check_roles(await api.me(), "ROLE_ADMIN")
            stats = await api.stats()
            transactions = await api.transactions()

        ui_status = self.report.details.get("transactionTerminalStatus")
        if self.transaction_id is not None and ui_status is not None:
            record = next((tx for tx in transactions if tx.get("id") == self.transaction_id), None)
            api_status = record.get("status") if record else None
            self.report.details["apiTransactionStatus"] = api_status
            if api_status != ui_status:
                raise InvariantViolationError(
                    f"Transaction {self.transaction_id} is {ui_status} in the dashboard "
                    f"but '{api_status or 'missing'}' over REST."
                )

        self.report.details["apiStats"] = {
            "totalTransactions": stats.total_transactions,
            "settled": stats.settled,
            "failed": stats.failed,
            "lockHeld": stats.lock_held,
            "lockHolder": stats.lock_holder,
        }

    async def logs(self) -> None:
        entries = await self.actions.wait_for_logs(self.transaction_id, timeout=self.config.timeouts.log_appearance)
        self.report.details["logCountForTransaction"] = len(entries)


class UserScenario(RoleScenario):
    def __init__(self, config: ValidationConfig, tag: str) -> None:
        super().__init__(config, config.user, tag)

    async def checks(self) -> None:
        await self.check(1, "User login + dashboard visible", "dashboard", self.verify_dashboard)
        await self.check(2, "User cannot access admin controls in UI", "admin_controls_hidden", self.controls_hidden)
        await self.check(3, "User can view read-only sections", "read_only_sections", self.read_only_sections)
        await self.check(4, "User write APIs blocked by backend", "backend_forbidden", self.writes_blocked)
        await self.check(5, "User logout", "logout", self.logout)

    async def controls_hidden(self) -> None:
        visibility = {selector: await self.session.is_rendered(selector) for selector in ADMIN_CONTROLS}
        self.report.details["adminControlsVisible"] = visibility
        check_controls_hidden(visibility)

    async def read_only_sections(self) -> None:
        for label, loader in READ_ONLY_SECTIONS:
            await self.actions.goto(label)
            await self.actions.load(loader)

    async def writes_blocked(self) -> None:
        statuses: Dict[str, int] = {
            "POST /customers": await self.session.fetch_status(
                "POST", "/customers", {"name": "blocked", "email": "blocked@example.com"}
            ),
            "POST /settlement/trigger": await self.session.fetch_status("POST", "/settlement/trigger"),
        }

        api = await self.api_session()
        async with api:
            check_roles(await api.me(), "ROLE_USER", forbidden="ROLE_ADMIN")
            statuses["POST /merchants"] = await api.probe_write(
                "POST", "/merchants", {"name": "blocked", "bankAccount": "0", "settlementCycle": "DAILY"}
            )
            statuses["POST /transactions"] = await api.probe_write(
                "POST", "/transactions?customerId=1&merchantId=1&amount=1"
            )
            statuses["POST /api/reconciliation/run"] = await api.probe_write("POST", "/api/reconciliation/run")

        self.report.details["writeStatuses"] = statuses
        check_write_rejected(statuses)


async def run_roles(config: ValidationConfig, parallel: bool = False, tag: Optional[str] = None) -> CombinedRoleReport:
    """Run both scenarios, sequentially or concurrently, and merge their reports."""
    tag = tag or run_tag()
    admin = AdminScenario(config, tag)
    user = UserScenario(config, tag)

    if parallel:
        async with anyio.create_task_group() as tg:
            tg.start_soon(admin.run)
            tg.start_soon(user.run)
    else:
        await admin.run()
        await user.run()

    return CombinedRoleReport(base_url=config.base_url, admin=admin.report, user=user.report)
