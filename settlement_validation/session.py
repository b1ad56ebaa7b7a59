"""One authenticated browser session against the settlement dashboard.

The controller owns a Playwright client, drives navigation, login and logout,
and records page-level side effects (dialogs, uncaught script errors, failing
same-origin responses) into append-only logs for the report.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Set, Tuple
from urllib.parse import urljoin, urlparse

import anyio

from settlement_validation.browser import Browser
from settlement_validation.config import ValidationConfig
from settlement_validation.errors import (
    AuthError,
    FatalSetupError,
    LogoutError,
    SectionNotVisibleError,
    ToolError,
)
from settlement_validation.extractor import StateExtractor
from settlement_validation.models import SessionSignals
from settlement_validation.playwright_client import PlaywrightClient

logger = logging.getLogger(__name__)

LOGIN_PATH = "/login"
LOGOUT_BUTTON = "#logoutBtn"
AUTH_INFO = "#authInfo"
HIDDEN_CLASS = "hidden"
ERROR_PAGE_MARKERS = ("whitelabel",)

# Dashboard navigation label -> section element id.
SECTIONS: Dict[str, str] = {
    "Dashboard": "dashboard",
    "Customers": "customers",
    "Merchants": "merchants",
    "Transactions": "transactions",
    "Settlement Logs": "logs",
    "Reconciliation": "reconciliation",
}

INVOKE_LOADERS_SCRIPT = """
async (names) => {
    for (const name of names) {
        const fn = window[name];
        if (typeof fn === "function") {
            await fn();
        }
    }
}
"""

FETCH_STATUS_SCRIPT = """
async ({ method, path, body }) => {
    const init = { method };
    if (body !== null) {
        init.headers = { "Content-Type": "application/json" };
        init.body = JSON.stringify(body);
    }
    const res = await fetch(path, init);
    return res.status;
}
"""

AUTH_INFO_READY_SCRIPT = """
() => {
    const el = document.getElementById("authInfo");
    return !!el && !!el.textContent && el.textContent.trim().length > 0;
}
"""


def path_of(url: str) -> str:
    return urlparse(url).path or "/"


def on_login_route(url: str) -> bool:
    return path_of(url).startswith(LOGIN_PATH)


class SessionController:
    """Strictly sequential driver for one browser context."""

    def __init__(self, config: ValidationConfig, name: str = "session", screenshot_dir: Optional[Path] = None) -> None:
        self.config = config
        self.name = name
        self.screenshot_dir = screenshot_dir or config.screenshot_dir
        self.signals = SessionSignals()
        self._client: Optional[PlaywrightClient] = None
        self._browser: Optional[Browser] = None
        self._extractor: Optional[StateExtractor] = None
        self._expected_errors: Set[Tuple[str, str]] = set()

    async def __aenter__(self) -> "SessionController":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # ---- lifecycle ---------------------------------------------------------------
    async def open(self, base_url: Optional[str] = None) -> "SessionController":
        """Launch the browser and install the page event hooks."""
        base_url = base_url or self.config.base_url
        client = PlaywrightClient(
            browser_type=self.config.browser_type,
            headless=self.config.headless,
            base_url=base_url,
        )
        try:
            await client.connect()
        except Exception as exc:
            await client.close()
            raise FatalSetupError(f"Could not start {self.config.browser_type} for {self.name}: {exc}") from exc

        self._client = client
        self._browser = Browser(client.page)
        self._extractor = StateExtractor(self._browser)
        self._install_hooks(client.page)
        logger.debug("Session %s opened against %s", self.name, base_url)
        return self

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
            logger.debug("Session %s closed", self.name)

    @property
    def browser(self) -> Browser:
        if self._browser is None:
            raise RuntimeError(f"Session {self.name} is not open")
        return self._browser

    @property
    def extractor(self) -> StateExtractor:
        if self._extractor is None:
            raise RuntimeError(f"Session {self.name} is not open")
        return self._extractor

    # ---- page event hooks --------------------------------------------------------
    def _install_hooks(self, page: Any) -> None:
        page.on("dialog", self._on_dialog)
        page.on("pageerror", self._on_page_error)
        page.on("response", self._on_response)

    async def _on_dialog(self, dialog: Any) -> None:
        self.signals.dialogs.append({"type": dialog.type, "message": dialog.message})
        logger.debug("[%s] dialog %s: %s", self.name, dialog.type, dialog.message)
        await dialog.accept()

    def _on_page_error(self, error: Any) -> None:
        message = getattr(error, "message", None) or str(error)
        self.signals.page_errors.append(message)
        logger.debug("[%s] page error: %s", self.name, message)

    def _on_response(self, response: Any) -> None:
        url = response.url
        if not url.startswith(self.config.base_url) or response.status < 400:
            return
        if (response.request.method, url) in self._expected_errors:
            return
        self.signals.response_errors.append(f"{response.status} {url}")

    # ---- auth --------------------------------------------------------------------
    async def authenticate(self, username: str, password: str) -> None:
        timeouts = self.config.timeouts
        await self.browser.goto(LOGIN_PATH, timeout=int(timeouts.page_load * 1000))
        await self.browser.fill('input[name="username"]', username)
        await self.browser.fill('input[name="password"]', password)
        try:
            await self.browser.click_and_wait_for_url(
                'button[type="submit"]',
                lambda url: not on_login_route(url),
                timeout=timeouts.navigation,
            )
        except ToolError as exc:
            raise AuthError(
                f"Login as '{username}' did not leave {LOGIN_PATH} within {timeouts.navigation:.0f}s "
                f"(url={self.browser.current_url})"
            ) from exc
        logger.info("[%s] logged in as %s", self.name, username)

    async def logout(self) -> None:
        try:
            await self.browser.click_and_wait_for_url(
                LOGOUT_BUTTON, on_login_route, timeout=self.config.timeouts.navigation
            )
        except ToolError as exc:
            raise LogoutError(f"Logout did not reach {LOGIN_PATH} (url={self.browser.current_url})") from exc

        if LOGIN_PATH not in self.browser.current_url:
            raise LogoutError(f"Expected to land on {LOGIN_PATH} after logout, got {self.browser.current_url}")

        body = (await self.browser.inner_text("body")).lower()
        for marker in ERROR_PAGE_MARKERS:
            if marker in body:
                raise LogoutError(f"Framework error page ('{marker}') shown after logout")
        logger.info("[%s] logged out", self.name)

    async def auth_info(self, timeout: float = 10.0) -> str:
        await self.browser.wait_for_selector("#dashboard", timeout=timeout)
        await self.browser.wait_for_function(AUTH_INFO_READY_SCRIPT, timeout=timeout)
        return await self.browser.inner_text(AUTH_INFO)

    # ---- navigation and refresh --------------------------------------------------
    async def navigate_to_section(self, label: str, settle: float = 0.3) -> None:
        section_id = SECTIONS.get(label, label.lower())
        await self.browser.click_button(label)
        await anyio.sleep(settle)
        if await self.browser.has_class(f"#{section_id}", HIDDEN_CLASS):
            raise SectionNotVisibleError(section_id)

    async def invoke_loaders(self, names: Iterable[str], settle: float = 0.25) -> None:
        """Call the dashboard's global loader functions directly, then settle."""
        await self.browser.evaluate(INVOKE_LOADERS_SCRIPT, list(names))
        await anyio.sleep(settle)

    async def trigger_settlement(self, times: int = 1, spacing: float = 0.3) -> None:
        """Click the trigger button; its confirm dialog is accepted by the hook."""
        for _ in range(times):
            await self.browser.click_button("Trigger Settlement")
            await anyio.sleep(spacing)

    async def fetch_status(self, method: str, path: str, json_body: Optional[Dict[str, Any]] = None) -> int:
        """In-page ``fetch`` using the session cookie. Returns the HTTP status.

        The response is expected to be probed, so it is kept out of the
        response-error log.
        """
        url = urljoin(self.config.base_url + "/", path.lstrip("/"))
        self._expected_errors.add((method.upper(), url))
        status = await self.browser.evaluate(
            FETCH_STATUS_SCRIPT, {"method": method, "path": path, "body": json_body}
        )
        return int(status)

    async def is_rendered(self, selector: str) -> bool:
        return await self.browser.is_displayed(selector)

    async def screenshot(self, name: str) -> str:
        return await self.browser.screenshot(
            self.screenshot_dir / name,
            image_format=self.config.screenshot_format,
            quality=self.config.screenshot_quality,
        )
