"""SessionController page hooks and in-page probes, without a real browser."""
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from settlement_validation.config import ValidationConfig
from settlement_validation.errors import LogoutError, SectionNotVisibleError
from settlement_validation.session import SessionController, on_login_route, path_of

BASE = "http://127.0.0.1:8080"


def _response(status, url, method="GET"):
    return SimpleNamespace(status=status, url=url, request=SimpleNamespace(method=method))


@pytest.fixture()
def session():
    return SessionController(ValidationConfig(base_url=BASE), name="test")


class TestResponseHook:
    def test_same_origin_errors_are_recorded(self, session):
        session._on_response(_response(500, f"{BASE}/customers"))
        session._on_response(_response(200, f"{BASE}/merchants"))
        assert session.signals.response_errors == [f"500 {BASE}/customers"]

    def test_cross_origin_is_ignored(self, session):
        session._on_response(_response(404, "https://cdn.example.com/font.woff"))
        assert session.signals.response_errors == []

    @pytest.mark.asyncio
    async def test_probed_requests_are_not_errors(self, session):
        browser = MagicMock()
        browser.evaluate = AsyncMock(return_value=403)
        session._browser = browser

        status = await session.fetch_status("post", "/customers", {"name": "x"})

        assert status == 403
        session._on_response(_response(403, f"{BASE}/customers", method="POST"))
        session._on_response(_response(403, f"{BASE}/customers", method="GET"))
        assert session.signals.response_errors == [f"403 {BASE}/customers"]


class TestDialogAndErrors:
    @pytest.mark.asyncio
    async def test_dialogs_are_logged_and_accepted(self, session):
        dialog = MagicMock(type="confirm", message="Trigger settlement now?")
        dialog.accept = AsyncMock()

        await session._on_dialog(dialog)

        dialog.accept.assert_awaited_once()
        assert session.signals.dialogs == [{"type": "confirm", "message": "Trigger settlement now?"}]
        assert session.signals.dialog_matching("TRIGGER") is not None
        assert session.signals.dialog_matching("trigger", since=1) is None

    def test_page_errors_prefer_message(self, session):
        session._on_page_error(SimpleNamespace(message="loadStats is not defined"))
        session._on_page_error("plain text")
        assert session.signals.page_errors == ["loadStats is not defined", "plain text"]


def test_closed_session_has_no_browser(session):
    with pytest.raises(RuntimeError, match="not open"):
        session.browser


def test_login_route_detection():
    assert on_login_route(f"{BASE}/login")
    assert on_login_route(f"{BASE}/login.html?error")
    assert not on_login_route(f"{BASE}/")
    assert path_of("http://h") == "/"


def _page_browser(url, body="", hidden=False):
    browser = MagicMock()
    browser.current_url = url
    browser.click_and_wait_for_url = AsyncMock()
    browser.click_button = AsyncMock()
    browser.inner_text = AsyncMock(return_value=body)
    browser.has_class = AsyncMock(return_value=hidden)
    return browser


@pytest.mark.asyncio
class TestLogoutAndSections:
    async def test_logout_lands_on_login(self, session):
        session._browser = _page_browser(f"{BASE}/login.html?logout", "You have been logged out.")
        await session.logout()

    async def test_framework_error_page_after_logout(self, session):
        session._browser = _page_browser(f"{BASE}/login.html?logout", "Whitelabel Error Page\nThis application has no explicit mapping")
        with pytest.raises(LogoutError, match="whitelabel"):
            await session.logout()

    async def test_logout_somewhere_else(self, session):
        session._browser = _page_browser(f"{BASE}/")
        with pytest.raises(LogoutError, match="Expected to land on /login"):
            await session.logout()

    async def test_hidden_section(self, session):
        session._browser = _page_browser(f"{BASE}/", hidden=True)
        with pytest.raises(SectionNotVisibleError) as excinfo:
            await session.navigate_to_section("Settlement Logs", settle=0)
        assert excinfo.value.section_id == "logs"
        session._browser.has_class.assert_awaited_once_with("#logs", "hidden")

    async def test_visible_section(self, session):
        session._browser = _page_browser(f"{BASE}/")
        await session.navigate_to_section("Customers", settle=0)
        session._browser.click_button.assert_awaited_once_with("Customers")
