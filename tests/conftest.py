import sys
import threading
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from werkzeug.serving import make_server

from settlement_validation import env_defaults
from settlement_validation.config import ValidationConfig
from tests.mock_settlement_app import create_mock_settlement_app, reset_mock_state

CONFIG_ENV_VARS = (
    "BASE_URL",
    "SCREENSHOT_DIR",
    "REPORT_DIR",
    "ADMIN_USERNAME",
    "ADMIN_PASSWORD",
    "USER_USERNAME",
    "USER_PASSWORD",
    "PLAYWRIGHT_HEADLESS",
    "PLAYWRIGHT_BROWSER",
    "SCREENSHOT_FORMAT",
    "SCREENSHOT_QUALITY",
    "TIMEOUT_SCALE",
)


def pytest_configure(config):
    config.addinivalue_line("markers", "browser: needs a Playwright browser and the mock backend")


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep the developer's environment and .env.defaults out of every test."""
    for key in CONFIG_ENV_VARS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv(env_defaults.DEFAULTS_FILE_ENV, str(tmp_path / "missing.env"))
    env_defaults.reset_cache()
    yield
    env_defaults.reset_cache()


class MockSettlementServer:
    """Runs the mock settlement app in a background thread."""

    def __init__(self, host="127.0.0.1"):
        self.host = host
        self.app = create_mock_settlement_app()
        self.server = None
        self.thread = None

    def start(self):
        self.server = make_server(self.host, 0, self.app, threaded=True)
        self.thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self.thread.start()

    def stop(self):
        if self.server:
            self.server.shutdown()
            self.thread.join(timeout=5)

    @property
    def url(self):
        return f"http://{self.host}:{self.server.server_port}"


@pytest.fixture(scope="session")
def playwright_available():
    """Skip browser tests when no Playwright browser can be launched."""
    try:
        from playwright.sync_api import sync_playwright

        with sync_playwright() as p:
            p.chromium.launch(headless=True).close()
    except Exception as exc:  # noqa: BLE001 - any launch failure means skip
        pytest.skip(f"Playwright chromium not available: {exc}")
    return True


@pytest.fixture()
def mock_backend():
    """Running mock backend; tests tune behaviour through reset_mock_state()."""
    reset_mock_state()
    server = MockSettlementServer()
    server.start()

    yield server

    server.stop()
    reset_mock_state()


@pytest.fixture()
def backend_config(mock_backend, tmp_path):
    return ValidationConfig(
        base_url=mock_backend.url,
        screenshot_dir=str(tmp_path / "screenshots"),
        report_dir=str(tmp_path / "reports"),
        headless=True,
    )


class FakeBrowser:
    """Stands in for settlement_validation.browser.Browser in extractor tests."""

    def __init__(self, tables=None):
        self.tables = tables or {}
        self.calls = []

    async def eval_all(self, selector, script):
        self.calls.append(selector)
        table_id = selector.split()[0].lstrip("#")
        return [list(row) for row in self.tables.get(table_id, [])]


@pytest.fixture()
def fake_browser():
    return FakeBrowser()
