"""Runtime configuration for the settlement validation flows.

Values come from environment variables, falling back to ``.env.defaults`` and
then to built-in defaults that match a local backend on port 8080:

- BASE_URL, SCREENSHOT_DIR, REPORT_DIR
- ADMIN_USERNAME / ADMIN_PASSWORD, USER_USERNAME / USER_PASSWORD
- PLAYWRIGHT_HEADLESS, PLAYWRIGHT_BROWSER
- SCREENSHOT_FORMAT (png or webp), SCREENSHOT_QUALITY
- TIMEOUT_SCALE (multiplies every flow timeout)
"""
from __future__ import annotations

import os
from contextlib import contextmanager
from copy import deepcopy
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Dict, Iterator, List, Optional
from urllib.parse import urljoin, urlparse

from settlement_validation.env_defaults import env

DEFAULT_BASE_URL = "http://localhost:8080"
DEFAULT_REPORT_DIR = "docs/screenshots/role-validation"
BROWSER_TYPES = ("chromium", "firefox", "webkit")
SCREENSHOT_FORMATS = ("png", "webp")


@dataclass
class RoleProfile:
    """Credentials and expectations for one dashboard role."""

    name: str
    role: str
    username: str
    password: str
    auth_marker: str

    def masked(self) -> str:
        return f"{self.username}/{'*' * len(self.password)}"


@dataclass(frozen=True)
class Timeouts:
    """Per-operation deadlines in seconds."""

    page_load: float = 30.0
    navigation: float = 15.0
    row_creation: float = 15.0
    transaction_creation: float = 20.0
    settlement: float = 120.0
    lock_window: float = 70.0
    admin_lock_window: float = 60.0
    log_appearance: float = 30.0

    def scaled(self, factor: float) -> "Timeouts":
        if factor <= 0:
            raise ValueError(f"TIMEOUT_SCALE must be positive, got {factor}")
        return replace(self, **{f.name: getattr(self, f.name) * factor for f in fields(self)})


def _flag(value: Optional[str], default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class ValidationConfig:
    """Configuration for one harness run."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        screenshot_dir: Optional[str] = None,
        report_dir: Optional[str] = None,
        headless: Optional[bool] = None,
        browser_type: Optional[str] = None,
    ) -> None:
        self.base_url: str = (base_url or env("BASE_URL", DEFAULT_BASE_URL)).rstrip("/")
        parsed = urlparse(self.base_url)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError(f"BASE_URL must be an absolute http(s) URL, got '{self.base_url}'")

        self.screenshot_dir = Path(screenshot_dir or env("SCREENSHOT_DIR", os.getcwd()))
        self.report_dir = Path(report_dir or env("REPORT_DIR", DEFAULT_REPORT_DIR))

        self.headless: bool = headless if headless is not None else _flag(env("PLAYWRIGHT_HEADLESS"), True)
        self.browser_type: str = (browser_type or env("PLAYWRIGHT_BROWSER", "chromium")).lower()
        if self.browser_type not in BROWSER_TYPES:
            raise ValueError(f"PLAYWRIGHT_BROWSER must be one of {BROWSER_TYPES}, got '{self.browser_type}'")

        self.screenshot_format: str = env("SCREENSHOT_FORMAT", "png").lower()
        if self.screenshot_format not in SCREENSHOT_FORMATS:
            raise ValueError(f"SCREENSHOT_FORMAT must be one of {SCREENSHOT_FORMATS}")
        self.screenshot_quality: int = int(env("SCREENSHOT_QUALITY", "85"))

        self.timeouts = Timeouts().scaled(float(env("TIMEOUT_SCALE", "1")))

        admin = RoleProfile(
            name="admin",
            role="ADMIN",
            username=env("ADMIN_USERNAME", "admin"),
            password=env("ADMIN_PASSWORD", "admin123"),
            auth_marker="admin",
        )
        user = RoleProfile(
            name="user",
            role="USER",
            username=env("USER_USERNAME", "user"),
            password=env("USER_PASSWORD", "user123"),
            auth_marker="user",
        )
        self._profiles: Dict[str, RoleProfile] = {admin.name: admin, user.name: user}
        self._active: RoleProfile = admin

    # ---- profiles ----------------------------------------------------------------
    @property
    def admin(self) -> RoleProfile:
        return self._profiles["admin"]

    @property
    def user(self) -> RoleProfile:
        return self._profiles["user"]

    @property
    def active(self) -> RoleProfile:
        return self._active

    def profiles(self) -> List[RoleProfile]:
        return list(self._profiles.values())

    @contextmanager
    def use_profile(self, profile: RoleProfile) -> Iterator[RoleProfile]:
        """Temporarily switch the active profile to a copy of ``profile``."""
        previous = self._active
        self._active = deepcopy(profile)
        try:
            yield self._active
        finally:
            self._active = previous

    # ---- helpers -----------------------------------------------------------------
    def url(self, path: str) -> str:
        """Return an absolute URL for the provided path."""
        return urljoin(self.base_url + "/", path.lstrip("/"))

    def describe(self) -> str:
        return (
            f"[CONFIG] base_url={self.base_url} browser={self.browser_type} "
            f"headless={self.headless} admin={self.admin.masked()} user={self.user.masked()} "
            f"screenshots={self.screenshot_dir} reports={self.report_dir}"
        )
