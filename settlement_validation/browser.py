"""Thin wrapper around a Playwright page for ergonomic, typed failures."""
from __future__ import annotations

import io
from pathlib import Path
from typing import Any, Callable, Dict, List

from PIL import Image
from playwright.async_api import Page, TimeoutError as PlaywrightTimeout

from settlement_validation.errors import ToolError

COMPUTED_DISPLAY_SCRIPT = "(el) => getComputedStyle(el).display !== 'none'"
HAS_CLASS_SCRIPT = "(el, cls) => el.classList.contains(cls)"


class Browser:
    """Convenience wrapper over one Playwright page."""

    def __init__(self, page: Page) -> None:
        self._page = page

    @property
    def page(self) -> Page:
        return self._page

    @property
    def current_url(self) -> str:
        return self._page.url

    async def goto(self, url: str, wait_until: str = "domcontentloaded", timeout: int = 30000) -> Dict[str, Any]:
        """Navigate to ``url`` (absolute, or relative to the context base URL)."""
        try:
            response = await self._page.goto(url, wait_until=wait_until, timeout=timeout)
            return {"url": self._page.url, "status": response.status if response else None}
        except PlaywrightTimeout as exc:
            raise ToolError(name="goto", payload={"url": url, "wait_until": wait_until}, message=str(exc))

    async def title(self) -> str:
        return await self._page.title()

    async def fill(self, selector: str, value: str) -> Dict[str, Any]:
        try:
            await self._page.fill(selector, value)
            return {"selector": selector, "value": value}
        except Exception as exc:
            raise ToolError(name="fill", payload={"selector": selector, "value": value}, message=str(exc))

    async def click(self, selector: str) -> Dict[str, Any]:
        try:
            await self._page.click(selector)
            return {"selector": selector, "url": self._page.url}
        except Exception as exc:
            raise ToolError(name="click", payload={"selector": selector}, message=str(exc))

    async def click_button(self, name: str) -> None:
        """Click a button by its exact accessible name."""
        try:
            await self._page.get_by_role("button", name=name, exact=True).click()
        except Exception as exc:
            raise ToolError(name="click_button", payload={"name": name}, message=str(exc))

    async def click_text(self, container: str, text: str) -> None:
        """Click the button inside ``container`` whose text contains ``text``."""
        try:
            await self._page.locator(f"{container} button", has_text=text).click()
        except Exception as exc:
            raise ToolError(name="click_text", payload={"container": container, "text": text}, message=str(exc))

    async def inner_text(self, selector: str) -> str:
        try:
            return await self._page.locator(selector).inner_text()
        except Exception as exc:
            raise ToolError(name="inner_text", payload={"selector": selector}, message=str(exc))

    async def has_class(self, selector: str, class_name: str) -> bool:
        try:
            return bool(await self._page.eval_on_selector(selector, HAS_CLASS_SCRIPT, class_name))
        except Exception as exc:
            raise ToolError(name="has_class", payload={"selector": selector, "class": class_name}, message=str(exc))

    async def is_displayed(self, selector: str) -> bool:
        """Whether the element's computed display is anything but ``none``."""
        try:
            return bool(await self._page.eval_on_selector(selector, COMPUTED_DISPLAY_SCRIPT))
        except Exception as exc:
            raise ToolError(name="is_displayed", payload={"selector": selector}, message=str(exc))

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        """Execute JavaScript in the page context."""
        try:
            return await self._page.evaluate(script, arg)
        except Exception as exc:
            raise ToolError(name="evaluate", payload={"script": script}, message=str(exc))

    async def eval_all(self, selector: str, script: str) -> List[Any]:
        try:
            return await self._page.eval_on_selector_all(selector, script)
        except Exception as exc:
            raise ToolError(name="eval_all", payload={"selector": selector}, message=str(exc))

    async def wait_for_selector(self, selector: str, timeout: float = 10.0) -> None:
        try:
            await self._page.wait_for_selector(selector, timeout=timeout * 1000)
        except PlaywrightTimeout as exc:
            raise ToolError(name="wait_for_selector", payload={"selector": selector, "timeout": timeout}, message=str(exc))

    async def wait_for_function(self, script: str, timeout: float = 10.0) -> None:
        try:
            await self._page.wait_for_function(script, timeout=timeout * 1000)
        except PlaywrightTimeout as exc:
            raise ToolError(name="wait_for_function", payload={"script": script}, message=str(exc))

    async def click_and_wait_for_url(
        self, selector: str, matcher: Callable[[str], bool], timeout: float = 15.0
    ) -> None:
        """Click ``selector`` and wait until the page URL satisfies ``matcher``."""
        try:
            await self._page.click(selector)
            await self._page.wait_for_url(matcher, timeout=timeout * 1000)
        except Exception as exc:
            raise ToolError(
                name="click_and_wait_for_url",
                payload={"selector": selector, "url": self._page.url},
                message=str(exc),
            )

    async def screenshot(self, path: Path, image_format: str = "png", quality: int = 85) -> str:
        """Full-page screenshot. WebP output is converted from PNG with Pillow."""
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            if image_format == "webp":
                png = await self._page.screenshot(type="png", full_page=True)
                target = path.with_suffix(".webp")
                Image.open(io.BytesIO(png)).save(target, "WEBP", quality=quality)
                return str(target)
            await self._page.screenshot(path=str(path), type="png", full_page=True)
            return str(path)
        except Exception as exc:
            raise ToolError(name="screenshot", payload={"path": str(path)}, message=str(exc))
