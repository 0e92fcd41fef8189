"""Playwright-based page renderer shared by every step of a conversion job."""

import asyncio
import ipaddress
import logging
import socket
from contextlib import asynccontextmanager
from typing import AsyncIterator, Literal, Optional, Protocol
from urllib.parse import urlparse

from playwright.async_api import Browser, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from sitescribe import config
from sitescribe.services.errors import PageFetchError, RendererInitializationError
from sitescribe.services.normalizer import validate_protocol

logger = logging.getLogger(__name__)

WaitUntil = Literal["load", "domcontentloaded", "networkidle"]


class PageRenderer(Protocol):
    """What the pipeline needs from a JavaScript-executing browser."""

    async def render(
        self,
        url: str,
        *,
        wait_until: WaitUntil = "networkidle",
        wait_ms: int = 0,
        timeout_ms: int = config.NAVIGATION_TIMEOUT_MS,
    ) -> str:
        ...

    async def title(self, url: str, *, timeout_ms: int = config.TITLE_TIMEOUT_MS) -> str:
        ...

    async def screenshot(
        self,
        url: str,
        *,
        wait_ms: int = 0,
        timeout_ms: int = config.NAVIGATION_TIMEOUT_MS,
        full_page: bool = False,
    ) -> bytes:
        ...


async def _is_private_address(hostname: str) -> bool:
    """Return True if *hostname* resolves to a private/loopback/link-local address."""
    try:
        infos = await asyncio.get_running_loop().getaddrinfo(hostname, None)
    except socket.gaierror:
        return False

    for info in infos:
        raw_ip = info[4][0].split("%")[0]
        try:
            addr = ipaddress.ip_address(raw_ip)
        except ValueError:
            continue
        if addr.is_private or addr.is_loopback or addr.is_link_local or addr.is_reserved:
            return True
    return False


async def _validate_url(url: str) -> None:
    """Raise ValueError if *url* fails scheme / SSRF validation."""
    validate_protocol(url)
    hostname = urlparse(url).hostname
    if not hostname:
        raise ValueError("URL must have a valid hostname.")
    if not config.ALLOW_PRIVATE_ADDRESSES and await _is_private_address(hostname):
        raise ValueError("Requests to private/internal addresses are not allowed.")


class PlaywrightRenderer:
    """Headless Chromium owned by a single conversion job.

    Use as an async context manager: the browser is launched on entry and
    closed exactly once on exit, whatever the exit path::

        async with PlaywrightRenderer() as renderer:
            html = await renderer.render("https://example.com")
    """

    def __init__(
        self,
        *,
        headless: bool = config.HEADLESS,
        viewport_width: int = config.VIEWPORT_WIDTH,
        viewport_height: int = config.VIEWPORT_HEIGHT,
    ):
        self._headless = headless
        self._viewport = {"width": viewport_width, "height": viewport_height}
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._closed = False

    async def __aenter__(self) -> "PlaywrightRenderer":
        await self.launch()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def launch(self) -> None:
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self._headless,
                args=[
                    # --no-sandbox is required when running as root inside a container.
                    "--no-sandbox",
                    "--disable-dev-shm-usage",
                    "--disable-gpu",
                ],
            )
        except Exception as exc:
            logger.error("Renderer: failed to launch browser – %s", exc)
            await self.close()
            raise RendererInitializationError(f"Failed to launch browser: {exc}") from exc
        logger.debug("Renderer: browser launched")

    async def close(self) -> None:
        """Release the browser and the Playwright driver.  Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        try:
            if self._browser is not None:
                await self._browser.close()
        except PlaywrightError as exc:
            logger.warning("Renderer: error while closing browser – %s", exc)
        finally:
            self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
        logger.debug("Renderer: browser closed")

    @asynccontextmanager
    async def _page(self) -> AsyncIterator[Page]:
        if self._browser is None:
            raise RuntimeError("Renderer is not running.")
        context = await self._browser.new_context(viewport=self._viewport)
        try:
            yield await context.new_page()
        finally:
            await context.close()

    async def _goto(self, page: Page, url: str, wait_until: WaitUntil, timeout_ms: int) -> None:
        try:
            await page.goto(url, wait_until=wait_until, timeout=timeout_ms)
        except PlaywrightTimeoutError as exc:
            raise PageFetchError(url, f"Navigation timed out after {timeout_ms} ms") from exc
        except PlaywrightError as exc:
            raise PageFetchError(url, f"Navigation failed: {exc.message}") from exc

    async def render(
        self,
        url: str,
        *,
        wait_until: WaitUntil = "networkidle",
        wait_ms: int = 0,
        timeout_ms: int = config.NAVIGATION_TIMEOUT_MS,
    ) -> str:
        """Load *url*, let scripts run, and return the resulting HTML.

        Raises:
            ValueError: if the URL fails scheme / SSRF validation.
            PageFetchError: on navigation errors, timeouts, or oversized pages.
        """
        await _validate_url(url)
        async with self._page() as page:
            await self._goto(page, url, wait_until, timeout_ms)
            if wait_ms > 0:
                await page.wait_for_timeout(wait_ms)
            html = await page.content()

        if len(html.encode()) > config.MAX_CONTENT_SIZE:
            raise PageFetchError(url, "Rendered HTML exceeds the maximum allowed size.")
        return html

    async def title(self, url: str, *, timeout_ms: int = config.TITLE_TIMEOUT_MS) -> str:
        """Return ``document.title`` after a lightweight DOM-ready navigation."""
        await _validate_url(url)
        async with self._page() as page:
            await self._goto(page, url, "domcontentloaded", timeout_ms)
            return await page.title()

    async def screenshot(
        self,
        url: str,
        *,
        wait_ms: int = 0,
        timeout_ms: int = config.NAVIGATION_TIMEOUT_MS,
        full_page: bool = False,
    ) -> bytes:
        """Return a PNG screenshot of *url*."""
        await _validate_url(url)
        async with self._page() as page:
            await self._goto(page, url, "networkidle", timeout_ms)
            if wait_ms > 0:
                await page.wait_for_timeout(wait_ms)
            return await page.screenshot(full_page=full_page, type="png")
