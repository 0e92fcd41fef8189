"""Shared fixtures: an in-memory renderer standing in for the headless browser."""

import re
from typing import Awaitable, Callable, Dict, Iterable, Optional, Sequence, Tuple, Union

import pytest

from sitescribe.services.errors import PageFetchError, RendererInitializationError
from sitescribe.services.normalizer import normalize_url

LinkSpec = Union[str, Tuple[str, str]]

_TITLE_RE = re.compile(r"<title>(.*?)</title>", re.IGNORECASE | re.DOTALL)


def build_page(title: str, links: Sequence[LinkSpec] = (), body: str = "") -> str:
    """Return a small HTML page with *links* in a <nav> and a <main> region."""
    anchors = []
    for link in links:
        href, text = link if isinstance(link, tuple) else (link, link.rstrip("/").rsplit("/", 1)[-1])
        anchors.append(f'<a href="{href}">{text}</a>')
    return (
        "<html><head>"
        f"<title>{title}</title>"
        '<meta name="description" content="About ' + title + '">'
        "<script>var tracking = 1;</script>"
        "</head><body>"
        f"<nav>{''.join(anchors)}</nav>"
        f"<main><h1>{title}</h1><p>{body or 'Content of ' + title}</p></main>"
        "</body></html>"
    )


class FakeRenderer:
    """Serves HTML from a dict keyed by normalized URL.

    Unknown URLs and URLs in *fail_render* raise :class:`PageFetchError`, the
    same way the Playwright renderer reports navigation failures.
    """

    def __init__(
        self,
        pages: Dict[str, str],
        *,
        fail_render: Iterable[str] = (),
        fail_title: Iterable[str] = (),
        fail_launch: bool = False,
        screenshot_bytes: bytes = b"\x89PNG fake",
        on_render: Optional[Callable[[str], Optional[Awaitable[None]]]] = None,
        on_title: Optional[Callable[[str], Optional[Awaitable[None]]]] = None,
    ):
        self.pages = {normalize_url(url): html for url, html in pages.items()}
        self.fail_render = {normalize_url(url) for url in fail_render}
        self.fail_title = {normalize_url(url) for url in fail_title}
        self.fail_launch = fail_launch
        self.screenshot_bytes = screenshot_bytes
        self.on_render = on_render
        self.on_title = on_title
        self.rendered = []
        self.title_calls = []
        self.entered = 0
        self.closed = 0

    async def __aenter__(self) -> "FakeRenderer":
        self.entered += 1
        if self.fail_launch:
            raise RendererInitializationError("Failed to launch browser: executable not found")
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.closed += 1

    def _lookup(self, url: str, failing: set) -> str:
        key = normalize_url(url)
        if key in failing or key not in self.pages:
            raise PageFetchError(url, f"Navigation failed: net::ERR_NAME_NOT_RESOLVED at {url}")
        return self.pages[key]

    async def _hook(self, hook, url: str) -> None:
        if hook is not None:
            outcome = hook(url)
            if outcome is not None:
                await outcome

    async def render(self, url, *, wait_until="networkidle", wait_ms=0, timeout_ms=0) -> str:
        self.rendered.append(url)
        await self._hook(self.on_render, url)
        return self._lookup(url, self.fail_render)

    async def title(self, url, *, timeout_ms=0) -> str:
        self.title_calls.append(url)
        await self._hook(self.on_title, url)
        match = _TITLE_RE.search(self._lookup(url, self.fail_title))
        return match.group(1).strip() if match else ""

    async def screenshot(self, url, *, wait_ms=0, timeout_ms=0, full_page=False) -> bytes:
        self._lookup(url, self.fail_render)
        return self.screenshot_bytes


@pytest.fixture
def page_html():
    return build_page


@pytest.fixture
def make_renderer():
    return FakeRenderer


@pytest.fixture
def simple_site():
    """Root A links to B and C; B links to D."""
    return {
        "https://example.com": build_page(
            "Home", ["https://example.com/b", "https://example.com/c"]
        ),
        "https://example.com/b": build_page("Page B", ["https://example.com/d"]),
        "https://example.com/c": build_page("Page C"),
        "https://example.com/d": build_page("Page D"),
    }
