"""Sitemap discovery: bounded BFS over a site's same-domain links."""

import logging
from collections import deque
from typing import Callable, Deque, List, Optional, Tuple
from urllib.parse import urlparse

from sitescribe import config
from sitescribe.models.site import Link, PageRecord, Sitemap
from sitescribe.services.errors import PageLinkDiscoveryError, RootUnreachableError
from sitescribe.services.extractor import extract_links, extract_metadata, same_domain_links
from sitescribe.services.normalizer import UrlNormalization, strip_fragment
from sitescribe.services.renderer import PageRenderer

logger = logging.getLogger(__name__)


async def _page_links(
    renderer: PageRenderer,
    url: str,
    domain: str,
    normalization: UrlNormalization,
    timeout_ms: int,
) -> List[Link]:
    """Return the same-domain links of *url*, or ``[]`` when it cannot be loaded."""
    try:
        html = await renderer.render(url, wait_until="domcontentloaded", timeout_ms=timeout_ms)
    except Exception as exc:
        logger.warning("Discovery: failed to get links from %s – %s", url, exc)
        return []
    return same_domain_links(extract_links(html, url), domain, normalization)


async def _probe_title(renderer: PageRenderer, link: Link, timeout_ms: int) -> str:
    """Fetch the page title behind *link*.

    Raises:
        PageLinkDiscoveryError: if the page cannot be loaded.
    """
    try:
        return await renderer.title(link.url, timeout_ms=timeout_ms)
    except Exception as exc:
        raise PageLinkDiscoveryError(f"Failed to get title for {link.url}: {exc}") from exc


async def discover(
    renderer: PageRenderer,
    root_url: str,
    max_depth: int = config.DEFAULT_MAX_DEPTH,
    max_pages: int = config.DEFAULT_MAX_PAGES,
    *,
    normalization: UrlNormalization = "default",
    wait_ms: int = 0,
    navigation_timeout_ms: int = config.NAVIGATION_TIMEOUT_MS,
    title_timeout_ms: int = config.TITLE_TIMEOUT_MS,
    should_stop: Optional[Callable[[], bool]] = None,
) -> Sitemap:
    """Discover up to *max_pages* pages reachable from *root_url*.

    Pages are visited breadth-first and links are enqueued in document order,
    so the resulting ``Sitemap.pages`` lists every depth-*d* page before any
    depth-*d+1* page.  A page at ``depth >= max_depth`` is recorded but not
    expanded.  Discovery stops as soon as the page budget is used up.

    Pages are keyed by their normalized URL but rendered, and their relative
    links resolved, at the URL they were first linked with.

    *should_stop* is polled before each page is expanded and before each
    title probe; once it returns True the pages found so far are returned.

    Raises:
        RootUnreachableError: if the root page itself cannot be rendered.
    """
    stopped = should_stop or (lambda: False)
    root_url = strip_fragment(root_url)
    try:
        root_html = await renderer.render(
            root_url, wait_ms=wait_ms, timeout_ms=navigation_timeout_ms
        )
    except Exception as exc:
        raise RootUnreachableError(root_url, f"Root URL is unreachable: {exc}") from exc

    domain = urlparse(root_url).hostname or ""
    metadata = extract_metadata(root_html, root_url)
    root_title = metadata.title or root_url

    sitemap = Sitemap(root_url=root_url, domain=domain, title=root_title, normalization=normalization)
    root_key = sitemap.key(root_url)
    sitemap.pages[root_key] = PageRecord(url=root_url, title=root_title, depth=0)

    queue: Deque[Tuple[str, int]] = deque([(root_key, 0)])

    while queue and len(sitemap.pages) < max_pages:
        if stopped():
            logger.info("Discovery: stopped early with %d page(s)", len(sitemap.pages))
            break

        key, depth = queue.popleft()
        record = sitemap.pages[key]

        if depth >= max_depth:
            logger.debug("Discovery: not expanding %s (depth %d)", record.url, depth)
            continue

        if key == root_key:
            links = same_domain_links(extract_links(root_html, root_url), domain, normalization)
        else:
            links = await _page_links(renderer, record.url, domain, normalization, navigation_timeout_ms)

        sitemap.pages[key] = record.model_copy(update={"links": links})

        for link in links:
            if len(sitemap.pages) >= max_pages or stopped():
                break
            link_key = sitemap.key(link.url)
            if link_key in sitemap.pages:
                continue
            try:
                title = await _probe_title(renderer, link, title_timeout_ms)
            except PageLinkDiscoveryError as exc:
                logger.warning("Discovery: %s", exc)
                title = ""
            sitemap.pages[link_key] = PageRecord(url=link.url, title=title or link.text, depth=depth + 1)
            queue.append((link_key, depth + 1))

    logger.info(
        "Discovery: found %d page(s) under %s (max_depth=%d, max_pages=%d)",
        len(sitemap.pages),
        root_url,
        max_depth,
        max_pages,
    )
    return sitemap
