"""Content extraction from rendered HTML: main region, images, links, metadata."""

import posixpath
from typing import List, Optional
from urllib.parse import unquote, urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from sitescribe.models.site import (
    ExtractedContent,
    ImageRef,
    Link,
    PageMetadata,
)
from sitescribe.services.normalizer import (
    UrlNormalization,
    normalize_url,
    same_domain,
    strip_fragment,
)
from sitescribe.services.sanitizer import sanitize

# Main-content containers, most specific first
MAIN_CONTENT_SELECTORS = (
    "main",
    "article",
    "#content",
    ".content",
    ".main",
    ".article",
    ".post",
    ".post-content",
)

_SKIP_HREF_PREFIXES = ("#", "javascript:")


def _normalize_url(base_url: str, href: str) -> str:
    """Return an absolute URL, resolving *href* against *base_url*."""
    return urljoin(base_url, href)


def _document_base(soup: BeautifulSoup, page_url: str) -> str:
    """Return the URL relative references resolve against, honouring ``<base href>``."""
    base = soup.find("base", href=True)
    if base and str(base["href"]).strip():
        return urljoin(page_url, str(base["href"]).strip())
    return page_url


def _find_main_content(soup: BeautifulSoup) -> Tag:
    """Return the first non-empty main-content element.

    Falls back to ``<body>`` and finally to the whole document.
    """
    for selector in MAIN_CONTENT_SELECTORS:
        node = soup.select_one(selector)
        if node and (node.get_text(strip=True) or node.find("img")):
            return node
    return soup.find("body") or soup


def _suggest_filename(image_url: str) -> str:
    path = unquote(urlparse(image_url).path)
    name = posixpath.basename(path.rstrip("/"))
    return name or "image"


def _extract_images(soup: BeautifulSoup, base_url: str) -> List[ImageRef]:
    """Collect every image and rewrite its ``src`` to the absolute URL in place."""
    images: List[ImageRef] = []
    for img in soup.find_all("img"):
        src = str(img.get("src") or img.get("data-src") or "").strip()
        if not src:
            continue
        abs_url = _normalize_url(base_url, src)
        img["src"] = abs_url
        images.append(
            ImageRef(
                source_url=abs_url,
                alt_text=str(img.get("alt") or ""),
                suggested_filename=_suggest_filename(abs_url),
            )
        )
    return images


def _extract_links(soup: BeautifulSoup, base_url: str) -> List[Link]:
    links: List[Link] = []
    for a in soup.find_all("a", href=True):
        href = str(a["href"]).strip()
        if not href or href.lower().startswith(_SKIP_HREF_PREFIXES):
            continue
        abs_url = _normalize_url(base_url, href)
        text = a.get_text(" ", strip=True)
        links.append(Link(url=abs_url, text=text or abs_url))
    return links


def extract(html: str, page_url: str) -> ExtractedContent:
    """Extract the main content, images, and outbound links from *html*.

    Image ``src`` attributes inside ``main_html`` are absolute, so the
    generated Markdown keeps referencing the original images.
    """
    soup = sanitize(html)
    base_url = _document_base(soup, page_url)
    images = _extract_images(soup, base_url)
    links = _extract_links(soup, base_url)
    main_node = _find_main_content(soup)
    return ExtractedContent(main_html=str(main_node), images=images, links=links)


def extract_links(html: str, page_url: str) -> List[Link]:
    """Return every navigable link in *html*, in document order."""
    soup = sanitize(html)
    return _extract_links(soup, _document_base(soup, page_url))


def same_domain_links(
    links: List[Link],
    domain: str,
    normalization: UrlNormalization = "default",
) -> List[Link]:
    """Keep links on *domain*, one per dedup key, first occurrence wins.

    The kept link carries its own URL minus the fragment, not the key, so a
    page is later fetched at an address the site actually links to.
    """
    seen: set = set()
    result: List[Link] = []
    for link in links:
        if not same_domain(link.url, domain):
            continue
        key = normalize_url(link.url, normalization)
        if key in seen:
            continue
        seen.add(key)
        result.append(Link(url=strip_fragment(link.url), text=link.text))
    return result


def _meta_content(soup: BeautifulSoup, name: str) -> Optional[str]:
    tag = soup.find("meta", attrs={"name": name}) or soup.find(
        "meta", attrs={"property": name}
    )
    if tag and tag.get("content"):
        return str(tag["content"]).strip() or None
    return None


def _extract_title(soup: BeautifulSoup) -> str:
    title_tag = soup.find("title")
    if title_tag and title_tag.get_text(strip=True):
        return title_tag.get_text(strip=True)
    h1 = soup.find("h1")
    if h1:
        return h1.get_text(strip=True)
    return ""


def extract_metadata(html: str, url: str) -> PageMetadata:
    """Read document-level metadata (title, description, Open Graph, …)."""
    soup = BeautifulSoup(html, "lxml")
    parsed = urlparse(url)

    favicon = None
    icon = soup.find("link", rel=lambda rel: rel and "icon" in rel)
    if icon and icon.get("href"):
        favicon = _normalize_url(_document_base(soup, url), str(icon["href"]))

    return PageMetadata(
        url=url,
        domain=parsed.hostname or "",
        path=parsed.path or "/",
        title=_extract_title(soup),
        description=_meta_content(soup, "description") or _meta_content(soup, "og:description"),
        keywords=_meta_content(soup, "keywords"),
        author=_meta_content(soup, "author"),
        og_title=_meta_content(soup, "og:title"),
        og_image=_meta_content(soup, "og:image"),
        og_type=_meta_content(soup, "og:type"),
        og_url=_meta_content(soup, "og:url"),
        favicon=favicon,
    )
