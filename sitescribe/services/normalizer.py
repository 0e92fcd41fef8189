"""Normalisation utilities: URL dedup keys, safe filenames, frontmatter."""

import re
from datetime import datetime, timezone
from typing import Iterable, Literal, Optional
from urllib.parse import urldefrag, urlparse, urlunparse

from sitescribe.services.errors import UnsupportedProtocolError

UrlNormalization = Literal["default", "ignore_query"]
"""How discovered URLs are keyed for deduplication.

``"default"``
    Strip the fragment and a single trailing slash.  Query strings and case
    are kept, so ``/list?page=2`` and ``/list?page=3`` are distinct pages.

``"ignore_query"``
    Additionally drop the query string.

The key is only used to recognise pages already seen.  Pages are always
fetched at the URL they were first linked with.
"""

ALLOWED_SCHEMES = {"http", "https"}

MAX_FILENAME_LENGTH = 50

# Runs of characters outside the safe filename alphabet
_UNSAFE_FILENAME_RE = re.compile(r"[^a-zA-Z0-9\-_]")
_UNDERSCORE_RUN_RE = re.compile(r"_+")


def validate_protocol(url: str) -> None:
    """Raise :class:`UnsupportedProtocolError` unless *url* is http or https."""
    scheme = urlparse(url).scheme
    if scheme not in ALLOWED_SCHEMES:
        raise UnsupportedProtocolError(f"Unsupported protocol: {scheme or '(none)'}:")


def normalize_url(url: str, policy: UrlNormalization = "default") -> str:
    """Return the dedup key for *url*.

    The fragment and one trailing slash are always removed, so
    ``https://x.com/a/#top`` and ``https://x.com/a`` map to the same key.
    Query strings and letter case are preserved unless *policy* is
    ``"ignore_query"``, which drops the query as well.
    """
    parsed = urlparse(url.strip())
    query = "" if policy == "ignore_query" else parsed.query
    normalized = urlunparse(parsed._replace(fragment="", query=query))
    if normalized.endswith("/"):
        normalized = normalized[:-1]
    return normalized


def strip_fragment(url: str) -> str:
    """Return *url* without its fragment; this is the address a page is fetched at."""
    return urldefrag(url.strip()).url


def same_domain(url: str, domain: str) -> bool:
    """Return True when *url* has exactly the hostname *domain*."""
    return urlparse(url).hostname == domain


def safe_filename(title: str, url: str, index: int) -> str:
    """Return a filesystem-safe base name (no extension) for a page.

    The page title is preferred; the URL path is used when there is no title.
    Anything outside ``[A-Za-z0-9_-]`` becomes ``_``, runs of ``_`` collapse,
    and the result is capped at :data:`MAX_FILENAME_LENGTH` characters.
    *index* is the zero-based page position, used for the fallback name.
    """
    base = title or urlparse(url).path
    name = _UNSAFE_FILENAME_RE.sub("_", base)
    name = _UNDERSCORE_RUN_RE.sub("_", name).strip("_")
    name = name[:MAX_FILENAME_LENGTH].rstrip("_")
    return name or f"page_{index + 1}"


def unique_filename(name: str, taken: Iterable[str]) -> str:
    """Return *name*, or *name* with a ``_N`` suffix, so it is not in *taken*.

    Comparison is case-insensitive so the result is safe on case-insensitive
    filesystems.  Suffixed names still respect :data:`MAX_FILENAME_LENGTH`.
    """
    used = {t.lower() for t in taken}
    if name.lower() not in used:
        return name
    counter = 2
    while True:
        suffix = f"_{counter}"
        candidate = name[: MAX_FILENAME_LENGTH - len(suffix)].rstrip("_") + suffix
        if candidate.lower() not in used:
            return candidate
        counter += 1


def make_frontmatter(
    title: str,
    source: str,
    url: Optional[str] = None,
    generated: Optional[datetime] = None,
    **extra: object,
) -> str:
    """Return a YAML frontmatter block for use in Markdown files."""
    generated = generated or datetime.now(timezone.utc)
    lines = [
        "---",
        f'title: "{_escape_yaml(title)}"',
        f'source: "{source}"',
    ]
    if url:
        lines.append(f'url: "{_escape_yaml(url)}"')
    for key, value in extra.items():
        if isinstance(value, (int, float)):
            lines.append(f"{key}: {value}")
        else:
            lines.append(f'{key}: "{_escape_yaml(str(value))}"')
    lines.append(f'generated: "{generated.isoformat()}"')
    lines.append("---")
    return "\n".join(lines)


def strip_frontmatter(markdown: str) -> str:
    """Remove a leading frontmatter block from *markdown*, if present."""
    if not markdown.startswith("---\n"):
        return markdown
    end = markdown.find("\n---", 4)
    if end == -1:
        return markdown
    return markdown[end + len("\n---"):].lstrip("\n")


def _escape_yaml(value: str) -> str:
    """Escape characters that would break inline double-quoted YAML strings."""
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", " ")
