"""Single-page Markdown generation."""

import base64
from datetime import datetime, timezone
from typing import List, Optional

from markdownify import ASTERISK, ATX, markdownify

from sitescribe.models.site import ExtractedContent, PageMetadata
from sitescribe.services.cleaner import clean_markdown
from sitescribe.services.normalizer import make_frontmatter

SOURCE_KIND = "url"


def _cell(value: str) -> str:
    """Escape a value for use inside a Markdown table cell."""
    return value.replace("|", "\\|").replace("\n", " ").strip()


def screenshot_data_url(png: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(png).decode("ascii")


def html_to_markdown(html: str, include_images: bool = True) -> str:
    """Transliterate *html* to Markdown.

    Headings use ATX style, ``<pre>`` blocks become fenced code, and emphasis
    uses ``*``.  Image ``src`` values are emitted untouched, so absolute URLs
    resolved by the extractor stay absolute.
    """
    options = {
        "heading_style": ATX,
        "strong_em_symbol": ASTERISK,
        "bullets": "-",
    }
    if not include_images:
        options["strip"] = ["img"]
    return clean_markdown(markdownify(html, **options))


def page_information(metadata: PageMetadata) -> List[str]:
    lines = [
        "## Page Information",
        "",
        "| Property | Value |",
        "| --- | --- |",
        f"| URL | [{_cell(metadata.url)}]({metadata.url}) |",
        f"| Domain | {_cell(metadata.domain)} |",
    ]
    for label, value in (
        ("Title", metadata.title),
        ("Description", metadata.description),
        ("Author", metadata.author),
        ("Keywords", metadata.keywords),
    ):
        if value:
            lines.append(f"| {label} | {_cell(value)} |")
    return lines


def convert_page(
    metadata: PageMetadata,
    content: ExtractedContent,
    screenshot: Optional[bytes] = None,
    *,
    include_links: bool = True,
    include_images: bool = True,
    title: Optional[str] = None,
    generated: Optional[datetime] = None,
) -> str:
    """Render one page as a standalone Markdown document.

    Sections, in order: frontmatter, title heading, page-information table,
    optional screenshot, converted main content, optional outbound links.
    """
    heading = title or metadata.title or f"Web Page: {metadata.url}"
    generated = generated or datetime.now(timezone.utc)

    markdown = [
        make_frontmatter(heading, SOURCE_KIND, url=metadata.url, generated=generated),
        "",
        f"# {heading}",
        "",
    ]
    markdown.extend(page_information(metadata))
    markdown.append("")

    if screenshot:
        markdown.extend(
            [
                "## Screenshot",
                "",
                f"![Screenshot of {metadata.title or metadata.url}]({screenshot_data_url(screenshot)})",
                "",
            ]
        )

    markdown.extend(["## Content", "", html_to_markdown(content.main_html, include_images)])

    if include_links and content.links:
        markdown.extend(["", "## Links", ""])
        for link in content.links:
            markdown.append(f"- [{link.text or link.url}]({link.url})")

    return "\n".join(markdown) + "\n"


def placeholder_page(url: str, error: object) -> str:
    """Markdown body used in place of a page that could not be converted."""
    return f"# Error Processing Page: {url}\n\nFailed to process this page: {error}\n"
