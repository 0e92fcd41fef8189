"""Output assembly: one combined document, or one file per page plus an index.

Both policies can append a directed site graph (Mermaid ``graph TD``).  The
parent of every page is the *first* page in discovery order whose link set
contains it; a page that no other page links to hangs directly off the root,
so the graph never has orphans.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from sitescribe.models.convert_response import GeneratedFile, SeparateResult
from sitescribe.models.site import ConvertedPage, Sitemap
from sitescribe.services.errors import OutputWriteError
from sitescribe.services.normalizer import (
    make_frontmatter,
    safe_filename,
    strip_frontmatter,
    unique_filename,
)

logger = logging.getLogger(__name__)

INDEX_FILENAME = "index.md"
ROOT_NODE = "root"


# ---------------------------------------------------------------------------
# Site graph
# ---------------------------------------------------------------------------

def find_parent(sitemap: Sitemap, url: str) -> str:
    """Return the URL of the first page in discovery order that links to *url*.

    Links are matched by dedup key, so ``/docs/`` and ``/docs`` are the same
    page.  Falls back to the root URL when no page links to it.
    """
    target = sitemap.key(url)
    for candidate in sitemap.ordered_pages():
        if sitemap.key(candidate.url) == target:
            continue
        if any(sitemap.key(link.url) == target for link in candidate.links):
            return candidate.url
    return sitemap.root_url


def site_graph_edges(sitemap: Sitemap) -> List[Tuple[str, str]]:
    """Return ``(parent_url, child_url)`` edges for every non-root page."""
    root_key = sitemap.key(sitemap.root_url)
    return [
        (find_parent(sitemap, page.url), page.url)
        for page in sitemap.ordered_pages()
        if sitemap.key(page.url) != root_key
    ]


def _mermaid_label(text: str) -> str:
    return text.replace('"', "#quot;").replace("\n", " ")


def render_site_graph(sitemap: Sitemap) -> List[str]:
    root_key = sitemap.key(sitemap.root_url)
    node_ids: Dict[str, str] = {root_key: ROOT_NODE}
    lines = [
        "## Site Structure",
        "",
        "```mermaid",
        "graph TD",
        f'  {ROOT_NODE}["{_mermaid_label(sitemap.title or sitemap.root_url)}"]',
    ]
    for index, page in enumerate(sitemap.ordered_pages()):
        key = sitemap.key(page.url)
        if key == root_key:
            continue
        node_ids[key] = f"page{index}"
        lines.append(f'  page{index}["{_mermaid_label(page.title or page.url)}"]')

    for parent, child in site_graph_edges(sitemap):
        parent_id = node_ids.get(sitemap.key(parent), ROOT_NODE)
        lines.append(f"  {parent_id} --> {node_ids[sitemap.key(child)]}")

    lines.extend(["```", ""])
    return lines


# ---------------------------------------------------------------------------
# Shared sections
# ---------------------------------------------------------------------------

def _document_title(sitemap: Sitemap, title: Optional[str]) -> str:
    return title or sitemap.title or "Website Conversion"


def _site_information(sitemap: Sitemap, page_count: int, generated: Optional[datetime]) -> List[str]:
    lines = [
        "## Site Information",
        "",
        "| Property | Value |",
        "| --- | --- |",
        f"| Root URL | [{sitemap.root_url}]({sitemap.root_url}) |",
        f"| Domain | {sitemap.domain} |",
        f"| Pages Processed | {page_count} |",
    ]
    if generated:
        lines.append(f"| Generated | {generated.isoformat()} |")
    lines.append("")
    return lines


# ---------------------------------------------------------------------------
# Combined mode
# ---------------------------------------------------------------------------

def assemble_combined(
    sitemap: Sitemap,
    pages: List[ConvertedPage],
    *,
    title: Optional[str] = None,
    include_graph: bool = True,
    generated: Optional[datetime] = None,
) -> str:
    """Return a single Markdown document containing every converted page."""
    generated = generated or datetime.now(timezone.utc)
    doc_title = _document_title(sitemap, title)

    markdown = [
        make_frontmatter(
            doc_title,
            "website",
            url=sitemap.root_url,
            generated=generated,
            pages=len(pages),
        ),
        "",
        f"# {doc_title}",
        "",
    ]
    markdown.extend(_site_information(sitemap, len(pages), None))

    markdown.extend(["## Table of Contents", ""])
    for number, page in enumerate(pages, start=1):
        markdown.append(f"{number}. [{page.title or page.url}](#page-{number})")
    markdown.append("")

    for number, page in enumerate(pages, start=1):
        markdown.extend(
            [
                f'<a id="page-{number}"></a>',
                f"## Page {number}: {page.title or page.url}",
                "",
                f"URL: [{page.url}]({page.url})",
                "",
                "---",
                "",
                strip_frontmatter(page.markdown).rstrip("\n"),
                "",
                "---",
                "",
            ]
        )

    if include_graph:
        markdown.extend(render_site_graph(sitemap))

    return "\n".join(markdown)


# ---------------------------------------------------------------------------
# Separate mode
# ---------------------------------------------------------------------------

def _write(path: Path, text: str) -> None:
    try:
        path.write_text(text, encoding="utf-8")
    except OSError as exc:
        raise OutputWriteError(f"Failed to write {path}: {exc}") from exc


def _index_markdown(
    sitemap: Sitemap,
    files: List[GeneratedFile],
    title: Optional[str],
    include_graph: bool,
    generated: datetime,
) -> str:
    doc_title = _document_title(sitemap, title)
    markdown = [
        make_frontmatter(doc_title, "website", url=sitemap.root_url, generated=generated, pages=len(files)),
        "",
        f"# {doc_title}",
        "",
    ]
    markdown.extend(_site_information(sitemap, len(files), generated))

    markdown.extend(["## Generated Files", ""])
    for number, file in enumerate(files, start=1):
        markdown.extend(
            [
                f"{number}. [{file.title or file.url}](./{file.filename})",
                f"   - URL: {file.url}",
                f"   - File: {file.filename}",
                "",
            ]
        )

    if include_graph:
        markdown.extend(render_site_graph(sitemap))

    return "\n".join(markdown)


def assemble_separate(
    sitemap: Sitemap,
    pages: List[ConvertedPage],
    output_dir: Path,
    *,
    title: Optional[str] = None,
    include_graph: bool = True,
    generated: Optional[datetime] = None,
) -> SeparateResult:
    """Write one Markdown file per page plus ``index.md``.

    Files go to ``<output_dir>/<domain>_<timestamp>/``.  A write failure stops
    the sequence with :class:`OutputWriteError`; files written before it are
    left in place.
    """
    generated = generated or datetime.now(timezone.utc)
    timestamp = generated.strftime("%Y-%m-%dT%H-%M-%S-%fZ")
    base_name = f"{sitemap.domain}_{timestamp}"
    website_dir = Path(output_dir) / base_name
    try:
        website_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise OutputWriteError(f"Failed to create {website_dir}: {exc}") from exc

    logger.info("Assembler: writing %d page file(s) to %s", len(pages), website_dir)

    taken = [Path(INDEX_FILENAME).stem]
    generated_files: List[GeneratedFile] = []

    for index, page in enumerate(pages):
        stem = unique_filename(safe_filename(page.title, page.url, index), taken)
        taken.append(stem)
        filename = f"{stem}.md"
        filepath = website_dir / filename

        body = page.markdown.rstrip("\n") + f"\n\n---\n\n[Back to index](./{INDEX_FILENAME})\n"
        _write(filepath, body)

        generated_files.append(
            GeneratedFile(title=page.title, url=page.url, filename=filename, filepath=str(filepath))
        )
        logger.debug("Assembler: generated %s", filename)

    index_path = website_dir / INDEX_FILENAME
    _write(index_path, _index_markdown(sitemap, generated_files, title, include_graph, generated))

    return SeparateResult(
        output_directory=str(website_dir),
        index_file=str(index_path),
        files=generated_files,
        total_files=len(generated_files) + 1,
        summary=f"Generated {len(generated_files)} page files + 1 index file in {base_name}/",
    )
