"""Tests for sitescribe.services.assembler."""

import re
from datetime import datetime, timezone

import pytest

from sitescribe.models.site import ConvertedPage, Link, PageRecord, Sitemap
from sitescribe.services.assembler import (
    INDEX_FILENAME,
    assemble_combined,
    assemble_separate,
    find_parent,
    render_site_graph,
    site_graph_edges,
)
from sitescribe.services.errors import OutputWriteError

ROOT = "https://example.com"
_GENERATED = datetime(2024, 3, 4, 5, 6, 7, tzinfo=timezone.utc)


def _links(*paths):
    return [Link(url=f"{ROOT}{p}", text=p) for p in paths]


def _sitemap(records) -> Sitemap:
    sitemap = Sitemap(root_url=ROOT, domain="example.com", title="Example Site")
    for record in records:
        sitemap.pages[record.url] = record
    return sitemap


@pytest.fixture
def sitemap():
    return _sitemap(
        [
            PageRecord(url=ROOT, title="Home", depth=0, links=_links("/b", "/c")),
            PageRecord(url=f"{ROOT}/b", title="Page B", depth=1, links=_links("/d", "/c")),
            PageRecord(url=f"{ROOT}/c", title="Page C", depth=1),
            PageRecord(url=f"{ROOT}/d", title="Page D", depth=2),
        ]
    )


@pytest.fixture
def pages(sitemap):
    return [
        ConvertedPage(
            url=record.url,
            title=record.title,
            markdown=f'---\ntitle: "{record.title}"\nsource: "url"\n---\n\n# {record.title}\n\nBody of {record.title}\n',
        )
        for record in sitemap.ordered_pages()
    ]


class TestSiteGraph:
    def test_parent_is_first_linking_page_in_discovery_order(self, sitemap):
        # /c is linked from both the root and /b; the root comes first
        assert find_parent(sitemap, f"{ROOT}/c") == ROOT
        assert find_parent(sitemap, f"{ROOT}/d") == f"{ROOT}/b"

    def test_unlinked_page_attaches_to_root(self):
        sitemap = _sitemap(
            [
                PageRecord(url=ROOT, title="Home", depth=0, links=_links("/a")),
                PageRecord(url=f"{ROOT}/a", title="A", depth=1),
                PageRecord(url=f"{ROOT}/b", title="B", depth=1),
            ]
        )
        assert (ROOT, f"{ROOT}/b") in site_graph_edges(sitemap)
        assert "  root --> page2" in render_site_graph(sitemap)

    def test_self_link_is_not_a_parent(self):
        sitemap = _sitemap(
            [
                PageRecord(url=ROOT, title="Home", depth=0),
                PageRecord(url=f"{ROOT}/a", title="A", depth=1, links=_links("/a")),
            ]
        )
        assert find_parent(sitemap, f"{ROOT}/a") == ROOT

    def test_edges_cover_every_non_root_page(self, sitemap):
        edges = site_graph_edges(sitemap)
        assert [child for _, child in edges] == [f"{ROOT}/b", f"{ROOT}/c", f"{ROOT}/d"]

    def test_mermaid_output(self, sitemap):
        lines = render_site_graph(sitemap)
        assert "```mermaid" in lines
        assert "graph TD" in lines
        assert '  root["Example Site"]' in lines
        assert '  page1["Page B"]' in lines
        assert "  root --> page1" in lines
        assert "  root --> page2" in lines
        assert "  page1 --> page3" in lines

    def test_links_match_pages_by_dedup_key(self):
        sitemap = Sitemap(
            root_url=f"{ROOT}/", domain="example.com", title="Home", normalization="ignore_query"
        )
        for record in [
            PageRecord(url=f"{ROOT}/", title="Home", depth=0, links=[Link(url=f"{ROOT}/docs", text="Docs")]),
            PageRecord(url=f"{ROOT}/docs/", title="Docs", depth=1, links=[Link(url=f"{ROOT}/item?id=2", text="Item")]),
            PageRecord(url=f"{ROOT}/item?id=1", title="Item", depth=2),
        ]:
            sitemap.pages[sitemap.key(record.url)] = record

        assert site_graph_edges(sitemap) == [
            (f"{ROOT}/", f"{ROOT}/docs/"),
            (f"{ROOT}/docs/", f"{ROOT}/item?id=1"),
        ]
        lines = render_site_graph(sitemap)
        assert "  root --> page1" in lines
        assert "  page1 --> page2" in lines

    def test_quotes_in_labels_are_escaped(self):
        sitemap = _sitemap([PageRecord(url=ROOT, title="Home", depth=0)])
        sitemap.title = 'Say "hi"'
        assert '  root["Say #quot;hi#quot;"]' in render_site_graph(sitemap)


class TestCombined:
    def test_toc_and_sections_match_pages_in_order(self, sitemap, pages):
        md = assemble_combined(sitemap, pages, generated=_GENERATED)
        toc = re.findall(r"^(\d+)\. \[(.+)\]\(#page-(\d+)\)$", md, re.MULTILINE)
        sections = re.findall(r"^## Page (\d+): (.+)$", md, re.MULTILINE)
        titles = [p.title for p in pages]
        assert [t[1] for t in toc] == titles
        assert [s[1] for s in sections] == titles
        assert [t[0] for t in toc] == [t[2] for t in toc] == ["1", "2", "3", "4"]

    def test_each_section_has_anchor_and_body(self, sitemap, pages):
        md = assemble_combined(sitemap, pages)
        for number, page in enumerate(pages, start=1):
            assert f'<a id="page-{number}"></a>' in md
            assert f"URL: [{page.url}]({page.url})" in md
            assert f"Body of {page.title}" in md

    def test_per_page_frontmatter_is_stripped(self, sitemap, pages):
        md = assemble_combined(sitemap, pages)
        assert md.count('source: "url"') == 0
        assert md.count('source: "website"') == 1

    def test_site_information(self, sitemap, pages):
        md = assemble_combined(sitemap, pages[:2])
        assert md.splitlines()[md.splitlines().index("---", 1) + 2] == "# Example Site"
        assert f"| Root URL | [{ROOT}]({ROOT}) |" in md
        assert "| Domain | example.com |" in md
        assert "| Pages Processed | 2 |" in md

    def test_title_option(self, sitemap, pages):
        assert "# My Docs" in assemble_combined(sitemap, pages, title="My Docs")

    def test_graph_is_optional(self, sitemap, pages):
        assert "## Site Structure" in assemble_combined(sitemap, pages)
        assert "## Site Structure" not in assemble_combined(sitemap, pages, include_graph=False)

    def test_no_pages(self, sitemap):
        md = assemble_combined(sitemap, [], include_graph=False)
        assert "| Pages Processed | 0 |" in md
        assert "## Page 1:" not in md


class TestSeparate:
    def test_writes_one_file_per_page_plus_index(self, sitemap, pages, tmp_path):
        result = assemble_separate(sitemap, pages, tmp_path, generated=_GENERATED)
        out_dir = tmp_path / "example.com_2024-03-04T05-06-07-000000Z"
        assert result.output_directory == str(out_dir)
        assert result.index_file == str(out_dir / INDEX_FILENAME)
        assert result.total_files == len(pages) + 1
        assert sorted(p.name for p in out_dir.iterdir()) == sorted(
            [f.filename for f in result.files] + [INDEX_FILENAME]
        )
        assert result.summary == "Generated 4 page files + 1 index file in example.com_2024-03-04T05-06-07-000000Z/"

    def test_page_files_keep_content_and_link_back(self, sitemap, pages, tmp_path):
        result = assemble_separate(sitemap, pages, tmp_path)
        text = (tmp_path / result.output_directory / result.files[1].filename).read_text(encoding="utf-8")
        assert "Body of Page B" in text
        assert text.rstrip().endswith(f"[Back to index](./{INDEX_FILENAME})")

    def test_duplicate_titles_get_unique_filenames(self, sitemap, tmp_path):
        pages = [
            ConvertedPage(url=f"{ROOT}/{i}", title="Same Title", markdown="x") for i in range(3)
        ] + [ConvertedPage(url=f"{ROOT}/idx", title="index", markdown="y")]
        result = assemble_separate(sitemap, pages, tmp_path)
        names = [f.filename for f in result.files]
        assert names == ["Same_Title.md", "Same_Title_2.md", "Same_Title_3.md", "index_2.md"]
        assert len({n.lower() for n in names + [INDEX_FILENAME]}) == 5

    def test_index_lists_every_file(self, sitemap, pages, tmp_path):
        result = assemble_separate(sitemap, pages, tmp_path, include_graph=True)
        index = (tmp_path / result.index_file).read_text(encoding="utf-8")
        for number, file in enumerate(result.files, start=1):
            assert f"{number}. [{file.title}](./{file.filename})" in index
            assert f"   - URL: {file.url}" in index
        assert "## Site Structure" in index

    def test_write_failure_stops_and_keeps_earlier_files(self, sitemap, pages, tmp_path):
        out_dir = tmp_path / "example.com_2024-03-04T05-06-07-000000Z"
        # A directory where the second page file should go makes the write fail
        (out_dir / "Page_B.md").mkdir(parents=True)

        with pytest.raises(OutputWriteError):
            assemble_separate(sitemap, pages, tmp_path, generated=_GENERATED)

        assert (out_dir / "Home.md").is_file()
        assert not (out_dir / INDEX_FILENAME).exists()
