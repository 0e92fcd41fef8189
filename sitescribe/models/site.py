from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from sitescribe.services.normalizer import UrlNormalization, normalize_url


class Link(BaseModel):
    """An outbound link.  *url* is absolute and has no fragment."""

    model_config = ConfigDict(frozen=True)

    url: str
    text: str


class PageRecord(BaseModel):
    """One discovered page.

    *url* is the address the page was first linked with (fragment removed) and
    is what gets rendered.  Records are never mutated once registered.
    """

    model_config = ConfigDict(frozen=True)

    url: str
    title: str
    depth: int = Field(ge=0)
    links: List[Link] = Field(default_factory=list)


class Sitemap(BaseModel):
    """Discovered pages keyed by their dedup key, in discovery order."""

    root_url: str
    domain: str
    title: str
    normalization: UrlNormalization = "default"
    pages: Dict[str, PageRecord] = Field(default_factory=dict)

    def key(self, url: str) -> str:
        """Return the dedup key of *url* under this sitemap's policy."""
        return normalize_url(url, self.normalization)

    def ordered_pages(self) -> List[PageRecord]:
        """Return the pages in discovery order."""
        return list(self.pages.values())


class ImageRef(BaseModel):
    source_url: str
    alt_text: str
    suggested_filename: str


class ExtractedContent(BaseModel):
    main_html: str
    images: List[ImageRef] = Field(default_factory=list)
    links: List[Link] = Field(default_factory=list)


class PageMetadata(BaseModel):
    url: str
    domain: str
    path: str
    title: str = ""
    description: Optional[str] = None
    keywords: Optional[str] = None
    author: Optional[str] = None
    og_title: Optional[str] = None
    og_image: Optional[str] = None
    og_type: Optional[str] = None
    og_url: Optional[str] = None
    favicon: Optional[str] = None


class ConvertedPage(BaseModel):
    url: str
    title: str
    markdown: str
