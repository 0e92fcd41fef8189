from typing import Literal, Optional

from pydantic import BaseModel, Field, HttpUrl

from sitescribe import config
from sitescribe.services.normalizer import UrlNormalization


class ConversionOptions(BaseModel):
    max_depth: int = Field(
        default=config.DEFAULT_MAX_DEPTH,
        ge=0,
        le=config.MAX_DEPTH_LIMIT,
        description="Maximum link depth from the root URL (0 = root page only).",
    )
    max_pages: int = Field(
        default=config.DEFAULT_MAX_PAGES,
        ge=1,
        le=config.MAX_PAGES_LIMIT,
        description="Maximum number of pages to discover and convert.",
    )
    include_screenshot: bool = False
    include_images: bool = True
    include_links: bool = True
    include_sitemap_graph: bool = True
    output_mode: Literal["combined", "separate"] = "combined"
    wait_time_ms: int = Field(
        default=0,
        ge=0,
        le=config.MAX_WAIT_TIME_MS,
        description="Extra milliseconds to wait after each page loads.",
    )
    title: Optional[str] = Field(
        default=None,
        description="Title for the generated document; defaults to the root page title.",
    )
    url_normalization: UrlNormalization = "default"


class ConvertRequest(ConversionOptions):
    url: HttpUrl


class SitemapRequest(BaseModel):
    url: HttpUrl
    max_depth: int = Field(default=config.DEFAULT_MAX_DEPTH, ge=0, le=config.MAX_DEPTH_LIMIT)
    max_pages: int = Field(default=config.DEFAULT_MAX_PAGES, ge=1, le=config.MAX_PAGES_LIMIT)
    url_normalization: UrlNormalization = "default"


class PageRequest(BaseModel):
    url: HttpUrl
    include_screenshot: bool = False
    include_images: bool = True
    include_links: bool = True
    wait_time_ms: int = Field(default=0, ge=0, le=config.MAX_WAIT_TIME_MS)
    title: Optional[str] = None
