import logging

from fastapi import APIRouter, HTTPException, Request

from sitescribe import config
from sitescribe.models.convert_request import PageRequest, SitemapRequest
from sitescribe.models.convert_response import PageResponse
from sitescribe.models.site import Sitemap
from sitescribe.routers.convert import limiter
from sitescribe.services.controller import ConversionController
from sitescribe.services.errors import PageFetchError, RendererInitializationError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["page"])


def _controller(request: Request) -> ConversionController:
    return request.app.state.controller


@router.post("/page", response_model=PageResponse, summary="Convert a single web page")
@limiter.limit(config.RATE_LIMIT)
async def convert_page_endpoint(request: Request, body: PageRequest) -> PageResponse:
    """Render *url* in a headless browser and return it as one Markdown document."""
    url = str(body.url)
    logger.info("Page request received", extra={"url": url})
    try:
        page = await _controller(request).convert_single(body)
    except ValueError as exc:
        logger.warning("Invalid or blocked URL: %s – %s", url, exc)
        raise HTTPException(status_code=400, detail=str(exc))
    except RendererInitializationError as exc:
        logger.error("Renderer unavailable: %s", exc)
        raise HTTPException(status_code=503, detail="Browser rendering is unavailable.")
    except PageFetchError as exc:
        logger.error("Error rendering %s: %s", url, exc)
        raise HTTPException(status_code=502, detail=str(exc))
    return PageResponse(url=page.url, title=page.title, markdown=page.markdown)


@router.post("/sitemap", response_model=Sitemap, summary="Discover a site's pages without converting them")
@limiter.limit(config.RATE_LIMIT)
async def sitemap_endpoint(request: Request, body: SitemapRequest) -> Sitemap:
    url = str(body.url)
    try:
        return await _controller(request).discover_sitemap(
            url, body.max_depth, body.max_pages, body.url_normalization
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except RendererInitializationError as exc:
        logger.error("Renderer unavailable: %s", exc)
        raise HTTPException(status_code=503, detail="Browser rendering is unavailable.")
    except PageFetchError as exc:
        logger.error("Error discovering %s: %s", url, exc)
        raise HTTPException(status_code=502, detail=str(exc))
