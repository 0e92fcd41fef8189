import logging
import logging.config
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from sitescribe import config
from sitescribe.routers.convert import limiter, router as convert_router
from sitescribe.routers.page import router as page_router
from sitescribe.services.controller import ConversionController
from sitescribe.services.jobs import JobRegistry

logging.config.dictConfig(
    {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "format": '{"time": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s"}',
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "json",
            },
        },
        "root": {"level": config.LOG_LEVEL, "handlers": ["console"]},
    }
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Running jobs must release their browsers before the process exits
    await app.state.controller.shutdown()


app = FastAPI(
    title="SiteScribe – Website to Markdown",
    description=(
        "Crawls a website within depth and page limits, renders every page in a "
        "headless browser, and assembles the result into Markdown documents."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

app.state.controller = ConversionController(JobRegistry(), output_dir=config.OUTPUT_DIR)

# Rate-limiting state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception for %s", request.url)
    return JSONResponse(status_code=500, content={"detail": "An unexpected error occurred."})


app.include_router(convert_router)
app.include_router(page_router)


@app.get("/", summary="Health check")
async def root() -> dict:
    return {"message": "Hello from SiteScribe"}
