import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import PlainTextResponse, StreamingResponse
from slowapi import Limiter
from slowapi.util import get_remote_address

from sitescribe import config
from sitescribe.models.convert_request import ConversionOptions, ConvertRequest
from sitescribe.models.convert_response import CancelResponse, JobStarted, JobStatusResponse
from sitescribe.services.controller import ConversionController
from sitescribe.services.jobs import JobStatus

logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address)
router = APIRouter(prefix="/convert", tags=["convert"])


def _controller(request: Request) -> ConversionController:
    return request.app.state.controller


@router.post(
    "",
    response_model=JobStarted,
    status_code=202,
    summary="Start converting a website to Markdown",
    description=(
        "Discovers up to `max_pages` same-domain pages reachable from *url* "
        "within `max_depth` links, converts each page, and assembles either a "
        "single combined document or one file per page plus an index.  "
        "Returns immediately with a job id; poll `/convert/{job_id}` or stream "
        "`/convert/{job_id}/events` for progress."
    ),
)
@limiter.limit(config.RATE_LIMIT)
async def start_conversion(request: Request, body: ConvertRequest) -> JobStarted:
    url = str(body.url)
    options = ConversionOptions(**body.model_dump(exclude={"url"}))
    logger.info(
        "Conversion request received",
        extra={"url": url, "max_pages": options.max_pages, "max_depth": options.max_depth},
    )
    try:
        job = _controller(request).start(url, options)
    except ValueError as exc:
        logger.warning("Rejected URL: %s – %s", url, exc)
        raise HTTPException(status_code=400, detail=str(exc))
    return JobStarted(job_id=job.id)


@router.get("/{job_id}", response_model=JobStatusResponse, summary="Get job status")
async def get_status(request: Request, job_id: str) -> JobStatusResponse:
    snapshot = _controller(request).status(job_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="Job not found.")
    return JobStatusResponse(**snapshot)


@router.get("/{job_id}/result", summary="Get the output of a completed job")
async def get_result(request: Request, job_id: str):
    job = _controller(request).registry.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found.")
    if job.status != JobStatus.COMPLETED:
        raise HTTPException(status_code=409, detail=f"Job is {job.status.value}, not completed.")
    if isinstance(job.result, str):
        return PlainTextResponse(job.result, media_type="text/markdown")
    return job.result


@router.post("/{job_id}/cancel", response_model=CancelResponse, summary="Cancel a running job")
async def cancel_conversion(request: Request, job_id: str) -> CancelResponse:
    return CancelResponse(success=_controller(request).cancel(job_id))


@router.get("/{job_id}/events", summary="Stream job progress as server-sent events")
async def stream_events(request: Request, job_id: str) -> StreamingResponse:
    controller = _controller(request)
    if job_id not in controller.registry:
        raise HTTPException(status_code=404, detail="Job not found.")

    async def event_source():
        async for event in controller.events(job_id):
            yield f"event: {event.status.value}\ndata: {event.model_dump_json()}\n\n"

    return StreamingResponse(event_source(), media_type="text/event-stream")
