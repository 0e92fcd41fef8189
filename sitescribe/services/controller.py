"""Conversion job controller: drives discovery, page conversion, and assembly.

Each job runs as one asyncio task with its own renderer.  Pages are rendered
one after another, in discovery order, and cancellation is checked between
steps.  The renderer is entered with ``async with`` so it is released exactly
once on success, failure, and cancellation alike.
"""

import asyncio
import logging
from pathlib import Path
from typing import AsyncIterator, Callable, Dict, List, Optional, Tuple, Union

from sitescribe import config
from sitescribe.models.convert_request import ConversionOptions, PageRequest
from sitescribe.models.convert_response import SeparateResult
from sitescribe.models.site import ConvertedPage, PageRecord, Sitemap
from sitescribe.services.assembler import assemble_combined, assemble_separate
from sitescribe.services.converter import convert_page, placeholder_page
from sitescribe.services.discoverer import discover
from sitescribe.services.extractor import extract, extract_metadata
from sitescribe.services.jobs import ConversionJob, JobEvent, JobRegistry, JobStatus
from sitescribe.services.normalizer import UrlNormalization, validate_protocol
from sitescribe.services.renderer import PageRenderer, PlaywrightRenderer

logger = logging.getLogger(__name__)

Result = Union[str, SeparateResult]

# Progress reported on entry to each stage
PROGRESS = {
    JobStatus.STARTING: 0,
    JobStatus.LAUNCHING_RENDERER: 5,
    JobStatus.DISCOVERING_SITEMAP: 10,
    JobStatus.PROCESSING_PAGES: 20,
    JobStatus.GENERATING_OUTPUT: 90,
    JobStatus.COMPLETED: 100,
}
_PAGES_PROGRESS_SPAN = PROGRESS[JobStatus.GENERATING_OUTPUT] - PROGRESS[JobStatus.PROCESSING_PAGES]


class JobCancelled(Exception):
    """Raised inside a job when a cancellation request is observed."""


class ConversionController:
    """Starts, tracks, and cancels website conversion jobs.

    Args:
        registry: Where jobs are tracked; shared with status lookups.
        renderer_factory: Zero-argument callable returning an async context
            manager that yields a :class:`PageRenderer`.
        output_dir: Parent directory for separate-mode output.
    """

    def __init__(
        self,
        registry: JobRegistry,
        renderer_factory: Callable[[], PlaywrightRenderer] = PlaywrightRenderer,
        output_dir: Path = config.OUTPUT_DIR,
    ):
        self.registry = registry
        self.renderer_factory = renderer_factory
        self.output_dir = Path(output_dir)
        self._tasks: Dict[str, asyncio.Task] = {}

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def create_job(self, root_url: str, options: Optional[ConversionOptions] = None) -> ConversionJob:
        """Validate *root_url* and register a new job without running it.

        Raises:
            UnsupportedProtocolError: before anything is allocated.
        """
        validate_protocol(root_url)
        job = ConversionJob(root_url=root_url, options=options or ConversionOptions())
        self.registry.register(job)
        job.update(PROGRESS[JobStatus.STARTING], root_url=root_url)
        logger.info("Job %s: created for %s", job.id, root_url)
        return job

    def start(self, root_url: str, options: Optional[ConversionOptions] = None) -> ConversionJob:
        """Create a job and schedule it on the running event loop."""
        job = self.create_job(root_url, options)
        task = asyncio.create_task(self.run(job), name=f"conversion-{job.id}")
        self._tasks[job.id] = task
        task.add_done_callback(lambda _: self._tasks.pop(job.id, None))
        return job

    def status(self, job_id: str) -> Optional[dict]:
        job = self.registry.get(job_id)
        return job.snapshot() if job else None

    def cancel(self, job_id: str) -> bool:
        """Request cooperative cancellation.  Returns False for unknown or finished jobs."""
        job = self.registry.get_active(job_id)
        if job is None or job.status.is_terminal:
            return False
        job.cancel_requested = True
        logger.info("Job %s: cancellation requested", job_id)
        return True

    async def events(self, job_id: str) -> AsyncIterator[JobEvent]:
        """Yield the job's events from the beginning until its terminal event."""
        job = self.registry.get(job_id)
        if job is None:
            return
        index = 0
        while True:
            while index < len(job.events):
                event = job.events[index]
                index += 1
                yield event
                if event.status.is_terminal:
                    return
            await job.wait_for_change()

    async def shutdown(self) -> None:
        """Cancel every running job and wait for them to release their renderers."""
        for job_id in self.registry.active_ids():
            self.cancel(job_id)
        if self._tasks:
            await asyncio.gather(*self._tasks.values(), return_exceptions=True)

    # ------------------------------------------------------------------
    # Job execution
    # ------------------------------------------------------------------

    async def run(self, job: ConversionJob) -> Optional[Result]:
        """Run *job* to a terminal state and return its result.

        Returns ``None`` when the job fails or is cancelled; the reason is
        recorded on the job.
        """
        options = job.options
        try:
            self._checkpoint(job)
            job.transition(JobStatus.LAUNCHING_RENDERER, PROGRESS[JobStatus.LAUNCHING_RENDERER])
            async with self.renderer_factory() as renderer:
                self._checkpoint(job)
                job.transition(JobStatus.DISCOVERING_SITEMAP, PROGRESS[JobStatus.DISCOVERING_SITEMAP])
                sitemap = await discover(
                    renderer,
                    job.root_url,
                    options.max_depth,
                    options.max_pages,
                    normalization=options.url_normalization,
                    wait_ms=options.wait_time_ms,
                    should_stop=lambda: job.cancel_requested,
                )

                self._checkpoint(job)
                await self._process_pages(job, renderer, sitemap)

                self._checkpoint(job)
                job.transition(JobStatus.GENERATING_OUTPUT, PROGRESS[JobStatus.GENERATING_OUTPUT])

            job.result = self._assemble(job, sitemap)
            job.transition(JobStatus.COMPLETED, PROGRESS[JobStatus.COMPLETED], pages=len(job.pages))
            logger.info("Job %s: completed with %d page(s)", job.id, len(job.pages))
        except JobCancelled:
            self._discard(job)
        except asyncio.CancelledError:
            # The task itself was cancelled; record it before propagating
            self._discard(job)
            raise
        except Exception as exc:
            job.error = str(exc)
            job.transition(JobStatus.FAILED, error=str(exc))
            logger.error("Job %s: failed – %s", job.id, exc)
        finally:
            self.registry.finish(job.id)

        return job.result

    def _discard(self, job: ConversionJob) -> None:
        """Drop partial output and move *job* to ``cancelled``."""
        if job.status.is_terminal:
            return
        job.pages.clear()
        job.processed_urls.clear()
        job.result = None
        job.transition(JobStatus.CANCELLED)
        logger.info("Job %s: cancelled", job.id)

    def _checkpoint(self, job: ConversionJob) -> None:
        if job.cancel_requested:
            raise JobCancelled(job.id)

    async def _process_pages(self, job: ConversionJob, renderer: PageRenderer, sitemap: Sitemap) -> None:
        to_process: List[PageRecord] = sitemap.ordered_pages()[: job.options.max_pages]
        total = len(to_process)
        job.transition(
            JobStatus.PROCESSING_PAGES,
            PROGRESS[JobStatus.PROCESSING_PAGES],
            total=total,
            processed=0,
        )

        for position, record in enumerate(to_process):
            self._checkpoint(job)
            if record.url in job.processed_urls:
                continue

            job.update(
                PROGRESS[JobStatus.PROCESSING_PAGES] + (position * _PAGES_PROGRESS_SPAN) // total,
                current_page=record.url,
                processed=position,
                total=total,
            )
            markdown = await self._convert_record(renderer, record, job.options)
            job.processed_urls.add(record.url)
            job.pages.append(ConvertedPage(url=record.url, title=record.title, markdown=markdown))

        job.update(
            PROGRESS[JobStatus.PROCESSING_PAGES] + _PAGES_PROGRESS_SPAN,
            processed=total,
            total=total,
            current_page=None,
        )

    async def _convert_record(self, renderer: PageRenderer, record: PageRecord, options) -> str:
        """Convert one page; any error becomes a placeholder page."""
        try:
            _, markdown = await self._convert_url(renderer, record.url, options, title=None)
            return markdown
        except Exception as exc:
            logger.warning("Failed to process page %s – %s", record.url, exc)
            return placeholder_page(record.url, exc)

    async def _convert_url(
        self,
        renderer: PageRenderer,
        url: str,
        options: Union[ConversionOptions, PageRequest],
        title: Optional[str],
    ) -> Tuple[str, str]:
        """Render, extract, and convert *url*.  Returns ``(title, markdown)``."""
        html = await renderer.render(url, wait_ms=options.wait_time_ms)
        metadata = extract_metadata(html, url)
        content = extract(html, url)

        screenshot = None
        if options.include_screenshot:
            screenshot = await renderer.screenshot(url, wait_ms=options.wait_time_ms)

        markdown = convert_page(
            metadata,
            content,
            screenshot,
            include_links=options.include_links,
            include_images=options.include_images,
            title=title,
        )
        return title or metadata.title or url, markdown

    def _assemble(self, job: ConversionJob, sitemap: Sitemap) -> Result:
        options = job.options
        if options.output_mode == "separate":
            return assemble_separate(
                sitemap,
                job.pages,
                self.output_dir,
                title=options.title,
                include_graph=options.include_sitemap_graph,
            )
        return assemble_combined(
            sitemap,
            job.pages,
            title=options.title,
            include_graph=options.include_sitemap_graph,
        )

    # ------------------------------------------------------------------
    # One-shot helpers (no job tracking)
    # ------------------------------------------------------------------

    async def discover_sitemap(
        self,
        root_url: str,
        max_depth: int = config.DEFAULT_MAX_DEPTH,
        max_pages: int = config.DEFAULT_MAX_PAGES,
        normalization: UrlNormalization = "default",
    ) -> Sitemap:
        """Run discovery alone with a short-lived renderer."""
        validate_protocol(root_url)
        async with self.renderer_factory() as renderer:
            return await discover(renderer, root_url, max_depth, max_pages, normalization=normalization)

    async def convert_single(self, request: PageRequest) -> ConvertedPage:
        """Convert one page synchronously.  Errors propagate to the caller."""
        url = str(request.url)
        validate_protocol(url)
        async with self.renderer_factory() as renderer:
            title, markdown = await self._convert_url(renderer, url, request, title=request.title)
        return ConvertedPage(url=url, title=title, markdown=markdown)
