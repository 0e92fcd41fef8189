"""Conversion job state and the registry that tracks jobs by id."""

import asyncio
import logging
import time
import uuid
from collections import OrderedDict
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Union

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from sitescribe import config
from sitescribe.models.convert_request import ConversionOptions
from sitescribe.models.convert_response import SeparateResult
from sitescribe.models.site import ConvertedPage
from sitescribe.services.errors import InvalidTransitionError

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    STARTING = "starting"
    LAUNCHING_RENDERER = "launching_renderer"
    DISCOVERING_SITEMAP = "discovering_sitemap"
    PROCESSING_PAGES = "processing_pages"
    GENERATING_OUTPUT = "generating_output"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})

# Forward-only pipeline; FAILED and CANCELLED are reachable from any non-terminal state.
_NEXT_STATE = {
    JobStatus.STARTING: JobStatus.LAUNCHING_RENDERER,
    JobStatus.LAUNCHING_RENDERER: JobStatus.DISCOVERING_SITEMAP,
    JobStatus.DISCOVERING_SITEMAP: JobStatus.PROCESSING_PAGES,
    JobStatus.PROCESSING_PAGES: JobStatus.GENERATING_OUTPUT,
    JobStatus.GENERATING_OUTPUT: JobStatus.COMPLETED,
}


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    if current.is_terminal:
        return False
    if target in (JobStatus.FAILED, JobStatus.CANCELLED):
        return True
    return _NEXT_STATE.get(current) == target


def new_job_id() -> str:
    return f"job_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class JobEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    job_id: str
    status: JobStatus
    progress: int
    details: Dict[str, Any] = Field(default_factory=dict)


class ConversionJob(BaseModel):
    """Mutable state of one conversion; only the controller writes to it."""

    id: str = Field(default_factory=new_job_id)
    root_url: str
    options: ConversionOptions = Field(default_factory=ConversionOptions)
    status: JobStatus = JobStatus.STARTING
    progress: int = Field(default=0, ge=0, le=100)
    processed_urls: Set[str] = Field(default_factory=set)
    pages: List[ConvertedPage] = Field(default_factory=list)
    error: Optional[str] = None
    result: Optional[Union[str, SeparateResult]] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    events: List[JobEvent] = Field(default_factory=list)
    cancel_requested: bool = False

    _changed: asyncio.Event = PrivateAttr(default_factory=asyncio.Event)

    def transition(self, status: JobStatus, progress: Optional[int] = None, **details: Any) -> JobEvent:
        """Move to *status* and record an event.

        Raises:
            InvalidTransitionError: if *status* is not reachable from the current state.
        """
        if status != self.status and not can_transition(self.status, status):
            raise InvalidTransitionError(
                f"Job {self.id}: cannot move from {self.status.value} to {status.value}"
            )
        if status != self.status:
            logger.info("Job %s: %s -> %s", self.id, self.status.value, status.value)
        self.status = status
        return self.update(progress, **details)

    def update(self, progress: Optional[int] = None, **details: Any) -> JobEvent:
        """Record progress within the current state.  Progress never decreases."""
        if progress is not None:
            self.progress = max(self.progress, min(100, progress))
        self.details.update(details)
        event = JobEvent(job_id=self.id, status=self.status, progress=self.progress, details=details)
        self.events.append(event)
        self._notify()
        return event

    def _notify(self) -> None:
        changed, self._changed = self._changed, asyncio.Event()
        changed.set()

    async def wait_for_change(self) -> None:
        await self._changed.wait()

    def snapshot(self) -> Dict[str, Any]:
        """Return the status view exposed to callers."""
        return {
            "job_id": self.id,
            "root_url": self.root_url,
            "status": self.status.value,
            "progress": self.progress,
            "error": self.error,
            "details": dict(self.details),
        }


class JobRegistry:
    """Jobs by id.

    Active jobs stay here until they reach a terminal state; they are then
    moved to a bounded store of finished jobs so their status and result can
    still be looked up.
    """

    def __init__(self, finished_retention: int = config.FINISHED_JOB_RETENTION):
        self._active: Dict[str, ConversionJob] = {}
        self._finished: "OrderedDict[str, ConversionJob]" = OrderedDict()
        self._finished_retention = finished_retention

    def register(self, job: ConversionJob) -> None:
        self._active[job.id] = job

    def get(self, job_id: str) -> Optional[ConversionJob]:
        return self._active.get(job_id) or self._finished.get(job_id)

    def get_active(self, job_id: str) -> Optional[ConversionJob]:
        return self._active.get(job_id)

    def finish(self, job_id: str) -> None:
        """Remove *job_id* from the active set and keep it as finished."""
        job = self._active.pop(job_id, None)
        if job is None:
            return
        self._finished[job_id] = job
        while len(self._finished) > self._finished_retention:
            self._finished.popitem(last=False)

    def active_ids(self) -> List[str]:
        return list(self._active)

    def __contains__(self, job_id: str) -> bool:
        return job_id in self._active or job_id in self._finished

    def __len__(self) -> int:
        return len(self._active)
