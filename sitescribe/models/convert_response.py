from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class JobStarted(BaseModel):
    job_id: str


class JobStatusResponse(BaseModel):
    job_id: str
    root_url: str
    status: str
    progress: int
    error: Optional[str] = None
    details: Dict[str, Any] = {}


class CancelResponse(BaseModel):
    success: bool


class GeneratedFile(BaseModel):
    title: str
    url: str
    filename: str
    filepath: str


class SeparateResult(BaseModel):
    """Outcome of a separate-mode conversion (one file per page + index)."""

    output_directory: str
    index_file: str
    files: List[GeneratedFile]
    total_files: int
    summary: str


class PageResponse(BaseModel):
    url: str
    title: str
    markdown: str
