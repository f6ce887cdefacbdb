"""Progress record published at each major pipeline step."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ProgressStep(str, Enum):
    STARTING = "starting"
    GENERATING = "generating"
    FETCHING = "fetching"
    DOWNLOADING = "downloading"
    COMPILING = "compiling"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"


class Progress(BaseModel):
    """Latest known status of a job. Overwritten, never appended."""

    step: ProgressStep
    label: str
    current_index: Optional[int] = None
    total_count: Optional[int] = None
    percent_complete: Optional[int] = Field(default=None, ge=0, le=100)
