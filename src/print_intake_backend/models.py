from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .errors import IntakeError


class PipelineStage(str, Enum):
    RECEIVED = "received"
    CONFIGURED = "configured"
    VALIDATED = "validated"
    FILES_UPLOADED = "files_uploaded"
    NOTIFIED = "notified"
    RESPONDED = "responded"
    FAILED = "failed"


@dataclass(frozen=True)
class RawFile:
    """An attachment exactly as it arrived in the multipart body."""

    original_name: str
    mime_type: str
    size_bytes: int
    content: bytes = field(repr=False)


@dataclass(frozen=True)
class RawSubmission:
    """Untrusted form fields (by wire name) plus attachments."""

    fields: Dict[str, str]
    attachments: List[RawFile] = field(default_factory=list)


class Submission(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    full_name: str
    email: str
    phone: Optional[str] = None
    department: str
    event_name: Optional[str] = None
    quantity: Optional[int] = None
    project_type: str
    project_description: Optional[str] = None
    attachments: List[RawFile] = Field(default_factory=list, repr=False)


class UploadedFile(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    key: str
    url: str


class UploadedFileOut(BaseModel):
    name: str
    path: str
    url: str


class SubmitResponse(BaseModel):
    success: bool
    message: str
    files: Optional[List[UploadedFileOut]] = None
    error: Optional[str] = None


class StageEvent(BaseModel):
    timestamp: datetime
    stage: PipelineStage
    message: str


@dataclass
class SubmissionOutcome:
    """
    Result of one pass through the pipeline.

    Attributes:
        stage: Final stage reached (RESPONDED on success, FAILED otherwise)
        failed_stage: Last stage completed before the failure
        files: Files stored during this submission
        error: The failure cause, if any
        events: Chronological stage trail
    """

    stage: PipelineStage = PipelineStage.RECEIVED
    failed_stage: Optional[PipelineStage] = None
    files: List[UploadedFile] = field(default_factory=list)
    error: Optional[Exception] = None
    events: List[StageEvent] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.stage == PipelineStage.RESPONDED and self.error is None

    @property
    def status_code(self) -> int:
        if self.error is None:
            return 200
        if isinstance(self.error, IntakeError):
            return self.error.status_code
        return 500
