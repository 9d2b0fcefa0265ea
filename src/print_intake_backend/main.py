from __future__ import annotations

import logging
from typing import Dict

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile

from .configuration import AppSettings, load_app_settings
from .middleware import BodySizeLimitMiddleware, SecurityHeadersMiddleware
from .models import PipelineStage, RawFile, RawSubmission, SubmissionOutcome, SubmitResponse
from .pipeline import SubmissionHandler, to_response

SUBMIT_PATH = "/api/submit-request"

startup_settings = load_app_settings()
logging.basicConfig(
    level=startup_settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Print Intake API", version="0.1.0")

allowed_origins = ["*"]
app.add_middleware(
    BodySizeLimitMiddleware,
    max_bytes=startup_settings.intake.max_request_size_bytes,
    paths=[SUBMIT_PATH],
)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

submission_handler = SubmissionHandler()


def get_submission_handler() -> SubmissionHandler:
    return submission_handler


def get_app_settings() -> AppSettings:
    return startup_settings


@app.get("/healthz")
def healthcheck() -> Dict[str, str]:
    return {"status": "ok"}


async def _read_submission(request: Request) -> RawSubmission:
    form = await request.form()
    fields: Dict[str, str] = {}
    attachments = []
    for name, value in form.multi_items():
        if isinstance(value, UploadFile):
            content = await value.read()
            await value.close()
            attachments.append(
                RawFile(
                    original_name=value.filename or "",
                    mime_type=value.content_type or "application/octet-stream",
                    size_bytes=len(content),
                    content=content,
                )
            )
        else:
            fields.setdefault(name, value)
    return RawSubmission(fields=fields, attachments=attachments)


@app.post(SUBMIT_PATH, response_model=SubmitResponse, response_model_exclude_none=True)
async def submit_request(
    request: Request,
    handler: SubmissionHandler = Depends(get_submission_handler),
    settings: AppSettings = Depends(get_app_settings),
) -> JSONResponse:
    raw = await _read_submission(request)
    try:
        outcome = await handler.handle(raw)
    except Exception as exc:  # noqa: BLE001 - reported as a generic 500 payload
        logger.exception("Unexpected error while processing submission")
        outcome = SubmissionOutcome(stage=PipelineStage.FAILED, error=exc)

    payload = to_response(outcome, development=settings.development)
    return JSONResponse(status_code=outcome.status_code, content=payload.model_dump(exclude_none=True))
