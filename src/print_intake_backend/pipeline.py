"""
Submission pipeline: the ordered processing of one form submission.

Stages run strictly in sequence:

    received -> configured -> validated -> files_uploaded -> notified -> responded

Any IntakeError moves the submission to ``failed`` and skips the remaining
stages. Files already stored when a later stage fails are left in place; no
compensating delete is attempted.

The SubmissionHandler owns no state between requests. Its collaborators are
injected as factories so tests can supply fakes for storage and both
notification channels.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from starlette.concurrency import run_in_threadpool

from .configuration import Configuration, load_config
from .errors import ConfigError, IntakeError
from .models import PipelineStage, RawSubmission, StageEvent, SubmissionOutcome, SubmitResponse, UploadedFileOut
from .notifications import EmailNotifier, Notifier, TelegramNotifier, notify
from .storage import ObjectStore, S3ObjectStore
from .uploads import upload_files
from .validation import validate_submission

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Request submitted successfully"
CONFIG_FAILURE_MESSAGE = "The service is not configured correctly. Please try again later."
UNEXPECTED_FAILURE_MESSAGE = "An unexpected error occurred while processing your request."


@dataclass
class SubmissionHandler:
    """
    Orchestrates validation, upload and notification for one submission.

    Attributes:
        config_loader: Returns the Configuration; called once per submission
        store_factory: Builds the object store from the Configuration
        chat_factory: Builds the chat notifier from the Configuration
        email_factory: Builds the email notifier from the Configuration
        clock: Source of the submission timestamp used in storage keys
    """

    config_loader: Callable[[], Configuration] = load_config
    store_factory: Callable[[Configuration], ObjectStore] = field(
        default=lambda config: S3ObjectStore(config.storage)
    )
    chat_factory: Callable[[Configuration], Notifier] = field(
        default=lambda config: TelegramNotifier(config.telegram)
    )
    email_factory: Callable[[Configuration], Notifier] = field(
        default=lambda config: EmailNotifier(config.email)
    )
    clock: Callable[[], datetime] = field(default=lambda: datetime.now(timezone.utc))

    def _advance(self, outcome: SubmissionOutcome, stage: PipelineStage, message: str) -> None:
        outcome.stage = stage
        outcome.events.append(StageEvent(timestamp=datetime.now(timezone.utc), stage=stage, message=message))
        logger.info(f"Submission {stage.value}: {message}")

    async def handle(self, raw: RawSubmission) -> SubmissionOutcome:
        """
        Run one submission through every stage.

        Never raises for IntakeError failures; they are recorded on the
        returned outcome together with the stage they happened in.
        """
        outcome = SubmissionOutcome()
        self._advance(
            outcome,
            PipelineStage.RECEIVED,
            f"{len(raw.fields)} field(s), {len(raw.attachments)} attachment(s)",
        )
        try:
            config = self.config_loader()
            self._advance(outcome, PipelineStage.CONFIGURED, "Configuration loaded.")

            submission = validate_submission(raw, config.intake)
            self._advance(outcome, PipelineStage.VALIDATED, f"Submission from {submission.email} is valid.")

            store = self.store_factory(config)
            outcome.files = await run_in_threadpool(
                upload_files,
                submission.attachments,
                store,
                submitted_at=self.clock(),
                key_prefix=config.storage.key_prefix,
                max_workers=config.intake.upload_workers,
            )
            self._advance(outcome, PipelineStage.FILES_UPLOADED, f"{len(outcome.files)} file(s) stored.")

            await notify(
                submission,
                outcome.files,
                config,
                chat=self.chat_factory(config),
                email=self.email_factory(config),
            )
            self._advance(outcome, PipelineStage.NOTIFIED, "Chat and email notifications sent.")
        except IntakeError as exc:
            self._fail(outcome, exc)
            return outcome

        self._advance(outcome, PipelineStage.RESPONDED, SUCCESS_MESSAGE)
        return outcome

    def _fail(self, outcome: SubmissionOutcome, exc: IntakeError) -> None:
        outcome.failed_stage = outcome.stage
        outcome.error = exc
        outcome.stage = PipelineStage.FAILED
        outcome.events.append(
            StageEvent(timestamp=datetime.now(timezone.utc), stage=PipelineStage.FAILED, message=str(exc))
        )
        if isinstance(exc, ConfigError):
            logger.error(f"Submission failed after {outcome.failed_stage.value}: {exc}")
        else:
            logger.warning(f"Submission failed after {outcome.failed_stage.value}: {exc}")


def to_response(outcome: SubmissionOutcome, development: bool = False) -> SubmitResponse:
    """
    Build the JSON payload for an outcome.

    Raw error detail is attached only in development. Configuration failures
    get a generic message so variable names and values never reach clients.
    """
    files = [UploadedFileOut(name=f.name, path=f.key, url=f.url) for f in outcome.files]
    if outcome.succeeded:
        return SubmitResponse(success=True, message=SUCCESS_MESSAGE, files=files)

    error = outcome.error
    if isinstance(error, ConfigError):
        message = CONFIG_FAILURE_MESSAGE
    elif isinstance(error, IntakeError):
        message = error.message
    else:
        message = UNEXPECTED_FAILURE_MESSAGE
    return SubmitResponse(
        success=False,
        message=message,
        error=_error_detail(error) if development else None,
    )


def _error_detail(error: Optional[Exception]) -> Optional[str]:
    if error is None:
        return None
    return f"{type(error).__name__}: {error}"
