"""
Error taxonomy for the submission pipeline.

Every failure the pipeline can report derives from IntakeError and carries the
HTTP status code the API answers with. Batch stages (field validation, file
validation, uploads, notifications) collect all of their problems first and
raise a single error listing every one of them.
"""

from __future__ import annotations

from typing import Iterable, List, Tuple


class IntakeError(Exception):
    """Base class for failures surfaced to the submitter as a JSON payload."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigError(IntakeError):
    """Required operational settings are missing or malformed."""

    status_code = 503

    def __init__(self, missing: Iterable[str] = (), problems: Iterable[str] = ()) -> None:
        self.missing: List[str] = list(missing)
        self.problems: List[str] = list(problems)
        parts = []
        if self.missing:
            parts.append(f"Missing environment variables: {', '.join(self.missing)}")
        parts.extend(self.problems)
        super().__init__("; ".join(parts) or "Invalid configuration")


class ValidationError(IntakeError):
    status_code = 400


class MissingFieldsError(ValidationError):
    """Required fields are absent; any other field problems found are carried along."""

    def __init__(self, fields: Iterable[str], problems: Iterable[str] = ()) -> None:
        self.fields: List[str] = list(fields)
        self.problems: List[str] = list(problems)
        message = f"Missing required fields: {', '.join(self.fields)}"
        if self.problems:
            message += f"; Invalid fields: {'; '.join(self.problems)}"
        super().__init__(message)


class InvalidFieldsError(ValidationError):
    def __init__(self, problems: Iterable[str]) -> None:
        self.problems: List[str] = list(problems)
        super().__init__(f"Invalid fields: {'; '.join(self.problems)}")


class MissingFileError(ValidationError):
    def __init__(self) -> None:
        super().__init__("At least one file must be attached")


class InvalidFilesError(ValidationError):
    """One or more attachments break the size or type limits."""

    def __init__(self, problems: Iterable[Tuple[str, str]]) -> None:
        self.problems: List[Tuple[str, str]] = list(problems)
        details = "; ".join(f"{name}: {reason}" for name, reason in self.problems)
        super().__init__(f"Invalid files: {details}")


class UploadBatchError(IntakeError):
    """At least one file of the batch could not be stored."""

    status_code = 500

    def __init__(self, failures: Iterable[Tuple[str, str]]) -> None:
        self.failures: List[Tuple[str, str]] = list(failures)
        details = "; ".join(f"{name}: {cause}" for name, cause in self.failures)
        super().__init__(f"Failed to upload {len(self.failures)} file(s): {details}")


class NotificationError(IntakeError):
    """The chat and/or email notification could not be delivered."""

    status_code = 500

    def __init__(self, failures: Iterable[Tuple[str, str]]) -> None:
        self.failures: List[Tuple[str, str]] = list(failures)
        details = "; ".join(f"{channel}: {cause}" for channel, cause in self.failures)
        super().__init__(f"Notification failed ({details})")

    @property
    def channels(self) -> List[str]:
        return [channel for channel, _ in self.failures]
