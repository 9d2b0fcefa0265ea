"""
Validation of raw form submissions.

Checks run in a fixed order and each stage reports every problem it finds:
required fields, then attachment presence, then per-file size and type limits.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from .configuration import IntakeSettings
from .errors import InvalidFieldsError, InvalidFilesError, MissingFieldsError, MissingFileError
from .models import RawSubmission, Submission
from .utils import format_size

# Wire name -> Submission attribute, in summary order
FIELD_NAMES: Dict[str, str] = {
    "fullName": "full_name",
    "email": "email",
    "phone": "phone",
    "department": "department",
    "eventName": "event_name",
    "quantity": "quantity",
    "projectType": "project_type",
    "projectDescription": "project_description",
}

REQUIRED_FIELDS: Tuple[str, ...] = ("fullName", "email", "department", "projectType")


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _parse_quantity(value: Optional[str]) -> Tuple[Optional[int], Optional[str]]:
    if value is None:
        return None, None
    try:
        quantity = int(value)
    except ValueError:
        return None, f"quantity must be a whole number, got {value!r}"
    if quantity < 1:
        return None, "quantity must be at least 1"
    return quantity, None


def validate_submission(raw: RawSubmission, limits: IntakeSettings) -> Submission:
    """
    Turn a raw submission into a validated Submission.

    Args:
        raw: Form fields and attachments as received
        limits: Attachment rules (size, MIME allow-list, whether files are mandatory)

    Returns:
        The validated, immutable Submission

    Raises:
        MissingFieldsError: Naming every required field that is absent or blank,
            plus any unparseable field found alongside them
        InvalidFieldsError: If a present field cannot be parsed
        MissingFileError: If attachments are mandatory and none were sent
        InvalidFilesError: Naming every attachment that breaks a limit
    """
    values = {wire: _clean(raw.fields.get(wire)) for wire in FIELD_NAMES}

    missing = [wire for wire in REQUIRED_FIELDS if values[wire] is None]
    quantity, quantity_problem = _parse_quantity(values["quantity"])
    field_problems = [quantity_problem] if quantity_problem else []
    if missing:
        raise MissingFieldsError(missing, field_problems)
    if field_problems:
        raise InvalidFieldsError(field_problems)

    attachments = [f for f in raw.attachments if f.original_name or f.size_bytes]
    if limits.require_attachments and not attachments:
        raise MissingFileError()

    allowed = {mime.lower() for mime in limits.allowed_mime_types}
    problems: List[Tuple[str, str]] = []
    for attachment in attachments:
        name = attachment.original_name or "unnamed file"
        if attachment.size_bytes > limits.max_file_size_bytes:
            problems.append(
                (name, f"{format_size(attachment.size_bytes)} exceeds the {limits.max_file_size_mb} MB limit")
            )
        if allowed and (attachment.mime_type or "").lower() not in allowed:
            problems.append((name, f"file type {attachment.mime_type or 'unknown'!r} is not allowed"))
    if problems:
        raise InvalidFilesError(problems)

    kwargs = {FIELD_NAMES[wire]: value for wire, value in values.items()}
    kwargs["quantity"] = quantity
    return Submission(**kwargs, attachments=attachments)
