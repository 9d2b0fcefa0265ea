"""
Upload gateway: stores every attachment of a submission.

Files are uploaded concurrently on a short-lived thread pool (boto3 calls
block). Every upload is awaited and its outcome recorded before anything is
reported, so one failing file never hides another. A batch either returns one
UploadedFile per input, in input order, or raises a single UploadBatchError
naming every failed file.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from .errors import UploadBatchError
from .models import RawFile, UploadedFile
from .storage import ObjectStore
from .utils import build_storage_key

logger = logging.getLogger(__name__)


@dataclass
class UploadOutcome:
    """Result of uploading one file: either ``uploaded`` or ``error`` is set."""

    index: int
    name: str
    uploaded: Optional[UploadedFile] = None
    error: Optional[str] = None


def _upload_one(store: ObjectStore, index: int, raw: RawFile, key: str) -> UploadOutcome:
    try:
        url = store.store(raw.content, key, raw.mime_type)
    except Exception as exc:  # noqa: BLE001 - collected into UploadBatchError
        logger.error(f"Upload of {raw.original_name!r} failed: {exc}")
        return UploadOutcome(index=index, name=raw.original_name, error=str(exc) or type(exc).__name__)
    return UploadOutcome(
        index=index,
        name=raw.original_name,
        uploaded=UploadedFile(name=raw.original_name, key=key, url=url),
    )


def upload_files(
    files: Sequence[RawFile],
    store: ObjectStore,
    *,
    submitted_at: Optional[datetime] = None,
    key_prefix: str = "",
    max_workers: int = 4,
) -> List[UploadedFile]:
    """
    Upload a batch of files and return their public locations.

    Args:
        files: Attachments in submission order
        store: Object store to write to
        submitted_at: Timestamp used in the storage keys (default: now, UTC)
        key_prefix: Folder-like prefix for every key
        max_workers: Upper bound on concurrent uploads

    Returns:
        One UploadedFile per input file, in input order

    Raises:
        UploadBatchError: If any upload failed; lists every failed file and its cause
    """
    if not files:
        return []

    submitted_at = submitted_at or datetime.now(timezone.utc)
    keys = [build_storage_key(f.original_name, submitted_at, i, key_prefix) for i, f in enumerate(files)]

    workers = max(1, min(max_workers, len(files)))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="upload") as executor:
        futures = [executor.submit(_upload_one, store, i, f, keys[i]) for i, f in enumerate(files)]
        outcomes = [future.result() for future in futures]

    failures = [(o.name, o.error) for o in outcomes if o.error is not None]
    if failures:
        stored = len(outcomes) - len(failures)
        logger.warning(f"{len(failures)} of {len(outcomes)} uploads failed; {stored} file(s) remain stored")
        raise UploadBatchError(failures)

    logger.info(f"Uploaded {len(outcomes)} file(s)")
    return [o.uploaded for o in sorted(outcomes, key=lambda o: o.index)]  # type: ignore[misc]
