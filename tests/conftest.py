"""
Pytest configuration and fixtures for Print Intake Backend tests.
"""

import os
from typing import Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

# Keep startup settings deterministic regardless of a developer's .env
os.environ["APP_ENV"] = "production"
os.environ["LOG_LEVEL"] = "INFO"
os.environ["MAX_REQUEST_SIZE_MB"] = "100"
os.environ["MAX_FILE_SIZE_MB"] = "100"

from print_intake_backend.configuration import load_app_settings, load_config
from print_intake_backend.main import app, get_app_settings, get_submission_handler
from print_intake_backend.models import RawFile, RawSubmission
from print_intake_backend.pipeline import SubmissionHandler

MIB = 1024 * 1024

VALID_ENV = {
    "STORAGE_ENDPOINT_URL": "https://storage.example.com",
    "STORAGE_BUCKET": "print-requests",
    "STORAGE_ACCESS_KEY_ID": "test-access-key",
    "STORAGE_SECRET_ACCESS_KEY": "test-secret-key",
    "TELEGRAM_BOT_TOKEN": "123456:test-bot-token",
    "TELEGRAM_CHAT_ID": "-100200300",
    "EMAIL_HOST": "smtp.example.com",
    "EMAIL_PORT": "465",
    "EMAIL_SECURE": "true",
    "EMAIL_USER": "mailer@example.com",
    "EMAIL_PASS": "test-password",
    "EMAIL_FROM": "Print Desk <mailer@example.com>",
    "EMAIL_TO": "printshop@example.com",
}


class FakeStore:
    """In-memory object store; names listed in ``fail_names`` raise on upload."""

    def __init__(self, fail_names=()):
        self.fail_names = set(fail_names)
        self.objects: Dict[str, bytes] = {}
        self.calls: List[str] = []

    def store(self, data: bytes, key: str, content_type: str) -> str:
        self.calls.append(key)
        if any(key.endswith(name) for name in self.fail_names):
            raise RuntimeError("bucket unavailable")
        self.objects[key] = data
        return f"https://cdn.example.com/{key}"


class FakeNotifier:
    def __init__(self, channel: str, error: Optional[Exception] = None):
        self.channel = channel
        self.error = error
        self.sent: List[str] = []

    async def send(self, text: str) -> None:
        self.sent.append(text)
        if self.error is not None:
            raise self.error


@pytest.fixture
def config_env():
    return dict(VALID_ENV)


@pytest.fixture
def config(config_env):
    return load_config(config_env)


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def chat():
    return FakeNotifier("chat")


@pytest.fixture
def email():
    return FakeNotifier("email")


@pytest.fixture
def make_handler(config, store, chat, email):
    """Build a SubmissionHandler wired to fakes; keyword arguments replace any of them."""

    def factory(**overrides) -> SubmissionHandler:
        return SubmissionHandler(
            config_loader=overrides.get("config_loader", lambda: config),
            store_factory=lambda _config: overrides.get("store", store),
            chat_factory=lambda _config: overrides.get("chat", chat),
            email_factory=lambda _config: overrides.get("email", email),
        )

    return factory


@pytest.fixture
def client(make_handler):
    """Create a test client whose submit endpoint uses the fake collaborators."""
    app.dependency_overrides[get_submission_handler] = lambda: make_handler()
    app.dependency_overrides[get_app_settings] = lambda: load_app_settings({"APP_ENV": "production"})
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def form_fields():
    return {
        "fullName": "Ada Lovelace",
        "email": "ada@example.com",
        "phone": "+1 555 0100",
        "department": "Mathematics",
        "eventName": "Spring Symposium",
        "quantity": "50",
        "projectType": "Poster",
        "projectDescription": "A1 poster, matte finish",
    }


@pytest.fixture
def sample_pdf():
    """A 2 MB PDF-like payload."""
    return b"%PDF-1.4\n" + b"0" * (2 * MIB - 9)


def raw_file(name: str = "poster.pdf", size: int = 1024, mime: str = "application/pdf") -> RawFile:
    return RawFile(original_name=name, mime_type=mime, size_bytes=size, content=b"x" * min(size, 16))


def raw_submission(fields: Dict[str, str], files=()) -> RawSubmission:
    return RawSubmission(fields=dict(fields), attachments=list(files))

