"""
Tests for Print Intake Backend API endpoints.

Tests cover:
- Health check
- Request submission (success, validation, configuration, upload and notification failures)
- Request size limit
- Security headers
"""

from io import BytesIO

from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from conftest import MIB, FakeNotifier, FakeStore
from print_intake_backend.configuration import load_config
from print_intake_backend.main import app, get_app_settings, get_submission_handler, startup_settings
from print_intake_backend.middleware import BodySizeLimitMiddleware
from print_intake_backend.notifications import DeliveryError

SUBMIT = "/api/submit-request"


class TestHealthCheck:
    """Tests for the /healthz endpoint."""

    def test_health_check_returns_ok(self, client):
        """Health check should return status ok."""
        response = client.get("/healthz")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestSubmitRequest:
    """Tests for the /api/submit-request endpoint."""

    def test_valid_submission_with_pdf(self, client, store, chat, email, form_fields, sample_pdf):
        """One 2 MB PDF: one stored object, one chat message, one email, 200."""
        response = client.post(
            SUBMIT,
            data=form_fields,
            files={"files": ("poster.pdf", BytesIO(sample_pdf), "application/pdf")},
        )
        assert response.status_code == 200

        data = response.json()
        assert data["success"] is True
        assert data["message"] == "Request submitted successfully"
        assert len(data["files"]) == 1
        assert data["files"][0]["name"] == "poster.pdf"
        assert data["files"][0]["url"].endswith(data["files"][0]["path"])
        assert "error" not in data

        assert len(store.objects) == 1
        assert list(store.objects.values())[0] == sample_pdf
        assert len(chat.sent) == 1
        assert len(email.sent) == 1

    def test_multiple_files_keep_order(self, client, form_fields):
        files = [
            ("files", ("front.pdf", BytesIO(b"%PDF-1"), "application/pdf")),
            ("files", ("back.png", BytesIO(b"\x89PNG"), "image/png")),
        ]
        response = client.post(SUBMIT, data=form_fields, files=files)
        assert response.status_code == 200
        assert [f["name"] for f in response.json()["files"]] == ["front.pdf", "back.png"]

    def test_missing_fields_returns_400(self, client, store):
        response = client.post(
            SUBMIT,
            data={"email": "ada@example.com"},
            files={"files": ("poster.pdf", BytesIO(b"%PDF-1"), "application/pdf")},
        )
        assert response.status_code == 400
        data = response.json()
        assert data["success"] is False
        assert data["message"] == "Missing required fields: fullName, department, projectType"
        assert store.calls == []

    def test_missing_file_returns_400(self, client, form_fields):
        response = client.post(SUBMIT, data=form_fields)
        assert response.status_code == 400
        assert "file" in response.json()["message"]

    def test_disallowed_file_type_returns_400(self, client, form_fields):
        response = client.post(
            SUBMIT,
            data=form_fields,
            files={"files": ("run.exe", BytesIO(b"MZ"), "application/x-msdownload")},
        )
        assert response.status_code == 400
        assert "run.exe" in response.json()["message"]

    def test_config_error_returns_503(self, client, make_handler, form_fields):
        app.dependency_overrides[get_submission_handler] = lambda: make_handler(config_loader=lambda: load_config({}))
        response = client.post(
            SUBMIT,
            data=form_fields,
            files={"files": ("poster.pdf", BytesIO(b"%PDF-1"), "application/pdf")},
        )
        assert response.status_code == 503
        data = response.json()
        assert data["success"] is False
        assert "error" not in data
        assert "TELEGRAM_BOT_TOKEN" not in response.text

    def test_upload_failure_returns_500(self, client, make_handler, chat, form_fields):
        store = FakeStore(fail_names=["back.pdf"])
        app.dependency_overrides[get_submission_handler] = lambda: make_handler(store=store)
        files = [
            ("files", ("front.pdf", BytesIO(b"%PDF-1"), "application/pdf")),
            ("files", ("back.pdf", BytesIO(b"%PDF-2"), "application/pdf")),
        ]
        response = client.post(SUBMIT, data=form_fields, files=files)
        assert response.status_code == 500
        data = response.json()
        assert data["success"] is False
        assert "back.pdf" in data["message"]
        assert chat.sent == []

    def test_chat_failure_names_chat_channel(self, client, make_handler, email, form_fields):
        """Email still goes out, but the response reports the chat failure."""
        chat = FakeNotifier("chat", error=DeliveryError("Telegram API error 401: Unauthorized"))
        app.dependency_overrides[get_submission_handler] = lambda: make_handler(chat=chat)
        response = client.post(
            SUBMIT,
            data=form_fields,
            files={"files": ("poster.pdf", BytesIO(b"%PDF-1"), "application/pdf")},
        )
        assert response.status_code == 500
        data = response.json()
        assert data["success"] is False
        assert "chat" in data["message"]
        assert "email:" not in data["message"]
        assert len(email.sent) == 1

    def test_settings_are_read_once_at_startup(self, client, monkeypatch):
        """A bad environment value after boot does not turn a 400 into a plain-text 500."""
        app.dependency_overrides.pop(get_app_settings)
        monkeypatch.setenv("MAX_FILE_SIZE_MB", "lots")
        assert get_app_settings() is startup_settings

        response = client.post(SUBMIT, data={"email": "ada@example.com"})
        assert response.status_code == 400
        data = response.json()
        assert data["success"] is False
        assert data["message"].startswith("Missing required fields: fullName")


class TestRequestSizeLimit:
    """Tests for the request body size limit."""

    def test_oversized_request_rejected_before_handler(self, client, store, chat, email):
        """A 101 MiB Content-Length is refused with 413 and nothing downstream runs."""
        response = client.post(
            SUBMIT,
            content=b"--x--",
            headers={
                "Content-Type": "multipart/form-data; boundary=x",
                "Content-Length": str(101 * MIB),
            },
        )
        assert response.status_code == 413
        assert response.json() == {"success": False, "message": "Request too large"}
        assert store.calls == []
        assert chat.sent == [] and email.sent == []

    def test_limit_applies_to_real_bodies(self):
        limited = FastAPI()
        limited.add_middleware(BodySizeLimitMiddleware, max_bytes=1024, paths=["/upload"])

        @limited.post("/upload")
        async def upload() -> dict:
            return {"ok": True}

        test_client = TestClient(limited)
        assert test_client.post("/upload", content=b"x" * 2048).status_code == 413
        assert test_client.post("/upload", content=b"x" * 512).status_code == 200

    def test_other_paths_are_not_limited(self):
        limited = FastAPI()
        limited.add_middleware(BodySizeLimitMiddleware, max_bytes=10, paths=["/upload"])

        @limited.post("/other")
        async def other() -> dict:
            return {"ok": True}

        assert TestClient(limited).post("/other", content=b"x" * 100).status_code == 200

    def test_chunked_body_without_length_is_limited(self):
        """A streamed body with no Content-Length is cut off once it passes the limit."""
        limited = FastAPI()
        limited.add_middleware(BodySizeLimitMiddleware, max_bytes=1024, paths=["/upload"])
        handled = []

        @limited.post("/upload")
        async def upload(request: Request) -> dict:
            body = await request.body()
            handled.append(len(body))
            return {"ok": True}

        test_client = TestClient(limited)
        response = test_client.post("/upload", content=iter([b"x" * 512] * 4))
        assert response.status_code == 413
        assert response.json() == {"success": False, "message": "Request too large"}
        assert handled == []

        response = test_client.post("/upload", content=iter([b"x" * 256] * 2))
        assert response.status_code == 200
        assert handled == [512]

    def test_chunked_multipart_is_limited_before_form_parsing_finishes(self):
        limited = FastAPI()
        limited.add_middleware(BodySizeLimitMiddleware, max_bytes=1024, paths=["/upload"])
        handled = []

        @limited.post("/upload")
        async def upload(request: Request) -> dict:
            form = await request.form()
            handled.append(list(form.keys()))
            return {"ok": True}

        boundary = b"chunkboundary"
        body = (
            b"--" + boundary + b"\r\n"
            b'Content-Disposition: form-data; name="files"; filename="big.pdf"\r\n'
            b"Content-Type: application/pdf\r\n\r\n" + b"x" * 4096 + b"\r\n"
            b"--" + boundary + b"--\r\n"
        )
        chunks = [body[i : i + 512] for i in range(0, len(body), 512)]
        response = TestClient(limited).post(
            "/upload",
            content=iter(chunks),
            headers={"Content-Type": "multipart/form-data; boundary=chunkboundary"},
        )
        assert response.status_code == 413
        assert handled == []


class TestSecurityHeaders:
    def test_headers_on_every_response(self, client):
        response = client.get("/healthz")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["X-XSS-Protection"] == "1; mode=block"


class TestCORS:
    """Tests for CORS configuration."""

    def test_cors_preflight(self, client):
        response = client.options(
            SUBMIT,
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "POST",
            },
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"
