import logging
from typing import Iterable, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.datastructures import Headers
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
}


TOO_LARGE = {"success": False, "message": "Request too large"}


class RequestTooLarge(Exception):
    """Raised from the wrapped receive channel once the body passes the limit."""


class BodySizeLimitMiddleware:
    """
    Reject request bodies larger than ``max_bytes`` with a 413 JSON payload.

    A declared Content-Length is checked before anything reads the body.
    Bodies without one (chunked) are counted as they stream in; the request is
    aborted as soon as the count passes the limit, before form parsing
    finishes and before any upload or notification runs.
    """

    def __init__(self, app: ASGIApp, max_bytes: int, paths: Optional[Iterable[str]] = None) -> None:
        self.app = app
        self.max_bytes = max_bytes
        self.paths = set(paths) if paths is not None else None

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or (self.paths is not None and scope["path"] not in self.paths):
            await self.app(scope, receive, send)
            return

        header = Headers(scope=scope).get("content-length")
        if header is not None:
            try:
                length = int(header)
            except ValueError:
                response = JSONResponse(
                    status_code=400,
                    content={"success": False, "message": "Invalid Content-Length header"},
                )
                await response(scope, receive, send)
                return
            if length > self.max_bytes:
                logger.warning(f"Rejected {scope['path']}: {length} bytes exceeds {self.max_bytes}")
                await JSONResponse(status_code=413, content=TOO_LARGE)(scope, receive, send)
                return

        received = 0
        response_started = False

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_bytes:
                    raise RequestTooLarge()
            return message

        async def tracked_send(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, limited_receive, tracked_send)
        except RequestTooLarge:
            if response_started:
                raise
            logger.warning(f"Rejected {scope['path']}: streamed body exceeds {self.max_bytes} bytes")
            await JSONResponse(status_code=413, content=TOO_LARGE)(scope, receive, send)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add the standard hardening headers to every response."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response
