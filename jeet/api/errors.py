"""Enveloppe d'erreur standard de l'API et gestionnaire des erreurs du moteur.

Toute `AnswerEngineError` remontant d'une route est rendue sous la forme
`{"code", "message", "trace_id", "details"}` avec le statut HTTP porté par l'erreur.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from jeet.core.constants import HTTP_STATUS_SERVER_ERROR_MIN
from jeet.domain.errors import AnswerEngineError, RateLimited

log = structlog.get_logger(__name__)


@dataclass
class ErrorEnvelope:
    """Standard error envelope for API responses."""

    code: str
    message: str
    trace_id: str | None = None
    details: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "trace_id": self.trace_id,
            **({"details": self.details} if self.details else {}),
        }


def extract_trace_id(request: Request) -> str | None:
    """Identifiant de corrélation: en-tête X-Trace-ID, sinon l'id posé par le middleware."""
    trace_id = request.headers.get("X-Trace-ID")
    if trace_id:
        return trace_id
    return getattr(request.state, "request_id", None)


def create_error_response(
    status_code: int,
    code: str,
    message: str,
    trace_id: str | None = None,
    details: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Create a standardized error response."""
    envelope = ErrorEnvelope(code=code, message=message, trace_id=trace_id, details=details)
    return JSONResponse(status_code=status_code, content=envelope.to_dict(), headers=headers)


def handle_engine_error(request: Request, exc: AnswerEngineError) -> JSONResponse:
    """Rend une `AnswerEngineError` avec l'enveloppe standard."""
    trace_id = extract_trace_id(request)
    headers = None
    retry_after = exc.retry_after if isinstance(exc, RateLimited) else exc.details.get("retry_after")
    if retry_after is not None:
        headers = {"Retry-After": str(max(1, round(retry_after)))}
    level = log.error if exc.http_status >= HTTP_STATUS_SERVER_ERROR_MIN else log.info
    level("api_error", code=exc.code, status_code=exc.http_status, path=request.url.path)
    return create_error_response(
        status_code=exc.http_status,
        code=exc.code,
        message=exc.message,
        trace_id=trace_id,
        details=exc.details or None,
        headers=headers,
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AnswerEngineError, handle_engine_error)
