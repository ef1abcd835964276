"""Traduction des exceptions du SDK OpenAI vers la taxonomie d'erreurs du moteur."""

from __future__ import annotations

import openai

from jeet.core.constants import (
    HTTP_STATUS_SERVER_ERROR_MIN,
    HTTP_STATUS_TOO_MANY_REQUESTS,
)
from jeet.domain.errors import (
    AnswerEngineError,
    ProviderRejected,
    ProviderUnavailable,
    RateLimited,
)


def _retry_after(exc: openai.APIStatusError) -> float | None:
    """Extrait le délai `Retry-After` (secondes) de la réponse, si présent et numérique."""
    response = getattr(exc, "response", None)
    headers = getattr(response, "headers", None) or {}
    raw = headers.get("retry-after-ms")
    if raw:
        try:
            return float(raw) / 1000.0
        except ValueError:
            pass
    raw = headers.get("retry-after")
    if raw:
        try:
            return float(raw)
        except ValueError:
            return None
    return None


def map_openai_error(exc: Exception, *, provider: str) -> AnswerEngineError:
    """Convertit une exception SDK en erreur typée.

    - timeout / connexion / 5xx -> ProviderUnavailable (rejouable)
    - 429 -> RateLimited (avec délai fournisseur éventuel)
    - autres 4xx -> ProviderRejected (non rejouable)
    """
    details = {"provider": provider, "error": type(exc).__name__}
    if isinstance(exc, openai.APITimeoutError):
        return ProviderUnavailable(f"{provider} timeout", details=details)
    if isinstance(exc, openai.APIConnectionError):
        return ProviderUnavailable(f"{provider} unreachable", details=details)
    if isinstance(exc, openai.APIStatusError):
        status = exc.status_code
        details["status_code"] = status
        if status == HTTP_STATUS_TOO_MANY_REQUESTS:
            return RateLimited(
                f"{provider} rate limited", retry_after=_retry_after(exc), details=details
            )
        if status >= HTTP_STATUS_SERVER_ERROR_MIN:
            return ProviderUnavailable(f"{provider} server error {status}", details=details)
        return ProviderRejected(f"{provider} rejected the request ({status})", details=details)
    return ProviderUnavailable(f"{provider} call failed", details=details)
