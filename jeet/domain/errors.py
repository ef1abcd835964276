"""Taxonomie d'erreurs typées du moteur de réponse.

Chaque erreur porte un code stable, un statut HTTP équivalent et un indicateur `retryable`.
Les erreurs transitoires sont rejouées à l'intérieur du composant qui possède l'appel externe;
une fois les tentatives épuisées, c'est toujours l'une de ces classes qui traverse la frontière
du composant, jamais une exception générique.
"""

from __future__ import annotations

from typing import Any

from jeet.core.constants import (
    HTTP_STATUS_BAD_REQUEST,
    HTTP_STATUS_INTERNAL_SERVER_ERROR,
    HTTP_STATUS_NOT_FOUND,
    HTTP_STATUS_PAYLOAD_TOO_LARGE,
    HTTP_STATUS_SERVICE_UNAVAILABLE,
    HTTP_STATUS_TOO_MANY_REQUESTS,
    HTTP_STATUS_UNPROCESSABLE_ENTITY,
)


class AnswerEngineError(Exception):
    """Erreur de base du moteur (code + statut HTTP + rejouabilité)."""

    code = "ENGINE_ERROR"
    http_status = HTTP_STATUS_INTERNAL_SERVER_ERROR
    retryable = False

    def __init__(
        self,
        message: str | None = None,
        *,
        retryable: bool | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialise l'erreur; `retryable` surcharge la valeur de classe si fourni."""
        super().__init__(message or self.code.lower())
        self.message = message or self.code.lower()
        self.details = details or {}
        if retryable is not None:
            self.retryable = retryable


class InvalidInput(AnswerEngineError):
    """Entrée invalide fournie par l'appelant (jamais rejouée)."""

    code = "INVALID_INPUT"
    http_status = HTTP_STATUS_BAD_REQUEST


class InputTooLarge(InvalidInput):
    """Texte dépassant la taille maximale acceptée par le fournisseur d'embeddings."""

    code = "INPUT_TOO_LARGE"
    http_status = HTTP_STATUS_PAYLOAD_TOO_LARGE


class ProviderUnavailable(AnswerEngineError):
    """Fournisseur injoignable (réseau, timeout, 5xx). Transitoire."""

    code = "PROVIDER_UNAVAILABLE"
    http_status = HTTP_STATUS_SERVICE_UNAVAILABLE
    retryable = True


class RateLimited(ProviderUnavailable):
    """Quota fournisseur atteint; `retry_after` est le délai demandé par le fournisseur."""

    code = "RATE_LIMITED"
    http_status = HTTP_STATUS_TOO_MANY_REQUESTS

    def __init__(
        self,
        message: str | None = None,
        *,
        retry_after: float | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialise l'erreur avec le délai éventuellement imposé par le fournisseur."""
        super().__init__(message, details=details)
        self.retry_after = retry_after


class ProviderRejected(AnswerEngineError):
    """Entrée refusée par le fournisseur (format, politique). Non rejouable."""

    code = "CANNOT_ANSWER"
    http_status = HTTP_STATUS_UNPROCESSABLE_ENTITY


class UpstreamUnavailable(AnswerEngineError):
    """Dépendance amont indisponible après épuisement des tentatives."""

    code = "UPSTREAM_UNAVAILABLE"
    http_status = HTTP_STATUS_SERVICE_UNAVAILABLE


class StoreInconsistency(AnswerEngineError):
    """Incohérence logique du store (bug de déploiement/version). Fatale."""

    code = "STORE_INCONSISTENCY"


class DimensionMismatch(StoreInconsistency):
    """Dimensions différentes entre le vecteur requête et un vecteur candidat."""

    code = "DIMENSION_MISMATCH"

    def __init__(self, expected: int, got: int, content_id: str | None = None) -> None:
        """Initialise l'erreur avec les dimensions observées."""
        super().__init__(
            f"dimension mismatch: query={expected} candidate={got}",
            details={"expected": expected, "got": got, "content_id": content_id},
        )
        self.expected = expected
        self.got = got
        self.content_id = content_id


class ContentNotFound(AnswerEngineError):
    """Contenu curé introuvable dans le store de contenus."""

    code = "NOT_FOUND"
    http_status = HTTP_STATUS_NOT_FOUND
