"""Dépendances partagées pour les routes de l'API.

Les routes obtiennent leurs composants via `Depends`: les tests les remplacent par
`app.dependency_overrides` sans toucher au conteneur.
"""

from __future__ import annotations

from jeet.core.container import container
from jeet.domain.answer_orchestrator import AnswerOrchestrator
from jeet.domain.backfill import BackfillJob
from jeet.domain.content import ContentType
from jeet.domain.errors import InvalidInput
from jeet.infra.repo.embedding_store import ContentEmbeddingStore


def get_orchestrator() -> AnswerOrchestrator:
    return container.orchestrator


def get_backfill_job() -> BackfillJob:
    return container.backfill


def get_embedding_store() -> ContentEmbeddingStore:
    return container.embedding_store


def parse_content_type(value: str) -> ContentType:
    """Type de contenu depuis un paramètre HTTP; valeur inconnue -> `InvalidInput`."""
    try:
        return ContentType.parse(value)
    except ValueError as exc:
        raise InvalidInput(str(exc), details={"allowed": [ct.value for ct in ContentType]}) from exc
