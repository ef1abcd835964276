# ============================================================
# Module : jeet/infra/repo/embedding_store.py
# Objet  : Store des embeddings de contenus curés (SQLAlchemy).
# Invariants :
#  - Un embedding n'est valide que si sa version (et son modèle) correspondent
#    au contenu courant; sinon il est traité comme absent.
#  - Écriture = remplacement en bloc d'une ligne (vecteur + version + modèle).
#  - Aucun cache: chaque lecture reflète l'état courant.
# ============================================================
"""Store des embeddings de contenus curés avec suivi de péremption.

Le store associe à chaque contenu (pattern, question) son vecteur et le marqueur de version sur
lequel il a été calculé. Les lectures comparent toujours ce marqueur à la version courante du
contenu, lue auprès de la `ContentSource` au moment de l'appel.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import UTC, datetime

import structlog
from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from jeet.app.metrics import EMBEDDINGS_PENDING
from jeet.domain.content import (
    Candidate,
    ContentType,
    EmbeddingCoverage,
    EmbeddingState,
    MissingEmbedding,
    MissingReason,
    ValidEmbedding,
)
from jeet.domain.errors import InvalidInput
from jeet.infra.repo.content_source import ContentSource
from jeet.infra.repo.db import session_scope
from jeet.infra.repo.models import ContentEmbeddingORM

log = structlog.get_logger(__name__)


class ContentEmbeddingStore:
    """Persistance des embeddings et sémantique de péremption."""

    def __init__(
        self, session_factory: sessionmaker, content_source: ContentSource, model: str
    ) -> None:
        """Construit le store.

        Args:
            session_factory: Factory de sessions SQLAlchemy.
            content_source: Source des versions courantes des contenus.
            model: Modèle d'embedding courant; un vecteur d'un autre modèle est périmé.
        """
        self._sessions = session_factory
        self._content = content_source
        self.model = model

    def _classify(
        self, current_version: str | None, row: ContentEmbeddingORM | None
    ) -> EmbeddingState:
        if row is None or current_version is None:
            return MissingEmbedding(MissingReason.NEVER_COMPUTED)
        if row.version != current_version or row.model != self.model:
            return MissingEmbedding(MissingReason.STALE)
        return ValidEmbedding(vector=list(row.vector), version=row.version, model=row.model)

    def _rows(self, content_type: ContentType) -> dict[str, ContentEmbeddingORM]:
        with session_scope(self._sessions) as session:
            rows = session.execute(
                select(ContentEmbeddingORM).where(
                    ContentEmbeddingORM.content_type == content_type.value
                )
            ).scalars().all()
            return {r.content_id: r for r in rows}

    def get(self, content_type: ContentType, content_id: str) -> EmbeddingState:
        """Retourne l'embedding s'il est valide pour la version courante, sinon un absent."""
        item = self._content.get(content_type, content_id)
        with session_scope(self._sessions) as session:
            row = session.get(ContentEmbeddingORM, (content_type.value, content_id))
        return self._classify(item.version if item else None, row)

    def put(
        self,
        content_type: ContentType,
        content_id: str,
        vector: Sequence[float],
        version: str,
    ) -> None:
        """Upsert idempotent (dernière écriture gagnante) d'un embedding complet."""
        if not vector:
            raise InvalidInput("cannot store an empty vector")
        if not version:
            raise InvalidInput("cannot store an embedding without version marker")
        with session_scope(self._sessions) as session:
            session.merge(
                ContentEmbeddingORM(
                    content_type=content_type.value,
                    content_id=content_id,
                    vector=[float(x) for x in vector],
                    dimension=len(vector),
                    version=version,
                    model=self.model,
                    updated_at=datetime.now(UTC),
                )
            )
        log.debug(
            "embedding_stored",
            content_type=content_type.value,
            content_id=content_id,
            dimension=len(vector),
        )

    def states(self, content_type: ContentType) -> dict[str, EmbeddingState]:
        """État de chaque contenu existant, dans l'ordre des identifiants."""
        versions = self._content.list_versions(content_type)
        rows = self._rows(content_type)
        return {cid: self._classify(v, rows.get(cid)) for cid, v in versions.items()}

    def list_stale_or_missing(
        self,
        content_type: ContentType,
        batch_size: int,
        exclude: Iterable[str] = (),
    ) -> list[str]:
        """
        Liste les contenus sans embedding valide, jamais calculés d'abord, puis périmés.

        Chaque appel relit l'état courant: l'opération est rejouable sans corruption.

        Args:
            content_type: Type de contenu à scanner.
            batch_size: Taille maximale du lot.
            exclude: Identifiants à ignorer (ex. échecs déjà comptés dans le run courant).

        Returns:
            list[str]: Identifiants à (re)calculer.
        """
        skip = set(exclude)
        never: list[str] = []
        stale: list[str] = []
        for cid, state in self.states(content_type).items():
            if state.is_valid or cid in skip:
                continue
            if state.reason == MissingReason.NEVER_COMPUTED:
                never.append(cid)
            else:
                stale.append(cid)
        return (never + stale)[: max(0, batch_size)]

    def count_stale_or_missing(self, content_type: ContentType) -> EmbeddingCoverage:
        """Compte les contenus par état d'embedding (reporting)."""
        states = self.states(content_type)
        missing = sum(
            1
            for s in states.values()
            if not s.is_valid and s.reason == MissingReason.NEVER_COMPUTED
        )
        stale = sum(1 for s in states.values() if not s.is_valid and s.reason == MissingReason.STALE)
        coverage = EmbeddingCoverage(
            content_type=content_type,
            total=len(states),
            valid=len(states) - missing - stale,
            missing=missing,
            stale=stale,
        )
        EMBEDDINGS_PENDING.labels(content_type=content_type.value, reason="missing").set(missing)
        EMBEDDINGS_PENDING.labels(content_type=content_type.value, reason="stale").set(stale)
        return coverage

    def valid_candidates(self, content_type: ContentType) -> list[Candidate]:
        """Vecteurs valides à l'instant de l'appel, triés par identifiant."""
        return [
            Candidate(content_type=content_type, content_id=cid, vector=state.vector)
            for cid, state in self.states(content_type).items()
            if isinstance(state, ValidEmbedding)
        ]
