"""Job de backfill des embeddings de contenus curés.

Le job (re)calcule les embeddings absents ou périmés, lot par lot, jusqu'à épuisement. Les échecs
unitaires sont journalisés et comptés sans interrompre le lot; un identifiant en échec n'est pas
retenté dans le même run. Le job est rejouable et peut tourner en même temps que le matching:
chaque écriture remplace une ligne entière, le matching ne voit jamais de demi-embedding.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from jeet.app.metrics import BACKFILL_ITEMS
from jeet.core.constants import MAX_BATCH_SIZE, MIN_BATCH_SIZE
from jeet.domain.cancellation import CancellationToken
from jeet.domain.content import ContentItem, ContentType
from jeet.domain.errors import AnswerEngineError, ContentNotFound, InvalidInput
from jeet.infra.embeddings.base import EmbeddingProvider
from jeet.infra.repo.content_source import ContentSource
from jeet.infra.repo.embedding_store import ContentEmbeddingStore

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class BackfillConfig:
    """Paramètres du backfill (taille de lot, pause entre deux éléments)."""

    batch_size: int = 100
    item_delay_s: float = 0.1


class BackfillReport(BaseModel):
    """Bilan d'un run de backfill."""

    content_type: ContentType
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    cancelled: bool = False
    failed_ids: list[str] = []


class BackfillJob:
    """Recalcule les embeddings manquants ou périmés d'un type de contenu."""

    def __init__(
        self,
        embedder: EmbeddingProvider,
        store: ContentEmbeddingStore,
        content_source: ContentSource,
        config: BackfillConfig | None = None,
    ) -> None:
        self.embedder = embedder
        self.store = store
        self.content = content_source
        self.config = config or BackfillConfig()

    def _compute(self, item: ContentItem) -> None:
        vector = self.embedder.embed(item.text)
        self.store.put(item.content_type, item.id, vector, item.version)

    def run(
        self,
        content_type: ContentType,
        batch_size: int | None = None,
        token: CancellationToken | None = None,
    ) -> BackfillReport:
        """
        Traite tous les contenus sans embedding valide (jamais calculés d'abord, puis périmés).

        Args:
            content_type: Type de contenu à traiter.
            batch_size: Taille de lot (défaut: configuration).
            token: Signal de cancellation, testé avant chaque appel fournisseur.

        Returns:
            BackfillReport: Bilan (traités, réussis, échoués, annulé).

        Raises:
            InvalidInput: Taille de lot hors bornes.
        """
        size = batch_size if batch_size is not None else self.config.batch_size
        if not MIN_BATCH_SIZE <= size <= MAX_BATCH_SIZE:
            raise InvalidInput(
                "batch_size out of range",
                details={"min": MIN_BATCH_SIZE, "max": MAX_BATCH_SIZE, "value": size},
            )
        token = token or CancellationToken()
        report = BackfillReport(content_type=content_type)
        # tout id tenté dans ce run est exclu des lots suivants: le run termine toujours
        attempted: set[str] = set()
        log.info("backfill_started", content_type=content_type.value, batch_size=size)

        while not token.cancelled:
            ids = self.store.list_stale_or_missing(content_type, size, exclude=attempted)
            if not ids:
                break
            items = self.content.get_many(content_type, ids)
            for cid in ids:
                if report.processed and token.wait(self.config.item_delay_s):
                    break
                if token.cancelled:
                    break
                attempted.add(cid)
                report.processed += 1
                item = items.get(cid)
                try:
                    if item is None:
                        raise ContentNotFound(f"{content_type.value} {cid} disappeared")
                    self._compute(item)
                except (AnswerEngineError, SQLAlchemyError) as exc:
                    report.failed += 1
                    report.failed_ids.append(cid)
                    BACKFILL_ITEMS.labels(content_type=content_type.value, outcome="failed").inc()
                    log.warning(
                        "backfill_item_failed",
                        content_type=content_type.value,
                        content_id=cid,
                        error=getattr(exc, "code", type(exc).__name__),
                    )
                    continue
                report.succeeded += 1
                BACKFILL_ITEMS.labels(content_type=content_type.value, outcome="succeeded").inc()

        report.cancelled = token.cancelled
        log.info(
            "backfill_finished",
            content_type=content_type.value,
            processed=report.processed,
            succeeded=report.succeeded,
            failed=report.failed,
            cancelled=report.cancelled,
        )
        return report

    def refresh_one(self, content_type: ContentType, content_id: str, force: bool = True) -> bool:
        """Recalcule l'embedding d'un seul contenu.

        Returns:
            bool: True si un embedding a été écrit, False s'il était déjà valide (force=False).

        Raises:
            ContentNotFound: Contenu inexistant.
        """
        item = self.content.get(content_type, content_id)
        if item is None:
            raise ContentNotFound(f"{content_type.value} {content_id} not found")
        if not force and self.store.get(content_type, content_id).is_valid:
            return False
        self._compute(item)
        BACKFILL_ITEMS.labels(content_type=content_type.value, outcome="succeeded").inc()
        log.info("embedding_refreshed", content_type=content_type.value, content_id=content_id)
        return True
