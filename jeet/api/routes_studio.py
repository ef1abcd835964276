"""Routes de l'outil d'édition pour la maintenance des embeddings.

Le contenu lui-même (patterns, questions) est édité ailleurs; ces routes ne font que déclencher le
backfill, rafraîchir un élément et rapporter la couverture des embeddings.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from jeet.api.deps import get_backfill_job, get_embedding_store, parse_content_type
from jeet.api.schemas import BackfillRequest, CoverageResponse, RefreshResponse
from jeet.domain.backfill import BackfillJob, BackfillReport
from jeet.domain.content import ContentType
from jeet.infra.repo.embedding_store import ContentEmbeddingStore

router = APIRouter(prefix="/studio/embeddings", tags=["studio"])
_backfill_dep = Depends(get_backfill_job)
_store_dep = Depends(get_embedding_store)


@router.post("/backfill", response_model=BackfillReport)
def backfill(req: BackfillRequest, job: BackfillJob = _backfill_dep) -> BackfillReport:
    """Recalcule les embeddings manquants ou périmés d'un type de contenu (synchrone)."""
    return job.run(parse_content_type(req.content_type), req.batch_size)


@router.get("/coverage", response_model=CoverageResponse)
def coverage(store: ContentEmbeddingStore = _store_dep) -> CoverageResponse:
    """Compte, par type de contenu, les embeddings valides, manquants et périmés."""
    out = {}
    for ct in ContentType:
        cov = store.count_stale_or_missing(ct)
        out[ct.value] = {
            "total": cov.total,
            "valid": cov.valid,
            "missing": cov.missing,
            "stale": cov.stale,
            "pending": cov.pending,
        }
    return CoverageResponse(**out)


@router.post("/{content_type}/{content_id}", response_model=RefreshResponse)
def refresh(
    content_type: str, content_id: str, job: BackfillJob = _backfill_dep
) -> RefreshResponse:
    """Régénère l'embedding d'un seul contenu."""
    ct = parse_content_type(content_type)
    refreshed = job.refresh_one(ct, content_id)
    return RefreshResponse(content_type=ct, content_id=content_id, refreshed=refreshed)
