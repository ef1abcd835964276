"""
Tâche Celery de backfill des embeddings.

Exécute `BackfillJob.run` en arrière-plan pour un type de contenu et renvoie le bilan sérialisé.
Le job étant rejouable, une re-livraison après perte du worker ne corrompt rien.
"""

from __future__ import annotations

from jeet.app.celery_app import celery_app
from jeet.core.container import container
from jeet.domain.content import ContentType


@celery_app.task(name="jeet.tasks.backfill")
def backfill_task(content_type: str, batch_size: int | None = None) -> dict:
    report = container.backfill.run(ContentType.parse(content_type), batch_size)
    return report.model_dump(mode="json")
