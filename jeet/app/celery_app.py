"""
Module: celery_app.

But: Initialiser l'instance Celery de l'application et charger la config runtime.
Notes:
- Aucun secret loggé.
- Les tâches sont déclarées dans `jeet.tasks.*` et importées à l'initialisation du worker.
"""

from celery import Celery

from jeet.core.container import container

celery_app = Celery(
    "jeet",
    broker=container.settings.CELERY_BROKER_URL,
    backend=container.settings.CELERY_RESULT_BACKEND,
    include=["jeet.tasks.backfill_tasks"],
)
# Load configuration from module (retries, timeouts, acks)
celery_app.config_from_object("jeet.app.celeryconfig")
celery_app.conf.task_routes = {"jeet.tasks.*": {"queue": "embeddings"}}

__all__ = ["celery_app"]
