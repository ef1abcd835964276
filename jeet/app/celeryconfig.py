"""Configuration centralisée Celery pour les tâches asynchrones.

Le backfill est long et rejouable: acks tardifs et re-livraison si le worker disparaît.
"""

# ============================================================
# Module : jeet/app/celeryconfig.py
# Objet  : Configuration centralisée Celery (acks, timeouts).
# ============================================================

from __future__ import annotations

task_acks_late = True
task_reject_on_worker_lost = True
worker_prefetch_multiplier = 1
task_time_limit = 3600  # secondes, un run complet de backfill
task_soft_time_limit = 3300
broker_pool_limit = 10
task_serializer = "json"
result_serializer = "json"
accept_content = ["json"]
