"""
Métriques Prometheus pour l'application.

Ce module définit les métriques Prometheus du moteur de réponse (décisions, matching, appels
fournisseur, backfill) ainsi que l'exposition `/metrics` et le middleware HTTP.
"""

import time

from fastapi import APIRouter, Request
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

metrics_router = APIRouter()

REQUEST_COUNT = Counter(
    "http_requests_total", "Total HTTP requests", ["method", "route", "status"]
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds", "Latency of HTTP requests", ["route"]
)

# Orchestration des réponses
ANSWER_DECISIONS = Counter(
    "answer_decisions_total",
    "Answer decisions by kind",
    ["kind"],
)
ANSWER_ERRORS = Counter(
    "answer_errors_total",
    "Answer requests ending in ERRORED",
    ["code"],
)
ANSWER_DECISION_LATENCY = Histogram(
    "answer_decision_latency_seconds",
    "Latency until the answer is decided and the first chunk is ready",
    ["kind"],
)
ANSWER_LATENCY = Histogram(
    "answer_latency_seconds",
    "Latency until the terminal stream marker, by decision kind and outcome",
    ["kind", "ok"],
)
ANSWER_STREAM_ABORTS = Counter(
    "answer_stream_aborts_total",
    "Answer streams ended before completion",
    ["reason"],
)

# Matching
MATCH_BEST_SCORE = Histogram(
    "match_best_score",
    "Best similarity score per request and content type",
    ["content_type"],
    buckets=[x / 20.0 for x in range(-20, 21)],  # -1.0..1.0 step 0.05
)
MATCH_LATENCY = Histogram(
    "match_latency_seconds",
    "Latency of the matching phase",
    ["backend"],
)

# Fournisseurs externes
PROVIDER_CALLS = Counter(
    "provider_calls_total",
    "External provider calls by outcome",
    ["provider", "outcome"],
)
PROVIDER_RETRIES = Counter(
    "provider_retries_total",
    "Retries of transient provider failures",
    ["provider", "reason"],
)
PROVIDER_LATENCY = Histogram(
    "provider_latency_seconds",
    "Latency of external provider calls",
    ["provider"],
)

# Backfill
BACKFILL_ITEMS = Counter(
    "backfill_items_total",
    "Backfill items by outcome",
    ["content_type", "outcome"],
)
EMBEDDINGS_PENDING = Gauge(
    "embeddings_pending",
    "Content rows lacking a valid embedding",
    ["content_type", "reason"],
)


@metrics_router.get("/metrics")
def metrics():
    """
    Expose les métriques Prometheus au format texte.

    Returns:
        Response: Réponse HTTP contenant les métriques au format Prometheus.
    """
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


class PrometheusMiddleware(BaseHTTPMiddleware):
    """
    Middleware Prometheus pour mesurer les métriques HTTP.

    Collecte les métriques de comptage des requêtes et de latence par route pour l'exposition
    Prometheus.
    """

    async def dispatch(self, request: Request, call_next):
        """
        Traite une requête HTTP et collecte les métriques.

        Args:
            request: Requête HTTP entrante.
            call_next: Fonction pour appeler le middleware suivant.

        Returns:
            Response: Réponse HTTP avec métriques collectées.
        """
        start = time.perf_counter()
        response: Response = await call_next(request)
        route = request.scope.get("path", "unknown")
        REQUEST_COUNT.labels(request.method, route, str(response.status_code)).inc()
        REQUEST_LATENCY.labels(route).observe(time.perf_counter() - start)
        return response
