"""
Application principale FastAPI.

Ce module assemble les composants de l'application: middlewares, gestion des erreurs, routes de
chat et de maintenance des embeddings, santé et métriques.

Responsabilités du module:
- Initialiser le logging structuré et le tracing
- Construire l'application FastAPI avec son titre/debug
- Ajouter les middlewares (request id, métriques)
- Monter les routers
"""

from __future__ import annotations

from fastapi import FastAPI

from jeet.api.errors import install_error_handlers
from jeet.api.routes_chat import router as chat_router
from jeet.api.routes_health import router as health_router
from jeet.api.routes_studio import router as studio_router
from jeet.app.metrics import PrometheusMiddleware, metrics_router
from jeet.app.tracing import setup_tracing
from jeet.core.container import container
from jeet.core.logging import setup_logging
from jeet.middlewares.request_id import RequestIDMiddleware


def create_app() -> FastAPI:
    """
    Construit et retourne l'application FastAPI prête à l'usage.

    Étapes:
    - Configure le logging structuré (structlog) et le tracing OTLP éventuel
    - Ajoute les middlewares de traçabilité et de métriques
    - Installe le gestionnaire des erreurs typées du moteur
    - Publie les routes
    """
    settings = container.settings
    setup_logging(settings.LOG_LEVEL, json_logs=settings.APP_ENV != "dev")
    setup_tracing(settings)
    app = FastAPI(title=settings.APP_NAME, debug=settings.APP_DEBUG)
    app.add_middleware(PrometheusMiddleware)
    app.add_middleware(RequestIDMiddleware)
    install_error_handlers(app)
    app.include_router(health_router)
    app.include_router(chat_router)
    app.include_router(studio_router)
    app.include_router(metrics_router)
    return app


app = create_app()
