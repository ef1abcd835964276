"""Configuration de logging basée sur structlog.

Objectif du module
------------------
- Logs lisibles (console) en développement, JSON ligne à ligne ailleurs.
- Propager le contexte de requête (request_id) lié via `structlog.contextvars`.
- Ne jamais journaliser de secrets ni de vecteurs complets: les modules loguent des événements
  nommés (`answer_decided`, `provider_retry`...) avec des champs scalaires.
"""

import logging
import sys

import structlog


def setup_logging(level: str | int = logging.DEBUG, json_logs: bool = False) -> None:
    """Configure structlog.

    Args:
        level: Niveau minimal (nom ou valeur `logging`).
        json_logs: Rendu JSON au lieu du rendu console.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    renderer = (
        structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )
