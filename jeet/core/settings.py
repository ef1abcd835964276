"""Définition et chargement des paramètres de configuration applicative.

Objectif du module
------------------
- Centraliser les paramètres (env/.env) via Pydantic Settings
- Résoudre le fichier `.env` à utiliser selon la stratégie: ENV_FILE > .env.{APP_ENV} > .env
- Les composants ne lisent jamais ces paramètres directement: le conteneur les convertit en
  valeurs de configuration explicites (politique de réponse, backfill, retry).
"""

import os
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Détermination du fichier .env à utiliser avec priorité:
# 1) ENV_FILE (chemin explicite)
# 2) .env.{APP_ENV} si présent
# 3) .env (défaut)
_cwd = Path.cwd()
_env_file_from_env = os.getenv("ENV_FILE")
if _env_file_from_env:
    _ENV_FILE_PATH = _env_file_from_env
else:
    _app_env = os.getenv("APP_ENV", "dev")
    _candidate_specific = _cwd / f".env.{_app_env}"
    _candidate_default = _cwd / ".env"
    if _candidate_specific.exists():
        _ENV_FILE_PATH = _candidate_specific
    else:
        _ENV_FILE_PATH = _candidate_default


class Settings(BaseSettings):
    """Modèle de configuration chargé depuis l'environnement et .env."""

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE_PATH,
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=False,
        extra="ignore",
    )
    APP_NAME: str = "jeet-answer-engine"
    APP_ENV: str = "dev"
    APP_DEBUG: bool = True
    LOG_LEVEL: str = "DEBUG"

    DATABASE_URL: str | None = None

    # Embeddings
    OPENAI_API_KEY: str | None = None
    EMBEDDINGS_MODEL: str = "text-embedding-3-small"
    EMBEDDINGS_TIMEOUT_S: float = 10.0
    EMBEDDINGS_MAX_INPUT_TOKENS: int = 8191
    EMBEDDINGS_NORMALIZE_NUMBERS: bool = True

    # Génération
    LLM_MODEL: str = "gpt-4o-mini"
    LLM_TIMEOUT_S: float = 30.0
    LLM_TEMPERATURE: float = 0.7
    LLM_MAX_TOKENS: int = 1000

    # Retry des appels fournisseur (embeddings + génération)
    PROVIDER_MAX_ATTEMPTS: int = 3
    PROVIDER_BASE_DELAY_S: float = 0.5
    PROVIDER_MAX_DELAY_S: float = 8.0

    # Matching / politique de décision
    MATCHER_BACKEND: str = "numpy"  # "numpy" | "faiss"
    MATCH_TOP_K: int = 3
    MATCH_MIN_SCORE: float = 0.3
    QUESTION_HIGH_THRESHOLD: float = 0.85
    QUESTION_LOW_THRESHOLD: float = 0.5
    PATTERN_HIGH_THRESHOLD: float = 0.85
    PATTERN_LOW_THRESHOLD: float = 0.55
    CHAT_MAX_QUESTION_CHARS: int = 2000

    # Backfill
    BACKFILL_BATCH_SIZE: int = 100
    BACKFILL_ITEM_DELAY_S: float = 0.1

    # Observabilité / tâches
    OTLP_ENDPOINT: str | None = None
    CELERY_BROKER_URL: str = "redis://redis:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://redis:6379/1"


def get_settings() -> Settings:
    """Construit et retourne la configuration de l'application."""
    return Settings()
