"""Tests de la conversion settings -> configuration et de l'assemblage du conteneur."""

import pytest

from jeet.core.container import Container, answer_policy, build_matcher, retry_policy
from jeet.core.settings import Settings
from jeet.domain.content import ContentType
from jeet.domain.matching import CosineMatcher

PATTERN_HIGH = 0.9
PATTERN_LOW = 0.6
MAX_ATTEMPTS = 5


def test_answer_policy_from_settings() -> None:
    settings = Settings(
        PATTERN_HIGH_THRESHOLD=PATTERN_HIGH, PATTERN_LOW_THRESHOLD=PATTERN_LOW, MATCH_TOP_K=2
    )

    policy = answer_policy(settings)

    assert policy.thresholds[ContentType.PATTERN].high == PATTERN_HIGH
    assert policy.thresholds[ContentType.PATTERN].low == PATTERN_LOW
    assert policy.top_k == 2
    assert policy.search_order == (ContentType.QUESTION, ContentType.PATTERN)


def test_answer_policy_rejects_inverted_thresholds() -> None:
    settings = Settings(QUESTION_HIGH_THRESHOLD=0.4, QUESTION_LOW_THRESHOLD=0.5)

    with pytest.raises(ValueError):
        answer_policy(settings)


def test_retry_policy_from_settings() -> None:
    assert retry_policy(Settings(PROVIDER_MAX_ATTEMPTS=MAX_ATTEMPTS)).max_attempts == MAX_ATTEMPTS


def test_build_matcher() -> None:
    assert isinstance(build_matcher("numpy"), CosineMatcher)
    with pytest.raises(ValueError):
        build_matcher("annoy")


def test_settings_read_environment(monkeypatch) -> None:
    monkeypatch.setenv("MATCHER_BACKEND", "faiss")
    monkeypatch.setenv("BACKFILL_BATCH_SIZE", "25")

    settings = Settings()

    assert settings.MATCHER_BACKEND == "faiss"
    assert settings.BACKFILL_BATCH_SIZE == 25


def test_container_with_in_memory_database() -> None:
    """Teste qu'un conteneur sur base en mémoire est utilisable sans migration."""
    c = Container(Settings(DATABASE_URL="sqlite+pysqlite:///:memory:", BACKFILL_BATCH_SIZE=7))

    assert c.backfill.config.batch_size == 7
    assert c.embedding_store.list_stale_or_missing(ContentType.PATTERN, 10) == []
    assert c.embedder.model == c.settings.EMBEDDINGS_MODEL
