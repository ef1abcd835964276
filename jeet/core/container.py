"""
Conteneur d'injection de dépendances et configuration application.

Convertit une fois les settings en valeurs de configuration explicites (politique de réponse,
backfill, retry), instancie les composants (store, fournisseurs, matcher, orchestrateur, backfill)
et expose un singleton `container` utilisé par l'API, les tâches et les scripts.
"""

from __future__ import annotations

from jeet.core.settings import Settings, get_settings
from jeet.domain.answer_orchestrator import AnswerOrchestrator, AnswerPolicy, Thresholds
from jeet.domain.backfill import BackfillConfig, BackfillJob
from jeet.domain.content import ContentType
from jeet.domain.matching import CosineMatcher, VectorMatcher
from jeet.infra.embeddings.openai_embedder import OpenAIEmbedder
from jeet.infra.llm.openai_client import OpenAILLM
from jeet.infra.repo.content_source import SqlContentSource
from jeet.infra.repo.db import get_engine, get_session_factory
from jeet.infra.repo.embedding_store import ContentEmbeddingStore
from jeet.infra.repo.models import Base
from jeet.infra.retry import RetryPolicy


def answer_policy(settings: Settings) -> AnswerPolicy:
    """Politique de décision à partir des settings."""
    return AnswerPolicy(
        thresholds={
            ContentType.QUESTION: Thresholds(
                high=settings.QUESTION_HIGH_THRESHOLD, low=settings.QUESTION_LOW_THRESHOLD
            ),
            ContentType.PATTERN: Thresholds(
                high=settings.PATTERN_HIGH_THRESHOLD, low=settings.PATTERN_LOW_THRESHOLD
            ),
        },
        top_k=settings.MATCH_TOP_K,
        min_score=settings.MATCH_MIN_SCORE,
        max_question_chars=settings.CHAT_MAX_QUESTION_CHARS,
    )


def retry_policy(settings: Settings) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=settings.PROVIDER_MAX_ATTEMPTS,
        base_delay=settings.PROVIDER_BASE_DELAY_S,
        max_delay=settings.PROVIDER_MAX_DELAY_S,
    )


def build_matcher(backend: str) -> VectorMatcher:
    """Matcher selon `MATCHER_BACKEND` ("numpy" par défaut, "faiss")."""
    if backend == "faiss":
        # import local: faiss n'est chargé que si le backend est choisi
        from jeet.infra.vecstores.faiss_matcher import FaissMatcher

        return FaissMatcher()
    if backend != "numpy":
        raise ValueError(f"unknown MATCHER_BACKEND: {backend}")
    return CosineMatcher()


class Container:
    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        s = self.settings
        self.engine = get_engine(s.DATABASE_URL)
        self.session_factory = get_session_factory(self.engine)
        if self.engine.url.database in (None, "", ":memory:"):
            # base éphémère (dev/tests): pas de migration Alembic possible
            Base.metadata.create_all(self.engine)
        self.content_source = SqlContentSource(self.session_factory)
        self.embedding_store = ContentEmbeddingStore(
            self.session_factory, self.content_source, model=s.EMBEDDINGS_MODEL
        )
        retry = retry_policy(s)
        self.embedder = OpenAIEmbedder(
            s.OPENAI_API_KEY,
            s.EMBEDDINGS_MODEL,
            timeout_s=s.EMBEDDINGS_TIMEOUT_S,
            max_input_tokens=s.EMBEDDINGS_MAX_INPUT_TOKENS,
            normalize_numbers=s.EMBEDDINGS_NORMALIZE_NUMBERS,
            retry_policy=retry,
        )
        self.llm = OpenAILLM(
            s.OPENAI_API_KEY,
            s.LLM_MODEL,
            timeout_s=s.LLM_TIMEOUT_S,
            temperature=s.LLM_TEMPERATURE,
            max_tokens=s.LLM_MAX_TOKENS,
            retry_policy=retry,
        )
        self.matcher = build_matcher(s.MATCHER_BACKEND)
        self.orchestrator = AnswerOrchestrator(
            embedder=self.embedder,
            store=self.embedding_store,
            content_source=self.content_source,
            matcher=self.matcher,
            llm=self.llm,
            policy=answer_policy(s),
        )
        self.backfill = BackfillJob(
            embedder=self.embedder,
            store=self.embedding_store,
            content_source=self.content_source,
            config=BackfillConfig(
                batch_size=s.BACKFILL_BATCH_SIZE, item_delay_s=s.BACKFILL_ITEM_DELAY_S
            ),
        )


container = Container()
