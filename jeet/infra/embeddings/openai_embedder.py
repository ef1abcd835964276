"""
Fournisseur d'embeddings OpenAI.

Ce module implémente le contrat `EmbeddingProvider` avec l'API OpenAI: validation de l'entrée
(texte non vide, limite de tokens comptée avec tiktoken), normalisation optionnelle des nombres,
un appel réseau par tentative et retry borné avec backoff sur les erreurs transitoires.
"""

from __future__ import annotations

import time

import httpx
import openai
import structlog
import tiktoken

from jeet.app.metrics import PROVIDER_CALLS, PROVIDER_LATENCY
from jeet.core.constants import DEFAULT_MODEL_ENCODING
from jeet.domain.errors import AnswerEngineError, InputTooLarge, InvalidInput, ProviderUnavailable
from jeet.domain.normalization import normalize_for_embedding
from jeet.infra.embeddings.base import EmbeddingProvider
from jeet.infra.openai_errors import map_openai_error
from jeet.infra.retry import RetryPolicy, call_with_retries

PROVIDER = "openai_embeddings"


class OpenAIEmbedder(EmbeddingProvider):
    """
    Fournisseur d'embeddings basé sur l'API OpenAI.

    Le client SDK est construit sans retry interne (`max_retries=0`): la seule politique de retry
    appliquée est `RetryPolicy`, avec un timeout httpx propre aux embeddings.
    """

    def __init__(
        self,
        api_key: str | None,
        model: str = "text-embedding-3-small",
        *,
        timeout_s: float = 10.0,
        max_input_tokens: int = 8191,
        normalize_numbers: bool = True,
        retry_policy: RetryPolicy | None = None,
        client: openai.OpenAI | None = None,
    ) -> None:
        """
        Initialise le fournisseur.

        Args:
            api_key: Clé API OpenAI (None: fournisseur non configuré).
            model: Modèle d'embedding.
            timeout_s: Timeout d'un appel.
            max_input_tokens: Limite de tokens d'une entrée.
            normalize_numbers: Remplace les nombres par `X` avant embedding.
            retry_policy: Politique de retry des erreurs transitoires.
            client: Client SDK préconstruit (tests).
        """
        self.model = model
        self.max_input_tokens = max_input_tokens
        self.normalize_numbers = normalize_numbers
        self.retry_policy = retry_policy or RetryPolicy()
        self.dimension: int | None = None
        self._encoding = None
        self._log = structlog.get_logger(__name__).bind(provider=PROVIDER, model=model)
        if client is not None:
            self.client = client
        elif api_key:
            self.client = openai.OpenAI(
                api_key=api_key,
                timeout=httpx.Timeout(timeout_s, connect=min(timeout_s, 5.0)),
                max_retries=0,
            )
        else:
            self.client = None

    def count_tokens(self, text: str) -> int:
        """Compte les tokens avec tiktoken; repli sur le nombre de mots si indisponible."""
        try:
            if self._encoding is None:
                try:
                    self._encoding = tiktoken.encoding_for_model(self.model)
                except KeyError:
                    self._encoding = tiktoken.get_encoding(DEFAULT_MODEL_ENCODING)
            return len(self._encoding.encode(text))
        except Exception:
            return len(text.split())

    def _call_once(self, text: str) -> list[float]:
        start = time.perf_counter()
        try:
            resp = self.client.embeddings.create(model=self.model, input=text)  # type: ignore[union-attr]
        except openai.OpenAIError as exc:
            err = map_openai_error(exc, provider=PROVIDER)
            PROVIDER_CALLS.labels(provider=PROVIDER, outcome=err.code).inc()
            raise err from exc
        finally:
            PROVIDER_LATENCY.labels(provider=PROVIDER).observe(time.perf_counter() - start)
        PROVIDER_CALLS.labels(provider=PROVIDER, outcome="ok").inc()
        return list(resp.data[0].embedding)

    def embed(self, text: str) -> list[float]:
        """
        Génère l'embedding d'un texte via l'API OpenAI.

        Args:
            text: Texte non vide.

        Returns:
            list[float]: Vecteur d'embedding.
        """
        if not text or not text.strip():
            raise InvalidInput("empty text cannot be embedded")
        prepared = normalize_for_embedding(text) if self.normalize_numbers else text
        tokens = self.count_tokens(prepared)
        if tokens > self.max_input_tokens:
            raise InputTooLarge(
                f"input has {tokens} tokens (max {self.max_input_tokens})",
                details={"tokens": tokens, "max_tokens": self.max_input_tokens},
            )
        if self.client is None:
            raise ProviderUnavailable("OPENAI_API_KEY not configured", retryable=False)
        try:
            vector = call_with_retries(
                lambda: self._call_once(prepared), self.retry_policy, provider=PROVIDER
            )
        except AnswerEngineError as exc:
            self._log.warning("embedding_failed", code=exc.code, message=exc.message)
            raise
        if self.dimension is None:
            self.dimension = len(vector)
        return vector
