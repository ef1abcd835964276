"""
Client de génération basé sur l'API OpenAI (chat.completions en streaming).

Implémente l'interface LLM:
- ouverture du flux avec retry borné (avant tout fragment émis)
- itération des deltas de contenu, erreurs traduites en erreurs typées
- fermeture de la réponse HTTP amont dès que le générateur est fermé
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from typing import Any

import httpx
import openai
import structlog

from jeet.app.metrics import PROVIDER_CALLS, PROVIDER_LATENCY
from jeet.domain.errors import ProviderUnavailable
from jeet.infra.llm.base import LLM
from jeet.infra.openai_errors import map_openai_error
from jeet.infra.retry import RetryPolicy, call_with_retries

PROVIDER = "openai_chat"


class OpenAILLM(LLM):
    """
    LLM basé sur OpenAI.

    Le client SDK est construit sans retry interne; le timeout httpx s'applique à la génération
    indépendamment de celui des embeddings.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gpt-4o-mini",
        *,
        timeout_s: float = 30.0,
        temperature: float = 0.7,
        max_tokens: int = 1000,
        retry_policy: RetryPolicy | None = None,
        client: openai.OpenAI | None = None,
    ) -> None:
        """Initialize the OpenAILLM client."""
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.retry_policy = retry_policy or RetryPolicy()
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

    def _open(self, messages: list[dict[str, str]]) -> Any:
        """Ouvre le flux chat.completions (une tentative)."""
        try:
            return self.client.chat.completions.create(  # type: ignore[union-attr]
                model=self.model,
                messages=messages,
                stream=True,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except openai.OpenAIError as exc:
            err = map_openai_error(exc, provider=PROVIDER)
            PROVIDER_CALLS.labels(provider=PROVIDER, outcome=err.code).inc()
            raise err from exc

    def stream(self, messages: list[dict[str, str]]) -> Iterator[str]:
        """
        Produit les fragments de texte de la réponse.

        Args:
            messages: Messages système/utilisateur.

        Yields:
            str: Fragments de contenu non vides.
        """
        if self.client is None:
            raise ProviderUnavailable("OPENAI_API_KEY not configured", retryable=False)
        start = time.perf_counter()
        upstream = call_with_retries(
            lambda: self._open(messages), self.retry_policy, provider=PROVIDER
        )
        emitted = 0
        try:
            for chunk in upstream:
                choices = getattr(chunk, "choices", None) or []
                if not choices:
                    continue
                content = getattr(getattr(choices[0], "delta", None), "content", None)
                if content:
                    emitted += 1
                    yield content
        except openai.OpenAIError as exc:
            err = map_openai_error(exc, provider=PROVIDER)
            PROVIDER_CALLS.labels(provider=PROVIDER, outcome=err.code).inc()
            self._log.warning("generation_stream_failed", code=err.code, chunks=emitted)
            raise err from exc
        except httpx.HTTPError as exc:
            PROVIDER_CALLS.labels(provider=PROVIDER, outcome="PROVIDER_UNAVAILABLE").inc()
            self._log.warning("generation_stream_failed", error=type(exc).__name__, chunks=emitted)
            raise ProviderUnavailable(f"{PROVIDER} stream interrupted") from exc
        except Exception as exc:
            # chunk malformé ou erreur du SDK hors taxonomie
            PROVIDER_CALLS.labels(provider=PROVIDER, outcome="PROVIDER_UNAVAILABLE").inc()
            self._log.error(
                "generation_stream_failed", error=type(exc).__name__, chunks=emitted, exc_info=True
            )
            raise ProviderUnavailable(f"{PROVIDER} stream failed") from exc
        else:
            PROVIDER_CALLS.labels(provider=PROVIDER, outcome="ok").inc()
        finally:
            close = getattr(upstream, "close", None)
            if callable(close):
                close()
            PROVIDER_LATENCY.labels(provider=PROVIDER).observe(time.perf_counter() - start)
