"""
Tests pour le client de génération OpenAI en streaming (client SDK simulé).
"""

from __future__ import annotations

from unittest.mock import Mock

import httpx
import openai
import pytest

from jeet.domain.errors import ProviderUnavailable, RateLimited
from jeet.infra.llm.openai_client import OpenAILLM
from jeet.infra.retry import RetryPolicy

REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
FAST_RETRY = RetryPolicy(max_attempts=2, base_delay=0.0, max_delay=0.0, jitter=False)
MESSAGES = [{"role": "user", "content": "hi"}]
EXPECTED_CALLS_2 = 2


def _chunk(content):
    return Mock(choices=[Mock(delta=Mock(content=content))])


class _Upstream:
    """Flux SDK simulé: itérable fermable, avec erreur optionnelle en fin de flux."""

    def __init__(self, chunks, error: Exception | None = None) -> None:
        self.chunks = list(chunks)
        self.error = error
        self.closed = False

    def __iter__(self):
        yield from self.chunks
        if self.error is not None:
            raise self.error

    def close(self) -> None:
        self.closed = True


def _llm(*side_effect) -> tuple[OpenAILLM, Mock]:
    client = Mock()
    client.chat.completions.create.side_effect = list(side_effect)
    return OpenAILLM(None, "gpt-test", client=client, retry_policy=FAST_RETRY), client


def test_stream_yields_non_empty_deltas() -> None:
    """Teste que seuls les fragments non vides sont produits."""
    upstream = _Upstream([_chunk("Dekh"), _chunk(None), Mock(choices=[]), _chunk(", simple")])
    llm, client = _llm(upstream)

    assert list(llm.stream(MESSAGES)) == ["Dekh", ", simple"]
    assert upstream.closed
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["stream"] is True
    assert kwargs["model"] == "gpt-test"


def test_generate_joins_stream() -> None:
    """Teste la variante non streamée."""
    llm, _ = _llm(_Upstream([_chunk("a"), _chunk("b")]))

    assert llm.generate(MESSAGES) == "ab"


def test_stream_is_lazy() -> None:
    """Teste qu'aucun appel n'est fait avant la première itération."""
    llm, client = _llm(_Upstream([_chunk("a")]))

    gen = llm.stream(MESSAGES)
    client.chat.completions.create.assert_not_called()
    assert next(gen) == "a"


def test_mid_stream_error_is_typed() -> None:
    """Teste qu'une coupure en cours de flux devient une erreur typée."""
    upstream = _Upstream([_chunk("a")], error=openai.APIConnectionError(request=REQUEST))
    llm, _ = _llm(upstream)
    received: list[str] = []

    with pytest.raises(ProviderUnavailable):
        for chunk in llm.stream(MESSAGES):
            received.append(chunk)
    assert received == ["a"]
    assert upstream.closed


def test_open_retries_then_raises_rate_limited() -> None:
    """Teste le retry de l'ouverture du flux puis l'erreur finale."""
    response = httpx.Response(429, request=REQUEST)
    err = openai.RateLimitError("slow", response=response, body=None)
    llm, client = _llm(err, err)

    with pytest.raises(RateLimited):
        list(llm.stream(MESSAGES))
    assert client.chat.completions.create.call_count == EXPECTED_CALLS_2


def test_closing_consumer_closes_upstream() -> None:
    """Teste que fermer le générateur ferme l'appel amont."""
    upstream = _Upstream([_chunk("a"), _chunk("b")])
    llm, _ = _llm(upstream)

    gen = llm.stream(MESSAGES)
    next(gen)
    gen.close()

    assert upstream.closed


def test_missing_api_key() -> None:
    """Teste l'erreur non rejouable sans clé API."""
    with pytest.raises(ProviderUnavailable) as exc_info:
        list(OpenAILLM(None).stream(MESSAGES))
    assert not exc_info.value.retryable


def test_unexpected_stream_error_is_typed() -> None:
    """Teste qu'une erreur hors SDK en cours de flux devient ProviderUnavailable."""
    upstream = _Upstream([_chunk("a")], error=ValueError("malformed chunk"))
    llm, _ = _llm(upstream)
    received: list[str] = []

    with pytest.raises(ProviderUnavailable) as exc_info:
        for chunk in llm.stream(MESSAGES):
            received.append(chunk)
    assert isinstance(exc_info.value.__cause__, ValueError)
    assert received == ["a"]
    assert upstream.closed
