# ============================================================
# Tests : tests/test_answer_orchestrator.py
# Objet  : Décisions CURATED / AUGMENTED / GENERATED, streaming, erreurs.
# ============================================================
"""
Tests pour l'orchestrateur de réponses.

Les scores sont contrôlés en plaçant les vecteurs stockés sur le cercle unité: le vecteur
`[s, sqrt(1 - s²)]` a un cosinus `s` avec la requête `[1, 0]`.
"""

from __future__ import annotations

import math

import pytest
from prometheus_client import REGISTRY

from jeet.domain.answer_orchestrator import (
    AnswerOrchestrator,
    AnswerPolicy,
    AnswerState,
    AnswerTrace,
    DecisionKind,
    IllegalTransition,
    StreamChunk,
    StreamEnd,
    Thresholds,
)
from jeet.domain.content import ContentType, content_version
from jeet.domain.errors import (
    DimensionMismatch,
    InputTooLarge,
    InvalidInput,
    ProviderRejected,
    ProviderUnavailable,
    UpstreamUnavailable,
)
from jeet.domain.matching import CosineMatcher
from jeet.domain.prompts import LEVEL_INSTRUCTIONS, TeachingLevel
from tests.fakes import FakeEmbedder, ScriptedLLM, add_pattern, add_question

QUERY_VECTOR = [1.0, 0.0]
SHORTCUT_Q = "percentage shortcut"
GENERIC_Q = "What is 15% of 200?"
CURATED_SCORE = 0.92
AUGMENTED_SCORE = 0.7
LOW_SCORE = 0.2
TIE_SCORE = 0.9
EXPECTED_CHUNKS_2 = 2
MAX_CHARS = 50

POLICY = AnswerPolicy(
    thresholds={
        ContentType.QUESTION: Thresholds(high=0.85, low=0.5),
        ContentType.PATTERN: Thresholds(high=0.85, low=0.5),
    },
    top_k=3,
    min_score=0.3,
    max_question_chars=MAX_CHARS,
)


def _vec(score: float) -> list[float]:
    return [score, math.sqrt(1.0 - score * score)]


def _seed_pattern(session_factory, store, pid: str, score: float, trick: str = "") -> str:
    text = f"pattern text {pid}"
    add_pattern(session_factory, pid, f"Pattern {pid}", text, trick or f"trick {pid}")
    store.put(ContentType.PATTERN, pid, _vec(score), content_version(text))
    return text


def _seed_question(session_factory, store, qid: str, score: float, pattern_id: str) -> None:
    text = f"question text {qid}"
    add_question(session_factory, qid, text, pattern_id=pattern_id)
    store.put(ContentType.QUESTION, qid, _vec(score), content_version(text))


def _orchestrator(content_source, store, llm=None, embedder=None) -> AnswerOrchestrator:
    embedder = embedder or FakeEmbedder(
        vectors={SHORTCUT_Q: QUERY_VECTOR, GENERIC_Q: QUERY_VECTOR}, dim=2
    )
    return AnswerOrchestrator(
        embedder=embedder,
        store=store,
        content_source=content_source,
        matcher=CosineMatcher(),
        llm=llm or ScriptedLLM(),
        policy=POLICY,
    )


def _drain(stream) -> tuple[list[str], StreamEnd]:
    events = list(stream)
    chunks = [e.text for e in events if isinstance(e, StreamChunk)]
    ends = [e for e in events if isinstance(e, StreamEnd)]
    assert len(ends) == 1 and events[-1] is ends[0]
    return chunks, ends[0]


# --- décisions --------------------------------------------------------------------------------


def test_empty_store_generates_without_provenance(content_source, store) -> None:
    """Teste qu'un store vide mène toujours à GENERATED, sans provenance."""
    llm = ScriptedLLM()
    orch = _orchestrator(content_source, store, llm=llm)

    stream = orch.stream(GENERIC_Q)
    chunks, end = _drain(stream)

    assert stream.kind == DecisionKind.GENERATED
    assert "".join(chunks) == "Dekh, simple hai."
    assert end.ok and not end.incomplete
    assert end.provenance is None
    assert len(llm.calls) == 1
    assert stream.trace.state == AnswerState.DONE


def test_fully_stale_store_generates(session_factory, content_source, store) -> None:
    """Teste qu'un store entièrement périmé est traité comme vide."""
    _seed_pattern(session_factory, store, "p1", CURATED_SCORE)
    add_pattern(session_factory, "p1", "Pattern p1", "edited text", "trick p1")
    orch = _orchestrator(content_source, store)

    result = orch.answer(SHORTCUT_Q)

    assert result.kind == DecisionKind.GENERATED
    assert result.provenance is None


def test_low_score_generates_and_streams(session_factory, content_source, store) -> None:
    """Teste qu'un meilleur score sous le seuil bas mène à GENERATED en streaming."""
    _seed_pattern(session_factory, store, "p1", LOW_SCORE)
    llm = ScriptedLLM()
    orch = _orchestrator(content_source, store, llm=llm)

    stream = orch.stream(GENERIC_Q)
    chunks, end = _drain(stream)

    assert stream.kind == DecisionKind.GENERATED
    assert chunks == ["Dekh, ", "simple ", "hai."]
    assert end.provenance is None
    assert GENERIC_Q in llm.calls[0][-1]["content"]


def test_high_score_returns_curated_verbatim(session_factory, content_source, store) -> None:
    """Teste qu'un score au-dessus du seuil haut renvoie la trick verbatim sans génération."""
    _seed_pattern(session_factory, store, "p1", CURATED_SCORE, trick="20% = 1/5, flip the sign")
    llm = ScriptedLLM()
    orch = _orchestrator(content_source, store, llm=llm)

    stream = orch.stream(SHORTCUT_Q)
    chunks, end = _drain(stream)

    assert stream.kind == DecisionKind.CURATED
    assert chunks == ["20% = 1/5, flip the sign"]
    assert llm.calls == []
    assert end.provenance is not None
    assert end.provenance.content_id == "p1"
    assert end.provenance.score == pytest.approx(CURATED_SCORE)
    assert [t[1] for t in stream.trace.transitions] == [
        AnswerState.EMBEDDING,
        AnswerState.MATCHING,
        AnswerState.DECIDING,
        AnswerState.ANSWERING_CURATED,
        AnswerState.DONE,
    ]


def test_mid_score_augments_with_curated_context(session_factory, content_source, store) -> None:
    """Teste qu'un score intermédiaire injecte la trick (et les alternatives) dans la génération."""
    _seed_pattern(session_factory, store, "p1", AUGMENTED_SCORE, trick="MAIN TRICK")
    _seed_pattern(session_factory, store, "p2", 0.4, trick="SECONDARY TRICK")
    llm = ScriptedLLM()
    orch = _orchestrator(content_source, store, llm=llm)

    stream = orch.stream(SHORTCUT_Q)
    _, end = _drain(stream)

    assert stream.kind == DecisionKind.AUGMENTED
    assert end.provenance is not None and end.provenance.content_id == "p1"
    prompt = llm.calls[0][-1]["content"]
    assert "MAIN TRICK" in prompt
    assert "SECONDARY TRICK" in prompt
    assert [m.content_id for m in stream.decision.alternatives] == ["p2"]


def test_question_wins_ties_and_carries_pattern(session_factory, content_source, store) -> None:
    """Teste que la question l'emporte à égalité et que la provenance porte son pattern."""
    _seed_pattern(session_factory, store, "p1", TIE_SCORE)
    _seed_question(session_factory, store, "q1", TIE_SCORE, pattern_id="p1")
    orch = _orchestrator(content_source, store)

    result = orch.answer(SHORTCUT_Q)

    assert result.kind == DecisionKind.CURATED
    assert result.provenance.content_type == ContentType.QUESTION
    assert result.provenance.content_id == "q1"
    assert result.provenance.pattern_id == "p1"
    assert result.answer == "trick p1"


def test_higher_tier_beats_content_type_order(session_factory, content_source, store) -> None:
    """Teste qu'un pattern CURATED l'emporte sur une question seulement AUGMENTED."""
    _seed_pattern(session_factory, store, "p1", CURATED_SCORE)
    _seed_question(session_factory, store, "q1", AUGMENTED_SCORE, pattern_id="p1")
    llm = ScriptedLLM()
    orch = _orchestrator(content_source, store, llm=llm)

    result = orch.answer(SHORTCUT_Q)

    assert result.kind == DecisionKind.CURATED
    assert result.provenance.content_type == ContentType.PATTERN
    assert llm.calls == []


def test_edited_content_not_matched_until_backfilled(
    session_factory, content_source, store
) -> None:
    """Teste qu'un contenu édité n'est plus proposé tant qu'il n'est pas recalculé."""
    _seed_pattern(session_factory, store, "p1", CURATED_SCORE)
    orch = _orchestrator(content_source, store)
    assert orch.match(SHORTCUT_Q).kind == DecisionKind.CURATED

    add_pattern(session_factory, "p1", "Pattern p1", "new text", "trick p1")
    assert orch.match(SHORTCUT_Q).kind == DecisionKind.GENERATED

    store.put(ContentType.PATTERN, "p1", _vec(CURATED_SCORE), content_version("new text"))
    assert orch.match(SHORTCUT_Q).kind == DecisionKind.CURATED


def test_match_is_deterministic(session_factory, content_source, store) -> None:
    """Teste qu'une même question donne deux fois la même correspondance et le même score."""
    _seed_pattern(session_factory, store, "p1", AUGMENTED_SCORE)
    _seed_pattern(session_factory, store, "p2", 0.6)
    orch = _orchestrator(content_source, store)

    first = orch.match(SHORTCUT_Q)
    second = orch.match(SHORTCUT_Q)

    assert first.match == second.match
    assert first.match.content_id == "p1"
    assert first.title == "Pattern p1"


# --- validation et erreurs ---------------------------------------------------------------------


@pytest.mark.parametrize("question", ["", "   ", "x" * (MAX_CHARS + 1)])
def test_invalid_question_makes_no_external_call(content_source, store, question) -> None:
    """Teste le refus d'une question vide ou trop longue sans appel externe."""
    embedder = FakeEmbedder(dim=2)
    llm = ScriptedLLM()
    orch = _orchestrator(content_source, store, llm=llm, embedder=embedder)

    with pytest.raises(InvalidInput):
        orch.stream(question)
    assert embedder.calls == []
    assert llm.calls == []


def test_embedding_unavailable_is_upstream_error(content_source, store) -> None:
    """Teste qu'un fournisseur d'embeddings indisponible donne UpstreamUnavailable."""
    embedder = FakeEmbedder(errors={SHORTCUT_Q: ProviderUnavailable("down")}, dim=2)
    orch = _orchestrator(content_source, store, embedder=embedder)

    with pytest.raises(UpstreamUnavailable) as exc_info:
        orch.answer(SHORTCUT_Q)
    assert exc_info.value.details["phase"] == "embedding"


def test_embedding_rejected_is_cannot_answer(content_source, store) -> None:
    """Teste qu'un refus du fournisseur remonte comme "cannot answer"."""
    embedder = FakeEmbedder(errors={SHORTCUT_Q: ProviderRejected("policy")}, dim=2)
    orch = _orchestrator(content_source, store, embedder=embedder)

    with pytest.raises(ProviderRejected) as exc_info:
        orch.stream(SHORTCUT_Q)
    assert exc_info.value.code == "CANNOT_ANSWER"


def test_input_too_large_passes_through(content_source, store) -> None:
    """Teste qu'une entrée trop grande reste une erreur client."""
    embedder = FakeEmbedder(errors={SHORTCUT_Q: InputTooLarge("too big")}, dim=2)
    orch = _orchestrator(content_source, store, embedder=embedder)

    with pytest.raises(InputTooLarge):
        orch.stream(SHORTCUT_Q)


def test_dimension_mismatch_is_fatal(session_factory, content_source, store) -> None:
    """Teste qu'une incohérence de dimension n'est jamais dégradée en "pas de match"."""
    add_pattern(session_factory, "p1", "Pattern p1", "text", "trick")
    store.put(ContentType.PATTERN, "p1", [0.1, 0.2, 0.3], content_version("text"))
    orch = _orchestrator(content_source, store)

    with pytest.raises(DimensionMismatch):
        orch.stream(SHORTCUT_Q)


def test_generation_failure_before_first_chunk(content_source, store) -> None:
    """Teste qu'un échec avant tout fragment lève une erreur propre."""
    llm = ScriptedLLM(fail_after=0, error=ProviderUnavailable("down"))
    orch = _orchestrator(content_source, store, llm=llm)

    with pytest.raises(UpstreamUnavailable) as exc_info:
        orch.stream(GENERIC_Q)
    assert exc_info.value.details["phase"] == "generation"
    assert llm.closed


def test_generation_failure_after_two_chunks(content_source, store) -> None:
    """Teste qu'un échec après 2 fragments donne ces 2 fragments puis un marqueur d'erreur."""
    llm = ScriptedLLM(chunks=["one ", "two ", "three"], fail_after=2, error=ProviderUnavailable())
    orch = _orchestrator(content_source, store, llm=llm)

    stream = orch.stream(GENERIC_Q)
    chunks, end = _drain(stream)

    assert chunks == ["one ", "two "]
    assert len(chunks) == EXPECTED_CHUNKS_2
    assert not end.ok
    assert end.incomplete
    assert end.error_code == "UPSTREAM_UNAVAILABLE"
    assert stream.trace.state == AnswerState.ERRORED
    assert llm.closed


def test_answer_raises_on_mid_stream_failure(content_source, store) -> None:
    """Teste que la variante non streamée lève UpstreamUnavailable sur une coupure."""
    llm = ScriptedLLM(chunks=["one ", "two "], fail_after=1, error=ProviderUnavailable())
    orch = _orchestrator(content_source, store, llm=llm)

    with pytest.raises(UpstreamUnavailable):
        orch.answer(GENERIC_Q)


# --- cancellation ------------------------------------------------------------------------------


def test_close_stops_and_closes_upstream(content_source, store) -> None:
    """Teste que fermer le flux arrête la génération et ferme l'appel amont."""
    llm = ScriptedLLM(chunks=["a", "b", "c"])
    orch = _orchestrator(content_source, store, llm=llm)

    stream = orch.stream(GENERIC_Q)
    assert next(stream) == StreamChunk("a")
    stream.close()

    assert llm.closed
    assert stream.trace.state == AnswerState.ERRORED
    assert stream.trace.error_code == "CANCELLED"
    assert list(stream) == []


def test_cancel_stops_at_next_chunk(content_source, store) -> None:
    """Teste qu'une cancellation (autre thread) arrête le flux au fragment suivant."""
    llm = ScriptedLLM(chunks=["a", "b", "c"])
    orch = _orchestrator(content_source, store, llm=llm)

    stream = orch.stream(GENERIC_Q)
    next(stream)
    stream.cancel()

    assert list(stream) == []
    assert llm.closed
    assert stream.trace.error_code == "CANCELLED"


# --- machine à états et politique ----------------------------------------------------------------


def test_trace_rejects_illegal_transitions() -> None:
    """Teste que les transitions non prévues sont refusées."""
    trace = AnswerTrace()

    with pytest.raises(IllegalTransition):
        trace.advance(AnswerState.MATCHING)
    trace.advance(AnswerState.EMBEDDING)
    trace.fail("PROVIDER_UNAVAILABLE")

    assert trace.state == AnswerState.ERRORED
    with pytest.raises(IllegalTransition):
        trace.advance(AnswerState.ERRORED)


def test_thresholds_classify_and_validate() -> None:
    """Teste la classification par seuils et la validation des bornes."""
    th = Thresholds(high=0.85, low=0.5)

    assert th.classify(0.85) == DecisionKind.CURATED
    assert th.classify(0.5) == DecisionKind.AUGMENTED
    assert th.classify(0.49) == DecisionKind.GENERATED
    with pytest.raises(ValueError):
        Thresholds(high=0.4, low=0.5)
    with pytest.raises(ValueError):
        AnswerPolicy(thresholds={ContentType.PATTERN: th})
    with pytest.raises(ValueError):
        AnswerPolicy(
            thresholds={ContentType.QUESTION: th, ContentType.PATTERN: th},
            min_score=0.6,
        )


# --- compléments ---------------------------------------------------------------------------------


def test_unexpected_mid_stream_error_ends_with_marker(content_source, store) -> None:
    """Teste qu'une exception hors taxonomie en cours de flux donne tout de même un marqueur."""
    llm = ScriptedLLM(chunks=["a ", "b ", "c"], fail_after=2, error=ValueError("bad chunk"))
    orch = _orchestrator(content_source, store, llm=llm)

    stream = orch.stream(GENERIC_Q)
    chunks, end = _drain(stream)

    assert chunks == ["a ", "b "]
    assert not end.ok
    assert end.incomplete
    assert end.error_code == "UPSTREAM_UNAVAILABLE"
    assert stream.trace.state == AnswerState.ERRORED
    assert llm.closed


def test_unexpected_error_before_first_chunk(content_source, store) -> None:
    """Teste qu'une exception hors taxonomie avant tout fragment devient UpstreamUnavailable."""
    llm = ScriptedLLM(fail_after=0, error=ValueError("bad chunk"))
    orch = _orchestrator(content_source, store, llm=llm)

    with pytest.raises(UpstreamUnavailable) as exc_info:
        orch.stream(GENERIC_Q)
    assert exc_info.value.details["cause"] == "ValueError"
    assert llm.closed


def test_answer_keeps_rejection_on_mid_stream_failure(content_source, store) -> None:
    """Teste qu'un refus du fournisseur en cours de flux reste "cannot answer"."""
    llm = ScriptedLLM(fail_after=1, error=ProviderRejected("content filter"))
    orch = _orchestrator(content_source, store, llm=llm)

    with pytest.raises(ProviderRejected) as exc_info:
        orch.answer(GENERIC_Q)
    assert exc_info.value.code == "CANNOT_ANSWER"
    assert exc_info.value.message == "content filter"


def test_blank_curated_explanation_is_generated(session_factory, content_source, store) -> None:
    """Teste qu'une question sans explication ni pattern n'est jamais servie vide."""
    text = "question text q1"
    add_question(session_factory, "q1", text, pattern_id=None, explanation=None)
    store.put(ContentType.QUESTION, "q1", _vec(0.95), content_version(text))
    llm = ScriptedLLM()
    orch = _orchestrator(content_source, store, llm=llm)

    result = orch.answer(SHORTCUT_Q)

    assert result.kind == DecisionKind.GENERATED
    assert result.answer == "Dekh, simple hai."
    assert result.provenance is None
    assert len(llm.calls) == 1


def test_level_reaches_generation_prompt(content_source, store) -> None:
    """Teste que le niveau demandé est transmis au prompt de génération."""
    llm = ScriptedLLM()
    orch = _orchestrator(content_source, store, llm=llm)

    orch.answer(GENERIC_Q, TeachingLevel.DEEP)

    prompt = llm.calls[0][-1]["content"]
    assert "Level: DEEP" in prompt
    assert LEVEL_INSTRUCTIONS[TeachingLevel.DEEP] in prompt


def test_augmented_prompt_carries_question_values(
    session_factory, content_source, store
) -> None:
    """Teste que les valeurs de la question sont injectées dans le prompt AUGMENTED."""
    _seed_pattern(session_factory, store, "p1", AUGMENTED_SCORE, trick="MAIN TRICK")
    llm = ScriptedLLM()
    orch = _orchestrator(content_source, store, llm=llm)

    orch.answer(GENERIC_Q, TeachingLevel.INSTANT)

    prompt = llm.calls[0][-1]["content"]
    assert "Values: percentages=15; numbers=15, 200" in prompt
    assert "Level: INSTANT" in prompt


def test_answer_latency_recorded_at_stream_end(content_source, store) -> None:
    """Teste que la latence de bout en bout est mesurée au marqueur terminal, avec son issue."""
    labels = {"kind": "generated", "ok": "false"}
    before = REGISTRY.get_sample_value("answer_latency_seconds_count", labels) or 0.0
    llm = ScriptedLLM(chunks=["a ", "b "], fail_after=1, error=ProviderUnavailable())
    orch = _orchestrator(content_source, store, llm=llm)

    stream = orch.stream(GENERIC_Q)
    assert (REGISTRY.get_sample_value("answer_latency_seconds_count", labels) or 0.0) == before
    _drain(stream)

    assert REGISTRY.get_sample_value("answer_latency_seconds_count", labels) == before + 1
