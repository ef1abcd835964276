# ============================================================
# Module : jeet/domain/answer_orchestrator.py
# Objet  : Orchestration question -> embedding -> matching -> décision -> réponse.
# Invariants :
#  - Aucun état mutable partagé entre requêtes: chaque requête a sa propre trace.
#  - CURATED ne déclenche jamais d'appel de génération.
#  - Un échec de génération avant le premier fragment lève une erreur propre;
#    après, le flux se termine par un marqueur d'erreur (jamais de coupure muette).
# ============================================================
"""Orchestrateur de réponses du tuteur.

Le cycle de vie d'une requête est une machine à états explicite:

    RECEIVED -> EMBEDDING -> MATCHING -> DECIDING -> ANSWERING_{CURATED|AUGMENTED|GENERATED} -> DONE

`ERRORED` est atteignable depuis tout état non terminal. La décision compare le meilleur score
aux seuils (configurables par type de contenu):

- score >= haut  -> CURATED: explication curée verbatim, sans génération;
- bas <= score < haut -> AUGMENTED: génération avec l'explication curée injectée;
- sinon (ou aucun candidat) -> GENERATED: génération à partir de la question seule.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum

import structlog
from opentelemetry import trace as otel_trace
from pydantic import BaseModel

from jeet.app.metrics import (
    ANSWER_DECISIONS,
    ANSWER_DECISION_LATENCY,
    ANSWER_ERRORS,
    ANSWER_LATENCY,
    ANSWER_STREAM_ABORTS,
    MATCH_BEST_SCORE,
    MATCH_LATENCY,
)
from jeet.domain import prompts
from jeet.domain.cancellation import CancellationToken
from jeet.domain.content import ContentItem, ContentType
from jeet.domain.errors import (
    AnswerEngineError,
    InvalidInput,
    ProviderRejected,
    ProviderUnavailable,
    StoreInconsistency,
    UpstreamUnavailable,
)
from jeet.domain.matching import MatchResult, VectorMatcher
from jeet.domain.normalization import extract_values
from jeet.domain.prompts import TeachingLevel
from jeet.infra.embeddings.base import EmbeddingProvider
from jeet.infra.llm.base import LLM
from jeet.infra.repo.content_source import ContentSource
from jeet.infra.repo.embedding_store import ContentEmbeddingStore

log = structlog.get_logger(__name__)
tracer = otel_trace.get_tracer(__name__)

CANCELLED = "CANCELLED"


class AnswerState(str, Enum):
    """États du cycle de vie d'une requête."""

    RECEIVED = "received"
    EMBEDDING = "embedding"
    MATCHING = "matching"
    DECIDING = "deciding"
    ANSWERING_CURATED = "answering_curated"
    ANSWERING_AUGMENTED = "answering_augmented"
    ANSWERING_GENERATED = "answering_generated"
    DONE = "done"
    ERRORED = "errored"


class DecisionKind(str, Enum):
    """Mode de réponse retenu."""

    CURATED = "curated"
    AUGMENTED = "augmented"
    GENERATED = "generated"


_TERMINAL = frozenset({AnswerState.DONE, AnswerState.ERRORED})

_TRANSITIONS: dict[AnswerState, frozenset[AnswerState]] = {
    AnswerState.RECEIVED: frozenset({AnswerState.EMBEDDING}),
    AnswerState.EMBEDDING: frozenset({AnswerState.MATCHING}),
    AnswerState.MATCHING: frozenset({AnswerState.DECIDING}),
    # DONE direct depuis DECIDING: aperçu de décision (match) sans réponse
    AnswerState.DECIDING: frozenset(
        {
            AnswerState.ANSWERING_CURATED,
            AnswerState.ANSWERING_AUGMENTED,
            AnswerState.ANSWERING_GENERATED,
            AnswerState.DONE,
        }
    ),
    AnswerState.ANSWERING_CURATED: frozenset({AnswerState.DONE}),
    AnswerState.ANSWERING_AUGMENTED: frozenset({AnswerState.DONE}),
    AnswerState.ANSWERING_GENERATED: frozenset({AnswerState.DONE}),
    AnswerState.DONE: frozenset(),
    AnswerState.ERRORED: frozenset(),
}

_ANSWERING = {
    DecisionKind.CURATED: AnswerState.ANSWERING_CURATED,
    DecisionKind.AUGMENTED: AnswerState.ANSWERING_AUGMENTED,
    DecisionKind.GENERATED: AnswerState.ANSWERING_GENERATED,
}

_TIER = {DecisionKind.GENERATED: 0, DecisionKind.AUGMENTED: 1, DecisionKind.CURATED: 2}


class IllegalTransition(RuntimeError):
    """Transition d'état non prévue (erreur de programmation)."""


@dataclass
class AnswerTrace:
    """État courant et transitions ordonnées d'une requête."""

    trace_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: AnswerState = AnswerState.RECEIVED
    transitions: list[tuple[AnswerState, AnswerState]] = field(default_factory=list)
    error_code: str | None = None

    @property
    def terminal(self) -> bool:
        return self.state in _TERMINAL

    def advance(self, new: AnswerState) -> None:
        allowed = _TRANSITIONS[self.state]
        if new == AnswerState.ERRORED and not self.terminal:
            allowed = allowed | {AnswerState.ERRORED}
        if new not in allowed:
            raise IllegalTransition(f"{self.state.value} -> {new.value}")
        self.transitions.append((self.state, new))
        self.state = new

    def fail(self, code: str) -> None:
        self.error_code = code
        if not self.terminal:
            self.advance(AnswerState.ERRORED)


@dataclass(frozen=True)
class Thresholds:
    """Seuils de décision d'un type de contenu (cosinus)."""

    high: float
    low: float

    def __post_init__(self) -> None:
        if not -1.0 <= self.low <= self.high <= 1.0:
            raise ValueError(f"invalid thresholds: low={self.low} high={self.high}")

    def classify(self, score: float) -> DecisionKind:
        if score >= self.high:
            return DecisionKind.CURATED
        if score >= self.low:
            return DecisionKind.AUGMENTED
        return DecisionKind.GENERATED


@dataclass(frozen=True)
class AnswerPolicy:
    """
    Politique de décision, construite une fois depuis la configuration.

    Attributs
    - thresholds: seuils par type de contenu.
    - top_k: nombre de correspondances retenues par type.
    - min_score: score plancher d'une correspondance.
    - max_question_chars: longueur maximale d'une question.
    - search_order: ordre de priorité des types à score et palier égaux.
    """

    thresholds: Mapping[ContentType, Thresholds]
    top_k: int = 3
    min_score: float = 0.3
    max_question_chars: int = 2000
    search_order: tuple[ContentType, ...] = (ContentType.QUESTION, ContentType.PATTERN)

    def __post_init__(self) -> None:
        if self.top_k < 1:
            raise ValueError("top_k must be >= 1")
        missing = [ct for ct in self.search_order if ct not in self.thresholds]
        if missing:
            raise ValueError(f"no thresholds for {[ct.value for ct in missing]}")
        # un plancher au-dessus d'un seuil bas rendrait AUGMENTED inatteignable
        lowest = min(t.low for t in self.thresholds.values())
        if self.min_score > lowest:
            raise ValueError(f"min_score {self.min_score} exceeds lowest threshold {lowest}")


class Provenance(BaseModel):
    """Origine curée d'une réponse CURATED ou AUGMENTED."""

    content_type: ContentType
    content_id: str
    pattern_id: str | None = None
    score: float


@dataclass(frozen=True)
class AnswerDecision:
    """Décision prise pour une question."""

    kind: DecisionKind
    match: MatchResult | None = None
    alternatives: tuple[MatchResult, ...] = ()
    item: ContentItem | None = None

    @property
    def provenance(self) -> Provenance | None:
        if self.kind == DecisionKind.GENERATED or self.match is None or self.item is None:
            return None
        return Provenance(
            content_type=self.match.content_type,
            content_id=self.match.content_id,
            pattern_id=self.item.pattern_id,
            score=self.match.score,
        )


class AnswerResult(BaseModel):
    """Réponse complète (variante non streamée)."""

    kind: DecisionKind
    answer: str
    provenance: Provenance | None = None
    complete: bool = True
    alternatives: list[MatchResult] = []


class MatchReport(BaseModel):
    """Aperçu de décision, sans génération."""

    kind: DecisionKind
    match: MatchResult | None = None
    title: str | None = None
    provenance: Provenance | None = None
    alternatives: list[MatchResult] = []


@dataclass(frozen=True)
class StreamChunk:
    text: str


@dataclass(frozen=True)
class StreamEnd:
    """Marqueur terminal d'un flux de réponse."""

    kind: DecisionKind
    provenance: Provenance | None = None
    ok: bool = True
    incomplete: bool = False
    error_code: str | None = None
    error_message: str | None = None


StreamEvent = StreamChunk | StreamEnd


def _mark_cancelled(trace: AnswerTrace) -> None:
    if trace.terminal:
        return
    trace.fail(CANCELLED)
    ANSWER_STREAM_ABORTS.labels(reason="cancelled").inc()
    log.info("answer_stream_cancelled", trace_id=trace.trace_id)


def _as_upstream(exc: AnswerEngineError, phase: str) -> AnswerEngineError:
    """Les erreurs transitoires épuisées deviennent `UpstreamUnavailable`; les autres passent."""
    if isinstance(exc, ProviderUnavailable):
        details = {"phase": phase, "cause": exc.code}
        retry_after = getattr(exc, "retry_after", None)
        if retry_after is not None:
            details["retry_after"] = retry_after
        return UpstreamUnavailable(f"{phase} provider unavailable", details=details)
    return exc


class AnswerStream(Iterator[StreamEvent]):
    """
    Flux d'événements d'une réponse: `StreamChunk`* puis exactement un `StreamEnd`.

    `cancel()` peut être appelé depuis un autre thread: le flux s'arrête au prochain fragment.
    `close()` (côté consommateur) arrête immédiatement et ferme l'appel amont.
    """

    def __init__(
        self,
        decision: AnswerDecision,
        trace: AnswerTrace,
        events: Iterator[StreamEvent],
        token: CancellationToken,
    ) -> None:
        self.decision = decision
        self.trace = trace
        self._events = events
        self._token = token

    @property
    def kind(self) -> DecisionKind:
        return self.decision.kind

    def __iter__(self) -> AnswerStream:
        return self

    def __next__(self) -> StreamEvent:
        return next(self._events)

    def cancel(self) -> None:
        self._token.cancel()

    def close(self) -> None:
        self._token.cancel()
        self._events.close()
        _mark_cancelled(self.trace)

    def __enter__(self) -> AnswerStream:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class AnswerOrchestrator:
    """Coordonne embedding, matching, décision et génération pour une question."""

    def __init__(
        self,
        embedder: EmbeddingProvider,
        store: ContentEmbeddingStore,
        content_source: ContentSource,
        matcher: VectorMatcher,
        llm: LLM,
        policy: AnswerPolicy,
    ) -> None:
        self.embedder = embedder
        self.store = store
        self.content = content_source
        self.matcher = matcher
        self.llm = llm
        self.policy = policy

    # --- phases -----------------------------------------------------------------------------

    def _validate(self, question: str) -> str:
        text = (question or "").strip()
        if not text:
            raise InvalidInput("question must not be empty")
        if len(text) > self.policy.max_question_chars:
            raise InvalidInput(
                "question too long",
                details={"max_chars": self.policy.max_question_chars, "chars": len(text)},
            )
        return text

    def _embed(self, question: str) -> list[float]:
        try:
            return self.embedder.embed(question)
        except AnswerEngineError as exc:
            raise _as_upstream(exc, "embedding") from exc

    def _match(self, query_vector: list[float]) -> list[MatchResult]:
        start = time.perf_counter()
        results: list[MatchResult] = []
        for ct in self.policy.search_order:
            candidates = self.store.valid_candidates(ct)
            found = self.matcher.match(
                query_vector, candidates, self.policy.top_k, self.policy.min_score
            )
            if found:
                MATCH_BEST_SCORE.labels(content_type=ct.value).observe(found[0].score)
            results.extend(found)
        MATCH_LATENCY.labels(backend=type(self.matcher).__name__).observe(
            time.perf_counter() - start
        )
        return results

    def _decide(self, matches: list[MatchResult]) -> AnswerDecision:
        best: MatchResult | None = None
        best_kind = DecisionKind.GENERATED
        best_key: tuple[int, float] | None = None
        # palier le plus haut, puis score; à égalité le premier type de search_order gagne
        for m in matches:
            kind = self.policy.thresholds[m.content_type].classify(m.score)
            key = (_TIER[kind], m.score)
            if best_key is None or key > best_key:
                best, best_kind, best_key = m, kind, key
        if best is None:
            return AnswerDecision(DecisionKind.GENERATED)
        alternatives = tuple(
            sorted((m for m in matches if m is not best), key=lambda m: -m.score)[
                : self.policy.top_k
            ]
        )
        if best_kind == DecisionKind.GENERATED:
            return AnswerDecision(DecisionKind.GENERATED, match=best, alternatives=alternatives)
        item = self.content.get(best.content_type, best.content_id)
        if item is None:
            log.warning(
                "matched_content_missing",
                content_type=best.content_type.value,
                content_id=best.content_id,
            )
            return AnswerDecision(DecisionKind.GENERATED, alternatives=alternatives)
        if not item.explanation.strip():
            # rien à servir ni à injecter: une réponse curée serait vide
            log.warning(
                "matched_content_blank",
                content_type=best.content_type.value,
                content_id=best.content_id,
            )
            return AnswerDecision(DecisionKind.GENERATED, match=best, alternatives=alternatives)
        return AnswerDecision(best_kind, match=best, alternatives=alternatives, item=item)

    def _record_failure(self, trace: AnswerTrace, exc: AnswerEngineError) -> None:
        trace.fail(exc.code)
        ANSWER_ERRORS.labels(code=exc.code).inc()
        if isinstance(exc, StoreInconsistency):
            log.error("answer_failed", trace_id=trace.trace_id, code=exc.code, details=exc.details)
        else:
            log.warning("answer_failed", trace_id=trace.trace_id, code=exc.code)

    def _prepare(self, question: str, trace: AnswerTrace) -> AnswerDecision:
        try:
            text = self._validate(question)
            trace.advance(AnswerState.EMBEDDING)
            with tracer.start_as_current_span("answer.embed"):
                query_vector = self._embed(text)
            trace.advance(AnswerState.MATCHING)
            with tracer.start_as_current_span("answer.match"):
                matches = self._match(query_vector)
            trace.advance(AnswerState.DECIDING)
            decision = self._decide(matches)
        except AnswerEngineError as exc:
            self._record_failure(trace, exc)
            raise
        log.info(
            "answer_decided",
            trace_id=trace.trace_id,
            kind=decision.kind.value,
            content_type=decision.match.content_type.value if decision.match else None,
            content_id=decision.match.content_id if decision.match else None,
            score=round(decision.match.score, 4) if decision.match else None,
        )
        return decision

    def _messages(
        self, question: str, decision: AnswerDecision, level: TeachingLevel
    ) -> list[dict[str, str]]:
        if decision.kind == DecisionKind.AUGMENTED and decision.item is not None:
            auxiliary = self._auxiliary(decision.alternatives)
            return prompts.augmented_messages(
                question, decision.item, auxiliary, level=level, values=extract_values(question)
            )
        return prompts.generated_messages(question, level=level)

    def _auxiliary(self, alternatives: tuple[MatchResult, ...]) -> list[ContentItem]:
        items: list[ContentItem] = []
        for ct in self.policy.search_order:
            ids = [m.content_id for m in alternatives if m.content_type == ct]
            found = self.content.get_many(ct, ids)
            items.extend(found[i] for i in ids if i in found)
        return items

    # --- flux --------------------------------------------------------------------------------

    def _end(self, end: StreamEnd, start: float) -> StreamEnd:
        ANSWER_LATENCY.labels(kind=end.kind.value, ok=str(end.ok).lower()).observe(
            time.perf_counter() - start
        )
        return end

    def _curated_events(
        self, decision: AnswerDecision, trace: AnswerTrace, start: float
    ) -> Iterator[StreamEvent]:
        yield StreamChunk(decision.item.explanation)
        trace.advance(AnswerState.DONE)
        yield self._end(StreamEnd(decision.kind, decision.provenance), start)

    def _open_generation(
        self, messages: list[dict[str, str]], trace: AnswerTrace
    ) -> tuple[Iterator[str], str | None]:
        upstream = self.llm.stream(messages)
        try:
            with tracer.start_as_current_span("answer.generate.open"):
                first = next(upstream, None)
        except AnswerEngineError as exc:
            upstream.close()
            err = _as_upstream(exc, "generation")
            self._record_failure(trace, err)
            raise err from exc
        except Exception as exc:
            upstream.close()
            log.error("generation_open_failed", trace_id=trace.trace_id, exc_info=True)
            err = UpstreamUnavailable(
                "generation stream failed",
                details={"phase": "generation", "cause": type(exc).__name__},
            )
            self._record_failure(trace, err)
            raise err from exc
        return upstream, first

    def _generation_events(
        self,
        decision: AnswerDecision,
        trace: AnswerTrace,
        token: CancellationToken,
        upstream: Iterator[str],
        first: str | None,
        start: float,
    ) -> Iterator[StreamEvent]:
        provenance = decision.provenance
        finished = False
        try:
            if first is not None:
                yield StreamChunk(first)
            while not token.cancelled:
                try:
                    chunk = next(upstream)
                except StopIteration:
                    finished = True
                    break
                except AnswerEngineError as exc:
                    err = _as_upstream(exc, "generation")
                except Exception as exc:
                    log.error("generation_stream_failed", trace_id=trace.trace_id, exc_info=True)
                    err = UpstreamUnavailable(
                        "generation stream failed",
                        details={"phase": "generation", "cause": type(exc).__name__},
                    )
                else:
                    if token.cancelled:
                        break
                    yield StreamChunk(chunk)
                    continue
                ANSWER_STREAM_ABORTS.labels(reason="upstream_error").inc()
                self._record_failure(trace, err)
                yield self._end(
                    StreamEnd(
                        decision.kind,
                        provenance,
                        ok=False,
                        incomplete=True,
                        error_code=err.code,
                        error_message=err.message,
                    ),
                    start,
                )
                return
        except GeneratorExit:
            token.cancel()
            raise
        finally:
            upstream.close()
            if token.cancelled:
                _mark_cancelled(trace)
        if not finished:
            return
        trace.advance(AnswerState.DONE)
        yield self._end(StreamEnd(decision.kind, provenance), start)

    # --- API publique ------------------------------------------------------------------------

    def stream(
        self, question: str, level: TeachingLevel = TeachingLevel.SHORTCUT
    ) -> AnswerStream:
        """
        Décide puis ouvre le flux de réponse.

        Le premier fragment de génération est obtenu avant de rendre la main: un échec à ce stade
        est levé ici, sous forme d'erreur typée.

        Args:
            question: Question libre de l'apprenant.
            level: Profondeur d'explication des réponses générées (sans effet sur CURATED).

        Returns:
            AnswerStream: Flux `StreamChunk`* puis `StreamEnd`.

        Raises:
            InvalidInput: Question vide ou trop longue (aucun appel externe).
            InputTooLarge: Question dépassant la limite du fournisseur d'embeddings.
            UpstreamUnavailable: Fournisseur indisponible après épuisement des tentatives.
            ProviderRejected: Entrée refusée par un fournisseur ("cannot answer").
            StoreInconsistency: Incohérence du store (ex. dimensions).
        """
        start = time.perf_counter()
        trace = AnswerTrace()
        decision = self._prepare(question, trace)
        ANSWER_DECISIONS.labels(kind=decision.kind.value).inc()
        token = CancellationToken()
        trace.advance(_ANSWERING[decision.kind])
        if decision.kind == DecisionKind.CURATED:
            events = self._curated_events(decision, trace, start)
        else:
            messages = self._messages(question.strip(), decision, level)
            upstream, first = self._open_generation(messages, trace)
            events = self._generation_events(decision, trace, token, upstream, first, start)
        ANSWER_DECISION_LATENCY.labels(kind=decision.kind.value).observe(
            time.perf_counter() - start
        )
        return AnswerStream(decision, trace, events, token)

    def answer(
        self, question: str, level: TeachingLevel = TeachingLevel.SHORTCUT
    ) -> AnswerResult:
        """
        Réponse complète.

        Une interruption en cours de génération lève `ProviderRejected` si le fournisseur a refusé
        la requête, `UpstreamUnavailable` sinon.
        """
        parts: list[str] = []
        end: StreamEnd | None = None
        with self.stream(question, level) as stream:
            for event in stream:
                if isinstance(event, StreamChunk):
                    parts.append(event.text)
                else:
                    end = event
            decision = stream.decision
        if end is None or not end.ok:
            cause = end.error_code if end else None
            if cause == ProviderRejected.code:
                raise ProviderRejected(end.error_message or "provider rejected the request")
            raise UpstreamUnavailable("generation interrupted", details={"cause": cause})
        return AnswerResult(
            kind=decision.kind,
            answer="".join(parts),
            provenance=end.provenance,
            complete=True,
            alternatives=list(decision.alternatives),
        )

    def match(self, question: str) -> MatchReport:
        """Aperçu de la décision (meilleure correspondance et alternatives), sans génération."""
        trace = AnswerTrace()
        decision = self._prepare(question, trace)
        trace.advance(AnswerState.DONE)
        return MatchReport(
            kind=decision.kind,
            match=decision.match,
            title=decision.item.title if decision.item else None,
            provenance=decision.provenance,
            alternatives=list(decision.alternatives),
        )
