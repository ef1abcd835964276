# Schémas Pydantic exposés par l'API (requêtes et réponses).

from pydantic import BaseModel, Field

from jeet.core.constants import MAX_BATCH_SIZE, MIN_BATCH_SIZE
from jeet.domain.answer_orchestrator import (
    AnswerResult,
    DecisionKind,
    MatchReport,
    Provenance,
    StreamEnd,
)
from jeet.domain.content import ContentType
from jeet.domain.matching import MatchResult
from jeet.domain.prompts import TeachingLevel


class ChatRequest(BaseModel):
    """Question libre de l'apprenant.

    La validation métier (vide, longueur maximale) est faite par l'orchestrateur.
    """

    question: str
    level: TeachingLevel = TeachingLevel.SHORTCUT


class ChatAnswerResponse(BaseModel):
    """Réponse complète de `/chat/answer`."""

    decision: DecisionKind
    answer: str
    provenance: Provenance | None = None
    complete: bool
    alternatives: list[MatchResult] = []

    @classmethod
    def from_result(cls, result: AnswerResult) -> "ChatAnswerResponse":
        return cls(
            decision=result.kind,
            answer=result.answer,
            provenance=result.provenance,
            complete=result.complete,
            alternatives=result.alternatives,
        )


class ChatMatchResponse(BaseModel):
    """Aperçu de décision de `/chat/match`."""

    decision: DecisionKind
    match: MatchResult | None = None
    title: str | None = None
    provenance: Provenance | None = None
    alternatives: list[MatchResult] = []

    @classmethod
    def from_report(cls, report: MatchReport) -> "ChatMatchResponse":
        return cls(
            decision=report.kind,
            match=report.match,
            title=report.title,
            provenance=report.provenance,
            alternatives=report.alternatives,
        )


def end_event(end: StreamEnd, trace_id: str | None = None) -> dict:
    """Événement SSE terminal `{"type": "end", ...}`."""
    error = None
    if not end.ok:
        error = {"code": end.error_code, "message": end.error_message, "trace_id": trace_id}
    return {
        "type": "end",
        "decision": end.kind.value,
        "provenance": end.provenance.model_dump(mode="json") if end.provenance else None,
        "ok": end.ok,
        "incomplete": end.incomplete,
        "error": error,
    }


class BackfillRequest(BaseModel):
    """Déclenchement d'un backfill pour un type de contenu."""

    content_type: str = "patterns"
    batch_size: int | None = Field(default=None, ge=MIN_BATCH_SIZE, le=MAX_BATCH_SIZE)


class CoverageResponse(BaseModel):
    """Couverture des embeddings par type de contenu."""

    pattern: dict
    question: dict


class RefreshResponse(BaseModel):
    content_type: ContentType
    content_id: str
    refreshed: bool
