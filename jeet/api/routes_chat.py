# ============================================================
# Module : jeet/api/routes_chat.py
# Objet  : Endpoints /chat (réponse streamée, réponse complète, aperçu).
# Notes  : Les erreurs avant le premier fragment sortent en enveloppe JSON;
#          après, le flux se termine par un événement "end" en erreur.
# ============================================================
"""Routes de chat du tuteur.

- `POST /chat`: flux SSE (`text/event-stream`) d'événements `chunk` puis un `end`.
- `POST /chat/answer`: réponse complète en JSON.
- `POST /chat/match`: aperçu de la décision (correspondance, alternatives), sans génération.
"""

from __future__ import annotations

import json

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from jeet.api.deps import get_orchestrator
from jeet.api.errors import extract_trace_id
from jeet.api.schemas import ChatAnswerResponse, ChatMatchResponse, ChatRequest, end_event
from jeet.domain.answer_orchestrator import AnswerOrchestrator, AnswerStream, StreamChunk

router = APIRouter(prefix="/chat", tags=["chat"])
_orchestrator_dep = Depends(get_orchestrator)

log = structlog.get_logger(__name__)


def _sse(payload: dict) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def _events(stream: AnswerStream, trace_id: str | None):
    try:
        for event in stream:
            if isinstance(event, StreamChunk):
                yield _sse({"type": "chunk", "content": event.text})
            else:
                yield _sse(end_event(event, trace_id))
    finally:
        # déconnexion client comprise: l'appel amont est fermé
        stream.close()


@router.post("")
def chat(
    payload: ChatRequest, request: Request, orchestrator: AnswerOrchestrator = _orchestrator_dep
) -> StreamingResponse:
    """Répond à une question en streaming (Server-Sent Events)."""
    stream = orchestrator.stream(payload.question, payload.level)
    log.info("chat_stream_opened", decision=stream.kind.value, trace_id=stream.trace.trace_id)
    return StreamingResponse(
        _events(stream, extract_trace_id(request)),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.post("/answer", response_model=ChatAnswerResponse)
def answer(
    payload: ChatRequest, orchestrator: AnswerOrchestrator = _orchestrator_dep
) -> ChatAnswerResponse:
    """Répond à une question en un seul bloc."""
    return ChatAnswerResponse.from_result(orchestrator.answer(payload.question, payload.level))


@router.post("/match", response_model=ChatMatchResponse)
def match(
    payload: ChatRequest, orchestrator: AnswerOrchestrator = _orchestrator_dep
) -> ChatMatchResponse:
    """Prévisualise la décision pour une question."""
    return ChatMatchResponse.from_report(orchestrator.match(payload.question))
