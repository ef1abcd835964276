"""Accès en lecture aux contenus curés (patterns, questions).

Ce module expose le contrat étroit consommé par le moteur (`ContentSource`) et son implémentation
SQLAlchemy. Le moteur ne fait que lire: texte, explication et marqueur de version par identifiant
et type de contenu.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from jeet.domain.content import ContentItem, ContentType, content_version
from jeet.infra.repo.db import session_scope
from jeet.infra.repo.models import PatternORM, QuestionORM


class ContentSource(Protocol):
    """Contrat de lecture des contenus curés."""

    def get(self, content_type: ContentType, content_id: str) -> ContentItem | None:
        """Retourne le contenu courant ou None s'il n'existe pas."""

    def get_many(self, content_type: ContentType, ids: Iterable[str]) -> dict[str, ContentItem]:
        """Retourne les contenus existants parmi `ids`, indexés par identifiant."""

    def list_versions(self, content_type: ContentType) -> dict[str, str]:
        """Retourne {identifiant: marqueur de version} pour tous les contenus, triés par id."""


def _pattern_item(row: PatternORM) -> ContentItem:
    return ContentItem(
        content_type=ContentType.PATTERN,
        id=row.id,
        title=row.name,
        text=row.embedding_text,
        explanation=row.trick,
        version=content_version(row.embedding_text),
    )


def _question_item(row: QuestionORM, pattern: PatternORM | None) -> ContentItem:
    # une question sans explication propre reprend la trick de son pattern
    explanation = row.explanation or (pattern.trick if pattern is not None else "")
    return ContentItem(
        content_type=ContentType.QUESTION,
        id=row.id,
        title=row.text,
        text=row.text,
        explanation=explanation,
        version=content_version(row.text),
        pattern_id=row.pattern_id,
    )


class SqlContentSource:
    """Lecture des tables `patterns` et `questions` via SQLAlchemy."""

    def __init__(self, session_factory: sessionmaker) -> None:
        """Construit la source avec une factory de sessions."""
        self._sessions = session_factory

    def get(self, content_type: ContentType, content_id: str) -> ContentItem | None:
        return self.get_many(content_type, [content_id]).get(content_id)

    def get_many(self, content_type: ContentType, ids: Iterable[str]) -> dict[str, ContentItem]:
        wanted = list(dict.fromkeys(ids))
        if not wanted:
            return {}
        with session_scope(self._sessions) as session:
            if content_type == ContentType.PATTERN:
                rows = session.execute(
                    select(PatternORM).where(PatternORM.id.in_(wanted))
                ).scalars().all()
                return {r.id: _pattern_item(r) for r in rows}
            stmt = (
                select(QuestionORM, PatternORM)
                .outerjoin(PatternORM, PatternORM.id == QuestionORM.pattern_id)
                .where(QuestionORM.id.in_(wanted))
            )
            return {q.id: _question_item(q, p) for q, p in session.execute(stmt).all()}

    def list_versions(self, content_type: ContentType) -> dict[str, str]:
        with session_scope(self._sessions) as session:
            if content_type == ContentType.PATTERN:
                stmt = select(PatternORM.id, PatternORM.embedding_text).order_by(PatternORM.id)
            else:
                stmt = select(QuestionORM.id, QuestionORM.text).order_by(QuestionORM.id)
            return {cid: content_version(text) for cid, text in session.execute(stmt).all()}
