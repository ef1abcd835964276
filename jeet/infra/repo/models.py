"""SQLAlchemy models for persistence layer (curated content and embeddings).

`patterns` et `questions` appartiennent à l'outil d'édition: seules les colonnes lues par le
moteur sont déclarées ici. `content_embeddings` est écrite exclusivement par le backfill.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Classe de base pour tous les modèles SQLAlchemy."""

    metadata = MetaData()


class PatternORM(Base):
    """Pattern curé (astuce réutilisable)."""

    __tablename__ = "patterns"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    embedding_text = Column(Text, nullable=False)
    trick = Column(Text, nullable=False)
    updated_at = Column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)


class QuestionORM(Base):
    """Question curée rattachée à un pattern."""

    __tablename__ = "questions"

    id = Column(String(64), primary_key=True)
    pattern_id = Column(String(64), ForeignKey("patterns.id"), nullable=True, index=True)
    text = Column(Text, nullable=False)
    explanation = Column(Text, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)


class ContentEmbeddingORM(Base):
    """Embedding d'un contenu curé, remplacé en bloc à chaque écriture.

    Vecteur, dimension, version et modèle sont écrits dans la même ligne: une écriture partielle
    n'est pas représentable.
    """

    __tablename__ = "content_embeddings"

    content_type = Column(String(16), primary_key=True)
    content_id = Column(String(64), primary_key=True)
    vector = Column(JSON, nullable=False)
    dimension = Column(Integer, nullable=False)
    version = Column(String(128), nullable=False)
    model = Column(String(128), nullable=False)
    updated_at = Column(DateTime, nullable=False, default=_utcnow)
