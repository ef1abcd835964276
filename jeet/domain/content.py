"""
Modèle de domaine des contenus curés et de leurs embeddings.

Un `ContentItem` (pattern ou question) est possédé par l'outil d'édition; le moteur ne fait que le
lire. Son marqueur de version est l'empreinte du texte embeddé: toute édition de ce texte rend
l'embedding stocké périmé sans le supprimer.

L'état d'un embedding est un type somme explicite: `ValidEmbedding | MissingEmbedding`. Les
appelants ne testent que la validité; la raison de l'absence (jamais calculé vs. périmé) ne sert
qu'au store pour prioriser le backfill.
"""

# ============================================================
# Module : jeet/domain/content.py
# Objet  : Contenus curés, marqueurs de version, état d'embedding.
# ============================================================

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel


class ContentType(str, Enum):
    """Types de contenus curés candidats au matching."""

    PATTERN = "pattern"
    QUESTION = "question"

    @classmethod
    def parse(cls, value: str) -> ContentType:
        """Accepte le singulier ou le pluriel ("patterns", "question"...)."""
        key = (value or "").strip().lower()
        for member in cls:
            if key in (member.value, f"{member.value}s"):
                return member
        raise ValueError(f"unknown content type: {value!r}")


class MissingReason(str, Enum):
    """Raison pour laquelle aucun embedding valide n'est disponible."""

    NEVER_COMPUTED = "never_computed"
    STALE = "stale"


def content_version(text: str) -> str:
    """Calcule le marqueur de version d'un contenu à partir de son texte embeddé."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class ContentItem:
    """
    Unité de contenu curé (pattern ou question).

    Attributs
    - content_type: type du contenu.
    - id: identifiant stable.
    - title: texte d'affichage.
    - text: texte soumis au fournisseur d'embeddings.
    - explanation: explication vérifiée (la « trick »).
    - version: marqueur de version du texte embeddé.
    - pattern_id: pattern parent (questions uniquement).
    """

    content_type: ContentType
    id: str
    title: str
    text: str
    explanation: str
    version: str
    pattern_id: str | None = None


@dataclass(frozen=True)
class ValidEmbedding:
    """Embedding calculé sur la version courante du contenu avec le modèle courant."""

    vector: list[float] = field(repr=False)
    version: str
    model: str

    @property
    def is_valid(self) -> bool:
        return True

    @property
    def dimension(self) -> int:
        return len(self.vector)


@dataclass(frozen=True)
class MissingEmbedding:
    """Aucun embedding exploitable: jamais calculé ou périmé (traité comme absent)."""

    reason: MissingReason

    @property
    def is_valid(self) -> bool:
        return False


EmbeddingState = ValidEmbedding | MissingEmbedding


@dataclass(frozen=True)
class Candidate:
    """Vecteur valide candidat au matching, dans l'ordre de lecture du store."""

    content_type: ContentType
    content_id: str
    vector: list[float] = field(repr=False)


class EmbeddingCoverage(BaseModel):
    """Couverture des embeddings pour un type de contenu (reporting studio)."""

    content_type: ContentType
    total: int
    valid: int
    missing: int
    stale: int

    @property
    def pending(self) -> int:
        return self.missing + self.stale
