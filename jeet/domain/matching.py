"""Matching vectoriel entre une question et les contenus curés.

Ce module définit le résultat de matching et l'interface `VectorMatcher`, ainsi que
l'implémentation par défaut: similarité cosinus en balayage linéaire (numpy). Les ensembles de
candidats sont des contenus curés (bornés), un index approximatif n'est donc pas nécessaire; une
autre implémentation (ex. FAISS) peut être branchée sans changer les appelants.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

import numpy as np
from pydantic import BaseModel

from jeet.domain.content import Candidate, ContentType
from jeet.domain.errors import DimensionMismatch

COSINE = "cosine"


class MatchResult(BaseModel):
    """
    Candidat retenu avec son score de similarité.

    Le score est borné (cosinus: -1..1). Objet transitoire, jamais persisté.
    """

    content_type: ContentType
    content_id: str
    score: float
    metric: str = COSINE


def check_dimensions(query_vector: Sequence[float], candidates: Sequence[Candidate]) -> int:
    """Vérifie que tous les candidats ont la dimension du vecteur requête.

    Returns:
        int: Dimension commune.

    Raises:
        DimensionMismatch: Au premier candidat de dimension différente.
    """
    dim = len(query_vector)
    for c in candidates:
        if len(c.vector) != dim:
            raise DimensionMismatch(expected=dim, got=len(c.vector), content_id=c.content_id)
    return dim


def rank(
    candidates: Sequence[Candidate],
    scores: Sequence[float],
    top_k: int,
    min_score: float,
) -> list[MatchResult]:
    """Trie par score décroissant (ordre d'entrée conservé en cas d'égalité), tronque, filtre."""
    order = sorted(range(len(candidates)), key=lambda i: -scores[i])
    out: list[MatchResult] = []
    for i in order[: max(0, top_k)]:
        score = float(scores[i])
        if score < min_score:
            continue
        c = candidates[i]
        out.append(
            MatchResult(content_type=c.content_type, content_id=c.content_id, score=score)
        )
    return out


class VectorMatcher(ABC):
    """Interface abstraite des matchers vectoriels."""

    @abstractmethod
    def match(
        self,
        query_vector: Sequence[float],
        candidates: Sequence[Candidate],
        top_k: int,
        min_score: float,
    ) -> list[MatchResult]:
        """Retourne les meilleurs candidats, meilleur en premier."""
        raise NotImplementedError


class CosineMatcher(VectorMatcher):
    """Similarité cosinus en balayage linéaire (numpy)."""

    def match(
        self,
        query_vector: Sequence[float],
        candidates: Sequence[Candidate],
        top_k: int,
        min_score: float,
    ) -> list[MatchResult]:
        """
        Calcule le cosinus entre la requête et chaque candidat.

        Args:
            query_vector: Vecteur de la question.
            candidates: Vecteurs valides (non périmés) à comparer.
            top_k: Nombre maximum de résultats.
            min_score: Score minimal conservé.

        Returns:
            list[MatchResult]: Résultats triés par score décroissant.

        Raises:
            DimensionMismatch: Si un candidat n'a pas la dimension de la requête.
        """
        if not candidates:
            return []
        check_dimensions(query_vector, candidates)
        q = np.asarray(query_vector, dtype="float64")
        m = np.asarray([c.vector for c in candidates], dtype="float64")
        q_norm = float(np.linalg.norm(q))
        m_norms = np.linalg.norm(m, axis=1)
        denom = m_norms * q_norm
        # vecteurs nuls: cosinus indéfini, score 0
        with np.errstate(divide="ignore", invalid="ignore"):
            scores = np.where(denom > 0, (m @ q) / denom, 0.0)
        scores = np.clip(scores, -1.0, 1.0)
        return rank(candidates, scores.tolist(), top_k, min_score)
