"""
Matcher vectoriel adossé à FAISS.

Requiert `faiss-cpu` et `numpy`. Utilise la similarité produit scalaire (IndexFlatIP) sur des
vecteurs normalisés L2, ce qui équivaut au cosinus. Même contrat que `CosineMatcher`: l'index est
reconstruit à partir des candidats valides lus pour la requête.
"""

from __future__ import annotations

from collections.abc import Sequence

import faiss  # type: ignore
import numpy as np  # type: ignore

from jeet.domain.content import Candidate
from jeet.domain.matching import MatchResult, VectorMatcher, check_dimensions, rank


class FaissMatcher(VectorMatcher):
    """
    Matcher FAISS (IndexFlatIP) pour la recherche par similarité cosinus.

    Les scores sont remis dans l'ordre des candidats avant classement pour garder un départage
    stable des égalités.
    """

    def _build_index(self, dim: int, xb: np.ndarray) -> faiss.IndexFlatIP:
        index = faiss.IndexFlatIP(dim)
        index.add(xb)
        return index

    def match(
        self,
        query_vector: Sequence[float],
        candidates: Sequence[Candidate],
        top_k: int,
        min_score: float,
    ) -> list[MatchResult]:
        """
        Recherche les candidats les plus proches via FAISS.

        Args:
            query_vector: Vecteur de la question.
            candidates: Vecteurs valides à comparer.
            top_k: Nombre maximum de résultats.
            min_score: Score minimal conservé.

        Returns:
            list[MatchResult]: Résultats triés par score décroissant.
        """
        if not candidates:
            return []
        dim = check_dimensions(query_vector, candidates)
        xb = np.array([c.vector for c in candidates], dtype="float32")
        qx = np.array([query_vector], dtype="float32")
        faiss.normalize_L2(xb)
        faiss.normalize_L2(qx)
        index = self._build_index(dim, xb)
        distances, indices = index.search(qx, len(candidates))
        scores = [0.0] * len(candidates)
        for score, idx in zip(distances[0], indices[0], strict=True):
            if idx == -1:
                continue
            scores[int(idx)] = float(min(1.0, max(-1.0, score)))
        return rank(candidates, scores, top_k, min_score)
