"""
Interface de base pour les fournisseurs d'embeddings.

Ce module définit l'interface abstraite que doivent implémenter tous les fournisseurs
d'embeddings vectoriels: un texte non vide en entrée, un vecteur de dimension fixe en sortie.
"""

from abc import ABC, abstractmethod


class EmbeddingProvider(ABC):
    """Interface abstraite pour les fournisseurs d'embeddings."""

    #: Nom du modèle, enregistré avec chaque vecteur persisté.
    model: str = "unknown"

    @abstractmethod
    def embed(self, text: str) -> list[float]:
        """Génère l'embedding vectoriel d'un texte.

        Raises:
            InvalidInput: Texte vide.
            InputTooLarge: Texte dépassant la limite du fournisseur.
            ProviderUnavailable: Fournisseur injoignable après épuisement des tentatives.
            RateLimited: Quota atteint après épuisement des tentatives.
            ProviderRejected: Entrée refusée par le fournisseur.
        """
        ...
