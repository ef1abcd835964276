"""Interface de base pour les modèles de génération."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator


class LLM(ABC):
    """Interface abstraite pour les modèles de génération en streaming."""

    model: str = "unknown"

    @abstractmethod
    def stream(self, messages: list[dict[str, str]]) -> Iterator[str]:
        """Produit la réponse par fragments de texte, au fil de leur arrivée.

        Le générateur retourné est paresseux, fini et non redémarrable; le fermer (`close()`)
        libère l'appel amont. Les échecs sont levés sous forme d'erreurs typées
        (`ProviderUnavailable`, `RateLimited`, `ProviderRejected`).
        """
        ...

    def generate(self, messages: list[dict[str, str]]) -> str:
        """Génère la réponse complète (concaténation du flux)."""
        return "".join(self.stream(messages))
