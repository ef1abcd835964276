"""
Endpoint de santé pour vérifier la disponibilité de l'API.

Expose `/health` avec le backend de matching et la configuration des fournisseurs (sans secret).
"""

from fastapi import APIRouter

from jeet.core.container import container

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    """Vérifie la disponibilité de l'API."""
    return {
        "status": "ok",
        "matcher": container.settings.MATCHER_BACKEND,
        "embeddings_model": container.settings.EMBEDDINGS_MODEL,
        "provider_configured": bool(container.settings.OPENAI_API_KEY),
    }
