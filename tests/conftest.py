"""Configuration de test pour pytest avec gestion des chemins.

Ajoute la racine du projet au sys.path (imports `jeet...`) et fournit une base SQLite en mémoire
fraîche par test, avec la source de contenus et le store d'embeddings branchés dessus.
"""

import os
import sys

import pytest

# Ensure project root is on sys.path so that
# imports like `from jeet...` resolve.
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from jeet.infra.repo.content_source import SqlContentSource  # noqa: E402
from jeet.infra.repo.db import get_engine, get_session_factory  # noqa: E402
from jeet.infra.repo.embedding_store import ContentEmbeddingStore  # noqa: E402
from jeet.infra.repo.models import Base  # noqa: E402

from tests.fakes import FAKE_EMBED_MODEL  # noqa: E402


@pytest.fixture
def session_factory():
    """Base SQLite en mémoire isolée (une connexion partagée par moteur)."""
    engine = get_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(engine)
    yield get_session_factory(engine)
    engine.dispose()


@pytest.fixture
def content_source(session_factory):
    return SqlContentSource(session_factory)


@pytest.fixture
def store(session_factory, content_source):
    return ContentEmbeddingStore(session_factory, content_source, model=FAKE_EMBED_MODEL)
