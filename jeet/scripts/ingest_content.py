"""
Script de chargement de contenus curés (développement uniquement).

Lit un fichier JSON de patterns et de questions et les insère (ou remplace) dans les tables
`patterns` / `questions`. Les embeddings ne sont pas calculés ici: lancer ensuite
`python -m jeet.scripts.backfill_embeddings`.

Format attendu du JSON:
    {
      "patterns": [{"id", "name", "embedding_text"?, "trick"}],
      "questions": [{"id", "pattern_id"?, "text", "explanation"?}]
    }

`trick` peut être une chaîne ou un objet `{"one_liner": ...}`; sans `embedding_text`, le texte
embeddé est `"<name>. <trick>"`.
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path

# Permet l'exécution du script en direct (python jeet/scripts/ingest_content.py)
SYS_ROOT = Path(__file__).resolve().parents[2]
if str(SYS_ROOT) not in sys.path:
    sys.path.append(str(SYS_ROOT))

from sqlalchemy.orm import sessionmaker  # noqa: E402

from jeet.infra.repo.db import session_scope  # noqa: E402
from jeet.infra.repo.models import PatternORM, QuestionORM  # noqa: E402


def _trick_text(trick) -> str:
    if isinstance(trick, dict):
        return str(trick.get("one_liner") or "")
    return str(trick or "")


def load_content(path: str) -> tuple[list[PatternORM], list[QuestionORM]]:
    """
    Construit les lignes ORM depuis `path`.

    Retourne deux listes vides si le fichier n'existe pas. Les entrées sans identifiant ou sans
    texte sont ignorées.
    """
    if not os.path.exists(path):
        return [], []
    with open(path, encoding="utf-8") as f:
        raw = json.load(f)
    patterns: list[PatternORM] = []
    for p in raw.get("patterns", []):
        trick = _trick_text(p.get("trick"))
        if not p.get("id") or not p.get("name") or not trick:
            continue
        patterns.append(
            PatternORM(
                id=str(p["id"]),
                name=str(p["name"]),
                embedding_text=str(p.get("embedding_text") or f"{p['name']}. {trick}"),
                trick=trick,
            )
        )
    questions: list[QuestionORM] = []
    for q in raw.get("questions", []):
        text = q.get("text")
        if isinstance(text, dict):
            text = text.get("en")
        if not q.get("id") or not text:
            continue
        questions.append(
            QuestionORM(
                id=str(q["id"]),
                pattern_id=q.get("pattern_id"),
                text=str(text),
                explanation=q.get("explanation"),
            )
        )
    return patterns, questions


def ingest(session_factory: sessionmaker, path: str) -> tuple[int, int]:
    """Insère ou remplace les contenus du fichier; retourne (patterns, questions)."""
    patterns, questions = load_content(path)
    with session_scope(session_factory) as session:
        for row in patterns:
            session.merge(row)
        session.flush()
        for row in questions:
            session.merge(row)
    return len(patterns), len(questions)


def main() -> None:
    """Point d'entrée: lit le JSON et charge les contenus."""
    parser = argparse.ArgumentParser(description="Chargement de contenus curés (dev)")
    parser.add_argument("--path", type=str, required=True, help="Chemin du fichier JSON")
    args = parser.parse_args()

    from jeet.core.container import container  # import local: construit le conteneur

    n_patterns, n_questions = ingest(container.session_factory, args.path)
    if not n_patterns and not n_questions:
        print(f"[ingest] aucun contenu chargé depuis {args.path}")
        return
    print(f"[ingest] {n_patterns} patterns, {n_questions} questions depuis {args.path}")


if __name__ == "__main__":
    main()
