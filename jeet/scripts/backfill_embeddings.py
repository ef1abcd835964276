"""
Backfill des embeddings de contenus curés en ligne de commande.

Exemples:
    python -m jeet.scripts.backfill_embeddings --type patterns --batch-size 50
    python -m jeet.scripts.backfill_embeddings --type all

Ctrl-C arrête proprement le run: l'élément en cours se termine, le bilan est affiché.

Environment:
- DATABASE_URL: base cible.
- OPENAI_API_KEY / EMBEDDINGS_MODEL: fournisseur d'embeddings.
"""

from __future__ import annotations

import argparse
import json
import signal
import sys
from pathlib import Path

# Permet l'exécution du script en direct (python jeet/scripts/backfill_embeddings.py)
SYS_ROOT = Path(__file__).resolve().parents[2]
if str(SYS_ROOT) not in sys.path:
    sys.path.append(str(SYS_ROOT))

from jeet.core.container import container  # noqa: E402
from jeet.core.logging import setup_logging  # noqa: E402
from jeet.domain.cancellation import CancellationToken  # noqa: E402
from jeet.domain.content import ContentType  # noqa: E402


def _types(value: str) -> list[ContentType]:
    if value == "all":
        return list(ContentType)
    return [ContentType.parse(value)]


def main(argv: list[str] | None = None) -> int:
    """Point d'entrée: backfill d'un ou de tous les types de contenu."""
    parser = argparse.ArgumentParser(description="Backfill des embeddings manquants ou périmés")
    parser.add_argument(
        "--type",
        default="all",
        help="patterns | questions | all",
    )
    parser.add_argument("--batch-size", type=int, default=None, help="Taille des lots")
    args = parser.parse_args(argv)

    try:
        types = _types(args.type)
    except ValueError as exc:
        parser.error(str(exc))

    setup_logging(container.settings.LOG_LEVEL, json_logs=container.settings.APP_ENV != "dev")
    token = CancellationToken()
    signal.signal(signal.SIGINT, lambda *_: token.cancel())

    failed = 0
    for ct in types:
        if token.cancelled:
            break
        report = container.backfill.run(ct, args.batch_size, token=token)
        failed += report.failed
        print(f"[backfill] {json.dumps(report.model_dump(mode='json'), ensure_ascii=False)}")
    for ct in types:
        cov = container.embedding_store.count_stale_or_missing(ct)
        print(f"[backfill] {ct.value}: {cov.valid}/{cov.total} valid, {cov.pending} pending")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
