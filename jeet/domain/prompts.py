"""Prompts du tuteur et construction des messages de génération.

Deux formes de requête: AUGMENTED (explication curée injectée comme contexte de référence, valeurs
extraites de la question, correspondances secondaires en contexte auxiliaire) et GENERATED
(question seule). Le niveau pédagogique (`instant`, `shortcut`, `deep`) fixe la longueur et la
profondeur attendues.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from enum import Enum

from jeet.domain.content import ContentItem

SYSTEM = (
    "You are Jeetu Bhaiya, an experienced SSC exam coach: chill, confident and a master of "
    "shortcut tricks. Talk casually in natural Hinglish (Hindi sentence structure, English math "
    "terms). Keep sentences short. First state the trick in one line, then apply it with the "
    "question's own numbers, then give the answer. Never fall back to the long textbook method "
    "when a trick is provided."
)

AUGMENTED_RULES = (
    "Use ONLY the reference trick below to solve the question. "
    "Use the numbers from the question, not a generic example."
)

GENERATED_RULES = (
    "No verified trick is available for this question. Solve it with the fastest reliable "
    "shortcut you know and keep it exam-focused."
)

MAX_AUX_ITEMS = 2


class TeachingLevel(str, Enum):
    """Profondeur d'explication demandée par l'apprenant."""

    INSTANT = "instant"
    SHORTCUT = "shortcut"
    DEEP = "deep"


LEVEL_INSTRUCTIONS: dict[TeachingLevel, str] = {
    TeachingLevel.INSTANT: "1-2 lines mein answer de. Sirf trick apply kar, explanation mat de.",
    TeachingLevel.SHORTCUT: "4-5 lines mein solve kar. Trick steps dikhaa with numbers. No theory.",
    TeachingLevel.DEEP: (
        "Full explanation de - concept, trick logic, steps with numbers, tip. 8-10 lines okay."
    ),
}


def _fmt(x: float) -> str:
    return f"{x:g}"


def _aux(items: Sequence[ContentItem]) -> str:
    lines: list[str] = []
    for it in items[:MAX_AUX_ITEMS]:
        lines.append(f"- {it.title}: {it.explanation}")
    return "\n".join(lines)


def _values(values: Mapping[str, Sequence[float]]) -> str:
    parts = [f"{k}={', '.join(_fmt(v) for v in vs)}" for k, vs in values.items() if vs]
    return "; ".join(parts)


def _level(level: TeachingLevel) -> str:
    return f"Level: {level.value.upper()}\n{LEVEL_INSTRUCTIONS[level]}"


def augmented_messages(
    question: str,
    item: ContentItem,
    auxiliary: Sequence[ContentItem] = (),
    level: TeachingLevel = TeachingLevel.SHORTCUT,
    values: Mapping[str, Sequence[float]] | None = None,
) -> list[dict[str, str]]:
    """Messages pour une réponse générée ancrée sur un contenu curé."""
    content = f'Question: "{question}"\n\n{AUGMENTED_RULES}\n\nReference ({item.title}):\n{item.explanation}'
    extracted = _values(values or {})
    if extracted:
        content += f"\n\nValues: {extracted}"
    aux = _aux(auxiliary)
    if aux and level != TeachingLevel.INSTANT:
        content += f"\n\nRelated tricks (secondary, use only if helpful):\n{aux}"
    content += f"\n\n---\n{_level(level)}"
    return [
        {"role": "system", "content": SYSTEM},
        {"role": "user", "content": content},
    ]


def generated_messages(
    question: str, level: TeachingLevel = TeachingLevel.SHORTCUT
) -> list[dict[str, str]]:
    """Messages pour une réponse générée sans contexte curé."""
    return [
        {"role": "system", "content": SYSTEM},
        {
            "role": "user",
            "content": f'Question: "{question}"\n\n{GENERATED_RULES}\n\n---\n{_level(level)}',
        },
    ]
