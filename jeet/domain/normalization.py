"""Normalisation des textes avant embedding.

Remplace les valeurs numériques spécifiques par un marqueur générique `X` pour que deux questions
qui ne diffèrent que par leurs nombres tombent sur le même contenu curé.

Exemples:
    "salt decreases by 20%"        -> "salt decreases by X%"
    "A sells to B at Rs 500"       -> "A sells to B at Rs X"
    "3 men can do work in 5 days"  -> "X men can do work in X days"

`extract_values` fait l'inverse: elle relève ces valeurs pour les injecter dans le prompt.
"""

from __future__ import annotations

import re

_PERCENT = re.compile(r"\d+(\.\d+)?%")
_RUPEE_SYMBOL = re.compile(r"₹\s?\d[\d,]*(\.\d+)?")
_RUPEE_RS = re.compile(r"\bRs\.?\s?\d[\d,]*(\.\d+)?", re.IGNORECASE)
_NUMBER = re.compile(r"\b\d[\d,]*(\.\d+)?\b")


def normalize_for_embedding(text: str) -> str:
    """Retourne le texte avec les pourcentages, montants et nombres remplacés par `X`."""
    out = _PERCENT.sub("X%", text)
    out = _RUPEE_SYMBOL.sub("₹X", out)
    out = _RUPEE_RS.sub("Rs X", out)
    return _NUMBER.sub("X", out)


_AMOUNT_VALUE = re.compile(r"(?:₹|\bRs\.?)\s*(\d[\d,]*(?:\.\d+)?)", re.IGNORECASE)
_PERCENT_VALUE = re.compile(r"(\d+(?:\.\d+)?)\s*%")
_NUMBER_VALUE = re.compile(r"\d[\d,]*(?:\.\d+)?")


def _num(raw: str) -> float:
    return float(raw.replace(",", ""))


def extract_values(text: str) -> dict[str, list[float]]:
    """
    Extrait les valeurs numériques d'une question, dans l'ordre d'apparition.

    Clés: `percentages`, `amounts` (₹ / Rs) et `numbers` (toutes les valeurs, y compris les
    précédentes). Seules les clés non vides sont présentes.

    Exemple:
        "Rs 1,200 at 10% for 2 years" -> {"percentages": [10.0], "amounts": [1200.0],
                                            "numbers": [1200.0, 10.0, 2.0]}
    """
    found = {
        "percentages": [_num(m) for m in _PERCENT_VALUE.findall(text)],
        "amounts": [_num(m) for m in _AMOUNT_VALUE.findall(text)],
        "numbers": [_num(m) for m in _NUMBER_VALUE.findall(text)],
    }
    return {k: v for k, v in found.items() if v}
