"""Tests de construction des messages de génération."""

from jeet.domain import prompts
from jeet.domain.content import ContentItem, ContentType


def _item(pid: str, explanation: str) -> ContentItem:
    return ContentItem(
        content_type=ContentType.PATTERN,
        id=pid,
        title=f"Pattern {pid}",
        text=f"text {pid}",
        explanation=explanation,
        version="v1",
    )


def test_generated_messages_carry_only_the_question() -> None:
    messages = prompts.generated_messages("What is 15% of 200?")

    assert [m["role"] for m in messages] == ["system", "user"]
    assert "What is 15% of 200?" in messages[1]["content"]
    assert "Reference" not in messages[1]["content"]


def test_augmented_messages_limit_auxiliary_items() -> None:
    """Teste l'injection de la trick principale et le plafond des tricks secondaires."""
    aux = [_item(f"a{i}", f"aux trick {i}") for i in range(prompts.MAX_AUX_ITEMS + 1)]

    messages = prompts.augmented_messages("20% of 80?", _item("p1", "main trick"), aux)

    content = messages[-1]["content"]
    assert "main trick" in content
    assert "aux trick 0" in content
    assert f"aux trick {prompts.MAX_AUX_ITEMS}" not in content


def test_augmented_messages_without_auxiliary() -> None:
    messages = prompts.augmented_messages("20% of 80?", _item("p1", "main trick"))

    assert "Related tricks" not in messages[-1]["content"]


def test_level_line_and_instruction() -> None:
    """Teste la ligne de niveau et sa consigne, SHORTCUT par défaut."""
    default = prompts.generated_messages("20% of 80?")[-1]["content"]
    deep = prompts.generated_messages("20% of 80?", prompts.TeachingLevel.DEEP)[-1]["content"]

    assert "Level: SHORTCUT" in default
    assert prompts.LEVEL_INSTRUCTIONS[prompts.TeachingLevel.SHORTCUT] in default
    assert "Level: DEEP" in deep
    assert prompts.LEVEL_INSTRUCTIONS[prompts.TeachingLevel.DEEP] in deep


def test_augmented_messages_values_line() -> None:
    """Teste la ligne des valeurs extraites; absente quand il n'y en a pas."""
    item = _item("p1", "main trick")

    with_values = prompts.augmented_messages(
        "20% of 80?", item, values={"percentages": [20.0], "numbers": [20.0, 80.0]}
    )
    without = prompts.augmented_messages("20% of 80?", item, values={})

    assert "Values: percentages=20; numbers=20, 80" in with_values[-1]["content"]
    assert "Values:" not in without[-1]["content"]


def test_instant_level_drops_auxiliary_items() -> None:
    messages = prompts.augmented_messages(
        "20% of 80?", _item("p1", "main trick"), [_item("a1", "aux")], prompts.TeachingLevel.INSTANT
    )

    assert "Related tricks" not in messages[-1]["content"]
