"""
Card Set - The fixed values a vote may take.

Fibonacci-like sequence plus a non-numeric "coffee" card for
"I need a break / pass". Values travel as strings in the session
document so the wire format stays uniform.
"""

from __future__ import annotations
from typing import Any


COFFEE = "coffee"

# Display order matters: tallies and histograms follow it.
CARD_SET: tuple[str, ...] = ("1", "2", "3", "5", "8", "13", COFFEE)

_ALIASES = {
    "☕": COFFEE,
}


class InvalidCardError(ValueError):
    """Raised when a value is not part of the card set."""

    def __init__(self, value: Any):
        super().__init__(f"{value!r} is not a valid card (expected one of {', '.join(CARD_SET)})")
        self.value = value


def parse_card(value: Any) -> str:
    """
    Normalize a vote value to its canonical card string.

    Accepts the card strings themselves, integers of the card set,
    and the coffee glyph. Anything else raises InvalidCardError.
    """
    if isinstance(value, bool):
        raise InvalidCardError(value)
    if isinstance(value, int):
        value = str(value)
    if not isinstance(value, str):
        raise InvalidCardError(value)

    text = value.strip()
    text = _ALIASES.get(text, text)
    if text.lower() == COFFEE:
        return COFFEE
    if text in CARD_SET:
        return text
    raise InvalidCardError(value)


def is_valid_card(value: Any) -> bool:
    try:
        parse_card(value)
    except InvalidCardError:
        return False
    return True


def is_numeric(card: str) -> bool:
    """Check if a card contributes to the numeric average."""
    return card != COFFEE


def card_value(card: str) -> int:
    """Numeric value of a card. Callers must filter out non-numeric cards first."""
    return int(card)
