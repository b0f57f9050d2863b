"""Word bank and board generation."""

from __future__ import annotations

import json
import logging
import random
from pathlib import Path

from .models import (
    BOARD_SIZE, FIRST_TEAM_CARDS, SECOND_TEAM_CARDS,
    Card, CardType, Team,
)

logger = logging.getLogger(__name__)

DEFAULT_DECK_ID = "standard"

DECK_CATALOG: dict[str, str] = {
    "standard": "Standard",
    "family": "Family",
    "pop": "Pop",
    "sports": "Sports",
    "tech": "Tech",
}


def _default_words_path() -> Path:
    return Path(__file__).parent.parent.parent / "data" / "words.json"


def fallback_words() -> list[str]:
    """Placeholder bank used when the word file cannot be read."""
    return [f"WORD{i}" for i in range(1, 401)]


def load_decks(path: Path | None = None) -> dict[str, list[str]]:
    """
    Load decks from a JSON object of ``{deck_id: [words...]}``.

    Words are upper-cased and de-duplicated within each deck, keeping first
    occurrence order. A missing or unreadable file yields a single standard
    deck of placeholder words.
    """
    if path is None:
        path = _default_words_path()

    try:
        with open(path, "r") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Could not load word decks from %s: %s", path, e)
        return {DEFAULT_DECK_ID: fallback_words()}

    decks: dict[str, list[str]] = {}
    if isinstance(data, dict):
        for deck_id, words in data.items():
            if not isinstance(words, list):
                continue
            seen: set[str] = set()
            cleaned: list[str] = []
            for word in words:
                word = str(word).strip().upper()
                if word and word not in seen:
                    seen.add(word)
                    cleaned.append(word)
            decks[str(deck_id)] = cleaned

    if len(decks.get(DEFAULT_DECK_ID, [])) < BOARD_SIZE:
        decks[DEFAULT_DECK_ID] = fallback_words()
    return decks


def normalize_deck_id(deck_id: str | None, decks: dict[str, list[str]]) -> str:
    """Return deck_id if it names a usable deck, else the default deck."""
    deck_id = str(deck_id or DEFAULT_DECK_ID).strip().lower()
    if len(decks.get(deck_id, [])) >= BOARD_SIZE:
        return deck_id
    return DEFAULT_DECK_ID


def get_words_for_deck(deck_id: str | None, decks: dict[str, list[str]]) -> list[str]:
    """Words of the requested deck, falling back to the default deck."""
    words = decks.get(normalize_deck_id(deck_id, decks), [])
    if len(words) >= BOARD_SIZE:
        return words
    return fallback_words()


def generate_key_card(
    first_team: Team,
    assassin_count: int = 1,
    rng: random.Random | None = None,
) -> list[CardType]:
    """
    Build and shuffle the card identities for one board.

    The first team gets 9 cards, the other 8, at least one assassin, and
    neutrals fill the remainder (never negative). Assassin counts above 8
    are not clamped; callers reject them before getting here.
    """
    rng = rng or random.Random()
    assassins = max(1, assassin_count)
    neutrals = max(0, BOARD_SIZE - FIRST_TEAM_CARDS - SECOND_TEAM_CARDS - assassins)

    types = (
        [CardType(first_team.value)] * FIRST_TEAM_CARDS +
        [CardType(first_team.other.value)] * SECOND_TEAM_CARDS +
        [CardType.NEUTRAL] * neutrals +
        [CardType.ASSASSIN] * assassins
    )
    rng.shuffle(types)
    return types


def generate_board(
    first_team: Team,
    assassin_count: int,
    deck_id: str,
    decks: dict[str, list[str]] | None = None,
    rng: random.Random | None = None,
) -> list[Card]:
    """
    Generate a 25-card board.

    Words are sampled without replacement from the deck; identities are
    shuffled independently and paired position by position.
    """
    if decks is None:
        decks = load_decks()
    rng = rng or random.Random()

    words = rng.sample(get_words_for_deck(deck_id, decks), BOARD_SIZE)
    types = generate_key_card(first_team, assassin_count, rng)

    return [Card(word=word, type=card_type) for word, card_type in zip(words, types)]
