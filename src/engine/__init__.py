from .models import Team, CardType, Phase, Seat, SeatRole, AIMode, GuessOutcome
from .models import Card, Player, Clue, GuessResult, MatchSettings, Offer, SettingsAccepted
from .models import GameState, ChatMessage, ABANDONED, BOARD_SIZE, MAX_ASSASSINS, MAX_CLUE_NUMBER
from .errors import GameRuleError, MoveValidationError, PreconditionFailure
from .board import (
    DEFAULT_DECK_ID, DECK_CATALOG, load_decks, normalize_deck_id, get_words_for_deck,
    generate_key_card, generate_board,
)
from .game import (
    new_game, select_role, submit_clue, guess_card, end_turn, expire_timer,
    abandon_game, is_stale, reset_inactive_game, validate_clue, validate_clue_format,
    get_visible_cards, get_unrevealed_words, find_unrevealed_card, format_rules, utcnow,
)

__all__ = [
    "Team", "CardType", "Phase", "Seat", "SeatRole", "AIMode", "GuessOutcome",
    "Card", "Player", "Clue", "GuessResult", "MatchSettings", "Offer", "SettingsAccepted",
    "GameState", "ChatMessage", "ABANDONED", "BOARD_SIZE", "MAX_ASSASSINS", "MAX_CLUE_NUMBER",
    "GameRuleError", "MoveValidationError", "PreconditionFailure",
    "DEFAULT_DECK_ID", "DECK_CATALOG", "load_decks", "normalize_deck_id", "get_words_for_deck",
    "generate_key_card", "generate_board",
    "new_game", "select_role", "submit_clue", "guess_card", "end_turn", "expire_timer",
    "abandon_game", "is_stale", "reset_inactive_game", "validate_clue", "validate_clue_format",
    "get_visible_cards", "get_unrevealed_words", "find_unrevealed_card", "format_rules", "utcnow",
]
