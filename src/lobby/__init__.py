from .negotiation import (
    offer_settings, accept_offer, rules_agreed, all_players_ready, maybe_auto_start,
    reset_negotiation, clear_ready,
)
from .seats import (
    join_seat, leave_seat, set_seat_role, toggle_ready, evict_inactive_players,
    reset_if_empty, prepare_rematch, EMPTY_LOBBY_MESSAGE,
)

__all__ = [
    "offer_settings", "accept_offer", "rules_agreed", "all_players_ready", "maybe_auto_start",
    "reset_negotiation", "clear_ready",
    "join_seat", "leave_seat", "set_seat_role", "toggle_ready", "evict_inactive_players",
    "reset_if_empty", "prepare_rematch", "EMPTY_LOBBY_MESSAGE",
]
