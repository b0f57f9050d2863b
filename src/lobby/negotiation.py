"""Two-team rule negotiation and the auto-start gate.

A match may only start once both teams have independently agreed on the same
MatchSettings, both rosters are non-empty, and every seated player is ready.
"""

from __future__ import annotations

import logging
import random
from datetime import datetime

from src.engine import (
    GameState, MatchSettings, Offer, Phase, SeatRole, Team,
    PreconditionFailure, generate_board, utcnow,
)
from src.engine.game import format_rules, phase_timer_end

logger = logging.getLogger(__name__)


def reset_negotiation(state: GameState) -> None:
    """Clear any pending offer and both acceptance flags (in place)."""
    state.settings_pending = None
    state.settings_accepted.red = False
    state.settings_accepted.blue = False


def clear_ready(state: GameState) -> None:
    """Un-ready every player (in place)."""
    for player in state.all_players():
        player.ready = False


def _require_waiting(state: GameState, action: str) -> None:
    if state.current_phase != Phase.WAITING:
        raise PreconditionFailure(f"Cannot {action} while a match is in progress")


def make_offer(state: GameState, team: Team, settings: MatchSettings, now: datetime) -> None:
    """Install ``team``'s proposal as the pending offer (in place)."""
    state.settings_pending = Offer(
        proposing_team=team,
        settings=settings.model_copy(),
        created_at=now,
    )
    state.settings_accepted.set(team, True)
    state.settings_accepted.set(team.other, False)


def offer_settings(
    state: GameState,
    team: Team,
    settings: MatchSettings,
    now: datetime | None = None,
) -> GameState:
    """
    Propose match settings on behalf of ``team``.

    Replaces any pending offer, marks the proposer as accepting, and
    un-readies everyone since readiness was given under the old rules.
    """
    _require_waiting(state, "change rules")
    if not state.roster(team):
        raise PreconditionFailure(f"{state.team_name(team)} has no players to make an offer")

    new_state = state.model_copy(deep=True)
    make_offer(new_state, team, settings, now or utcnow())
    clear_ready(new_state)
    new_state.log.append(f"{new_state.team_name(team)} proposed rules: {format_rules(settings)}")
    return new_state


def accept_offer(state: GameState, team: Team) -> GameState:
    """
    Accept the other team's pending offer.

    When both teams have accepted, the offer becomes the match settings and
    all players must ready up again.
    """
    _require_waiting(state, "accept rules")
    offer = state.settings_pending
    if offer is None:
        raise PreconditionFailure("There is no pending offer to accept")
    if offer.proposing_team == team:
        raise PreconditionFailure("A team cannot accept its own offer")
    if not state.roster(team):
        raise PreconditionFailure(f"{state.team_name(team)} has no players to accept an offer")

    new_state = state.model_copy(deep=True)
    new_state.settings_accepted.set(team, True)

    if new_state.settings_accepted.red and new_state.settings_accepted.blue:
        new_state.quick_settings = offer.settings.model_copy()
        new_state.settings_pending = None
        clear_ready(new_state)
        new_state.log.append(f"Rules agreed: {format_rules(offer.settings)}")
    else:
        new_state.log.append(f"{new_state.team_name(team)} accepted the proposed rules.")

    return new_state


def rules_agreed(state: GameState) -> bool:
    """Both teams accepted, nothing pending, and neither roster is empty."""
    return (
        state.settings_accepted.red
        and state.settings_accepted.blue
        and state.settings_pending is None
        and bool(state.red_players)
        and bool(state.blue_players)
    )


def all_players_ready(state: GameState) -> bool:
    """Every seated player on both (non-empty) teams is ready."""
    seated = [*state.red_players, *state.blue_players]
    if not state.red_players or not state.blue_players:
        return False
    return all(player.ready for player in seated)


def _seated_spymaster(state: GameState, team: Team) -> str | None:
    for player in state.roster(team):
        if player.role == SeatRole.SPYMASTER:
            return player.name
    return None


def maybe_auto_start(
    state: GameState,
    decks: dict[str, list[str]] | None = None,
    rng: random.Random | None = None,
    now: datetime | None = None,
) -> GameState:
    """
    Start the match if the lobby is ready, else return ``state`` unchanged.

    The board is generated from the agreed settings. Players who chose the
    spymaster seat role are pre-assigned; if both teams have one the match
    skips role selection.
    """
    if state.current_phase != Phase.WAITING:
        return state
    if not rules_agreed(state) or not all_players_ready(state):
        return state

    now = now or utcnow()
    settings = state.quick_settings or MatchSettings()
    first_team = Team.RED

    new_state = state.model_copy(deep=True)
    new_state.quick_settings = settings.model_copy()
    new_state.cards = generate_board(
        first_team, settings.assassin_count, settings.deck_id, decks=decks, rng=rng,
    )
    new_state.current_team = first_team
    new_state.red_cards_left = sum(1 for c in new_state.cards if c.type.value == Team.RED.value)
    new_state.blue_cards_left = sum(1 for c in new_state.cards if c.type.value == Team.BLUE.value)
    new_state.current_clue = None
    new_state.guesses_remaining = 0
    new_state.winner = None
    new_state.clue_history = []
    new_state.ended_reason = None
    new_state.ended_by = None
    new_state.red_spymaster = _seated_spymaster(new_state, Team.RED)
    new_state.blue_spymaster = _seated_spymaster(new_state, Team.BLUE)
    new_state.log.append("All players ready. Starting game…")

    if new_state.red_spymaster and new_state.blue_spymaster:
        new_state.current_phase = Phase.SPYMASTER
        new_state.timer_end = phase_timer_end(new_state, Phase.SPYMASTER, now)
        new_state.log.append(f"Game started! {new_state.team_name(first_team)} goes first.")
    else:
        new_state.current_phase = Phase.ROLE_SELECTION
        new_state.timer_end = None

    logger.info("Auto-starting match (deck=%s, assassins=%d)", settings.deck_id, settings.assassin_count)
    return new_state
