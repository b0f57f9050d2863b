"""Seat occupancy: join, leave, seat roles, ready-up and lobby cleanup."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from src.engine import (
    AIMode, GameState, MatchSettings, Phase, Player, Seat, SeatRole,
    PreconditionFailure, new_game, utcnow,
)
from .negotiation import clear_ready, make_offer, reset_negotiation

logger = logging.getLogger(__name__)

EMPTY_LOBBY_MESSAGE = "Previous game ended because all players left."

StatusOf = Callable[[str], Optional[str]]


def _remove_everywhere(state: GameState, player_id: str) -> None:
    for seat in Seat:
        roster = state.roster(seat)
        roster[:] = [p for p in roster if p.id != player_id]


def join_seat(
    state: GameState,
    seat: Seat,
    player_id: str,
    name: str,
    role: SeatRole | None = None,
    is_ai: bool = False,
    ai_mode: AIMode | None = None,
    now: datetime | None = None,
) -> GameState:
    """
    Sit ``player_id`` in ``seat``, moving them out of any other seat.

    Joining the seat you already occupy is a no-op. Leaving a team seat
    before the match restarts negotiation. The first team player to arrive
    with nothing pending proposes the current settings.
    """
    current = state.seat_of(player_id)
    if current == seat:
        return state

    if seat.team is not None and state.in_progress and not state.active_join_on:
        raise PreconditionFailure("Joining a team mid-match is disabled")

    now = now or utcnow()
    new_state = state.model_copy(deep=True)
    _remove_everywhere(new_state, player_id)

    if current is not None and current.team is not None and new_state.current_phase == Phase.WAITING:
        reset_negotiation(new_state)

    new_state.roster(seat).append(Player(
        id=player_id,
        name=name,
        ready=False,
        role=role if seat.team is not None else None,
        is_ai=is_ai,
        ai_mode=ai_mode if is_ai else None,
    ))

    if new_state.quick_settings is None:
        new_state.quick_settings = MatchSettings()

    team = seat.team
    if (
        team is not None
        and new_state.current_phase == Phase.WAITING
        and new_state.settings_pending is None
        and not (new_state.settings_accepted.red and new_state.settings_accepted.blue)
    ):
        make_offer(new_state, team, new_state.quick_settings, now)

    new_state.log.append(f"{name} joined {_seat_label(new_state, seat)}.")
    return new_state


def _seat_label(state: GameState, seat: Seat) -> str:
    if seat.team is None:
        return "the spectators"
    return state.team_name(seat.team)


def leave_seat(state: GameState, player_id: str) -> GameState:
    """Remove a player from wherever they sit. Unknown players are a no-op."""
    seat = state.seat_of(player_id)
    if seat is None:
        return state

    new_state = state.model_copy(deep=True)
    player = new_state.find_player(player_id)
    _remove_everywhere(new_state, player_id)
    if seat.team is not None and new_state.current_phase == Phase.WAITING:
        reset_negotiation(new_state)
    if player is not None:
        new_state.log.append(f"{player.name} left {_seat_label(new_state, seat)}.")
    return new_state


def set_seat_role(state: GameState, player_id: str, role: SeatRole) -> GameState:
    """Pick a preferred role before the match. Readiness is kept."""
    if state.current_phase != Phase.WAITING:
        raise PreconditionFailure("Seat roles can only change before the match")
    seat = state.seat_of(player_id)
    if seat is None or seat.team is None:
        raise PreconditionFailure("Only seated team players have a role")

    player = state.find_player(player_id)
    if player.role == role:
        return state

    if role == SeatRole.SPYMASTER:
        for other in state.roster(seat):
            if other.id != player_id and other.role == SeatRole.SPYMASTER:
                raise PreconditionFailure(f"{other.name} is already the spymaster")

    new_state = state.model_copy(deep=True)
    new_state.find_player(player_id).role = role
    return new_state


def toggle_ready(state: GameState, player_id: str) -> GameState:
    """Flip a seated player's ready flag."""
    if state.current_phase != Phase.WAITING:
        raise PreconditionFailure("Ready-up only happens before the match")
    seat = state.seat_of(player_id)
    if seat is None or seat.team is None:
        raise PreconditionFailure("Only seated team players can ready up")

    new_state = state.model_copy(deep=True)
    player = new_state.find_player(player_id)
    player.ready = not player.ready
    return new_state


def evict_inactive_players(
    state: GameState,
    status_of: StatusOf,
    evict_statuses: tuple[str, ...] = ("offline",),
) -> GameState:
    """
    Drop human players whose presence says they are gone.

    Only runs in the lobby. Unknown presence (None) counts as active and AI
    players are never evicted. Losing a seated player restarts negotiation.
    """
    if state.current_phase != Phase.WAITING:
        return state

    evicted: list[tuple[Player, Seat]] = []
    for seat in Seat:
        for player in state.roster(seat):
            if player.is_ai:
                continue
            status = status_of(player.id)
            if status is not None and status in evict_statuses:
                evicted.append((player, seat))

    if not evicted:
        return state

    new_state = state.model_copy(deep=True)
    for player, seat in evicted:
        _remove_everywhere(new_state, player.id)
        new_state.log.append(f"{player.name} was removed for inactivity.")
        logger.info("Evicted inactive player %s from %s", player.id, seat.value)
    if any(seat.team is not None for _, seat in evicted):
        reset_negotiation(new_state)
    return new_state


def reset_if_empty(state: GameState, now: datetime | None = None) -> GameState:
    """Replace a started or finished match with a clean lobby once nobody is left."""
    if state.current_phase == Phase.WAITING or state.all_players():
        return state
    logger.info("All players left; resetting to a fresh lobby")
    return new_game(state.quick_settings, log=[EMPTY_LOBBY_MESSAGE], now=now)


def prepare_rematch(state: GameState, now: datetime | None = None) -> GameState:
    """
    Fresh lobby after a finished match with the same players and rules.

    Rules stay agreed so the match starts again as soon as everyone readies.
    """
    if state.current_phase != Phase.ENDED:
        raise PreconditionFailure("Rematch is only available after a match ends")

    new_state = new_game(state.quick_settings, log=["Rematch! Ready up to start."], now=now)
    for seat in Seat:
        new_state.roster(seat).extend(p.model_copy() for p in state.roster(seat))
    clear_ready(new_state)
    new_state.red_team_name = state.red_team_name
    new_state.blue_team_name = state.blue_team_name
    new_state.active_join_on = state.active_join_on
    if state.quick_settings is not None:
        new_state.settings_accepted.red = True
        new_state.settings_accepted.blue = True
    return new_state
