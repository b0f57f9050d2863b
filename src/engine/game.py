"""Core game logic for a Quick Play match.

Every operation is a pure function ``(GameState, args) -> GameState``. The
input state is never mutated; a rejected operation raises a GameRuleError
and an accepted no-op returns the input object unchanged.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from .errors import MoveValidationError, PreconditionFailure
from .models import (
    ABANDONED, FIRST_TEAM_CARDS, MAX_CLUE_NUMBER, SECOND_TEAM_CARDS,
    CardType, Clue, GameState, GuessOutcome, GuessResult, MatchSettings,
    Phase, SeatRole, Team,
)

GAME_INACTIVITY = timedelta(minutes=30)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_game(
    settings: MatchSettings | None = None,
    log: list[str] | None = None,
    now: datetime | None = None,
) -> GameState:
    """Create a fresh lobby in the waiting phase with empty seats."""
    now = now or utcnow()
    return GameState(
        current_team=Team.RED,
        current_phase=Phase.WAITING,
        red_cards_left=FIRST_TEAM_CARDS,
        blue_cards_left=SECOND_TEAM_CARDS,
        quick_settings=settings.model_copy() if settings else None,
        log=list(log or []),
        created_at=now,
        updated_at=now,
    )


def format_seconds(seconds: int) -> str:
    """Render a timer setting: 0 is untimed, whole minutes as ``Nm``."""
    if not seconds:
        return "untimed"
    if seconds % 60 == 0:
        return f"{seconds // 60}m"
    return f"{seconds}s"


def format_rules(settings: MatchSettings) -> str:
    """One-line summary of match settings for the log."""
    return (
        f"Deck: {settings.deck_id} · Assassins: {settings.assassin_count} · "
        f"Clue: {format_seconds(settings.clue_timer_seconds)} · "
        f"Guess: {format_seconds(settings.guess_timer_seconds)}"
    )


def phase_timer_end(state: GameState, phase: Phase, now: datetime) -> datetime | None:
    """Deadline for a timed phase, or None when the phase is untimed."""
    settings = state.quick_settings
    if settings is None:
        return None
    if phase == Phase.SPYMASTER:
        seconds = settings.clue_timer_seconds
    elif phase == Phase.OPERATIVES:
        seconds = settings.guess_timer_seconds
    else:
        seconds = 0
    if not seconds:
        return None
    return now + timedelta(seconds=seconds)


def validate_clue_format(word: str, number: Any) -> tuple[bool, str | None]:
    """
    Validate the parts of a clue that do not depend on the board.

    Returns:
        (is_valid, error_message) - error_message is None if valid.
    """
    if not isinstance(word, str) or not word.strip():
        return False, "Clue cannot be empty"

    word = word.strip()
    if any(ch.isspace() for ch in word):
        return False, f"Clue '{word}' must be a single word"

    if isinstance(number, bool) or not isinstance(number, int):
        return False, f"Number {number!r} is not an integer"

    if number < 0 or number > MAX_CLUE_NUMBER:
        return False, f"Number {number} must be between 0 and {MAX_CLUE_NUMBER}"

    return True, None


def validate_clue(word: str, number: Any, state: GameState) -> tuple[bool, str | None]:
    """
    Validate a clue against the board.

    Returns:
        (is_valid, error_message) - error_message is None if valid.
    """
    is_valid, error = validate_clue_format(word, number)
    if not is_valid:
        return is_valid, error

    word = word.strip().upper()
    board_words_upper = {card.word.upper() for card in state.cards}
    if word in board_words_upper:
        return False, f"Clue '{word}' is a word on the board"

    return True, None


def _end_turn_in_place(state: GameState, now: datetime) -> None:
    state.current_team = state.current_team.other
    state.current_phase = Phase.SPYMASTER
    state.current_clue = None
    state.guesses_remaining = 0
    state.timer_end = phase_timer_end(state, Phase.SPYMASTER, now)


def _require_live(state: GameState) -> None:
    if state.winner is not None or state.current_phase == Phase.ENDED:
        raise PreconditionFailure("Game is already over")


def select_role(
    state: GameState,
    team: Team,
    role: SeatRole,
    actor_name: str,
    now: datetime | None = None,
) -> GameState:
    """
    Claim a role during role selection.

    The first spymaster claim per team wins; a later claim is a silent no-op.
    The team's spymaster cannot step down to operative (also a no-op).
    Once both teams have a spymaster the match moves to the spymaster phase.
    """
    if state.current_phase != Phase.ROLE_SELECTION:
        raise PreconditionFailure(f"Cannot select roles in phase {state.current_phase.value}")

    now = now or utcnow()

    if role != SeatRole.SPYMASTER and state.spymaster(team) == actor_name:
        return state

    if role == SeatRole.SPYMASTER:
        if state.spymaster(team):
            return state  # Already claimed
        new_state = state.model_copy(deep=True)
        new_state.set_spymaster(team, actor_name)
    else:
        new_state = state.model_copy(deep=True)

    for player in new_state.roster(team):
        if player.name == actor_name:
            player.role = role

    if new_state.red_spymaster and new_state.blue_spymaster:
        new_state.current_phase = Phase.SPYMASTER
        new_state.timer_end = phase_timer_end(new_state, Phase.SPYMASTER, now)
        new_state.log.append(
            f"Game started! {new_state.team_name(new_state.current_team)} goes first."
        )

    return new_state


def submit_clue(
    state: GameState,
    team: Team,
    word: str,
    number: int,
    actor_name: str,
    now: datetime | None = None,
) -> GameState:
    """Apply a spymaster clue and hand the turn to the operatives."""
    _require_live(state)
    if state.current_phase != Phase.SPYMASTER:
        raise PreconditionFailure(f"Cannot give clue in phase {state.current_phase.value}")
    if team != state.current_team:
        raise PreconditionFailure(f"It is not {team.value}'s turn")

    is_valid, error = validate_clue(word, number, state)
    if not is_valid:
        raise MoveValidationError(f"Invalid clue: {error}")

    now = now or utcnow()
    word = word.strip().upper()

    clue = Clue(team=team, word=word, number=number, given_by=actor_name, timestamp=now)

    new_state = state.model_copy(deep=True)
    new_state.current_clue = clue
    new_state.guesses_remaining = number + 1
    new_state.current_phase = Phase.OPERATIVES
    new_state.timer_end = phase_timer_end(new_state, Phase.OPERATIVES, now)
    new_state.clue_history.append(clue.model_copy(deep=True))
    new_state.log.append(f'{new_state.team_name(team)} Spymaster: "{word}" for {number}')

    return new_state


def _record_guess(state: GameState, result: GuessResult) -> None:
    clue = state.current_clue
    if clue is None:
        return
    clue.results.append(result)
    for entry in reversed(state.clue_history):
        if entry.team == clue.team and entry.word == clue.word and entry.number == clue.number:
            if all(r.word != result.word for r in entry.results):
                entry.results.append(result.model_copy())
            break


def guess_card(
    state: GameState,
    card_index: int,
    actor_name: str,
    now: datetime | None = None,
    expected_team: Team | None = None,
) -> GameState:
    """
    Reveal a card for the team whose turn it is.

    Assassin: the guessing team loses. Own card: one closer to winning, one
    guess used. Neutral: turn ends. Opponent card: counts for the opponent
    (possibly winning it for them) and the turn ends.

    ``expected_team`` rejects the guess unless it is still that team's turn.
    """
    _require_live(state)
    if state.current_phase != Phase.OPERATIVES:
        raise PreconditionFailure(f"Cannot guess in phase {state.current_phase.value}")
    if expected_team is not None and expected_team != state.current_team:
        raise PreconditionFailure(f"It is not {expected_team.value}'s turn")
    if isinstance(card_index, bool) or not isinstance(card_index, int):
        raise MoveValidationError(f"Card index {card_index!r} is not an integer")
    if not 0 <= card_index < len(state.cards):
        raise MoveValidationError(f"Card index {card_index} is off the board")
    if state.cards[card_index].revealed:
        raise PreconditionFailure(f"Card '{state.cards[card_index].word}' is already revealed")

    now = now or utcnow()
    new_state = state.model_copy(deep=True)
    card = new_state.cards[card_index]
    card.revealed = True

    team = new_state.current_team
    winner: Team | None = None
    turn_over = False
    entry = f'{actor_name} guessed "{card.word}" - '

    if card.type == CardType.ASSASSIN:
        outcome = GuessOutcome.ASSASSIN
        winner = team.other
        entry += "ASSASSIN! Game over."
    elif card.type.value == team.value:
        outcome = GuessOutcome.CORRECT
        entry += "Correct!"
        left = new_state.cards_left(team) - 1
        new_state.set_cards_left(team, max(0, left))
        if left <= 0:
            winner = team
        else:
            new_state.guesses_remaining = max(0, new_state.guesses_remaining - 1)
            if new_state.guesses_remaining == 0:
                turn_over = True
    elif card.type == CardType.NEUTRAL:
        outcome = GuessOutcome.NEUTRAL
        entry += "Neutral. Turn ends."
        turn_over = True
    else:
        outcome = GuessOutcome.WRONG
        owner = Team(card.type.value)
        entry += f"Wrong! ({new_state.team_name(owner)}'s card)"
        left = new_state.cards_left(owner) - 1
        new_state.set_cards_left(owner, max(0, left))
        if left <= 0:
            winner = owner
        turn_over = True

    _record_guess(new_state, GuessResult(
        word=card.word,
        result=outcome,
        type=card.type,
        by=actor_name,
        timestamp=now,
    ))
    new_state.log.append(entry)

    if winner is not None:
        new_state.winner = winner
        new_state.current_phase = Phase.ENDED
        new_state.timer_end = None
        new_state.log.append(f"{new_state.team_name(winner)} wins!")
    elif turn_over:
        _end_turn_in_place(new_state, now)

    return new_state


def end_turn(
    state: GameState,
    team: Team,
    actor_name: str,
    now: datetime | None = None,
) -> GameState:
    """Operatives stop guessing; the other team's spymaster is up."""
    _require_live(state)
    if state.current_phase != Phase.OPERATIVES:
        raise PreconditionFailure(f"Cannot end turn in phase {state.current_phase.value}")
    if team != state.current_team:
        raise PreconditionFailure(f"It is not {team.value}'s turn")

    new_state = state.model_copy(deep=True)
    new_state.log.append(f"{actor_name} ended {new_state.team_name(team)}'s turn.")
    _end_turn_in_place(new_state, now or utcnow())
    return new_state


def expire_timer(state: GameState, now: datetime | None = None) -> GameState:
    """End the current turn if its phase timer has run out."""
    now = now or utcnow()
    if not state.in_progress or state.timer_end is None:
        return state
    if state.current_phase not in (Phase.SPYMASTER, Phase.OPERATIVES):
        return state
    if now < state.timer_end:
        return state

    new_state = state.model_copy(deep=True)
    new_state.log.append(f"Time's up! {new_state.team_name(state.current_team)}'s turn ends.")
    _end_turn_in_place(new_state, now)
    return new_state


def abandon_game(
    state: GameState,
    actor_name: str,
    reason: str = "manual",
) -> GameState:
    """End a match for everyone without a team winner."""
    _require_live(state)
    if state.current_phase == Phase.WAITING:
        raise PreconditionFailure("No match in progress")

    new_state = state.model_copy(deep=True)
    new_state.winner = ABANDONED
    new_state.current_phase = Phase.ENDED
    new_state.ended_reason = reason
    new_state.ended_by = actor_name
    new_state.timer_end = None
    new_state.log.append(f"{actor_name} ended the game.")
    return new_state


def is_stale(state: GameState, now: datetime, timeout: timedelta = GAME_INACTIVITY) -> bool:
    """An in-progress match nobody has touched for ``timeout``."""
    if not state.in_progress or state.updated_at is None:
        return False
    return now - state.updated_at >= timeout


def reset_inactive_game(
    state: GameState,
    now: datetime | None = None,
    timeout: timedelta = GAME_INACTIVITY,
) -> GameState:
    """Replace a stale match with a fresh lobby; no-op if it is not stale."""
    now = now or utcnow()
    if not is_stale(state, now, timeout):
        return state
    minutes = int(timeout.total_seconds() // 60)
    return new_game(
        state.quick_settings,
        log=[f"Previous game ended due to inactivity ({minutes}+ minutes)."],
        now=now,
    )


def get_visible_cards(state: GameState, reveal_types: bool) -> list[dict[str, Any]]:
    """
    Board as seen by a role.

    Spymasters see every identity; operatives see identities of revealed
    cards only (the ``type`` key is absent, not null, for hidden cards).
    """
    visible: list[dict[str, Any]] = []
    for index, card in enumerate(state.cards):
        entry: dict[str, Any] = {"index": index, "word": card.word, "revealed": card.revealed}
        if reveal_types or card.revealed:
            entry["type"] = card.type.value
        visible.append(entry)
    return visible


def get_unrevealed_words(state: GameState) -> list[str]:
    """Words of all cards still face down."""
    return [card.word for card in state.cards if not card.revealed]


def find_unrevealed_card(state: GameState, word: str) -> int | None:
    """Index of the face-down card matching ``word`` case-insensitively."""
    target = word.strip().upper()
    for index, card in enumerate(state.cards):
        if not card.revealed and card.word.upper() == target:
            return index
    return None
