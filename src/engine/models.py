"""Data models for the shared Quick Play game document.

Field aliases are the wire format of the stored document (camelCase), so
``GameState.to_document()`` round-trips with documents written by other clients.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


BOARD_SIZE = 25
FIRST_TEAM_CARDS = 9
SECOND_TEAM_CARDS = 8
MAX_ASSASSINS = BOARD_SIZE - FIRST_TEAM_CARDS - SECOND_TEAM_CARDS
MAX_CLUE_NUMBER = 9

ABANDONED = "abandoned"


class Team(str, Enum):
    """Team colors."""
    RED = "red"
    BLUE = "blue"

    @property
    def other(self) -> "Team":
        return Team.BLUE if self is Team.RED else Team.RED


class CardType(str, Enum):
    """Hidden identity of a card."""
    RED = "red"
    BLUE = "blue"
    NEUTRAL = "neutral"
    ASSASSIN = "assassin"


class Phase(str, Enum):
    """Match phases. ENDED is terminal."""
    WAITING = "waiting"
    ROLE_SELECTION = "role-selection"
    SPYMASTER = "spymaster"
    OPERATIVES = "operatives"
    ENDED = "ended"


class Seat(str, Enum):
    """Where a player sits in the lobby."""
    RED = "red"
    BLUE = "blue"
    SPECTATOR = "spectator"

    @property
    def team(self) -> Team | None:
        if self is Seat.SPECTATOR:
            return None
        return Team(self.value)


class SeatRole(str, Enum):
    """Role a seated player plays on their team."""
    SPYMASTER = "spymaster"
    OPERATIVE = "operative"


class AIMode(str, Enum):
    """How an AI player participates."""
    HELPER = "helper"          # Chat advice only, never acts
    AUTONOMOUS = "autonomous"  # Gives clues / guesses through the same operations


class GuessOutcome(str, Enum):
    """Result of a guess from the guessing team's point of view."""
    CORRECT = "correct"
    WRONG = "wrong"
    NEUTRAL = "neutral"
    ASSASSIN = "assassin"


class DocumentModel(BaseModel):
    """Base for stored models: snake_case in Python, camelCase on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Card(DocumentModel):
    """One of the 25 board cards."""
    word: str
    type: CardType
    revealed: bool = False


class Player(DocumentModel):
    """A lobby entry for a human or AI player."""
    id: str
    name: str
    ready: bool = False
    role: SeatRole | None = None
    is_ai: bool = Field(default=False, alias="isAI")
    ai_mode: AIMode | None = None


class GuessResult(DocumentModel):
    """A single revealed card, recorded under the clue it was guessed for."""
    word: str
    result: GuessOutcome
    type: CardType
    by: str
    timestamp: datetime


class Clue(DocumentModel):
    """A spymaster clue and the guesses made for it."""
    team: Team
    word: str
    number: int
    results: list[GuessResult] = Field(default_factory=list)
    given_by: str | None = None
    timestamp: datetime | None = None


class MatchSettings(DocumentModel):
    """Rules negotiated in the lobby. Frozen once a match starts."""
    assassin_count: int = Field(default=1, ge=1, le=MAX_ASSASSINS)
    clue_timer_seconds: int = Field(default=0, ge=0)  # 0 = untimed
    guess_timer_seconds: int = Field(default=0, ge=0)
    deck_id: str = "standard"


class Offer(DocumentModel):
    """A pending settings proposal awaiting the other team."""
    proposing_team: Team
    settings: MatchSettings
    created_at: datetime


class SettingsAccepted(DocumentModel):
    """Per-team acceptance flags for the current settings."""
    red: bool = False
    blue: bool = False

    def get(self, team: Team) -> bool:
        return self.red if team is Team.RED else self.blue

    def set(self, team: Team, value: bool) -> None:
        if team is Team.RED:
            self.red = value
        else:
            self.blue = value


Winner = Team | Literal["abandoned"]


class GameState(DocumentModel):
    """The shared game document: lobby, negotiation and match state."""
    type: str = "quick"
    cards: list[Card] = Field(default_factory=list)
    current_team: Team = Team.RED
    current_phase: Phase = Phase.WAITING
    red_spymaster: str | None = None
    blue_spymaster: str | None = None
    red_cards_left: int = Field(default=FIRST_TEAM_CARDS, ge=0)
    blue_cards_left: int = Field(default=SECOND_TEAM_CARDS, ge=0)
    current_clue: Clue | None = None
    guesses_remaining: int = Field(default=0, ge=0)
    winner: Winner | None = None
    log: list[str] = Field(default_factory=list)
    clue_history: list[Clue] = Field(default_factory=list)
    quick_settings: MatchSettings | None = None
    settings_pending: Offer | None = None
    settings_accepted: SettingsAccepted = Field(default_factory=SettingsAccepted)
    red_players: list[Player] = Field(default_factory=list)
    blue_players: list[Player] = Field(default_factory=list)
    spectators: list[Player] = Field(default_factory=list)
    red_team_name: str = "Red Team"
    blue_team_name: str = "Blue Team"
    active_join_on: bool = True
    timer_end: datetime | None = None
    ended_reason: str | None = None
    ended_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    # Wire format

    def to_document(self) -> dict[str, Any]:
        """Serialize to the stored document shape."""
        return self.model_dump(by_alias=True, mode="json")

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> "GameState":
        """Parse a stored document."""
        return cls.model_validate(data)

    # Rosters

    def roster(self, seat: Seat | Team) -> list[Player]:
        """Players in a seat (a Team is accepted for the two playing seats)."""
        value = seat.value
        if value == Seat.RED.value:
            return self.red_players
        if value == Seat.BLUE.value:
            return self.blue_players
        return self.spectators

    def all_players(self) -> list[Player]:
        return [*self.red_players, *self.blue_players, *self.spectators]

    def seat_of(self, player_id: str) -> Seat | None:
        for seat in Seat:
            if any(p.id == player_id for p in self.roster(seat)):
                return seat
        return None

    def find_player(self, player_id: str) -> Player | None:
        for player in self.all_players():
            if player.id == player_id:
                return player
        return None

    # Per-team fields

    def spymaster(self, team: Team) -> str | None:
        return self.red_spymaster if team is Team.RED else self.blue_spymaster

    def set_spymaster(self, team: Team, name: str | None) -> None:
        if team is Team.RED:
            self.red_spymaster = name
        else:
            self.blue_spymaster = name

    def cards_left(self, team: Team) -> int:
        return self.red_cards_left if team is Team.RED else self.blue_cards_left

    def set_cards_left(self, team: Team, value: int) -> None:
        if team is Team.RED:
            self.red_cards_left = value
        else:
            self.blue_cards_left = value

    def team_name(self, team: Team) -> str:
        return self.red_team_name if team is Team.RED else self.blue_team_name

    @property
    def in_progress(self) -> bool:
        """A match has started and has no winner yet."""
        return self.current_phase not in (Phase.WAITING, Phase.ENDED) and self.winner is None


class ChatMessage(DocumentModel):
    """A message in one of the chat channels."""
    sender_id: str
    sender_name: str
    text: str
    created_at: datetime
