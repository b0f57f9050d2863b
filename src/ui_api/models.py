"""Request/response models for the Quick Play API."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from src.engine import AIMode, MatchSettings, Seat, SeatRole, Team


class JoinRequest(BaseModel):
    seat: Seat
    player_id: str
    name: str
    role: SeatRole | None = None


class PlayerRequest(BaseModel):
    player_id: str


class SeatRoleRequest(BaseModel):
    player_id: str
    role: SeatRole


class OfferRequest(BaseModel):
    team: Team
    settings: dict[str, Any] = Field(default_factory=dict)  # MatchSettings, camelCase or snake_case


class TeamRequest(BaseModel):
    team: Team


class RoleRequest(BaseModel):
    team: Team
    role: SeatRole
    actor_name: str


class ClueRequest(BaseModel):
    team: Team
    word: str
    number: int
    actor_name: str


class GuessRequest(BaseModel):
    card_index: int
    actor_name: str
    team: Team | None = None


class EndTurnRequest(BaseModel):
    team: Team
    actor_name: str


class EndGameRequest(BaseModel):
    actor_name: str
    reason: str = "manual"


class ChatRequest(BaseModel):
    sender_id: str
    sender_name: str
    text: str


class AddAIRequest(BaseModel):
    team: Team
    seat_role: SeatRole = SeatRole.OPERATIVE
    mode: AIMode = AIMode.AUTONOMOUS
    name: str | None = None


class AddAIResponse(BaseModel):
    player_id: str
    name: str
    ready_status: str
    ready_response: str = ""
    error: str | None = None


class ReadyCheckResponse(BaseModel):
    status: str
    response: str = ""
    error: str | None = None


class BoardResponse(BaseModel):
    cards: list[dict[str, Any]]
    spymaster_view: bool


class DecksResponse(BaseModel):
    decks: dict[str, int]
    default_settings: MatchSettings = Field(default_factory=MatchSettings)
