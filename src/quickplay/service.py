"""Transactional shell around the Quick Play state machine.

Every operation reads the shared game document, applies a pure function from
``src.engine`` / ``src.lobby``, re-evaluates the auto-start and empty-lobby
rules, and commits with compare-and-set. Rule violations raise before
anything is written.
"""

from __future__ import annotations

import logging
import random
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Optional

from pydantic import ValidationError

from src.engine import (
    BOARD_SIZE, ChatMessage, GameState, MatchSettings, Phase, Seat, SeatRole, Team,
    AIMode, MoveValidationError, load_decks, new_game, normalize_deck_id, utcnow,
    validate_clue_format,
)
from src.engine import game as engine
from src import lobby
from src.store import (
    DocumentStore, InMemoryDocumentStore, JsonFileDocumentStore, Snapshot, run_transaction,
)
from .config import QuickPlayConfig
from .presence import PresenceLookup

logger = logging.getLogger(__name__)

StateListener = Callable[[GameState], None]
Operation = Callable[[GameState], GameState]


class ChatChannel(str, Enum):
    """Chat rooms. Spymaster talk can include hidden card identities."""
    RED = "red"
    BLUE = "blue"
    SPYMASTERS = "spymasters"

    @classmethod
    def for_team(cls, team: Team) -> "ChatChannel":
        return cls(team.value)


def needs_fresh_game(state: GameState) -> bool:
    """Finished or malformed documents are replaced when a client arrives."""
    if state.winner is not None or state.current_phase == Phase.ENDED:
        return True
    return state.current_phase != Phase.WAITING and len(state.cards) != BOARD_SIZE


class QuickPlayService:
    """The single shared Quick Play lobby and match."""

    def __init__(
        self,
        store: DocumentStore | None = None,
        config: QuickPlayConfig | None = None,
        decks: dict[str, list[str]] | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] | None = None,
        presence: PresenceLookup | None = None,
    ):
        self.config = config or QuickPlayConfig()
        if store is None:
            if self.config.data_dir is not None:
                store = JsonFileDocumentStore(self.config.data_dir)
            else:
                store = InMemoryDocumentStore()
        self.store = store
        self.decks = decks if decks is not None else load_decks(self.config.words_path)
        self.rng = rng or random.Random()
        self.clock = clock or utcnow
        self.presence = presence

    @property
    def game_id(self) -> str:
        return self.config.game_id

    def chat_doc_id(self, channel: ChatChannel) -> str:
        return f"{self.game_id}.{channel.value}Chat"

    # ========================================================================
    # Document access
    # ========================================================================

    def _decode(self, snapshot: Snapshot, now: datetime) -> GameState:
        if snapshot.data is None:
            return new_game(now=now)
        return GameState.from_document(snapshot.data)

    async def _mutate(self, op: Operation) -> GameState:
        """Run ``op`` inside a transaction and return the committed state."""
        now = self.clock()

        def body(data: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
            state = new_game(now=now) if data is None else GameState.from_document(data)
            new_state = op(state)
            new_state = lobby.maybe_auto_start(new_state, decks=self.decks, rng=self.rng, now=now)
            new_state = lobby.reset_if_empty(new_state, now=now)
            if new_state is state:
                return None
            new_state.updated_at = now
            return new_state.to_document()

        snapshot, _ = await run_transaction(
            self.store, self.game_id, body, self.config.max_transaction_attempts,
        )
        return self._decode(snapshot, now)

    async def ensure_game(self) -> GameState:
        """Create the shared document, or replace a finished or broken one."""
        now = self.clock()

        def body(data: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
            settings = None
            if data is not None:
                try:
                    state = GameState.from_document(data)
                except ValidationError as e:
                    logger.warning("Replacing malformed game document: %s", e)
                else:
                    if not needs_fresh_game(state):
                        return None
                    settings = state.quick_settings
            return new_game(settings, now=now).to_document()

        snapshot, _ = await run_transaction(
            self.store, self.game_id, body, self.config.max_transaction_attempts,
        )
        return self._decode(snapshot, now)

    async def get_state(self) -> GameState:
        snapshot = await self.store.read(self.game_id)
        return self._decode(snapshot, self.clock())

    async def subscribe(
        self,
        on_change: StateListener,
        on_error: Callable[[Exception], None] | None = None,
    ) -> Callable[[], None]:
        """Watch the game document; missing documents are not delivered."""

        def deliver(snapshot: Snapshot) -> None:
            if snapshot.data is None:
                return
            on_change(GameState.from_document(snapshot.data))

        return await self.store.subscribe(self.game_id, deliver, on_error)

    # ========================================================================
    # Lobby
    # ========================================================================

    async def join_seat(
        self,
        seat: Seat,
        player_id: str,
        name: str,
        role: SeatRole | None = None,
        is_ai: bool = False,
        ai_mode: AIMode | None = None,
    ) -> GameState:
        name = name.strip()
        if not name:
            raise MoveValidationError("Player name cannot be empty")
        now = self.clock()
        return await self._mutate(lambda s: lobby.join_seat(
            s, seat, player_id, name, role=role, is_ai=is_ai, ai_mode=ai_mode, now=now,
        ))

    async def leave_seat(self, player_id: str) -> GameState:
        return await self._mutate(lambda s: lobby.leave_seat(s, player_id))

    async def set_seat_role(self, player_id: str, role: SeatRole) -> GameState:
        return await self._mutate(lambda s: lobby.set_seat_role(s, player_id, role))

    async def toggle_ready(self, player_id: str) -> GameState:
        return await self._mutate(lambda s: lobby.toggle_ready(s, player_id))

    def _coerce_settings(self, settings: MatchSettings | dict[str, Any]) -> MatchSettings:
        try:
            if isinstance(settings, MatchSettings):
                settings = MatchSettings.model_validate(settings.model_dump())
            else:
                settings = MatchSettings.model_validate(settings)
        except ValidationError as e:
            raise MoveValidationError(f"Invalid settings: {e.errors()[0]['msg']}") from e
        settings.deck_id = normalize_deck_id(settings.deck_id, self.decks)
        return settings

    async def offer_settings(self, team: Team, settings: MatchSettings | dict[str, Any]) -> GameState:
        settings = self._coerce_settings(settings)
        now = self.clock()
        return await self._mutate(lambda s: lobby.offer_settings(s, team, settings, now=now))

    async def accept_offer(self, team: Team) -> GameState:
        return await self._mutate(lambda s: lobby.accept_offer(s, team))

    async def evict_inactive_players(self, presence: PresenceLookup | None = None) -> GameState:
        presence = presence or self.presence
        if presence is None:
            return await self.get_state()
        return await self._mutate(lambda s: lobby.evict_inactive_players(s, presence.status_of))

    async def reset_if_empty(self) -> GameState:
        # The post-operation hook performs the reset
        return await self._mutate(lambda s: s)

    async def prepare_rematch(self) -> GameState:
        now = self.clock()
        return await self._mutate(lambda s: lobby.prepare_rematch(s, now=now))

    # ========================================================================
    # Match
    # ========================================================================

    async def select_role(self, team: Team, role: SeatRole, actor_name: str) -> GameState:
        now = self.clock()
        return await self._mutate(lambda s: engine.select_role(s, team, role, actor_name, now=now))

    async def submit_clue(self, team: Team, word: str, number: int, actor_name: str) -> GameState:
        is_valid, error = validate_clue_format(word, number)
        if not is_valid:
            raise MoveValidationError(f"Invalid clue: {error}")
        now = self.clock()
        return await self._mutate(
            lambda s: engine.submit_clue(s, team, word, number, actor_name, now=now)
        )

    async def guess_card(
        self,
        card_index: int,
        actor_name: str,
        expected_team: Team | None = None,
    ) -> GameState:
        if isinstance(card_index, bool) or not isinstance(card_index, int) or not 0 <= card_index < BOARD_SIZE:
            raise MoveValidationError(f"Card index {card_index!r} is off the board")
        now = self.clock()
        return await self._mutate(lambda s: engine.guess_card(
            s, card_index, actor_name, now=now, expected_team=expected_team,
        ))

    async def end_turn(self, team: Team, actor_name: str) -> GameState:
        now = self.clock()
        return await self._mutate(lambda s: engine.end_turn(s, team, actor_name, now=now))

    async def end_game(self, actor_name: str, reason: str = "manual") -> GameState:
        return await self._mutate(lambda s: engine.abandon_game(s, actor_name, reason))

    # ========================================================================
    # Supervision
    # ========================================================================

    async def check_inactivity(self) -> GameState:
        """Reset a match nobody has touched for the inactivity timeout."""
        now = self.clock()
        timeout = timedelta(seconds=self.config.inactivity_timeout_seconds)

        def op(state: GameState) -> GameState:
            new_state = engine.reset_inactive_game(state, now=now, timeout=timeout)
            if new_state is not state:
                logger.info("Resetting inactive match (last update %s)", state.updated_at)
            return new_state

        return await self._mutate(op)

    async def expire_timer(self) -> GameState:
        now = self.clock()
        return await self._mutate(lambda s: engine.expire_timer(s, now=now))

    async def run_maintenance(self) -> GameState:
        """One supervisory sweep: inactivity, phase timers, eviction, empty lobby."""
        await self.check_inactivity()
        await self.expire_timer()
        await self.evict_inactive_players()
        return await self.reset_if_empty()

    # ========================================================================
    # Chat
    # ========================================================================

    async def post_chat(
        self,
        channel: ChatChannel,
        sender_id: str,
        sender_name: str,
        text: str,
    ) -> ChatMessage:
        text = text.strip()
        if not text:
            raise MoveValidationError("Chat message cannot be empty")

        message = ChatMessage(
            sender_id=sender_id,
            sender_name=sender_name,
            text=text,
            created_at=self.clock(),
        )
        limit = self.config.chat_history_limit

        def body(data: Optional[dict[str, Any]]) -> dict[str, Any]:
            messages = list((data or {}).get("messages", []))
            messages.append(message.model_dump(by_alias=True, mode="json"))
            return {"messages": messages[-limit:]}

        await run_transaction(
            self.store, self.chat_doc_id(channel), body, self.config.max_transaction_attempts,
        )
        return message

    async def recent_chat(self, channel: ChatChannel, limit: int | None = None) -> list[ChatMessage]:
        snapshot = await self.store.read(self.chat_doc_id(channel))
        raw = (snapshot.data or {}).get("messages", [])
        if limit is not None:
            raw = raw[-limit:] if limit > 0 else []
        return [ChatMessage.model_validate(m) for m in raw]
