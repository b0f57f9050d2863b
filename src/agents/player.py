"""AI player that sits in a seat and plays through the public operations."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from src.core.llm import LLMProvider, ProviderError
from src.core.parsing import extract_json_object
from src.engine import (
    AIMode, CardType, GameState, GameRuleError, Phase, SeatRole, Team,
    MAX_CLUE_NUMBER, find_unrevealed_card, get_unrevealed_words, validate_clue,
)
from src.quickplay import ChatChannel, QuickPlayService
from src.store import StoreError

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]

CLUE_SCHEMA: dict[str, Any] = {
    "title": "spymaster_clue",
    "type": "object",
    "properties": {
        "clue": {"type": "string"},
        "number": {"type": "integer", "minimum": 0, "maximum": MAX_CLUE_NUMBER},
    },
    "required": ["clue", "number"],
    "additionalProperties": False,
}

GUESS_SCHEMA: dict[str, Any] = {
    "title": "operative_guess",
    "type": "object",
    "properties": {
        "cardWord": {"type": "string"},
        "confidence": {"type": "number"},
        "reasoning": {"type": "string"},
    },
    "required": ["cardWord", "confidence", "reasoning"],
    "additionalProperties": False,
}


class AIPlayerConfig(BaseModel):
    """Configuration for an AI player."""
    player_id: str
    name: str
    team: Team
    seat_role: SeatRole = SeatRole.OPERATIVE
    mode: AIMode = AIMode.AUTONOMOUS
    temperature: float = 0.7
    max_tokens: int = 512
    think_delay_seconds: float = Field(default=2.0, ge=0)  # Between commentary and decision
    timeout_seconds: float = Field(default=20.0, gt=0)


class ClueDecision(BaseModel):
    """Structured spymaster output."""
    clue: str
    number: int


class GuessDecision(BaseModel):
    """Structured operative output."""
    model_config = ConfigDict(populate_by_name=True)

    card_word: str = Field(alias="cardWord")
    confidence: float | None = None
    reasoning: str = ""


def load_prompt_template(name: str) -> str:
    """Load a prompt template from the prompts directory."""
    path = Path(__file__).parent / "prompts" / name
    with open(path, "r") as f:
        return f.read()


def parse_clue_decision(content: str) -> ClueDecision | None:
    data = extract_json_object(content)
    if data is None:
        return None
    try:
        return ClueDecision.model_validate(data)
    except ValidationError:
        return None


def parse_guess_decision(content: str) -> GuessDecision | None:
    data = extract_json_object(content)
    if data is None:
        return None
    try:
        return GuessDecision.model_validate(data)
    except ValidationError:
        return None


def action_key(state: GameState) -> tuple[Phase, Team, int]:
    """What an agent reacts to. Unchanged keys mean a redundant notification."""
    return (state.current_phase, state.current_team, state.guesses_remaining)


def acting_ai_id(state: GameState, team: Team, mode: AIMode) -> str | None:
    """
    The one AI operative (or helper) of ``team`` that acts on this snapshot.

    Eligible AIs take turns by roster order, stepping once per clue and once
    per guess, so every agent reading the same snapshot agrees on who moves.
    """
    spymaster = state.spymaster(team)
    candidates = [
        p for p in state.roster(team)
        if p.is_ai
        and (p.ai_mode or AIMode.AUTONOMOUS) == mode
        and (mode == AIMode.HELPER or p.name != spymaster)
    ]
    if not candidates:
        return None
    step = len(state.clue_history)
    if state.current_clue is not None:
        step += len(state.current_clue.results)
    return candidates[step % len(candidates)].id


def format_key_board(state: GameState) -> str:
    """Every card with its identity (spymaster view)."""
    lines = []
    for card in state.cards:
        marker = " [revealed]" if card.revealed else ""
        lines.append(f"- {card.word}: {card.type.value}{marker}")
    return "\n".join(lines)


def format_revealed(state: GameState) -> str:
    revealed = [f"{c.word} ({c.type.value})" for c in state.cards if c.revealed]
    return ", ".join(revealed) if revealed else "(none)"


def format_clue_history(state: GameState) -> str:
    if not state.clue_history:
        return "(No clues yet - this is the first turn)"

    lines = []
    for clue in state.clue_history:
        results = ", ".join(f"{r.word} -> {r.result.value}" for r in clue.results) or "no guesses"
        lines.append(f"{clue.team.value.upper()}: \"{clue.word}\" for {clue.number} ({results})")
    return "\n".join(lines)


class AIPlayer:
    """
    Drives one seated AI player from game-state snapshots.

    Processing is single-flight: a snapshot that arrives while an action is
    running is held (only the latest one) and handled once the action ends.
    Reasoning-call and rule failures are logged and never propagate.
    """

    def __init__(
        self,
        config: AIPlayerConfig,
        provider: LLMProvider,
        service: QuickPlayService,
        sleep: Sleep = asyncio.sleep,
    ):
        self.config = config
        self.provider = provider
        self.service = service
        self._sleep = sleep
        self._busy = False
        self._pending: GameState | None = None
        self._last_key: tuple[Phase, Team, int] | None = None
        self.actions_taken = 0

    @property
    def player_id(self) -> str:
        return self.config.player_id

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def team(self) -> Team:
        return self.config.team

    @property
    def busy(self) -> bool:
        return self._busy

    async def on_snapshot(self, state: GameState) -> None:
        """Handle a change notification."""
        if self._busy:
            self._pending = state
            return

        self._busy = True
        try:
            next_state: GameState | None = state
            while next_state is not None:
                self._pending = None
                key = action_key(next_state)
                if key != self._last_key:
                    self._last_key = key
                    await self._act(next_state)
                next_state = self._pending
        finally:
            self._busy = False
            self._pending = None

    async def _act(self, state: GameState) -> None:
        if state.find_player(self.player_id) is None:
            return
        try:
            await self._dispatch(state)
        except ProviderError as e:
            logger.warning("%s: reasoning call failed, skipping turn: %s", self.name, e)
        except GameRuleError as e:
            logger.warning("%s: action rejected: %s", self.name, e)
        except StoreError as e:
            logger.warning("%s: store unavailable: %s", self.name, e)

    def _takes_this_step(self, state: GameState) -> bool:
        return acting_ai_id(state, self.team, self.config.mode) == self.player_id

    async def _dispatch(self, state: GameState) -> None:
        own_turn = state.current_team == self.team and state.winner is None

        if self.config.mode == AIMode.HELPER:
            if own_turn and state.current_phase == Phase.OPERATIVES and state.current_clue:
                if self._takes_this_step(state):
                    await self.advise(state)
            return

        if state.current_phase == Phase.ROLE_SELECTION:
            if self.config.seat_role == SeatRole.SPYMASTER and not state.spymaster(self.team):
                await self.service.select_role(self.team, SeatRole.SPYMASTER, self.name)
                logger.info("%s claimed %s spymaster", self.name, self.team.value)
            return

        is_spymaster = state.spymaster(self.team) == self.name
        if own_turn and state.current_phase == Phase.SPYMASTER and is_spymaster:
            await self.give_clue(state)
        elif own_turn and state.current_phase == Phase.OPERATIVES and not is_spymaster:
            if self._takes_this_step(state):
                await self.make_guess(state)

    async def _complete(
        self,
        system: str,
        user: str,
        response_schema: dict[str, Any] | None = None,
    ) -> str:
        messages = [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ]
        try:
            response = await asyncio.wait_for(
                self.provider.complete(
                    messages,
                    temperature=self.config.temperature,
                    max_tokens=self.config.max_tokens,
                    response_schema=response_schema,
                ),
                timeout=self.config.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise ProviderError(f"Reasoning call timed out after {self.config.timeout_seconds}s") from e
        return response.content

    async def _say(self, channel: ChatChannel, text: str) -> None:
        if text.strip():
            await self.service.post_chat(channel, self.player_id, self.name, text)

    # ========================================================================
    # Spymaster
    # ========================================================================

    def _spymaster_context(self, state: GameState) -> dict[str, Any]:
        own_words = [
            c.word for c in state.cards
            if not c.revealed and c.type == CardType(self.team.value)
        ]
        return {
            "board": format_key_board(state),
            "own_words": ", ".join(own_words),
            "cards_left": state.cards_left(self.team),
            "clue_history": format_clue_history(state),
        }

    async def give_clue(self, state: GameState) -> None:
        system = load_prompt_template("spymaster_system.md").format(
            name=self.name, team=self.team.value,
        )
        context = self._spymaster_context(state)

        thinking = await self._complete(system, load_prompt_template("spymaster_think.md").format(**context))
        await self._say(ChatChannel.SPYMASTERS, thinking)

        await self._sleep(self.config.think_delay_seconds)

        content = await self._complete(
            system,
            load_prompt_template("spymaster_clue.md").format(**context),
            response_schema=CLUE_SCHEMA,
        )
        decision = parse_clue_decision(content)
        if decision is None:
            logger.warning("%s: discarded malformed clue output: %r", self.name, content[:200])
            return

        is_valid, error = validate_clue(decision.clue, decision.number, state)
        if not is_valid:
            logger.warning("%s: discarded invalid clue: %s", self.name, error)
            return

        await self.service.submit_clue(self.team, decision.clue.strip(), decision.number, self.name)
        self.actions_taken += 1
        logger.info("%s gave clue %s for %d", self.name, decision.clue.strip().upper(), decision.number)

    # ========================================================================
    # Operative / helper
    # ========================================================================

    def _operative_context(self, state: GameState) -> dict[str, Any]:
        clue = state.current_clue
        return {
            "unrevealed": ", ".join(get_unrevealed_words(state)),
            "revealed": format_revealed(state),
            "clue_history": format_clue_history(state),
            "clue": clue.word if clue else "",
            "number": clue.number if clue else 0,
            "guesses_remaining": state.guesses_remaining,
        }

    async def make_guess(self, state: GameState) -> None:
        if state.current_clue is None:
            return
        system = load_prompt_template("operative_system.md").format(
            name=self.name, team=self.team.value,
        )
        context = self._operative_context(state)
        channel = ChatChannel.for_team(self.team)

        reasoning = await self._complete(system, load_prompt_template("operative_think.md").format(**context))
        await self._say(channel, reasoning)

        await self._sleep(self.config.think_delay_seconds)

        content = await self._complete(
            system,
            load_prompt_template("operative_guess.md").format(**context),
            response_schema=GUESS_SCHEMA,
        )
        decision = parse_guess_decision(content)
        index = find_unrevealed_card(state, decision.card_word) if decision else None
        if index is None:
            logger.warning("%s: guess did not match an unrevealed card: %r", self.name, content[:200])
            await self._say(channel, "Sorry, I got confused about the board. Over to you.")
            return

        await self.service.guess_card(index, self.name, expected_team=self.team)
        self.actions_taken += 1
        logger.info("%s guessed %s", self.name, state.cards[index].word)

    async def advise(self, state: GameState) -> None:
        prompt = load_prompt_template("helper_advice.md").format(
            name=self.name, team=self.team.value, **self._operative_context(state),
        )
        advice = await self._complete(
            f"You are {self.name}, a helpful Codenames advisor.", prompt,
        )
        await self._say(ChatChannel.for_team(self.team), advice)
        self.actions_taken += 1
