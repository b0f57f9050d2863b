"""Tests for the AI player, the ready check and the agent manager."""

import asyncio
import json
import random
import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.agents import (
    AIPlayer, AIPlayerConfig, AgentManager, ReadyStatus, AI_NAMES, CLUE_SCHEMA, GUESS_SCHEMA,
    READY_SYSTEM_PROMPT, acting_ai_id, action_key, check_ready, classify_ready_response,
    parse_clue_decision, parse_guess_decision, pick_ai_name,
)
from src.core.llm import LLMProvider, LLMResponse, MockProvider, ProviderError
from src.engine import (
    AIMode, CardType, Clue, GameState, Phase, Player, Seat, SeatRole, Team, PreconditionFailure,
)
from src.quickplay import ChatChannel, QuickPlayService

DECKS = {"standard": [f"STD{i}" for i in range(60)]}


async def no_sleep(_seconds: float) -> None:
    return None


def make_service() -> QuickPlayService:
    return QuickPlayService(decks=DECKS, rng=random.Random(11))


async def start_match(
    service: QuickPlayService,
    spymasters: bool = True,
    rex_mode: AIMode = AIMode.AUTONOMOUS,
    with_rio: bool = False,
) -> GameState:
    """Ann/Rex (red) vs Bob/Bea (blue), started. Rex (and Rio) are AI seats."""
    await service.join_seat(Seat.RED, "r1", "Ann", role=SeatRole.SPYMASTER if spymasters else None)
    await service.join_seat(Seat.RED, "r2", "Rex", is_ai=True, ai_mode=rex_mode)
    if with_rio:
        await service.join_seat(Seat.RED, "r3", "Rio", is_ai=True, ai_mode=AIMode.AUTONOMOUS)
    await service.join_seat(Seat.BLUE, "b1", "Bob", role=SeatRole.SPYMASTER if spymasters else None)
    await service.join_seat(Seat.BLUE, "b2", "Bea")
    await service.accept_offer(Team.BLUE)
    state = None
    player_ids = ["r1", "r2", "b1", "b2"] + (["r3"] if with_rio else [])
    for player_id in player_ids:
        state = await service.toggle_ready(player_id)
    return state


async def start_guessing(service: QuickPlayService, rex_mode: AIMode = AIMode.AUTONOMOUS) -> GameState:
    await start_match(service, rex_mode=rex_mode)
    return await service.submit_clue(Team.RED, "ZEBRA", 2, "Ann")


def make_agent(service, provider, player_id="r2", name="Rex", team=Team.RED, **kwargs) -> AIPlayer:
    config = AIPlayerConfig(player_id=player_id, name=name, team=team, **kwargs)
    return AIPlayer(config, provider, service, sleep=no_sleep)


def first_unrevealed(state: GameState, card_type: CardType) -> str:
    return next(c.word for c in state.cards if c.type == card_type and not c.revealed)


class ScriptedProvider(LLMProvider):
    """Answers the ready check, gives unique clues and always guesses a correct card."""

    def __init__(self, service: QuickPlayService):
        self.service = service
        self.model = "scripted"
        self.clues = 0

    async def complete(self, messages, temperature=0.7, max_tokens=1024, response_schema=None):
        if response_schema == CLUE_SCHEMA:
            self.clues += 1
            content = json.dumps({"clue": f"CLUE{self.clues}", "number": 2})
        elif response_schema == GUESS_SCHEMA:
            state = await self.service.get_state()
            word = first_unrevealed(state, CardType(state.current_team.value))
            content = json.dumps({"cardWord": word, "confidence": 0.9, "reasoning": "obvious"})
        elif messages[0]["content"] == READY_SYSTEM_PROMPT:
            content = "Ready"
        else:
            content = "Thinking it over."
        return LLMResponse(content=content, model=self.model, input_tokens=0, output_tokens=0, latency_ms=1.0)


# ============================================================================
# Ready Check Tests
# ============================================================================

class TestReadyCheck:
    """Tests for the pre-join provider check."""

    def test_classification(self):
        assert classify_ready_response("Ready") == ReadyStatus.READY
        assert classify_ready_response("  Ready\n") == ReadyStatus.READY
        assert classify_ready_response("ready") == ReadyStatus.WARNING
        assert classify_ready_response("Ready!") == ReadyStatus.WARNING
        assert classify_ready_response("   ") == ReadyStatus.ERROR

    @pytest.mark.asyncio
    async def test_exact_token_is_ready(self):
        provider = MockProvider(responses=["Ready"])
        result = await check_ready(provider)

        assert result.is_ready
        assert provider.calls[0]["temperature"] == 0.0
        assert provider.calls[0]["messages"][0]["content"] == READY_SYSTEM_PROMPT

    @pytest.mark.asyncio
    async def test_other_reply_is_warning(self):
        result = await check_ready(MockProvider(responses=["Sure, I'm ready"]))
        assert result.status == ReadyStatus.WARNING
        assert result.response == "Sure, I'm ready"

    @pytest.mark.asyncio
    async def test_provider_failure_is_error(self):
        result = await check_ready(MockProvider(fail_with=ProviderError("upstream 500", status_code=500)))
        assert result.status == ReadyStatus.ERROR
        assert "upstream 500" in result.error

    @pytest.mark.asyncio
    async def test_timeout_is_error(self):
        result = await check_ready(MockProvider(responses=["Ready"], delay=1.0), timeout=0.01)
        assert result.status == ReadyStatus.ERROR
        assert result.error == "timeout"


# ============================================================================
# Parsing Tests
# ============================================================================

class TestDecisionParsing:
    """Tests for structured output parsing."""

    def test_clue_from_fenced_json(self):
        decision = parse_clue_decision('```json\n{"clue": "OCEAN", "number": 2}\n```')
        assert decision.clue == "OCEAN"
        assert decision.number == 2

    def test_clue_missing_field(self):
        assert parse_clue_decision('{"clue": "OCEAN"}') is None
        assert parse_clue_decision("no json here") is None

    def test_guess_alias(self):
        decision = parse_guess_decision('Sure! {"cardWord": "apple", "confidence": 0.8, "reasoning": "fruit"}')
        assert decision.card_word == "apple"
        assert decision.confidence == 0.8

    def test_action_key(self):
        state = GameState(current_phase=Phase.OPERATIVES, current_team=Team.BLUE, guesses_remaining=2)
        assert action_key(state) == (Phase.OPERATIVES, Team.BLUE, 2)


class TestActingAI:
    """Tests for choosing the one AI that acts on a snapshot."""

    def rotation_state(self) -> GameState:
        return GameState(
            current_phase=Phase.OPERATIVES,
            red_spymaster="Ann",
            red_players=[
                Player(id="r1", name="Ann", role=SeatRole.SPYMASTER, is_ai=True, ai_mode=AIMode.AUTONOMOUS),
                Player(id="r2", name="Rex", role=SeatRole.OPERATIVE),
                Player(id="r3", name="Rio", is_ai=True, ai_mode=AIMode.AUTONOMOUS),
                Player(id="r4", name="Roy", is_ai=True, ai_mode=AIMode.HELPER),
                Player(id="r5", name="Ria", is_ai=True, ai_mode=AIMode.AUTONOMOUS),
            ],
        )

    def test_skips_spymaster_humans_and_helpers(self):
        state = self.rotation_state()
        assert acting_ai_id(state, Team.RED, AIMode.AUTONOMOUS) == "r3"
        assert acting_ai_id(state, Team.RED, AIMode.HELPER) == "r4"
        assert acting_ai_id(state, Team.BLUE, AIMode.AUTONOMOUS) is None

    def test_rotates_per_clue(self):
        state = self.rotation_state()
        state.clue_history.append(Clue(team=Team.RED, word="ZEBRA", number=1))
        assert acting_ai_id(state, Team.RED, AIMode.AUTONOMOUS) == "r5"
        state.clue_history.append(Clue(team=Team.BLUE, word="QUUX", number=1))
        assert acting_ai_id(state, Team.RED, AIMode.AUTONOMOUS) == "r3"


# ============================================================================
# Spymaster Tests
# ============================================================================

class TestSpymasterAgent:
    """Tests for AI clue giving."""

    @pytest.mark.asyncio
    async def test_gives_valid_clue(self):
        service = make_service()
        state = await start_match(service)
        provider = MockProvider(responses=["Lots of animals here.", '{"clue": "zebra", "number": 2}'])
        agent = make_agent(service, provider, "r1", "Ann", seat_role=SeatRole.SPYMASTER)

        await agent.on_snapshot(state)

        state = await service.get_state()
        assert state.current_phase == Phase.OPERATIVES
        assert state.current_clue.word == "ZEBRA"
        assert state.current_clue.given_by == "Ann"
        assert provider.calls[1]["response_schema"] == CLUE_SCHEMA
        assert agent.actions_taken == 1

        thoughts = await service.recent_chat(ChatChannel.SPYMASTERS)
        assert [m.text for m in thoughts] == ["Lots of animals here."]

    @pytest.mark.asyncio
    async def test_board_word_clue_discarded(self):
        service = make_service()
        state = await start_match(service)
        clue = json.dumps({"clue": state.cards[0].word, "number": 1})
        agent = make_agent(service, MockProvider(responses=["hmm", clue]), "r1", "Ann")

        await agent.on_snapshot(state)

        state = await service.get_state()
        assert state.current_phase == Phase.SPYMASTER
        assert agent.actions_taken == 0

    @pytest.mark.asyncio
    async def test_malformed_output_discarded(self):
        service = make_service()
        state = await start_match(service)
        agent = make_agent(service, MockProvider(responses=["hmm", "I pick OCEAN for two"]), "r1", "Ann")

        await agent.on_snapshot(state)
        assert (await service.get_state()).current_clue is None

    @pytest.mark.asyncio
    async def test_provider_failure_is_swallowed(self):
        service = make_service()
        state = await start_match(service)
        provider = MockProvider(fail_with=ProviderError("bad gateway", status_code=502))
        agent = make_agent(service, provider, "r1", "Ann")

        await agent.on_snapshot(state)

        assert provider.call_count == 1
        assert (await service.get_state()).current_phase == Phase.SPYMASTER
        assert not agent.busy

    @pytest.mark.asyncio
    async def test_slow_provider_times_out(self):
        service = make_service()
        state = await start_match(service)
        agent = make_agent(
            service, MockProvider(responses=["x"], delay=1.0), "r1", "Ann", timeout_seconds=0.01,
        )

        await agent.on_snapshot(state)
        assert (await service.get_state()).current_phase == Phase.SPYMASTER

    @pytest.mark.asyncio
    async def test_waits_for_own_turn(self):
        service = make_service()
        state = await start_match(service)
        provider = MockProvider(responses=["x"])
        agent = make_agent(service, provider, "b1", "Bob", team=Team.BLUE)

        await agent.on_snapshot(state)
        assert provider.call_count == 0

    @pytest.mark.asyncio
    async def test_claims_spymaster_in_role_selection(self):
        service = make_service()
        state = await start_match(service, spymasters=False)
        provider = MockProvider(responses=["x"])
        agent = make_agent(service, provider, "r1", "Ann", seat_role=SeatRole.SPYMASTER)

        await agent.on_snapshot(state)

        state = await service.get_state()
        assert state.red_spymaster == "Ann"
        assert provider.call_count == 0


# ============================================================================
# Operative Tests
# ============================================================================

class TestOperativeAgent:
    """Tests for AI guessing."""

    @pytest.mark.asyncio
    async def test_guesses_matching_card(self):
        service = make_service()
        state = await start_guessing(service)
        word = first_unrevealed(state, CardType.RED)
        guess = json.dumps({"cardWord": word.lower(), "confidence": 0.9, "reasoning": "stripes"})
        provider = MockProvider(responses=["Zebras have stripes...", guess])
        agent = make_agent(service, provider)

        await agent.on_snapshot(state)

        state = await service.get_state()
        assert next(c for c in state.cards if c.word == word).revealed
        assert state.red_cards_left == 8
        assert provider.calls[1]["response_schema"] == GUESS_SCHEMA
        red_chat = await service.recent_chat(ChatChannel.RED)
        assert red_chat[0].text == "Zebras have stripes..."

    @pytest.mark.asyncio
    async def test_unmatched_guess_apologises(self):
        service = make_service()
        state = await start_guessing(service)
        guess = json.dumps({"cardWord": "NOT-ON-BOARD", "confidence": 0.5, "reasoning": "?"})
        agent = make_agent(service, MockProvider(responses=["hmm", guess]))

        await agent.on_snapshot(state)

        state = await service.get_state()
        assert not any(c.revealed for c in state.cards)
        red_chat = await service.recent_chat(ChatChannel.RED)
        assert red_chat[-1].text == "Sorry, I got confused about the board. Over to you."

    @pytest.mark.asyncio
    async def test_spymaster_does_not_guess(self):
        service = make_service()
        state = await start_guessing(service)
        provider = MockProvider(responses=["x"])
        agent = make_agent(service, provider, "r1", "Ann")

        await agent.on_snapshot(state)
        assert provider.call_count == 0

    @pytest.mark.asyncio
    async def test_unseated_agent_does_nothing(self):
        service = make_service()
        state = await start_guessing(service)
        provider = MockProvider(responses=["x"])
        agent = make_agent(service, provider, "ghost", "Ghost")

        await agent.on_snapshot(state)
        assert provider.call_count == 0


    @pytest.mark.asyncio
    async def test_turn_passing_during_think_delay_drops_guess(self):
        """A guess decided on red's turn is not played once blue is guessing."""
        service = make_service()
        state = await start_guessing(service)
        blue_word = first_unrevealed(state, CardType.BLUE)
        guess = json.dumps({"cardWord": blue_word, "confidence": 0.9, "reasoning": "ours?"})
        provider = MockProvider(responses=["Thinking...", guess])

        async def turn_passes(_seconds: float) -> None:
            await service.end_turn(Team.RED, "Rex")
            await service.submit_clue(Team.BLUE, "QUUX", 1, "Bob")

        config = AIPlayerConfig(player_id="r2", name="Rex", team=Team.RED)
        agent = AIPlayer(config, provider, service, sleep=turn_passes)

        await agent.on_snapshot(state)

        state = await service.get_state()
        assert provider.call_count == 2
        assert not any(c.revealed for c in state.cards)
        assert state.current_team == Team.BLUE
        assert state.current_phase == Phase.OPERATIVES
        assert state.guesses_remaining == 2
        assert agent.actions_taken == 0

    @pytest.mark.asyncio
    async def test_two_ai_operatives_take_turns(self):
        """Only one AI operative guesses per snapshot; the next guess is the other's."""
        service = make_service()
        await start_match(service, with_rio=True)
        state = await service.submit_clue(Team.RED, "ZEBRA", 2, "Ann")
        red_words = [c.word for c in state.cards if c.type == CardType.RED]

        def guess(word: str) -> str:
            return json.dumps({"cardWord": word, "confidence": 0.9, "reasoning": "stripes"})

        rex_provider = MockProvider(responses=["Rex thinks.", guess(red_words[0])])
        rio_provider = MockProvider(responses=["Rio thinks.", guess(red_words[1])])
        rex = make_agent(service, rex_provider)
        rio = make_agent(service, rio_provider, "r3", "Rio")

        await asyncio.gather(rex.on_snapshot(state), rio.on_snapshot(state))

        state = await service.get_state()
        assert [c.word for c in state.cards if c.revealed] == [red_words[1]]
        assert rex_provider.call_count == 0
        assert rio_provider.call_count == 2

        await asyncio.gather(rex.on_snapshot(state), rio.on_snapshot(state))

        state = await service.get_state()
        assert sorted(c.word for c in state.cards if c.revealed) == sorted(red_words[:2])
        assert rex_provider.call_count == 2
        assert rio_provider.call_count == 2

class TestHelperAgent:
    """Helpers advise in team chat and never act."""

    @pytest.mark.asyncio
    async def test_advises_during_operatives(self):
        service = make_service()
        state = await start_guessing(service, rex_mode=AIMode.HELPER)
        provider = MockProvider(responses=["Try the striped one."])
        agent = make_agent(service, provider, mode=AIMode.HELPER)

        await agent.on_snapshot(state)

        state = await service.get_state()
        assert not any(c.revealed for c in state.cards)
        assert provider.calls[0]["response_schema"] is None
        red_chat = await service.recent_chat(ChatChannel.RED)
        assert [m.text for m in red_chat] == ["Try the striped one."]

    @pytest.mark.asyncio
    async def test_silent_during_spymaster_phase(self):
        service = make_service()
        state = await start_match(service)
        provider = MockProvider(responses=["x"])
        agent = make_agent(service, provider, "r1", "Ann", mode=AIMode.HELPER)

        await agent.on_snapshot(state)
        assert provider.call_count == 0


# ============================================================================
# Single-Flight Tests
# ============================================================================

class TestSingleFlight:
    """Duplicate notifications are ignored and bursts are coalesced."""

    @pytest.mark.asyncio
    async def test_repeated_snapshot_ignored(self):
        service = make_service()
        state = await start_guessing(service)
        guess = json.dumps({"cardWord": "NOT-ON-BOARD", "confidence": 0.5, "reasoning": "?"})
        provider = MockProvider(responses=["hmm", guess])
        agent = make_agent(service, provider)

        await agent.on_snapshot(state)
        await agent.on_snapshot(state)

        assert provider.call_count == 2

    @pytest.mark.asyncio
    async def test_burst_while_busy_keeps_only_latest(self):
        service = make_service()
        state = await start_guessing(service, rex_mode=AIMode.HELPER)
        provider = MockProvider(responses=["advice"], delay=0.05)
        agent = make_agent(service, provider, mode=AIMode.HELPER)

        task = asyncio.create_task(agent.on_snapshot(state))
        await asyncio.sleep(0)
        assert agent.busy

        await agent.on_snapshot(state.model_copy(update={"guesses_remaining": 2}))
        await agent.on_snapshot(state.model_copy(update={"guesses_remaining": 1}))
        await task

        assert provider.call_count == 2
        assert agent._last_key == (Phase.OPERATIVES, Team.RED, 1)
        assert not agent.busy


# ============================================================================
# Agent Manager Tests
# ============================================================================

class TestPickAIName:
    """Tests for AI name selection."""

    def test_avoids_taken_names(self):
        taken = set(AI_NAMES[:-1])
        assert pick_ai_name(taken, random.Random(1)) == AI_NAMES[-1]

    def test_falls_back_to_numbered_bots(self):
        taken = set(AI_NAMES)
        assert pick_ai_name(taken) == "Bot1"
        assert pick_ai_name(taken | {"Bot1"}) == "Bot2"


class TestAgentManager:
    """Tests for seating and removing AI players."""

    @pytest.mark.asyncio
    async def test_add_ready_ai(self):
        service = make_service()
        manager = AgentManager(service, provider_factory=lambda: MockProvider(responses=["Ready"]), sleep=no_sleep)

        agent, ready = await manager.add_ai_player(Team.RED, SeatRole.SPYMASTER)

        assert ready.is_ready
        assert manager.get(agent.player_id) is agent
        player = (await service.get_state()).find_player(agent.player_id)
        assert player.is_ai
        assert player.ready
        assert player.role == SeatRole.SPYMASTER
        assert player.ai_mode == AIMode.AUTONOMOUS

    @pytest.mark.asyncio
    async def test_add_unready_ai_on_warning(self):
        service = make_service()
        manager = AgentManager(service, provider_factory=lambda: MockProvider(responses=["Hello!"]), sleep=no_sleep)

        agent, ready = await manager.add_ai_player(Team.BLUE, mode=AIMode.HELPER)

        assert ready.status == ReadyStatus.WARNING
        player = (await service.get_state()).find_player(agent.player_id)
        assert not player.ready
        assert player.ai_mode == AIMode.HELPER

    @pytest.mark.asyncio
    async def test_ai_cap_per_team(self):
        service = make_service()
        manager = AgentManager(service, provider_factory=lambda: MockProvider(responses=["Ready"]), sleep=no_sleep)

        names = set()
        for _ in range(4):
            agent, _ready = await manager.add_ai_player(Team.RED)
            names.add(agent.name)
        assert len(names) == 4

        with pytest.raises(PreconditionFailure):
            await manager.add_ai_player(Team.RED)
        assert len(manager.agents) == 4

        await manager.add_ai_player(Team.BLUE)
        assert len(manager.agents) == 5

    @pytest.mark.asyncio
    async def test_remove_ai(self):
        service = make_service()
        manager = AgentManager(service, provider_factory=lambda: MockProvider(responses=["Ready"]), sleep=no_sleep)
        agent, _ready = await manager.add_ai_player(Team.RED)

        state = await manager.remove_ai_player(agent.player_id)

        assert state.find_player(agent.player_id) is None
        assert manager.get(agent.player_id) is None

    @pytest.mark.asyncio
    async def test_remove_human_rejected(self):
        service = make_service()
        await service.join_seat(Seat.RED, "r1", "Ann")
        manager = AgentManager(service, provider_factory=lambda: MockProvider(), sleep=no_sleep)

        with pytest.raises(PreconditionFailure):
            await manager.remove_ai_player("r1")

    @pytest.mark.asyncio
    async def test_full_ai_match(self):
        """Four scripted AIs play a match to completion through notifications."""
        service = make_service()
        manager = AgentManager(service, provider_factory=lambda: ScriptedProvider(service), sleep=no_sleep)
        await manager.attach()

        agents = [
            (await manager.add_ai_player(Team.RED, SeatRole.SPYMASTER))[0],
            (await manager.add_ai_player(Team.RED))[0],
            (await manager.add_ai_player(Team.BLUE, SeatRole.SPYMASTER))[0],
            (await manager.add_ai_player(Team.BLUE))[0],
        ]
        await service.accept_offer(Team.BLUE)
        for agent in agents:
            await service.toggle_ready(agent.player_id)

        await manager.wait_idle()
        await manager.shutdown()

        state = await service.get_state()
        assert state.current_phase == Phase.ENDED
        assert state.winner == Team.RED
        assert state.red_cards_left == 0
        assert len(state.clue_history) == 5
