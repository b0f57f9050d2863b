"""Registry of the AI players hosted by this process."""

from __future__ import annotations

import asyncio
import logging
import random
import uuid
from typing import Any, Callable

from src.core.llm import LLMProvider, create_provider
from src.engine import AIMode, GameState, PreconditionFailure, Seat, SeatRole, Team
from src.quickplay import QuickPlayService
from .player import AIPlayer, AIPlayerConfig, Sleep
from .ready import ReadyCheckResult, check_ready

logger = logging.getLogger(__name__)

MAX_AI_PER_TEAM = 4

AI_NAMES = [
    "Alex", "Jordan", "Morgan", "Casey", "Riley", "Quinn", "Avery", "Sage",
    "Rowan", "Finley", "Skyler", "Blake", "Drew", "Reese", "Kai", "Nova",
    "Max", "Sam", "Jamie", "Robin", "Frankie", "Charlie", "Pat", "Dana",
]

ProviderFactory = Callable[[], LLMProvider]


def pick_ai_name(taken: set[str], rng: random.Random | None = None) -> str:
    """A human-sounding name nobody in the lobby uses yet."""
    rng = rng or random.Random()
    available = [name for name in AI_NAMES if name not in taken]
    if available:
        return rng.choice(available)
    n = 1
    while f"Bot{n}" in taken:
        n += 1
    return f"Bot{n}"


class AgentManager:
    """
    Owns the AI players of one process and feeds them game snapshots.

    ``attach()`` subscribes to the shared game document; every notification
    is dispatched to each registered player as its own task.
    """

    def __init__(
        self,
        service: QuickPlayService,
        provider_factory: ProviderFactory | None = None,
        player_defaults: dict[str, Any] | None = None,
        ready_timeout: float = 15.0,
        rng: random.Random | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.service = service
        self.provider_factory = provider_factory or create_provider
        self.player_defaults = dict(player_defaults or {})
        self.ready_timeout = ready_timeout
        self.rng = rng or random.Random()
        self._sleep = sleep
        self._agents: dict[str, AIPlayer] = {}
        self._tasks: set[asyncio.Task] = set()
        self._unsubscribe: Callable[[], None] | None = None

    # Registry

    def register(self, agent: AIPlayer) -> None:
        self._agents[agent.player_id] = agent

    def unregister(self, player_id: str) -> AIPlayer | None:
        return self._agents.pop(player_id, None)

    def get(self, player_id: str) -> AIPlayer | None:
        return self._agents.get(player_id)

    @property
    def agents(self) -> list[AIPlayer]:
        return list(self._agents.values())

    # Notifications

    def dispatch(self, state: GameState) -> None:
        """Hand a snapshot to every registered player."""
        for agent in self.agents:
            task = asyncio.create_task(agent.on_snapshot(state))
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("AI player task failed: %s", task.exception())

    async def attach(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = await self.service.subscribe(self.dispatch)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def wait_idle(self) -> None:
        """Wait until no player has work in flight (including follow-up snapshots)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        self.detach()
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # Roster

    async def add_ai_player(
        self,
        team: Team,
        seat_role: SeatRole = SeatRole.OPERATIVE,
        mode: AIMode = AIMode.AUTONOMOUS,
        name: str | None = None,
    ) -> tuple[AIPlayer, ReadyCheckResult]:
        """
        Check a provider, seat a new AI player and ready it if the check passed.

        Raises:
            PreconditionFailure: the team already has the maximum number of AIs.
        """
        state = await self.service.get_state()
        ai_count = sum(1 for p in state.roster(team) if p.is_ai)
        if ai_count >= MAX_AI_PER_TEAM:
            raise PreconditionFailure(f"{state.team_name(team)} already has {MAX_AI_PER_TEAM} AI players")

        taken = {p.name for p in state.all_players()}
        name = name or pick_ai_name(taken, self.rng)
        config = AIPlayerConfig(
            player_id=f"ai-{uuid.uuid4().hex[:8]}",
            name=name,
            team=team,
            seat_role=seat_role,
            mode=mode,
            **self.player_defaults,
        )

        provider = self.provider_factory()
        ready = await check_ready(provider, timeout=self.ready_timeout)

        agent = AIPlayer(config, provider, self.service, sleep=self._sleep)
        self.register(agent)
        try:
            await self.service.join_seat(
                Seat(team.value), config.player_id, name,
                role=seat_role, is_ai=True, ai_mode=mode,
            )
            if ready.is_ready:
                await self.service.toggle_ready(config.player_id)
        except Exception:
            self.unregister(config.player_id)
            raise

        logger.info("Added AI player %s (%s, %s, %s): %s",
                    name, team.value, seat_role.value, mode.value, ready.status.value)
        return agent, ready

    async def remove_ai_player(self, player_id: str) -> GameState:
        agent = self.unregister(player_id)
        state = await self.service.get_state()
        player = state.find_player(player_id)
        if agent is None and (player is None or not player.is_ai):
            raise PreconditionFailure(f"No AI player with id {player_id}")
        logger.info("Removing AI player %s", player_id)
        return await self.service.leave_seat(player_id)
