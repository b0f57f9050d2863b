"""FastAPI facade over the shared Quick Play game."""
from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Awaitable, TypeVar

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

from src.agents import AgentManager, check_ready
from src.core.llm import LLMProvider, ProviderError, create_provider
from src.engine import (
    GameRuleError, GameState, MoveValidationError, PreconditionFailure, get_visible_cards,
)
from src.quickplay import ChatChannel, HeartbeatPresence, QuickPlayConfig, QuickPlayService
from src.store import ConcurrencyConflict, DocumentNotFound

from .models import (
    AddAIRequest,
    AddAIResponse,
    BoardResponse,
    ChatRequest,
    ClueRequest,
    DecksResponse,
    EndGameRequest,
    EndTurnRequest,
    GuessRequest,
    JoinRequest,
    OfferRequest,
    PlayerRequest,
    ReadyCheckResponse,
    RoleRequest,
    SeatRoleRequest,
    TeamRequest,
)

logger = logging.getLogger("ui_api")

load_dotenv(Path(__file__).resolve().parents[2] / ".env")

T = TypeVar("T")


def default_provider_factory() -> LLMProvider:
    """Provider for new AI players, chosen by QUICKPLAY_AI_PROVIDER / QUICKPLAY_AI_MODEL."""
    try:
        return create_provider(
            os.environ.get("QUICKPLAY_AI_PROVIDER", "nebius"),
            model=os.environ.get("QUICKPLAY_AI_MODEL"),
        )
    except ValueError as e:
        raise ProviderError(str(e)) from e


async def _guarded(awaitable: Awaitable[T]) -> T:
    """Translate domain errors into HTTP status codes."""
    try:
        return await awaitable
    except MoveValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PreconditionFailure as e:
        raise HTTPException(status_code=409, detail=str(e))
    except GameRuleError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ConcurrencyConflict as e:
        logger.warning("Transaction conflict: %s", e)
        raise HTTPException(status_code=503, detail="The game is busy, try again")
    except DocumentNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ProviderError as e:
        logger.warning("Provider error: %s", e)
        raise HTTPException(status_code=502, detail=str(e))


def create_app(
    service: QuickPlayService | None = None,
    manager: AgentManager | None = None,
) -> FastAPI:
    if service is None:
        config = QuickPlayConfig.from_env()
        presence = HeartbeatPresence(
            idle_after=config.presence_idle_seconds,
            offline_after=config.presence_offline_seconds,
        )
        service = QuickPlayService(config=config, presence=presence)
    if manager is None:
        manager = AgentManager(service, provider_factory=default_provider_factory)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await service.ensure_game()
        await manager.attach()
        logger.info("Quick Play ready (game_id=%s)", service.game_id)
        try:
            yield
        finally:
            await manager.shutdown()

    app = FastAPI(title="Quick Play API", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=r".*",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.service = service
    app.state.manager = manager

    def _doc(state: GameState) -> dict[str, Any]:
        return state.to_document()

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/decks", response_model=DecksResponse)
    def get_decks() -> DecksResponse:
        return DecksResponse(decks={deck_id: len(words) for deck_id, words in service.decks.items()})

    # ========================================================================
    # Game document
    # ========================================================================

    @app.get("/api/game")
    async def get_game() -> dict[str, Any]:
        return _doc(await _guarded(service.get_state()))

    @app.post("/api/game/ensure")
    async def ensure_game() -> dict[str, Any]:
        return _doc(await _guarded(service.ensure_game()))

    @app.get("/api/game/board", response_model=BoardResponse)
    async def get_board(player_id: str | None = None) -> BoardResponse:
        state = await _guarded(service.get_state())
        spymaster_view = False
        if player_id:
            player = state.find_player(player_id)
            seat = state.seat_of(player_id)
            if player is not None and seat is not None and seat.team is not None:
                spymaster_view = state.spymaster(seat.team) == player.name
        return BoardResponse(cards=get_visible_cards(state, spymaster_view), spymaster_view=spymaster_view)

    # ========================================================================
    # Lobby
    # ========================================================================

    @app.post("/api/lobby/join")
    async def join(req: JoinRequest) -> dict[str, Any]:
        if isinstance(service.presence, HeartbeatPresence):
            service.presence.beat(req.player_id)
        return _doc(await _guarded(service.join_seat(req.seat, req.player_id, req.name, role=req.role)))

    @app.post("/api/lobby/leave")
    async def leave(req: PlayerRequest) -> dict[str, Any]:
        return _doc(await _guarded(service.leave_seat(req.player_id)))

    @app.post("/api/lobby/seat-role")
    async def seat_role(req: SeatRoleRequest) -> dict[str, Any]:
        return _doc(await _guarded(service.set_seat_role(req.player_id, req.role)))

    @app.post("/api/lobby/ready")
    async def ready(req: PlayerRequest) -> dict[str, Any]:
        return _doc(await _guarded(service.toggle_ready(req.player_id)))

    @app.post("/api/lobby/offer")
    async def offer(req: OfferRequest) -> dict[str, Any]:
        return _doc(await _guarded(service.offer_settings(req.team, req.settings)))

    @app.post("/api/lobby/accept")
    async def accept(req: TeamRequest) -> dict[str, Any]:
        return _doc(await _guarded(service.accept_offer(req.team)))

    @app.post("/api/lobby/heartbeat")
    def heartbeat(req: PlayerRequest) -> dict[str, str]:
        if isinstance(service.presence, HeartbeatPresence):
            service.presence.beat(req.player_id)
        return {"status": "ok"}

    # ========================================================================
    # Match
    # ========================================================================

    @app.post("/api/game/role")
    async def select_role(req: RoleRequest) -> dict[str, Any]:
        return _doc(await _guarded(service.select_role(req.team, req.role, req.actor_name)))

    @app.post("/api/game/clue")
    async def clue(req: ClueRequest) -> dict[str, Any]:
        return _doc(await _guarded(service.submit_clue(req.team, req.word, req.number, req.actor_name)))

    @app.post("/api/game/guess")
    async def guess(req: GuessRequest) -> dict[str, Any]:
        return _doc(await _guarded(service.guess_card(req.card_index, req.actor_name, expected_team=req.team)))

    @app.post("/api/game/end-turn")
    async def end_turn(req: EndTurnRequest) -> dict[str, Any]:
        return _doc(await _guarded(service.end_turn(req.team, req.actor_name)))

    @app.post("/api/game/end")
    async def end_game(req: EndGameRequest) -> dict[str, Any]:
        return _doc(await _guarded(service.end_game(req.actor_name, req.reason)))

    @app.post("/api/game/rematch")
    async def rematch() -> dict[str, Any]:
        return _doc(await _guarded(service.prepare_rematch()))

    @app.post("/api/maintenance")
    async def maintenance() -> dict[str, Any]:
        return _doc(await _guarded(service.run_maintenance()))

    # ========================================================================
    # Chat
    # ========================================================================

    @app.get("/api/chat/{channel}")
    async def get_chat(channel: ChatChannel, limit: int | None = None) -> list[dict[str, Any]]:
        messages = await _guarded(service.recent_chat(channel, limit))
        return [m.model_dump(by_alias=True, mode="json") for m in messages]

    @app.post("/api/chat/{channel}")
    async def post_chat(channel: ChatChannel, req: ChatRequest) -> dict[str, Any]:
        message = await _guarded(service.post_chat(channel, req.sender_id, req.sender_name, req.text))
        return message.model_dump(by_alias=True, mode="json")

    # ========================================================================
    # AI players
    # ========================================================================

    @app.post("/api/ai/ready-check", response_model=ReadyCheckResponse)
    async def ai_ready_check() -> ReadyCheckResponse:
        try:
            provider = manager.provider_factory()
        except ProviderError as e:
            raise HTTPException(status_code=502, detail=str(e))
        result = await check_ready(provider, timeout=manager.ready_timeout)
        return ReadyCheckResponse(status=result.status.value, response=result.response, error=result.error)

    @app.post("/api/ai/players", response_model=AddAIResponse)
    async def add_ai_player(req: AddAIRequest) -> AddAIResponse:
        agent, result = await _guarded(manager.add_ai_player(req.team, req.seat_role, req.mode, req.name))
        return AddAIResponse(
            player_id=agent.player_id,
            name=agent.name,
            ready_status=result.status.value,
            ready_response=result.response,
            error=result.error,
        )

    @app.delete("/api/ai/players/{player_id}")
    async def remove_ai_player(player_id: str) -> dict[str, Any]:
        return _doc(await _guarded(manager.remove_ai_player(player_id)))

    return app


app = create_app()
