#!/usr/bin/env python3
"""Play a full Quick Play match between two teams of AI players."""

import asyncio
import argparse
import logging
import random
from dotenv import load_dotenv
from pathlib import Path

load_dotenv(Path(__file__).parent.parent / ".env")

from src.agents import AgentManager
from src.core.llm import create_provider
from src.engine import MatchSettings, Phase, SeatRole, Team
from src.quickplay import QuickPlayService


# ANSI colors for terminal output
class Colors:
    RED = "\033[91m"
    BLUE = "\033[94m"
    GRAY = "\033[90m"
    BOLD = "\033[1m"
    RESET = "\033[0m"


def print_board(state) -> None:
    """Print the key card view of the board."""
    colors = {"red": Colors.RED, "blue": Colors.BLUE, "neutral": Colors.GRAY, "assassin": Colors.BOLD}
    for i in range(0, len(state.cards), 5):
        row = []
        for card in state.cards[i:i + 5]:
            word = f"[{card.word}]" if card.revealed else card.word
            row.append(f"{colors[card.type.value]}{word:^14}{Colors.RESET}")
        print(" | ".join(row))


async def main():
    parser = argparse.ArgumentParser(description="Run an AI vs AI Quick Play match")
    parser.add_argument("--provider", default="nebius", choices=["nebius", "openrouter", "openai"])
    parser.add_argument("--model", default=None, help="Model id (provider default if omitted)")
    parser.add_argument("--operatives", type=int, default=1, help="AI operatives per team (1-3)")
    parser.add_argument("--assassins", type=int, default=1)
    parser.add_argument("--deck", default="standard")
    parser.add_argument("--delay", type=float, default=0.5, help="Seconds between commentary and decision")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    rng = random.Random(args.seed) if args.seed is not None else None
    service = QuickPlayService(rng=rng)
    await service.ensure_game()

    manager = AgentManager(
        service,
        provider_factory=lambda: create_provider(args.provider, model=args.model),
        player_defaults={"think_delay_seconds": args.delay},
        rng=rng,
    )
    await manager.attach()

    ready_ids: list[str] = []
    for team in Team:
        roles = [SeatRole.SPYMASTER] + [SeatRole.OPERATIVE] * max(1, min(3, args.operatives))
        for role in roles:
            agent, ready = await manager.add_ai_player(team, seat_role=role)
            print(f"{agent.name} joined {team.value} as {role.value} (ready check: {ready.status.value})")
            if not ready.is_ready:
                print(f"{Colors.BOLD}Provider is not answering correctly: {ready.error or ready.response}{Colors.RESET}")
                return
            ready_ids.append(agent.player_id)

    settings = MatchSettings(assassin_count=args.assassins, deck_id=args.deck)
    await service.offer_settings(Team.RED, settings)
    await service.accept_offer(Team.BLUE)
    for player_id in ready_ids:
        await service.toggle_ready(player_id)

    last_update = None
    while True:
        await manager.wait_idle()
        state = await service.get_state()
        if state.current_phase == Phase.ENDED:
            break
        if state.updated_at == last_update:
            print(f"{Colors.BOLD}Match stalled; see warnings above.{Colors.RESET}")
            break
        last_update = state.updated_at

    await manager.shutdown()

    print()
    print_board(state)
    print()
    for line in state.log:
        print(line)
    winner = getattr(state.winner, "value", state.winner)
    print(f"\n{Colors.BOLD}Winner: {winner}{Colors.RESET}")


if __name__ == "__main__":
    asyncio.run(main())
