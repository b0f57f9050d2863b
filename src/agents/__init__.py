from .ready import (
    ReadyStatus, ReadyCheckResult, check_ready, classify_ready_response,
    READY_SYSTEM_PROMPT, READY_USER_PROMPT, READY_TOKEN,
)
from .player import (
    AIPlayer, AIPlayerConfig, ClueDecision, GuessDecision, CLUE_SCHEMA, GUESS_SCHEMA,
    acting_ai_id, action_key, load_prompt_template, parse_clue_decision, parse_guess_decision,
)
from .manager import AgentManager, AI_NAMES, MAX_AI_PER_TEAM, pick_ai_name

__all__ = [
    "ReadyStatus", "ReadyCheckResult", "check_ready", "classify_ready_response",
    "READY_SYSTEM_PROMPT", "READY_USER_PROMPT", "READY_TOKEN",
    "AIPlayer", "AIPlayerConfig", "ClueDecision", "GuessDecision", "CLUE_SCHEMA", "GUESS_SCHEMA",
    "acting_ai_id", "action_key", "load_prompt_template", "parse_clue_decision", "parse_guess_decision",
    "AgentManager", "AI_NAMES", "MAX_AI_PER_TEAM", "pick_ai_name",
]
