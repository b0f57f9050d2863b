from .config import QuickPlayConfig
from .presence import PresenceStatus, PresenceLookup, StaticPresence, HeartbeatPresence
from .service import QuickPlayService, ChatChannel, needs_fresh_game

__all__ = [
    "QuickPlayConfig",
    "PresenceStatus", "PresenceLookup", "StaticPresence", "HeartbeatPresence",
    "QuickPlayService", "ChatChannel", "needs_fresh_game",
]
