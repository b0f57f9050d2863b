"""Presence lookups used for lobby eviction.

Unknown players report ``None``, which callers treat as active.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Callable, Protocol


class PresenceStatus(str, Enum):
    ONLINE = "online"
    IDLE = "idle"
    OFFLINE = "offline"


class PresenceLookup(Protocol):
    def status_of(self, player_id: str) -> PresenceStatus | None: ...


class StaticPresence:
    """Fixed statuses, mainly for tests and scripts."""

    def __init__(self, statuses: dict[str, PresenceStatus] | None = None):
        self.statuses = dict(statuses or {})

    def status_of(self, player_id: str) -> PresenceStatus | None:
        return self.statuses.get(player_id)


class HeartbeatPresence:
    """Derives status from the age of each player's last heartbeat."""

    def __init__(
        self,
        idle_after: float = 300.0,
        offline_after: float = 900.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.idle_after = idle_after
        self.offline_after = offline_after
        self._clock = clock
        self._last_seen: dict[str, float] = {}

    def beat(self, player_id: str) -> None:
        self._last_seen[player_id] = self._clock()

    def forget(self, player_id: str) -> None:
        self._last_seen.pop(player_id, None)

    def status_of(self, player_id: str) -> PresenceStatus | None:
        last_seen = self._last_seen.get(player_id)
        if last_seen is None:
            return None
        age = self._clock() - last_seen
        if age >= self.offline_after:
            return PresenceStatus.OFFLINE
        if age >= self.idle_after:
            return PresenceStatus.IDLE
        return PresenceStatus.ONLINE
