"""Configuration for the shared Quick Play lobby."""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, Field


class QuickPlayConfig(BaseModel):
    """Runtime settings for a QuickPlayService."""

    game_id: str = "quickplay"

    # Supervisory timeouts
    inactivity_timeout_seconds: int = Field(default=1800, ge=1)  # 30 minutes untouched -> reset
    presence_idle_seconds: int = Field(default=300, ge=1)
    presence_offline_seconds: int = Field(default=900, ge=1)

    # Store
    max_transaction_attempts: int = Field(default=5, ge=1)
    data_dir: Path | None = None  # None = in-memory store

    # Chat
    chat_history_limit: int = Field(default=100, ge=1)

    # Word decks (None = bundled data/words.json)
    words_path: Path | None = None

    @classmethod
    def from_env(cls) -> "QuickPlayConfig":
        """Build a config from QUICKPLAY_* environment variables."""
        values: dict[str, object] = {}
        env_map = {
            "QUICKPLAY_GAME_ID": "game_id",
            "QUICKPLAY_INACTIVITY_SECONDS": "inactivity_timeout_seconds",
            "QUICKPLAY_PRESENCE_IDLE_SECONDS": "presence_idle_seconds",
            "QUICKPLAY_PRESENCE_OFFLINE_SECONDS": "presence_offline_seconds",
            "QUICKPLAY_MAX_TRANSACTION_ATTEMPTS": "max_transaction_attempts",
            "QUICKPLAY_DATA_DIR": "data_dir",
            "QUICKPLAY_CHAT_HISTORY_LIMIT": "chat_history_limit",
            "QUICKPLAY_WORDS_PATH": "words_path",
        }
        for env_key, field_name in env_map.items():
            value = os.environ.get(env_key)
            if value:
                values[field_name] = value
        return cls(**values)
