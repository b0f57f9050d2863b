"""Rule violations raised by the game engine and lobby."""

from __future__ import annotations


class GameRuleError(ValueError):
    """Base class for rejected game or lobby operations."""


class MoveValidationError(GameRuleError):
    """The request itself is malformed (bad clue, number, index or settings).

    Raised before any state is touched and never persisted.
    """


class PreconditionFailure(GameRuleError):
    """The request is well-formed but the current state does not allow it.

    Wrong phase, wrong team's turn, card already revealed, game already over.
    """
