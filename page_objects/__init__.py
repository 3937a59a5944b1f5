"""Page objects for Playwright LibreChat testing."""

from .librechat_page import AgentNotFoundError, DemoUser, LibreChatPage, LibreChatSelectors, SessionError
from .turn import (
    ContentMismatchError,
    SetupError,
    TurnInProgressError,
    TurnResult,
    TurnSynchronizer,
    TurnTimeoutError,
)

__all__ = [
    "AgentNotFoundError",
    "ContentMismatchError",
    "DemoUser",
    "LibreChatPage",
    "LibreChatSelectors",
    "SessionError",
    "SetupError",
    "TurnInProgressError",
    "TurnResult",
    "TurnSynchronizer",
    "TurnTimeoutError",
]
