"""Error taxonomy surfaced to callers of the identification core.

Every error carries a stable ``code`` so the conversation layer and the HTTP
API can report failures without inspecting exception types.
"""

from typing import Optional


class ForageLensError(Exception):
    code = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NoApiKeyError(ForageLensError):
    code = "no_api_key"

    def __init__(self, message: str = "No API key configured."):
        super().__init__(message)


class BudgetExceededError(ForageLensError):
    code = "budget_exceeded"

    def __init__(self, message: str = "Monthly LLM budget exceeded."):
        super().__init__(message)


class LLMApiError(ForageLensError):
    """Upstream answered with a non-2xx status."""

    code = "api_error"

    def __init__(self, message: str, status: int, retryable: bool):
        super().__init__(message)
        self.status = status
        self.retryable = retryable


class LLMAuthError(LLMApiError):
    def __init__(self, message: str, status: int = 401):
        super().__init__(message, status=status, retryable=False)


class LLMNetworkError(ForageLensError):
    """The request failed before any HTTP response arrived."""

    code = "network_error"
    status: Optional[int] = None
    retryable = True


class LLMParseError(ForageLensError):
    code = "parse_error"


class EmptyConversationError(ForageLensError):
    code = "empty_conversation"

    def __init__(self, message: str = "There is no user message to identify."):
        super().__init__(message)


class ContextTooLargeError(ForageLensError):
    """The latest user turn alone exceeds the model context budget."""

    code = "context_too_large"

    def __init__(self, message: str = "The latest message is too long to send to the model."):
        super().__init__(message)


class SessionNotFoundError(ForageLensError):
    code = "session_not_found"

    def __init__(self, session_id: str):
        super().__init__("Conversation not found.")
        self.session_id = session_id
