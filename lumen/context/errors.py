"""Error taxonomy for context retrieval."""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    RETRIEVAL_FAILED = "RETRIEVAL_FAILED"
    SEMANTIC_SEARCH_FAILED = "SEMANTIC_SEARCH_FAILED"
    CONVERSATION_NOT_FOUND = "CONVERSATION_NOT_FOUND"
    DATABASE_ERROR = "DATABASE_ERROR"
    TIMEOUT = "TIMEOUT"


class ContextRetrievalError(Exception):
    """Base error raised by the context engine."""

    def __init__(self,
                 code: ErrorCode,
                 message: str,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            'code': self.code.value,
            'message': self.message,
            'details': self.details,
        }


class RetrievalFailedError(ContextRetrievalError):
    """A required retrieval strategy failed; the whole call is abandoned."""

    def __init__(self, user_id: str, intent: str, strategy: str, error: BaseException):
        super().__init__(
            ErrorCode.RETRIEVAL_FAILED,
            f"Failed to retrieve context: {error}",
            {'user_id': user_id, 'intent': intent, 'strategy': strategy},
        )
        self.user_id = user_id
        self.intent = intent
        self.strategy = strategy


class RetrievalTimeoutError(ContextRetrievalError):
    """The caller's overall deadline elapsed before all strategies finished."""

    def __init__(self, user_id: str, intent: str, timeout_ms: float):
        super().__init__(
            ErrorCode.TIMEOUT,
            f"Context retrieval timed out after {timeout_ms:.0f}ms",
            {'user_id': user_id, 'intent': intent, 'timeout_ms': timeout_ms},
        )
        self.user_id = user_id
        self.intent = intent
        self.timeout_ms = timeout_ms


class StoreError(ContextRetrievalError):
    """Failure inside an upstream store."""

    def __init__(self, store: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorCode.DATABASE_ERROR, f"{store}: {message}", {'store': store, **(details or {})})
        self.store = store
