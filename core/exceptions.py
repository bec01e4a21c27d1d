from typing import Optional


class QuizError(Exception):
    """Base exception for the quiz player."""
    pass


class QuizApiError(QuizError):
    """The quiz API answered with an error status or an unreadable body."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AttemptNotFound(QuizApiError):
    pass


class QuizApiUnavailable(QuizApiError):
    """Transport-level failure (timeout, connection refused, DNS)."""
    pass


class InvalidTransition(QuizError):
    """An attempt operation was called in a state that does not allow it."""

    def __init__(self, operation: str, state: str):
        super().__init__(f"Cannot {operation} while attempt is {state}")
        self.operation = operation
        self.state = state
