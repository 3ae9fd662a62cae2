"""Custom exceptions for the Trivia Quiz Bot."""


class TriviaBotError(Exception):
    """Base exception for trivia bot errors."""
    pass


class FetchFailure(TriviaBotError):
    """Questions could not be fetched or decoded from the trivia service."""

    user_message = "Could not load trivia questions. Please try again."


class NetworkError(FetchFailure):
    """Network connectivity issues."""

    user_message = "Could not reach the trivia service. Check your connection and try again."


class FetchTimeoutError(FetchFailure):
    """The trivia service did not answer before the request deadline."""

    user_message = "The trivia service took too long to answer. Please try again."


class HTTPStatusError(FetchFailure):
    """The trivia service answered with a non-success HTTP status."""

    def __init__(self, status: int, message: str = None):
        self.status = status
        super().__init__(message or f"Trivia service returned HTTP {status}")


class RateLimitedError(HTTPStatusError):
    """Too many requests were sent to the trivia service."""

    user_message = "The trivia service is rate limiting requests. Wait a few seconds and try again."

    def __init__(self, status: int = 429, message: str = None):
        super().__init__(status, message or "Trivia service rate limit reached")


class MalformedPayloadError(FetchFailure):
    """The trivia service returned an unexpected response format."""


class NoResultsError(FetchFailure):
    """The trivia service has no questions for the requested options."""

    user_message = "No questions match these settings. Try fewer questions or another category."


class InvalidParameterError(FetchFailure):
    """The trivia service rejected the request parameters."""

    user_message = "The trivia service rejected these settings. Check them with /settings."


class QuizControllerError(TriviaBotError):
    """Base exception for quiz controller errors."""
    pass


class RoundConflictError(QuizControllerError):
    """Raised when a round is already running in the channel."""
    pass


class RoundNotFoundError(QuizControllerError):
    """Raised when no round exists for the channel."""
    pass


class NotRoundOwnerError(QuizControllerError):
    """Raised when someone other than the round owner acts on it."""
    pass
