"""
Error taxonomy for the chat core.

Errors raised before any mutation carry an HTTP status code so the route layer
can translate them without inspecting types one by one.
"""


class CompanionChatError(Exception):
    """Base error for the chat core."""

    status_code: int = 500
    public_message: str = "Internal Error"


class Unauthorized(CompanionChatError):
    """No authenticated user on the request."""

    status_code = 401
    public_message = "Unauthorized"


class RateLimited(CompanionChatError):
    """The rate limiter denied the request."""

    status_code = 429
    public_message = "Rate limit exceeded"

    def __init__(self, identifier: str, retry_after: float = 0.0):
        self.identifier = identifier
        self.retry_after = retry_after
        super().__init__(f"Rate limit exceeded for {identifier}")


class NotFound(CompanionChatError):
    """Unknown persona or message."""

    status_code = 404

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        self.public_message = f"{kind.capitalize()} not found"
        super().__init__(f"{kind} not found: {identifier}")


class ValidationError(CompanionChatError):
    """Malformed input, rejected before any storage call."""

    status_code = 400

    def __init__(self, field: str, message: str):
        self.field = field
        self.public_message = f"Invalid {field}"
        super().__init__(f"Validation error for '{field}': {message}")


class DegradedRecall(CompanionChatError):
    """Long-term recall failed.

    Never propagates past the vector memory boundary; it is recorded on the
    returned ``RecallResult`` instead.
    """


class StreamFailure(CompanionChatError):
    """The model stream failed mid-generation."""


class ClientDisconnected(CompanionChatError):
    """The caller went away; writes to its output channel fail."""


class FatalError(CompanionChatError):
    """Unexpected failure."""
