"""
Application errors for clean API error handling.

Services raise these; app/api/handlers.py maps them to HTTP status codes so
services stay free of FastAPI types. Use ServiceUnavailableError when a
dependency (LLM provider, search API) is misconfigured or unreachable so the
API can return 503 with a user-facing message.
"""


class ServiceUnavailableError(Exception):
    """Raised when a required service (e.g. Anthropic, Perplexity) is unavailable or misconfigured."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class NotFoundError(Exception):
    """Raised when a requested row does not exist (maps to 404)."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConflictError(Exception):
    """Raised on a uniqueness conflict, e.g. a taken short code (maps to 409)."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class BadRequestError(Exception):
    """Raised when caller input fails validation the schema cannot express (maps to 400)."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class UnauthorizedError(Exception):
    """Raised when a supplied secret (link password, API key) is wrong (maps to 401)."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)
