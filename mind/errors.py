"""
Shared error types for AI Mind services.
"""


class ValidationIssue(ValueError):
    """A required parameter is missing or a value is out of bounds."""

    def __init__(
        self,
        message: str,
        field: str = "unknown",
        error_type: str = "invalid",
        error_code: str | None = None,
        data: dict | None = None,
    ):
        super().__init__(message)
        self.field = field
        self.error_type = error_type
        self.error_code = error_code
        self.data = data


class NotFoundError(LookupError):
    """A note, observation, entity or thread lookup missed."""

    def __init__(self, message: str, resource: str = "record", field: str = "unknown"):
        super().__init__(message)
        self.resource = resource
        self.field = field


class UpstreamUnavailable(RuntimeError):
    """The store, vector index or embedding provider call failed."""

    def __init__(self, message: str, data: dict | None = None):
        super().__init__(message)
        self.data = data


class EmbeddingProviderError(UpstreamUnavailable):
    """Raised when the embedding provider is unavailable."""


class VectorIndexError(UpstreamUnavailable):
    """Raised when the vector index cannot be queried or written."""
