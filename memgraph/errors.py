"""
Shared error types for MemGraph services.
"""


class ValidationIssue(ValueError):
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
    """Raised for missing resources and resources owned by someone else."""


class QuotaExceeded(RuntimeError):
    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class DimensionMismatch(ValueError):
    def __init__(self, left: int, right: int):
        super().__init__(f"Vector dimensions do not match: {left} vs {right}")
        self.left = left
        self.right = right


class KeyValidationError(PermissionError):
    """Base class for API key validation failures."""

    error_code = "invalid_api_key"


class InvalidKeyFormat(KeyValidationError):
    error_code = "invalid_format"


class ApiKeyNotFound(KeyValidationError):
    error_code = "not_found"


class ApiKeyInactive(KeyValidationError):
    error_code = "inactive"


class ApiKeyExpired(KeyValidationError):
    error_code = "expired"


class UserDeleted(KeyValidationError):
    error_code = "user_deleted"


class ProviderError(RuntimeError):
    """Raised when an external model provider fails."""


class EmbeddingProviderError(ProviderError):
    """Raised when the embedding provider is unavailable."""


class LLMProviderError(ProviderError):
    """Raised when the LLM provider is unavailable."""
