"""
Custom Exceptions for Gearhead Assistant

Hierarchical exception classes for proper error handling across layers.
"""

from typing import Optional, Dict, Any


class GearheadError(Exception):
    """Base exception for all Gearhead errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.original_error = original_error

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.message,
            "type": self.__class__.__name__,
            "details": self.details
        }


class ValidationError(GearheadError):
    """Raised when input validation fails."""
    pass


class AuthenticationError(GearheadError):
    """Raised when the caller is not authenticated."""
    pass


class PermissionDeniedError(GearheadError):
    """Raised when the caller does not own the requested resource."""
    pass


class UnsupportedMediaTypeError(GearheadError):
    """Raised when a request body uses an unsupported content type."""
    pass


class DatabaseError(GearheadError):
    """Raised when database operations fail."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if table:
            details["table"] = table
        super().__init__(message, details, original_error)


class NotFoundError(DatabaseError):
    """Raised when a requested resource is not found."""
    pass


class StorageError(GearheadError):
    """Raised when object storage operations fail."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if path:
            details["path"] = path
        super().__init__(message, details, original_error)


class AIServiceError(GearheadError):
    """Raised when OpenAI operations fail."""

    def __init__(
        self,
        message: str,
        model: Optional[str] = None,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if model:
            details["model"] = model
        if operation:
            details["operation"] = operation
        super().__init__(message, details, original_error)


class RateLimitError(AIServiceError):
    """Raised when API rate limits are exceeded."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: Optional[int] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message, original_error=original_error)
        if retry_after:
            self.details["retry_after_seconds"] = retry_after


class AssistantProvisioningError(AIServiceError):
    """Raised when an upstream assistant cannot be created or reconciled."""

    def __init__(
        self,
        message: str,
        assistant_config_id: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message, operation="provision_assistant", original_error=original_error)
        if assistant_config_id:
            self.details["assistant_config_id"] = assistant_config_id


class VectorStoreProcessingError(AIServiceError):
    """Raised when a vector store file fails or times out during indexing."""
    pass


class ConfigurationError(GearheadError):
    """Raised when configuration is missing or invalid."""

    def __init__(
        self,
        message: str,
        missing_keys: Optional[list] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if missing_keys:
            details["missing_keys"] = missing_keys
        super().__init__(message, details, original_error)
