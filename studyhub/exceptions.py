"""
Custom Exceptions for the StudyHub backend.

Every error that should reach an API client is a StudyHubError carrying its
own HTTP status code. The single handler in main.py turns these into
``{"error": message}`` responses, so no code needs to inspect message text
to pick a status.
"""

from typing import Optional


class StudyHubError(Exception):
    """Base exception for all StudyHub errors."""

    status_code = 500

    def __init__(self, message: str = None, status_code: int = None):
        self.message = message or self.__class__.__doc__ or "Internal error"
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


# =============================================================================
# Validation (400)
# =============================================================================

class ValidationError(StudyHubError):
    """Request validation failed."""
    status_code = 400


class InvalidUUIDError(ValidationError):
    """Raised when an identifier is not a valid UUID."""

    def __init__(self, field: str, value: str = None):
        self.field = field
        self.value = value
        super().__init__(f"Invalid UUID format for {field}")


class UnsafeInstructionsError(ValidationError):
    """Raised when user instructions fail the security screen."""
    pass


class UnsupportedFileTypeError(ValidationError):
    """Raised when an unsupported file type is uploaded."""

    def __init__(self, file_type: str, supported_types: list = None):
        self.file_type = file_type
        self.supported_types = supported_types or []
        msg = f"Unsupported file type: {file_type}"
        if supported_types:
            msg += f". Supported types: {', '.join(supported_types)}"
        super().__init__(msg)


class TextExtractionError(ValidationError):
    """Raised when text cannot be extracted from a document."""

    def __init__(self, filename: str, reason: str = None):
        self.filename = filename
        self.reason = reason
        msg = f"Failed to extract text from {filename}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


# =============================================================================
# Authentication & Authorization (401 / 403)
# =============================================================================

class AuthenticationError(StudyHubError):
    """Authentication required."""
    status_code = 401


class AuthorizationError(StudyHubError):
    """You do not have permission to perform this action."""
    status_code = 403


# =============================================================================
# Lookup & State (404 / 409)
# =============================================================================

class NotFoundError(StudyHubError):
    """Raised when a resource does not exist or is not visible to the caller."""
    status_code = 404

    def __init__(self, resource: str, resource_id: str = None):
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource} not found"
        if resource_id:
            msg += f": {resource_id}"
        super().__init__(msg)


class ConflictError(StudyHubError):
    """Request conflicts with the current state of the resource."""
    status_code = 409


class TaskStateError(ConflictError):
    """Raised on an illegal background task status transition."""

    def __init__(self, task_id: str, current: str, target: str):
        self.task_id = task_id
        self.current = current
        self.target = target
        super().__init__(f"Task {task_id} cannot move from '{current}' to '{target}'")


# =============================================================================
# Payload Size (413)
# =============================================================================

class PayloadTooLargeError(StudyHubError):
    """Payload too large."""
    status_code = 413


class FileTooLargeError(PayloadTooLargeError):
    """Raised when a file exceeds the maximum allowed size for its type."""

    def __init__(self, size: int, max_size: int):
        self.size = size
        self.max_size = max_size
        super().__init__(
            f"File size ({format_file_size(size)}) exceeds the maximum allowed size "
            f"({format_file_size(max_size)})"
        )


class ContextTooLargeError(PayloadTooLargeError):
    """Raised when content does not fit in the model's context window."""

    def __init__(self, estimated_tokens: int, limit: int):
        self.estimated_tokens = estimated_tokens
        self.limit = limit
        super().__init__(
            f"Content too large for the AI model: ~{estimated_tokens} tokens "
            f"exceeds the limit of {limit}. Try a smaller file or fewer questions."
        )


# =============================================================================
# AI Provider Errors (429 / 500)
# =============================================================================

PROVIDER_RATE_LIMIT_GUIDANCE = {
    "openai": (
        "OpenAI rate limit reached. Wait a minute and try again, or check the "
        "usage limits of your OpenAI plan."
    ),
    "anthropic": (
        "Anthropic rate limit reached. Wait a minute and try again, or switch "
        "the provider to OpenAI for this request."
    ),
}


class ProviderRateLimitError(StudyHubError):
    """Raised when an AI provider rejects a request due to rate limiting."""
    status_code = 429

    def __init__(self, provider: str, retry_after: Optional[int] = None, message: str = None):
        self.provider = provider
        self.retry_after = retry_after
        super().__init__(
            message or PROVIDER_RATE_LIMIT_GUIDANCE.get(
                provider, f"{provider} rate limit reached. Please try again later."
            )
        )


class ProviderOverloadedError(ProviderRateLimitError):
    """Raised when the provider reports it is temporarily overloaded."""

    def __init__(self, provider: str, retry_after: Optional[int] = None):
        super().__init__(
            provider,
            retry_after=retry_after,
            message=(
                f"{provider.capitalize()} servers are currently overloaded. "
                "Please try again in a few minutes or choose a different AI provider."
            ),
        )


class ProviderError(StudyHubError):
    """Raised when an AI provider call fails."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"{provider} request failed: {message}")


class MissingAPIKeyError(ProviderError):
    """Raised when no API key is configured for a provider."""

    def __init__(self, provider: str):
        super().__init__(
            provider,
            f"API key not configured. Set {provider.upper()}_API_KEY in the environment.",
        )


class AIResponseParseError(StudyHubError):
    """Raised when a model response cannot be parsed into the expected JSON."""

    def __init__(self, message: str, original_sample: str = None, repaired_sample: str = None):
        self.original_sample = original_sample
        self.repaired_sample = repaired_sample
        super().__init__(message)


# =============================================================================
# Helpers
# =============================================================================

def format_file_size(size: int) -> str:
    """Render a byte count for humans (e.g. ``50.0 MB``)."""
    if size < 1024:
        return f"{size} bytes"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"
