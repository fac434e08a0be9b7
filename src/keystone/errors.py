"""
Exception hierarchy for Keystone.

Every error carries a context dict that ends up in the structured log line.
Callers branch on the family:

- ClientError: an external service or the store failed; isolated per thread or row
- CredentialError: the OAuth credential is missing or cannot be refreshed; fatal to the run
- PipelineError: configuration problems, unusable classifications, unknown ids
"""

from typing import Any

import httpx
import openai


class KeystoneError(Exception):
    """Root of the hierarchy; str() appends the context when present."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            return f"{self.message} | context={self.context}"
        return self.message


# =============================================================================
# Client Errors
# =============================================================================


class ClientError(KeystoneError):
    """An external service or the store failed."""

    pass


class OpenAIError(ClientError):
    """OpenAI call failed after retries."""

    pass


class OpenAIRateLimitError(OpenAIError):
    """Still rate limited once the retries ran out."""

    pass


class OpenAIModelError(OpenAIError):
    """Model refused request or returned invalid response."""

    pass


class GmailError(ClientError):
    """Error from the Gmail REST API."""

    pass


class SheetsError(ClientError):
    """Error from the Google Sheets REST API."""

    pass


class StoreError(ClientError):
    """Error from the relational store."""

    pass


# =============================================================================
# Credential Errors
# =============================================================================


class CredentialError(KeystoneError):
    """Base class for credential failures. Always fatal to the caller."""

    pass


class MissingCredentialError(CredentialError):
    """No stored credential exists."""

    pass


class TokenRefreshError(CredentialError):
    """The token endpoint rejected the refresh request."""

    pass


# =============================================================================
# Pipeline Errors
# =============================================================================


class PipelineError(KeystoneError):
    """Run-level failure that is not a service or credential problem."""

    pass


class ConfigurationError(PipelineError):
    """Required configuration (credentials, source ids) is missing."""

    pass


class ClassificationError(PipelineError):
    """Classification produced no usable result."""

    pass


class ItemNotFoundError(PipelineError):
    """Referenced item or nudge does not exist."""

    pass


# =============================================================================
# Error Handling Utilities
# =============================================================================


def wrap_openai_error(exc: Exception, context: dict[str, Any] | None = None) -> OpenAIError:
    """Translate an OpenAI SDK failure into OpenAIError or one of its subclasses.

    SDK exception types decide first; plain exceptions are sorted by message.
    """
    ctx = {**(context or {}), 'original_error': str(exc), 'error_type': type(exc).__name__}
    status_code = getattr(exc, 'status_code', None)
    if status_code is not None:
        ctx['status_code'] = status_code

    text = str(exc).lower()
    if isinstance(exc, openai.RateLimitError) or 'rate limit' in text or 'rate_limit' in text:
        return OpenAIRateLimitError(f"OpenAI rate limit exceeded: {exc}", context=ctx)
    if 'content policy' in text or 'refused' in text:
        return OpenAIModelError(f"OpenAI model refused request: {exc}", context=ctx)
    return OpenAIError(f"OpenAI API error: {exc}", context=ctx)


_HTTP_ERRORS: dict[str, type[ClientError]] = {
    'gmail': GmailError,
    'sheets': SheetsError,
}


def wrap_http_error(
    exc: Exception,
    service: str,
    context: dict[str, Any] | None = None,
) -> ClientError:
    """
    Wrap an httpx exception raised while talking to a Google API.

    Args:
        exc: The original exception
        service: 'gmail' or 'sheets'
        context: Additional context for debugging

    Returns:
        Typed ClientError subclass for the service
    """
    error_cls = _HTTP_ERRORS.get(service, ClientError)
    ctx = context or {}
    ctx['error_type'] = type(exc).__name__

    if isinstance(exc, httpx.HTTPStatusError):
        ctx['status_code'] = exc.response.status_code
        return error_cls(
            f"{service} request failed with HTTP {exc.response.status_code}",
            context=ctx,
        )
    return error_cls(f"{service} request failed: {exc}", context=ctx)
