"""
Consolidated exception hierarchy for the appraisal media pipeline.

This module provides a unified exception hierarchy that allows for:
- Consistent error handling across all components
- Hierarchical exception catching (e.g., catch all TransientCollaboratorError)
- Clear separation between retryable and terminal collaborator failures
"""

from typing import Optional


# =============================================================================
# Base Exception
# =============================================================================

class AppraisalSystemError(Exception):
    """Base exception for all appraisal system errors."""
    pass


class ConfigurationError(AppraisalSystemError):
    """Raised when configuration is missing or inconsistent."""
    pass


class ValidationError(AppraisalSystemError):
    """Raised when a request does not satisfy input constraints."""
    pass


# =============================================================================
# Processing Errors
# =============================================================================

class ProcessingError(AppraisalSystemError):
    """Base exception for local media processing errors."""
    pass


class ImageProcessingError(ProcessingError):
    """Raised when an image cannot be read, resized or encoded."""
    pass


class FrameExtractionError(ProcessingError):
    """Raised when frames cannot be extracted from a video."""
    pass


# =============================================================================
# Collaborator Errors
# =============================================================================

class CollaboratorError(AppraisalSystemError):
    """Base exception for errors raised by external collaborators."""
    pass


class TransientCollaboratorError(CollaboratorError):
    """Errors that are worth retrying (rate limit, 5xx, network)."""
    pass


class RateLimited(TransientCollaboratorError):
    """Raised when the upstream API rejects the call with a rate limit."""
    pass


class UpstreamUnavailable(TransientCollaboratorError):
    """Raised when the upstream API answers with a 5xx status."""
    pass


class NetworkTimeout(TransientCollaboratorError):
    """Raised on connection reset, refusal or timeout."""
    pass


class MalformedResponseError(CollaboratorError):
    """Raised when model output is not JSON or violates the item schema."""
    pass


class EmptyResponse(MalformedResponseError):
    """Raised when the model returns no content at all."""
    pass


class NonRetryableCollaboratorError(CollaboratorError):
    """Invalid input, authentication failures and similar terminal errors."""
    pass


class CollaboratorFailure(CollaboratorError):
    """Raised when a collaborator call failed for good."""

    def __init__(self, message: str, attempts: int = 0,
                 cause: Optional[BaseException] = None):
        super().__init__(message)
        self.attempts = attempts
        self.cause = cause


# =============================================================================
# Valuation Errors
# =============================================================================

class MarketResearchError(AppraisalSystemError):
    """Raised when a price lookup cannot produce any market data."""
    pass


class ReportError(AppraisalSystemError):
    """Raised when a report cannot be generated."""
    pass
