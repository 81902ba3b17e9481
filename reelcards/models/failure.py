"""
Failure Explanation Envelope — Unified Response Classification.

Every engine operation either completes or fails with a specific,
user-displayable reason. Services raise `KnownError` subclasses; the API
layer converts them into this envelope.

INVARIANT: No raw 500 errors may reach the frontend for expected failures.

Response types:
- Success: Operation completed successfully
- KnownFailure: System knows why it failed (insufficient credits, ...)
- UnknownFailure: System does not know why it failed

AUTHORITY BOUNDARY:
All failure responses pass through `finalize_response()`.
"""

from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field, PrivateAttr


class FailureKind(str, Enum):
    """Classification of failure types."""

    # Input validation failures
    INVALID_INPUT = "invalid_input"
    INVALID_SELECTION = "invalid_selection"

    # Resource failures
    NOT_FOUND = "not_found"
    PACK_NOT_FOUND = "pack_not_found"
    PACK_UNAVAILABLE = "pack_unavailable"
    POOL_EMPTY = "pool_empty"
    NO_TARGET_AVAILABLE = "no_target_available"

    # Ownership and marketplace constraints
    NOT_OWNED = "not_owned"
    CARD_LISTED = "card_listed"
    ALREADY_UNLOCKED = "already_unlocked"

    # Trade-up constraints
    RARITY_MISMATCH = "rarity_mismatch"
    TYPE_MISMATCH = "type_mismatch"
    NOT_ESCALATABLE = "not_escalatable"

    # Economy
    PURCHASE_LIMIT = "purchase_limit"
    INSUFFICIENT_CREDITS = "insufficient_credits"
    DEBIT_FAILED = "debit_failed"

    # Concurrency
    SCARCITY_CONFLICT = "scarcity_conflict"
    CARDS_CHANGED = "cards_changed"

    # Unknown
    UNKNOWN = "unknown"


class OutcomeType(str, Enum):
    """High-level outcome classification."""

    SUCCESS = "success"
    KNOWN_FAILURE = "known_failure"
    UNKNOWN_FAILURE = "unknown_failure"


T = TypeVar("T")


class FailureDetail(BaseModel):
    """Detailed information about a failure."""

    kind: FailureKind = Field(
        ...,
        description="Classification of the failure",
    )
    message: str = Field(
        ...,
        description="User-displayable explanation of what went wrong",
    )
    detail: str | None = Field(
        default=None,
        description="Additional technical detail (optional)",
    )
    suggestion: str | None = Field(
        default=None,
        description="Suggested action for the user",
    )


class ApiResponse(BaseModel, Generic[T]):
    """
    Response envelope for engine failures.

    Every failure is classified so the caller can surface `failure.message`
    as-is.
    """

    outcome: OutcomeType = Field(
        ...,
        description="High-level classification of the result",
    )
    data: T | None = Field(
        default=None,
        description="Response data (present on success)",
    )
    failure: FailureDetail | None = Field(
        default=None,
        description="Failure details (present on non-success)",
    )
    _finalized: bool = PrivateAttr(default=False)

    @classmethod
    def success(cls, data: T) -> "ApiResponse[T]":
        """Create a success response."""
        return cls(outcome=OutcomeType.SUCCESS, data=data)

    @classmethod
    def known_failure(
        cls,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        suggestion: str | None = None,
    ) -> "ApiResponse[Any]":
        """
        Create a known failure response.

        Use when the system knows exactly why the operation failed.
        Example: Pack not found, not enough credits.
        """
        return cls(
            outcome=OutcomeType.KNOWN_FAILURE,
            failure=FailureDetail(
                kind=kind,
                message=message,
                detail=detail,
                suggestion=suggestion,
            ),
        )


class KnownError(Exception):
    """
    Base class for exceptions that represent known, explainable failures.

    Subclass this for errors where the system knows exactly what went wrong.
    Raising one aborts the request's transaction, so nothing written before
    the failure is committed.
    """

    def __init__(
        self,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        suggestion: str | None = None,
        status_code: int = 400,
    ):
        self.kind = kind
        self.message = message
        self.detail = detail
        self.suggestion = suggestion
        self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ApiResponse[Any]:
        """Convert to a finalized ApiResponse."""
        return finalize_response(
            ApiResponse.known_failure(
                kind=self.kind,
                message=self.message,
                detail=self.detail,
                suggestion=self.suggestion,
            )
        )


class NotFoundError(KnownError):
    """A referenced pack, card or movie does not exist."""

    def __init__(self, message: str, kind: FailureKind = FailureKind.NOT_FOUND):
        super().__init__(kind=kind, message=message, status_code=404)


class ConflictError(KnownError):
    """State changed underneath the request; retrying may succeed."""

    def __init__(self, kind: FailureKind, message: str, detail: str | None = None):
        super().__init__(
            kind=kind,
            message=message,
            detail=detail,
            suggestion="Refresh and try again.",
            status_code=409,
        )


# =============================================================================
# FAILURE AUTHORITY BOUNDARY
# =============================================================================


STANDARD_UNKNOWN_MESSAGE = "Something went wrong and we don't know why. Please try again."

def finalize_response(response: ApiResponse[Any]) -> ApiResponse[Any]:
    """
    Finalize a response through the authority boundary.

    Raises:
        ValueError: If response structure is invalid
    """
    if response.outcome == OutcomeType.SUCCESS:
        if response.failure is not None:
            raise ValueError("Success response must not have failure details")
    else:
        if response.failure is None:
            raise ValueError(f"{response.outcome.value} response must have failure details")

    response._finalized = True

    return response


def is_finalized(response: ApiResponse[Any]) -> bool:
    """Check if a response has passed through the authority boundary."""
    return response._finalized


def create_unknown_failure(exception: Exception) -> ApiResponse[Any]:
    """
    Create a finalized unknown failure response from an exception.

    The message is fixed; only the exception type is exposed as detail.
    """
    response: ApiResponse[Any] = ApiResponse(
        outcome=OutcomeType.UNKNOWN_FAILURE,
        failure=FailureDetail(
            kind=FailureKind.UNKNOWN,
            message=STANDARD_UNKNOWN_MESSAGE,
            detail=type(exception).__name__,
            suggestion="If this persists, please report the issue.",
        ),
    )
    return finalize_response(response)
