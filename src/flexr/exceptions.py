"""
Custom exceptions for FLEXR core services.

Every exception carries:
- A descriptive message
- An error code for API responses
- HTTP status code mapping
- Optional details for debugging
"""

from typing import Any, Dict, Optional
from enum import Enum


class ErrorCode(str, Enum):
    """Error codes for consistent API error responses."""

    # General errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"

    # Workout errors
    SEGMENT_ORDER_INVALID = "SEGMENT_ORDER_INVALID"
    WEEKLY_SUMMARY_NOT_FOUND = "WEEKLY_SUMMARY_NOT_FOUND"

    # Data/Database errors
    DATABASE_ERROR = "DATABASE_ERROR"

    # Device sync errors
    SYNC_ERROR = "SYNC_ERROR"
    SYNC_ENCODING_ERROR = "SYNC_ENCODING_ERROR"
    TRANSPORT_ERROR = "TRANSPORT_ERROR"
    PEER_UNREACHABLE = "PEER_UNREACHABLE"


class FlexrError(Exception):
    """
    Base exception for all FLEXR errors.

    Attributes:
        message: Human-readable error message
        code: Error code from ErrorCode enum
        status_code: HTTP status code for API responses
        details: Optional dictionary with additional error details
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API response."""
        result: Dict[str, Any] = {
            "error": {
                "code": self.code.value,
                "message": self.message,
            }
        }
        if self.details:
            result["error"]["details"] = self.details
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code.value}, message={self.message!r})"


# ============================================================================
# Validation Errors (400)
# ============================================================================

class ValidationError(FlexrError):
    """Raised when input validation fails."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        error_details = details or {}
        if field:
            error_details["field"] = field
        super().__init__(
            message=message,
            code=ErrorCode.VALIDATION_ERROR,
            status_code=400,
            details=error_details,
        )


class SegmentOrderError(ValidationError):
    """Raised when segment order indices are not unique and contiguous from 0."""

    def __init__(
        self,
        workout_id: str,
        order_indices: list,
    ) -> None:
        super().__init__(
            message=(
                f"Segments of workout '{workout_id}' must have unique order "
                f"indices contiguous from 0, got {sorted(order_indices)}"
            ),
            field="order_index",
            details={"workout_id": workout_id},
        )
        self.code = ErrorCode.SEGMENT_ORDER_INVALID


# ============================================================================
# Authentication Errors (401)
# ============================================================================

class UnauthorizedError(FlexrError):
    """Raised when the caller identity is missing."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(
            message=message,
            code=ErrorCode.UNAUTHORIZED,
            status_code=401,
        )


# ============================================================================
# Not Found Errors (404)
# ============================================================================

class NotFoundError(FlexrError):
    """Raised when a requested resource is not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        message = f"{resource_type} with ID '{resource_id}' not found"
        error_details = details or {}
        error_details["resource_type"] = resource_type
        error_details["resource_id"] = resource_id
        super().__init__(
            message=message,
            code=ErrorCode.NOT_FOUND,
            status_code=404,
            details=error_details,
        )


class WeeklySummaryNotFoundError(NotFoundError):
    """Raised when no weekly summary exists for the requested week."""

    def __init__(self, user_id: str, week_starting: Optional[str] = None) -> None:
        super().__init__(
            resource_type="Weekly summary",
            resource_id=week_starting or "latest",
            details={"user_id": user_id},
        )
        self.message = "Weekly summary not found"
        self.code = ErrorCode.WEEKLY_SUMMARY_NOT_FOUND


# ============================================================================
# Database Errors (500)
# ============================================================================

class DatabaseError(FlexrError):
    """Raised when the underlying data store fails."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        error_details = details or {}
        if operation:
            error_details["operation"] = operation
        super().__init__(
            message=message,
            code=ErrorCode.DATABASE_ERROR,
            status_code=500,
            details=error_details,
        )


# ============================================================================
# Device Sync Errors
# ============================================================================

class SyncError(FlexrError):
    """Base class for watch/phone sync failures."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.SYNC_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=message,
            code=code,
            status_code=503,
            details=details,
        )


class SyncEncodingError(SyncError):
    """Raised when an outbound sync payload cannot be serialized."""

    def __init__(self, message_type: str, reason: str) -> None:
        super().__init__(
            message=f"Failed to encode '{message_type}' message: {reason}",
            code=ErrorCode.SYNC_ENCODING_ERROR,
            details={"message_type": message_type},
        )


class TransportError(SyncError):
    """Raised by a peer transport when a send fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            code=ErrorCode.TRANSPORT_ERROR,
            details=details,
        )


class PeerUnreachableError(TransportError):
    """Raised when a best-effort send finds the peer unreachable."""

    def __init__(self, message_type: Optional[str] = None) -> None:
        super().__init__(
            message="Peer is not reachable",
            details={"message_type": message_type} if message_type else None,
        )
        self.code = ErrorCode.PEER_UNREACHABLE
