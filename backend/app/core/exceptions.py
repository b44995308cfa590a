# backend/app/core/exceptions.py
"""
Domain-specific exceptions for the tutor scheduling backend.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        """Convert to an HTTPException carrying the structured error body."""
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when business validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Specific scheduling exceptions


class SlotUnavailableException(ConflictException):
    """
    Raised when the write-time re-check finds the slot taken.

    The caller lost a race with a concurrent booking (or the slot became
    blocked by time-off) between reading availability and writing. Retryable.
    """

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message or "This time slot is no longer available",
            code="SLOT_UNAVAILABLE",
            details={"retryable": True, **(details or {})},
        )


class InvalidRuleException(ValidationException):
    """Raised when an availability rule is malformed (e.g. end not after start)."""

    def __init__(self, rule_id: Optional[str], reason: str):
        super().__init__(
            message=f"Invalid availability rule: {reason}",
            code="INVALID_RULE",
            details={"rule_id": rule_id, "reason": reason},
        )


class PartialMaterializationException(ServiceException):
    """Raised when a recurring series batch insert fails partway through."""

    def __init__(
        self,
        group_id: Optional[str],
        created_count: int,
        message: Optional[str] = None,
    ):
        super().__init__(
            message=message or "Recurring series was only partially materialized",
            code="PARTIAL_MATERIALIZATION",
            details={"group_id": group_id, "created_count": created_count},
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """


class LookupFailureException(RepositoryException):
    """A dependency lookup (rules, lessons, time-off) failed or timed out."""

    def __init__(self, message: str, tutor_id: Optional[str] = None):
        self.tutor_id = tutor_id
        super().__init__(message)
