"""
Ledger error taxonomy and safe HTTP translation.

Services raise LedgerError subclasses and never HTTP errors. The API layer
turns them into HTTPException through BusinessError, logging the internal
detail and returning a message that does not leak storage internals.
"""
from fastapi import HTTPException, status
import logging

logger = logging.getLogger(__name__)


class LedgerError(Exception):
    """Base class for every error the engine raises on purpose."""


class NotFound(LedgerError):
    """Referenced customer, truck, invoice or record does not exist. Not retried."""


class InvalidArgument(LedgerError):
    """Input rejected before any write (non-positive payment, negative weight...)."""


class AlreadyExists(LedgerError):
    """Duplicate truck-day reconciliation. The existing record is left untouched."""


class AllocationExhausted(LedgerError):
    """Invoice number collisions exceeded the retry bound."""


class TransactionFailed(LedgerError):
    """
    Storage-level commit failure or timeout.

    The whole unit was rolled back, so retrying the entire operation is safe.
    """


class BusinessError:
    """Business-domain exceptions with safe (non-leaky) messages."""

    @staticmethod
    def not_found(resource: str = "Resource", reason: str = "") -> HTTPException:
        if reason:
            logger.warning(f"Not found: {resource} - {reason}")
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} not found",
        )

    @staticmethod
    def bad_request(detail: str) -> HTTPException:
        """
        400 for input validation / business rule errors.

        OK to include specific details here since the caller caused the issue.
        Examples: "Payment amount must be greater than zero"
        """
        logger.info(f"Bad request: {detail}")
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
        )

    @staticmethod
    def conflict(detail: str) -> HTTPException:
        """
        409 for resource conflicts.
        Example: "Reconciliation already exists for truck 3 on 2025-05-28"
        """
        logger.info(f"Conflict: {detail}")
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
        )

    @staticmethod
    def unavailable(original_error: Exception = None) -> HTTPException:
        """
        503 for rolled-back transactions and exhausted allocators.

        Nothing was persisted, so clients may retry the same request.
        """
        if original_error:
            logger.error(
                f"Transaction not applied: {type(original_error).__name__}: {original_error}"
            )
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="The operation could not be completed. Nothing was saved; please retry.",
        )

    @staticmethod
    def server_error(original_error: Exception = None) -> HTTPException:
        """
        Generic 500 - logs actual error internally, hides from user.
        """
        if original_error:
            logger.error(
                f"Internal server error: {type(original_error).__name__}: {str(original_error)}",
                exc_info=True
            )
        else:
            logger.error("Internal server error occurred", exc_info=True)

        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An internal error occurred. Please try again later.",
        )

    @classmethod
    def from_ledger_error(cls, error: LedgerError, resource: str = "Resource") -> HTTPException:
        """Map an engine error to the matching HTTP response."""
        if isinstance(error, NotFound):
            return cls.not_found(resource, str(error))
        if isinstance(error, InvalidArgument):
            return cls.bad_request(str(error))
        if isinstance(error, AlreadyExists):
            return cls.conflict(str(error))
        if isinstance(error, (TransactionFailed, AllocationExhausted)):
            return cls.unavailable(error)
        return cls.server_error(error)
