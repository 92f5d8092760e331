"""
Unified exception hierarchy for the billing engine.

This module defines the exception hierarchy with BillingEngineError as the
base exception. These exceptions signal caller bugs (contract violations) or
unusable configuration; recoverable data-quality problems are reported
through ``data_quality.DataQualityLog`` instead of being raised.
"""

from typing import Optional


class BillingEngineError(Exception):
    """
    Base exception class for all billing engine errors.

    All custom exceptions in the library inherit from this class to enable
    unified error handling and consistent error messages.

    Attributes:
        message: Human-readable error message
        details: Optional dictionary with additional error context
        original_error: Optional original exception that caused this error
    """

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None,
        original_error: Optional[Exception] = None
    ) -> None:
        """
        Initialize BillingEngineError.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional error context
            original_error: Optional original exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.original_error = original_error

    def __str__(self) -> str:
        """Return string representation of the error."""
        msg = self.message
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            msg = f"{msg} ({detail_str})"
        return msg


class ConfigError(BillingEngineError):
    """Raised when configuration loading or validation fails."""
    pass


class ContractViolationError(BillingEngineError):
    """Raised when a caller passes arguments that break an operation's contract."""
    pass


class PayPeriodError(ContractViolationError):
    """Raised for impossible pay periods (end before start, negative counts)."""
    pass


class ProjectionError(BillingEngineError):
    """Raised when occurrence projection cannot be carried out."""
    pass


class AllocationError(BillingEngineError):
    """Raised when budget allocation receives unusable input."""
    pass
