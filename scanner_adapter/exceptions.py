"""
Custom exceptions for the scanner adapter.

Errors raised by HTTP handlers carry the status code they map to and are turned
into the ``{"message": ...}`` error envelope by a single exception handler.
Errors raised by collaborators (queue, store, Trivy) keep the original
exception so the handlers can embed its text in the response message.
"""

from typing import Optional


class AdapterError(Exception):
    """Base exception for errors answered to the client."""

    http_code = 500

    def __init__(self, message: str, http_code: Optional[int] = None):
        """
        Initialize the adapter error.

        Args:
            message: Message sent to the client
            http_code: HTTP status code overriding the class default
        """
        super().__init__(message)
        self.message = message
        if http_code is not None:
            self.http_code = http_code


class BadRequestError(AdapterError):
    http_code = 400


class NotFoundError(AdapterError):
    http_code = 404


class UnsupportedMediaTypeError(AdapterError):
    http_code = 415


class InternalServerError(AdapterError):
    http_code = 500


class ServiceError(Exception):
    """Base exception class for errors raised outside the HTTP handlers."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        """
        Initialize the service error.

        Args:
            message: Error message describing what went wrong
            original_error: The original exception that caused this error
        """
        super().__init__(message)
        self.original_error = original_error

    def __str__(self) -> str:
        if self.original_error:
            return f"{super().__str__()}: {self.original_error}"
        return super().__str__()


class EnqueueError(ServiceError):
    """Exception raised when a scan job cannot be dispatched to the workers."""


class StoreError(ServiceError):
    """Exception raised by scan job persistence."""


class InvalidTransitionError(StoreError):
    """Exception raised when a scan job status would move backwards."""

    def __init__(self, job_id: str, current: str, requested: str):
        self.job_id = job_id
        self.current = current
        self.requested = requested
        super().__init__(f"scan job {job_id} cannot move from {current} to {requested}")


class WrapperError(ServiceError):
    """Exception raised when the Trivy CLI fails or returns unexpected output."""


class ConfigError(ServiceError):
    """Exception raised for invalid configuration values."""
