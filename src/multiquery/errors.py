from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    QUERY_VALIDATION_FAILED = "QUERY_VALIDATION_FAILED"
    QUERY_FILE_ERROR = "QUERY_FILE_ERROR"
    INVALID_CONFIGURATION = "INVALID_CONFIGURATION"
    CONNECTION_FAILED = "CONNECTION_FAILED"
    CONNECTION_TIMEOUT = "CONNECTION_TIMEOUT"
    DB_EXECUTION_ERROR = "DB_EXECUTION_ERROR"
    RENDER_CONTRACT_VIOLATION = "RENDER_CONTRACT_VIOLATION"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class MultiQueryError(Exception):
    """Base class for all errors raised by multiquery.

    Attributes:
        message (str): Human-readable description.
        error_code (ErrorCode): Standardized code for the failure.
    """

    error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR

    def __init__(self, message: str, error_code: Optional[ErrorCode] = None):
        super().__init__(message)
        self.message = message
        if error_code is not None:
            self.error_code = error_code


class ValidationError(MultiQueryError):
    """Raised when the query is not provably read-only. Fatal to the run."""
    error_code = ErrorCode.QUERY_VALIDATION_FAILED


class ConnectivityError(MultiQueryError):
    """Raised when an endpoint cannot be reached or authenticated."""
    error_code = ErrorCode.CONNECTION_FAILED

    def __init__(self, message: str, endpoint_id: Optional[str] = None, error_code: Optional[ErrorCode] = None):
        super().__init__(message, error_code)
        self.endpoint_id = endpoint_id


class ExecutionError(MultiQueryError):
    """Failure while running the guarded query on a reachable endpoint."""
    error_code = ErrorCode.DB_EXECUTION_ERROR


class RenderError(MultiQueryError):
    """Outcome data violates the columns/rows contract."""
    error_code = ErrorCode.RENDER_CONTRACT_VIOLATION


class ConfigurationError(MultiQueryError):
    """The environments file is missing, malformed or fails validation."""
    error_code = ErrorCode.INVALID_CONFIGURATION


class QueryFileError(MultiQueryError):
    """The query file is missing, empty or unreadable."""
    error_code = ErrorCode.QUERY_FILE_ERROR
