# custom exceptions for the khata pipeline

from typing import Optional, Dict, Any

# main class, every pipeline failure is one of these

class KhataError(Exception):

    def __init__(
        self,
        message: str,
        error_code: str = "KHATA_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

# zero images or too many images, raised before any network call
class InputRejectedError(KhataError):

    def __init__(self, message: str):
        super().__init__(
            message=message,
            error_code="INPUT_REJECTED"
        )

# file size exceeds
class FileTooLargeError(KhataError):

    def __init__(self, message: str):
        super().__init__(
            message=message,
            error_code="FILE_TOO_LARGE"
        )

# when file type does not meet our defined types
class InvalidFileTypeError(KhataError):

    def __init__(self, message: str):
        super().__init__(
            message=message,
            error_code="INVALID_FILE_TYPE"
        )

# errors occurs during image decoding
class FileProcessingError(KhataError):

    def __init__(self, message: str):
        super().__init__(
            message=message,
            error_code="FILE_PROCESSING_ERROR"
        )

# provider not configured or unreachable

class LLMConnectionError(KhataError):

    def __init__(self, message: str):
        super().__init__(
            message=message,
            error_code="LLM_CONNECTION_ERROR"
        )

# circuit breaker is open

class ServiceUnavailableError(LLMConnectionError):

    def __init__(self, message: str):
        super().__init__(message)
        self.error_code = "SERVICE_UNAVAILABLE"

# every model call of a run failed

class LLMExtractionError(KhataError):

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code="LLM_EXTRACTION_ERROR",
            details=details
        )

# model answered but no reply could be parsed, raw text goes in details

class ResponseRecoveryError(KhataError):

    def __init__(self, message: str, raw_responses: Optional[list] = None, warnings: Optional[list] = None):
        super().__init__(
            message=message,
            error_code="RESPONSE_RECOVERY_ERROR",
            details={"raw_responses": raw_responses or [], "warnings": warnings or []}
        )

    @property
    def raw_responses(self) -> list:
        return self.details.get("raw_responses", [])

# rate limit exception handler

class RateLimitError(KhataError):

    def __init__(self, message: str = "Rate limit exceeded. Please try again later."):
        super().__init__(
            message=message,
            error_code="RATE_LIMIT_EXCEEDED"
        )


class InvalidTransitionError(KhataError):

    def __init__(self, current: str, target: str):
        super().__init__(
            message=f"Cannot move from '{current}' to '{target}'",
            error_code="INVALID_TRANSITION",
            details={"current": current, "target": target}
        )


class RowNotFoundError(KhataError):

    def __init__(self, index: int):
        super().__init__(
            message=f"Row {index} does not exist",
            error_code="ROW_NOT_FOUND",
            details={"index": index}
        )


class SessionNotFoundError(KhataError):

    def __init__(self, session_id: str):
        super().__init__(
            message=f"Review session '{session_id}' not found",
            error_code="SESSION_NOT_FOUND",
            details={"session_id": session_id}
        )


class StudentCreationError(KhataError):

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code="STUDENT_CREATION_ERROR",
            details=details
        )


class StorageError(KhataError):

    def __init__(self, message: str):
        super().__init__(
            message=message,
            error_code="STORAGE_ERROR"
        )
