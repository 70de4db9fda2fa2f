"""
Error types for the repair request workflow

Everything here is scoped to one user action and recoverable by retrying
or navigating away, nothing should take the process down.
"""

from typing import Dict, Optional


class RepairServiceError(Exception):
    """Base class for all repair workflow errors"""

    status_code: int = 400
    error_code: str = "repair_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class StepValidationError(RepairServiceError):
    # blocks the step transition, errors map is field -> message
    status_code = 422
    error_code = "validation_failed"

    def __init__(self, message: str, errors: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.errors = errors or {}


class WizardStateError(RepairServiceError):
    status_code = 409
    error_code = "invalid_wizard_state"


class SessionNotFoundError(RepairServiceError):
    status_code = 404
    error_code = "session_not_found"


class UploadError(RepairServiceError):
    status_code = 502
    error_code = "upload_error"


class FileTooLargeError(UploadError):
    # raised before any bytes leave the process
    status_code = 413
    error_code = "file_too_large"


class UploadFailedError(UploadError):
    error_code = "upload_failed"


class UploadCancelledError(UploadError):
    # not really a failure, callers show a neutral notice
    status_code = 200
    error_code = "upload_cancelled"

    def __init__(self, message: str = "Upload cancelled"):
        super().__init__(message)


class SchedulingConfirmationError(RepairServiceError):
    status_code = 502
    error_code = "scheduling_unconfirmed"


class PaymentError(RepairServiceError):
    error_code = "payment_error"


class RepairApiError(RepairServiceError):
    """Non-2xx response from the repair API, message is the server's"""

    error_code = "repair_api_error"

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.status_code = status_code


class SubmissionError(RepairServiceError):
    status_code = 502
    error_code = "submission_failed"

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.status_code = status_code


class DeleteGuardError(RepairServiceError):
    # refused locally, the delete is never sent
    status_code = 409
    error_code = "delete_not_allowed"
