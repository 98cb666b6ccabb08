"""
Exception hierarchy for PrintFlow.

PrintFlowError
├── JobValidationError       : bad print parameters / page range / batch shape
├── StateConflictError       : precondition failed, caller's view is stale
│   ├── InvalidStateTransition
│   ├── DuplicateReference
│   └── AmountMismatch
├── NotAuthorized            : job exists but the caller may not act on it
├── NotFoundError
│   ├── JobNotFound
│   └── VendorNotFound
├── ServiceClosed            : vendor is not accepting uploads
└── CollaboratorError
    ├── BlobStoreError
    ├── PaymentGatewayError
    └── PaymentVerificationFailed

Each exception knows its HTTP status and a machine-readable code; the API
layer renders them without further branching.
"""

from __future__ import annotations

from typing import Any


class PrintFlowError(Exception):
    """Base class for all PrintFlow exceptions."""

    status_code: int = 500
    code: str = "printflow_error"

    def __init__(self, message: str = "") -> None:
        self.message = message or self.__class__.__name__
        super().__init__(self.message)

    def details(self) -> dict[str, Any]:
        """Extra fields safe to expose to the caller."""
        return {}

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message, **self.details()}


class JobValidationError(PrintFlowError):
    """
    Rejected before any persistent mutation; user-correctable.

    ``errors`` maps a field or file label to its message.
    """

    status_code = 400
    code = "validation_error"

    def __init__(self, message: str, errors: dict[str, str] | None = None) -> None:
        self.errors = errors or {}
        super().__init__(message)

    def details(self) -> dict[str, Any]:
        return {"errors": self.errors} if self.errors else {}


class StateConflictError(PrintFlowError):
    status_code = 409
    code = "state_conflict"


class InvalidStateTransition(StateConflictError):
    code = "invalid_state_transition"

    def __init__(self, job_id: str, current_status: str, target_status: str) -> None:
        self.job_id = job_id
        self.current_status = str(current_status)
        self.target_status = str(target_status)
        super().__init__(
            f"Job {job_id} cannot move from '{self.current_status}' to '{self.target_status}'"
        )

    def details(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "current_status": self.current_status,
            "target_status": self.target_status,
        }


class DuplicateReference(StateConflictError):
    """The reference already admitted another batch; this batch is untouched."""

    code = "duplicate_reference"

    def __init__(self, reference: str, batch_id: str, job_id: str, current_status: str) -> None:
        self.reference = reference
        self.batch_id = batch_id
        self.job_id = job_id
        self.current_status = str(current_status)
        super().__init__("This payment reference has already been used")

    def details(self) -> dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "job_id": self.job_id,
            "current_status": self.current_status,
        }


class AmountMismatch(StateConflictError):
    code = "amount_mismatch"

    def __init__(
        self,
        expected: int,
        submitted: int,
        batch_id: str,
        job_id: str,
        current_status: str,
    ) -> None:
        self.expected = expected
        self.submitted = submitted
        self.batch_id = batch_id
        self.job_id = job_id
        self.current_status = str(current_status)
        super().__init__(f"Submitted amount {submitted} does not match amount due {expected}")

    def details(self) -> dict[str, Any]:
        return {
            "expected": self.expected,
            "submitted": self.submitted,
            "batch_id": self.batch_id,
            "job_id": self.job_id,
            "current_status": self.current_status,
        }


class NotAuthorized(PrintFlowError):
    status_code = 403
    code = "not_authorized"

    def __init__(self, message: str = "You are not allowed to act on this job") -> None:
        super().__init__(message)


class NotFoundError(PrintFlowError):
    status_code = 404
    code = "not_found"


class JobNotFound(NotFoundError):
    code = "job_not_found"

    def __init__(self, job_id: str | None = None) -> None:
        self.job_id = job_id
        super().__init__("Job not found")


class VendorNotFound(NotFoundError):
    code = "vendor_not_found"

    def __init__(self, vendor_id: str) -> None:
        self.vendor_id = vendor_id
        super().__init__("Vendor not found")


class ServiceClosed(PrintFlowError):
    status_code = 503
    code = "service_closed"

    def __init__(self, vendor_id: str) -> None:
        self.vendor_id = vendor_id
        super().__init__("This print shop is not accepting new jobs right now")

    def details(self) -> dict[str, Any]:
        return {"vendor_id": self.vendor_id}


class CollaboratorError(PrintFlowError):
    status_code = 502
    code = "collaborator_error"

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        self.cause = cause
        super().__init__(message)


class BlobStoreError(CollaboratorError):
    code = "blob_store_error"


class PaymentGatewayError(CollaboratorError):
    code = "payment_gateway_error"


class PaymentVerificationFailed(CollaboratorError):
    """Gateway rejected the callback; treated as an unsuccessful payment."""

    status_code = 400
    code = "payment_verification_failed"

    def __init__(self, message: str = "Payment verification failed") -> None:
        super().__init__(message)
