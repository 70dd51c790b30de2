"""Typed errors raised by the job workflow services.

Every error carries a machine-readable ``code`` and the HTTP status the
routers answer with. Routers catch ``JobWorkflowError`` and translate it;
services never build HTTP responses themselves.
"""

from __future__ import annotations


class JobWorkflowError(ValueError):
    code = 'WORKFLOW_ERROR'
    status_code = 400

    def __init__(self, message: str, **details) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_detail(self) -> dict:
        detail = {'error': self.code, 'message': self.message}
        if self.details:
            detail['details'] = self.details
        return detail


class NotFoundError(JobWorkflowError):
    code = 'NOT_FOUND'
    status_code = 404


class AlreadyCompleteError(JobWorkflowError):
    code = 'ALREADY_COMPLETE'
    status_code = 409


class NotCheckedError(JobWorkflowError):
    code = 'NOT_CHECKED'
    status_code = 409


class ItemLockedError(JobWorkflowError):
    code = 'ITEM_LOCKED'
    status_code = 409


class InvalidSplitQuantityError(JobWorkflowError):
    code = 'INVALID_SPLIT_QUANTITY'
    status_code = 400


class NotSplittableError(JobWorkflowError):
    code = 'NOT_SPLITTABLE'
    status_code = 409


class ItemValidationError(JobWorkflowError):
    code = 'VALIDATION_ERROR'
    status_code = 422


class ConcurrencyFailureError(JobWorkflowError):
    """The data store rejected or lost the transaction; the caller may retry."""

    code = 'CONCURRENCY_FAILURE'
    status_code = 503
