"""Typed errors raised by the service layer.

Each error is an ``HTTPException`` so routers can let it propagate untouched;
FastAPI renders it with the matching status code.
"""
from fastapi import HTTPException, status


class GroupworkError(HTTPException):
    """Base class."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, detail: str):
        super().__init__(status_code=type(self).status_code, detail=detail)


class NotFoundError(GroupworkError):
    status_code = status.HTTP_404_NOT_FOUND


class ForbiddenError(GroupworkError):
    status_code = status.HTTP_403_FORBIDDEN


class ConflictError(GroupworkError):
    status_code = status.HTTP_409_CONFLICT


class CapacityExceededError(ConflictError):
    pass


class ValidationError(GroupworkError):
    status_code = 422


class StorageError(GroupworkError):
    pass
