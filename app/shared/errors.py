"""Typed HTTP errors raised by services and rendered by the handler in main.py"""

from typing import Optional

from fastapi import HTTPException


class AppError(HTTPException):
    """Base error carrying a stable machine-readable kind"""

    http_status = 500
    kind = "internal_error"
    default_detail = "Internal server error"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(status_code=self.http_status, detail=detail or self.default_detail)


class NotFoundError(AppError):
    http_status = 404
    kind = "not_found"
    default_detail = "Resource not found"


class BadRequestError(AppError):
    http_status = 400
    kind = "bad_request"
    default_detail = "Bad request"


class UnauthorizedError(AppError):
    http_status = 401
    kind = "unauthorized"
    default_detail = "Not authenticated"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail)
        self.headers = {"WWW-Authenticate": "Bearer"}


class ForbiddenError(AppError):
    http_status = 403
    kind = "forbidden"
    default_detail = "You do not have access to this resource"


class ConflictError(AppError):
    http_status = 409
    kind = "conflict"
    default_detail = "Resource conflict"
