from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Optional
import logging

from .observability import REQUEST_ID_HEADER, get_request_id, log_ctx, log_ctx_json

logger = logging.getLogger("streakly-errors")


class StreakError(Exception):
    def __init__(self, code: str, message: str, status_code: int = 400, details: Optional[dict] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}


class AlreadyCheckedIn(StreakError):
    def __init__(self, details: Optional[dict] = None):
        super().__init__(
            code="ALREADY_CHECKED_IN",
            message="Already checked in today",
            status_code=409,
            details=details,
        )


class NothingToUndo(StreakError):
    def __init__(self, details: Optional[dict] = None):
        super().__init__(
            code="NOTHING_TO_UNDO",
            message="No check-in to undo for this day",
            status_code=409,
            details=details,
        )


class CheckInOutOfOrder(StreakError):
    def __init__(self, details: Optional[dict] = None):
        super().__init__(
            code="CHECK_IN_OUT_OF_ORDER",
            message="Check-in day is earlier than the last check-in",
            status_code=409,
            details=details,
        )


class HabitNotFound(StreakError):
    def __init__(self, details: Optional[dict] = None):
        super().__init__(
            code="HABIT_NOT_FOUND",
            message="Habit not found",
            status_code=404,
            details=details,
        )


class NotAuthorized(StreakError):
    def __init__(self, details: Optional[dict] = None):
        super().__init__(
            code="NOT_AUTHORIZED",
            message="Habit belongs to another user",
            status_code=403,
            details=details,
        )


def setup_error_handlers(app: FastAPI):
    def _json_error_response(request: Request, status_code: int, content: dict) -> JSONResponse:
        response = JSONResponse(status_code=status_code, content=content)
        request_id = get_request_id(request)
        if request_id:
            response.headers[REQUEST_ID_HEADER] = request_id
        return response

    @app.exception_handler(StreakError)
    async def streak_error_handler(request: Request, exc: StreakError):
        return _json_error_response(
            request=request,
            status_code=exc.status_code,
            content={
                "error": {
                    "code": exc.code,
                    "message": exc.message,
                    "details": exc.details,
                }
            },
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        field_errors = []
        for error in exc.errors():
            field_errors.append({
                "field": ".".join(str(p) for p in error["loc"]),
                "issue": error["msg"]
            })

        return _json_error_response(
            request=request,
            status_code=400,
            content={
                "error": {
                    "code": "VALIDATION_FAILED",
                    "message": "Invalid request data",
                    "details": {"fieldErrors": field_errors},
                }
            },
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        code = "INTERNAL_ERROR"
        if exc.status_code == 401:
            code = "UNAUTHORIZED"
        elif exc.status_code == 404:
            code = "NOT_FOUND"
        elif exc.status_code == 405:
            code = "METHOD_NOT_ALLOWED"

        return _json_error_response(
            request=request,
            status_code=exc.status_code,
            content={
                "error": {
                    "code": code,
                    "message": exc.detail if isinstance(exc.detail, str) else "Error",
                    "details": {},
                }
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(
            "Unhandled exception context=%s",
            log_ctx_json(log_ctx(request, extra={"status_code": 500})),
            exc_info=True,
        )
        return _json_error_response(
            request=request,
            status_code=500,
            content={
                "error": {
                    "code": "INTERNAL_ERROR",
                    "message": "Internal server error",
                    "details": {},  # Do not leak internal details in production
                }
            },
        )
