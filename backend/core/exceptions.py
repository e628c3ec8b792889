"""Typed failures of the points economy.

Every engine operation either returns a result or raises exactly one of these.
They subclass ``HTTPException`` so routers need no translation layer, and each
carries a ``kind`` (stable machine name) and a ``category``:

- ``precondition``: deterministic rejection, the caller can't do this
- ``conflict``: a race was resolved against the caller, or a limit ran out
- ``not_found``: the referenced row does not exist
- ``consistency``: the transaction was rolled back as a whole; retry later
"""
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
import logging

logger = logging.getLogger(__name__)

PRECONDITION = "precondition"
CONFLICT = "conflict"
NOT_FOUND = "not_found"
CONSISTENCY = "consistency"


class PointsError(HTTPException):
    status_code = 400
    kind = "error"
    category = PRECONDITION
    default_message = "Request could not be processed"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(status_code=self.status_code, detail=self.message)

    def to_dict(self) -> dict:
        return {
            "success": False,
            "error": self.kind,
            "category": self.category,
            "message": self.message,
        }


# Precondition errors
class InvalidState(PointsError):
    kind = "InvalidState"
    default_message = "Operation not allowed in the current state"


class MissingRequiredMedia(PointsError):
    kind = "MissingRequiredMedia"
    status_code = 422
    default_message = "This task requires a screenshot"


class RewardInactive(PointsError):
    kind = "RewardInactive"
    default_message = "This reward is no longer available"


class InvalidCode(PointsError):
    kind = "InvalidCode"
    default_message = "Invalid referral code"


class SelfReferral(PointsError):
    kind = "SelfReferral"
    default_message = "You cannot use your own referral code"


class TaskUnavailable(PointsError):
    kind = "TaskUnavailable"
    default_message = "This task has expired and is no longer available"


# Conflict errors
class ConflictError(PointsError):
    status_code = 409
    category = CONFLICT


class AlreadyStarted(ConflictError):
    kind = "AlreadyStarted"
    default_message = "Task already started"


class AlreadyReviewed(ConflictError):
    kind = "AlreadyReviewed"
    default_message = "Submission has already been reviewed"


class AlreadyReferred(ConflictError):
    kind = "AlreadyReferred"
    default_message = "You have already used a referral code"


class OutOfStock(ConflictError):
    kind = "OutOfStock"
    default_message = "Reward is out of stock"


class InsufficientBalance(ConflictError):
    kind = "InsufficientBalance"
    default_message = "Insufficient points"


class NotFound(PointsError):
    status_code = 404
    kind = "NotFound"
    category = NOT_FOUND
    default_message = "Not found"


class OperationFailed(PointsError):
    status_code = 500
    kind = "OperationFailed"
    category = CONSISTENCY
    default_message = "Operation failed, no changes were applied. Please retry."


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(PointsError)
    async def _points_error_handler(request: Request, exc: PointsError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    # Global exception handler to ensure 500s for unexpected errors
    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error at {request.url.path}: {exc}")
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "OperationFailed", "category": CONSISTENCY, "message": "Internal server error"},
        )
