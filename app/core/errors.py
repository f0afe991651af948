from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse


class WorkflowError(ValueError):
    """Base class for business-rule failures raised by the service layer."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "bad_request"


class InvalidInputError(WorkflowError):
    code = "invalid_input"


class InvalidStateTransitionError(WorkflowError):
    code = "invalid_state_transition"


class PermissionDeniedError(WorkflowError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "permission_denied"


class NotFoundError(WorkflowError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class ConflictError(WorkflowError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


def error_body(message: str, code: str) -> dict[str, str]:
    return {"status": "error", "message": message, "code": code}


async def _workflow_error_handler(_: Request, exc: WorkflowError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=error_body(str(exc), exc.code))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(WorkflowError, _workflow_error_handler)  # type: ignore[arg-type]
