import logging

from fastapi import HTTPException, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import ValidationError as SchemaValidationError

from app.services.results import OperationResult

logger = logging.getLogger(__name__)


def create_response(
    message: str,
    data=None,
    status_code: int = status.HTTP_200_OK,
    status_text: str | None = None
) -> JSONResponse:
    """Return a consistent API response payload and status code."""
    payload_status = status_text or ("success" if status_code < 400 else "error")
    encoded_data = jsonable_encoder(data)
    return JSONResponse(
        status_code=status_code,
        content={
            "message": message,
            "data": encoded_data,
            "status": payload_status,
            "status_code": status_code,
        },
    )


def result_response(result: OperationResult, data=None) -> JSONResponse:
    """Render a membership operation result in the shared envelope."""
    if not result.success:
        return create_response(
            result.message,
            {"error": result.error, "code": result.error_code},
            result.status_code,
            status_text="error",
        )
    return create_response(result.message, result.data if data is None else data, result.status_code)


def handle_exception(error: Exception, fallback_message: str = "Internal server error") -> JSONResponse:
    """Coerce raised errors into the shared response structure."""
    if isinstance(error, HTTPException):
        detail = error.detail if isinstance(error.detail, str) else str(error.detail)
        return create_response(detail, None, error.status_code, status_text="error")

    if isinstance(error, SchemaValidationError):
        issues = [
            {"field": ".".join(str(part) for part in issue["loc"]), "message": issue["msg"]}
            for issue in error.errors()
        ]
        return create_response(
            "Invalid request",
            {"error": "validation", "issues": issues},
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            status_text="error",
        )

    logger.exception("Unhandled error: %s", error)
    return create_response(fallback_message, None, status.HTTP_500_INTERNAL_SERVER_ERROR, status_text="error")
