from dataclasses import dataclass
from typing import Any

from fastapi import status

from app.services.errors import MembershipError


@dataclass
class OperationResult:
    """Tagged outcome returned by every membership operation."""

    success: bool
    message: str
    data: dict[str, Any] | None = None
    error: str | None = None
    error_code: str | None = None
    status_code: int = status.HTTP_200_OK

    @classmethod
    def ok(cls, message: str, data: dict[str, Any] | None = None, status_code: int = status.HTTP_200_OK):
        return cls(success=True, message=message, data=data, status_code=status_code)

    @classmethod
    def fail(cls, error: MembershipError):
        return cls(
            success=False,
            message=error.message,
            error=error.kind,
            error_code=error.code,
            status_code=error.status_code,
        )
