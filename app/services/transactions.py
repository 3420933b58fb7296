import logging
from typing import Any, Callable

from fastapi import status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.services.errors import DependencyError, MembershipError
from app.services.results import OperationResult

logger = logging.getLogger(__name__)


def run_operation(
    db: Session,
    name: str,
    operation: Callable[[], Any],
    success_message: str | Callable[[Any], str],
    success_status: int = status.HTTP_200_OK,
) -> OperationResult:
    """Run ``operation`` as one transaction and report a tagged result.

    Business errors roll back and come back as failures carrying their own
    message. Infrastructure errors roll back, get logged with a traceback,
    and come back with a generic message.
    """
    try:
        data = operation()
        db.commit()
    except DependencyError as exc:
        db.rollback()
        logger.error("%s aborted: %s (%s)", name, exc.message, exc.code)
        failure = OperationResult.fail(DependencyError())
        failure.error_code = exc.code
        return failure
    except MembershipError as exc:
        db.rollback()
        logger.info("%s refused: %s (%s)", name, exc.message, exc.code)
        return OperationResult.fail(exc)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("%s failed on a database error", name)
        return OperationResult.fail(DependencyError())

    message = success_message(data) if callable(success_message) else success_message
    return OperationResult.ok(message, data, status_code=success_status)
