from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.models.user import User
from app.schemas.user import MemberResponse
from app.services.auth_middleware import get_current_session, get_current_user
from app.services.auth_service import revoke_session
from app.utils.response import create_response, handle_exception

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.get("/me")
def who_am_i(current_user: User = Depends(get_current_user)):
    try:
        return create_response(
            message="Current user fetched",
            data=MemberResponse.model_validate(current_user).model_dump(),
        )
    except Exception as exc:
        return handle_exception(exc)


@router.post("/logout")
def logout_user(auth_context=Depends(get_current_session)):
    try:
        session = auth_context["session"]
        db: Session = auth_context["db"]
        user: User = auth_context["user"]

        revoke_session(db, session)

        return create_response(
            message="Logout successful",
            data={"user_id": user.id, "session_id": session.id},
            status_code=status.HTTP_200_OK
        )
    except Exception as exc:
        return handle_exception(exc)
