from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.models.user import User, UserRole
from app.models.user_session import UserSession
from app.services.actor import STAFF_ROLES, Actor


def _get_auth_context(token: str, db: Session):
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    email = payload.get("sub")
    jti = payload.get("jti")
    token_type = payload.get("type") or "access"
    if not email or not jti:
        raise HTTPException(status_code=401, detail="Invalid token payload")
    if token_type != "access":
        raise HTTPException(status_code=401, detail="Invalid token type")

    session = db.query(UserSession).filter(
        UserSession.jti == jti,
        UserSession.is_active == True
    ).first()

    if not session:
        raise HTTPException(status_code=401, detail="Session expired or logged out")

    user = db.query(User).filter(User.email == email, User.is_active == True).first()

    if not user or user.id != session.user_id:
        raise HTTPException(status_code=404, detail="User not found or inactive")

    return {"user": user, "session": session, "payload": payload}


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(settings.bearer_scheme),
    db: Session = Depends(get_db)
):
    token = credentials.credentials
    auth_context = _get_auth_context(token, db)
    return auth_context["user"]


def get_current_actor(user: User = Depends(get_current_user)) -> Actor:
    return Actor.from_user(user)


def require_roles(*roles: str):
    def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if not actor.has_role(*roles):
            raise HTTPException(status_code=403, detail="You are not allowed to perform this action")
        return actor

    return dependency


get_current_staff = require_roles(*STAFF_ROLES)
get_current_admin = require_roles(UserRole.admin.value)


def get_current_session(
    credentials: HTTPAuthorizationCredentials = Depends(settings.bearer_scheme),
    db: Session = Depends(get_db)
):
    token = credentials.credentials
    context = _get_auth_context(token, db)
    context["token"] = token
    context["db"] = db
    return context
