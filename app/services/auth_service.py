import uuid
from datetime import datetime, timedelta

from jose import jwt
from sqlalchemy.orm import Session

from app.config import settings
from app.models.user import User
from app.models.user_session import UserSession


def create_access_token(db: Session, user: User, expires_minutes: int | None = None) -> str:
    """Mint a bearer token for ``user`` and record the session it belongs to."""
    expires_at = datetime.utcnow() + timedelta(
        minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES
    )
    jti = uuid.uuid4().hex
    payload = {
        "sub": user.email,
        "jti": jti,
        "type": "access",
        "role": user.role,
        "exp": expires_at,
    }
    token = jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.ALGORITHM)
    db.add(UserSession(user_id=user.id, jti=jti, expires_at=expires_at))
    db.commit()
    return token


def revoke_session(db: Session, session: UserSession) -> None:
    session.is_active = False
    session.revoked_at = datetime.utcnow()
    db.commit()
