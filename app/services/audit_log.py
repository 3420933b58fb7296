import logging

from app.database import SessionLocal
from app.models.admin_log import AdminLog

logger = logging.getLogger(__name__)


def log_action(actor_id, action_type: str, target_id, description: str, session_factory=None) -> bool:
    """Write an audit row in its own session.

    Runs after the business transaction has committed; a failure here is
    logged and reported through the return value only.
    """
    db = (session_factory or SessionLocal)()
    try:
        db.add(
            AdminLog(
                actor_id=actor_id,
                action_type=action_type,
                target_id=target_id,
                description=description,
            )
        )
        db.commit()
        return True
    except Exception:
        db.rollback()
        logger.exception("Error logging admin action %s on target=%s", action_type, target_id)
        return False
    finally:
        db.close()


def recent_actions(db, action_type: str | None = None, limit: int = 50):
    query = db.query(AdminLog)
    if action_type:
        query = query.filter(AdminLog.action_type == action_type)
    return query.order_by(AdminLog.created_at.desc(), AdminLog.id.desc()).limit(limit).all()
