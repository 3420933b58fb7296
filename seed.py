import logging
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError

from app.config import settings
from app.database import SessionLocal
from app.models.plan import Plan
from app.models.user import User, UserRole

logger = logging.getLogger(__name__)

DEFAULT_PLANS = [
    {
        "name": "Monthly Access",
        "duration_months": 1,
        "price": Decimal("1200.00"),
        "features": ["Gym floor access", "Locker room"],
    },
    {
        "name": "Quarterly Strength",
        "duration_months": 3,
        "price": Decimal("3300.00"),
        "features": ["Gym floor access", "Locker room", "One coaching session per month"],
    },
    {
        "name": "Annual Unlimited",
        "duration_months": 12,
        "price": Decimal("12000.00"),
        "features": ["Gym floor access", "Locker room", "Group classes", "Quarterly body assessment"],
    },
]


def seed_admin(db) -> User | None:
    if db.query(User).filter(User.role == UserRole.admin.value).count():
        logger.info("Admin account already present, skipping seeding.")
        return None
    admin_user = User(
        email=settings.SEED_ADMIN_EMAIL,
        full_name=settings.SEED_ADMIN_NAME,
        role=UserRole.admin.value,
        is_verified=True,
        is_active=True,
    )
    db.add(admin_user)
    db.flush()
    logger.info("Default admin %s seeded", admin_user.email)
    return admin_user


def seed_plans(db, created_by: int | None = None) -> int:
    if db.query(Plan).count():
        return 0
    for entry in DEFAULT_PLANS:
        db.add(Plan(created_by=created_by, **entry))
    db.flush()
    logger.info("Seeded %s default plans", len(DEFAULT_PLANS))
    return len(DEFAULT_PLANS)


def run_seed():
    db = SessionLocal()
    try:
        admin_user = seed_admin(db)
        if settings.SEED_DEFAULT_PLANS:
            seed_plans(db, created_by=admin_user.id if admin_user else None)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Seeding error")
    finally:
        db.close()


if __name__ == "__main__":
    run_seed()
