import logging
from datetime import date

from sqlalchemy.orm import Session

from app.models.subscription import Subscription, SubscriptionStatus
from app.models.user import User, UserRole
from app.services import plan_catalog
from app.services.errors import (
    ActiveSubscriptionProtected,
    DuplicateActiveSubscription,
    MemberNotFound,
    MemberNotVerified,
    PendingSubscriptionExists,
    SubscriptionNotFound,
)
from app.utils.dates import add_months

logger = logging.getLogger(__name__)

BLOCKING_STATUSES = (SubscriptionStatus.pending.value, SubscriptionStatus.active.value)


def _lock_member(db: Session, user_id: int) -> User:
    # Serialises concurrent purchases by the same member on databases with row locks
    member = (
        db.query(User)
        .filter(User.id == user_id, User.role == UserRole.member.value, User.is_active == True)
        .with_for_update()
        .first()
    )
    if not member:
        raise MemberNotFound()
    return member


def find_blocking_subscription(db: Session, user_id: int, today: date) -> Subscription | None:
    return (
        db.query(Subscription)
        .filter(
            Subscription.user_id == user_id,
            Subscription.status.in_(BLOCKING_STATUSES),
            Subscription.end_date >= today,
        )
        .first()
    )


def create(db: Session, user_id: int, plan_id: int, today: date | None = None) -> Subscription:
    today = today or date.today()
    plan = plan_catalog.get_plan(db, plan_id)
    _lock_member(db, user_id)

    if find_blocking_subscription(db, user_id, today):
        raise DuplicateActiveSubscription()

    subscription = Subscription(
        user_id=user_id,
        plan_id=plan.id,
        start_date=today,
        end_date=add_months(today, plan.duration_months),
        status=SubscriptionStatus.pending.value,
        amount=plan.price,
        duration_months=plan.duration_months,
    )
    db.add(subscription)
    db.flush()
    return subscription


def get(db: Session, subscription_id: int, for_update: bool = False) -> Subscription:
    query = db.query(Subscription).filter(Subscription.id == subscription_id)
    if for_update:
        query = query.with_for_update().populate_existing()
    subscription = query.first()
    if not subscription:
        raise SubscriptionNotFound()
    return subscription


def list_for_user(db: Session, user_id: int) -> list[Subscription]:
    return (
        db.query(Subscription)
        .filter(Subscription.user_id == user_id)
        .order_by(Subscription.created_at.desc(), Subscription.id.desc())
        .all()
    )


def renew(db: Session, member_id: int) -> dict:
    """Check a member may start a new subscription and point at the purchase flow.

    Nothing is written; the caller follows the redirect to create the
    subscription for the member.
    """
    member = (
        db.query(User)
        .filter(User.id == member_id, User.role == UserRole.member.value, User.is_active == True)
        .first()
    )
    if not member:
        raise MemberNotFound()
    if not member.is_verified:
        raise MemberNotVerified()

    pending = (
        db.query(Subscription.id)
        .filter(Subscription.user_id == member_id, Subscription.status == SubscriptionStatus.pending.value)
        .first()
    )
    if pending:
        raise PendingSubscriptionExists()
    return {"member_id": member_id, "redirect": f"/subscriptions/admin?member_id={member_id}"}


def delete(db: Session, subscription_id: int) -> None:
    subscription = get(db, subscription_id, for_update=True)
    if subscription.status == SubscriptionStatus.active.value:
        raise ActiveSubscriptionProtected()

    removed = len(subscription.payments)
    # payments go first through the relationship cascade
    db.delete(subscription)
    db.flush()
    logger.info("Deleted subscription id=%s with %s payment(s)", subscription_id, removed)


def expire_lapsed(db: Session, today: date | None = None) -> int:
    today = today or date.today()
    expired = (
        db.query(Subscription)
        .filter(
            Subscription.status == SubscriptionStatus.active.value,
            Subscription.end_date < today,
        )
        .update({Subscription.status: SubscriptionStatus.expired.value}, synchronize_session=False)
    )
    db.flush()
    return expired
