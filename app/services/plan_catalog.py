from datetime import datetime
from decimal import Decimal

from sqlalchemy.orm import Session

from app.models.plan import Plan
from app.models.subscription import Subscription, SubscriptionStatus
from app.services.errors import PlanInUse, PlanNotFound, ValidationError

MIN_DURATION_MONTHS = 1
MAX_DURATION_MONTHS = 36


def get_plan(db: Session, plan_id: int, include_deleted: bool = False) -> Plan:
    query = db.query(Plan).filter(Plan.id == plan_id)
    if not include_deleted:
        query = query.filter(Plan.deleted_at.is_(None))
    plan = query.first()
    if not plan:
        raise PlanNotFound()
    return plan


def list_plans(db: Session, include_deleted: bool = False) -> list[Plan]:
    query = db.query(Plan)
    if not include_deleted:
        query = query.filter(Plan.deleted_at.is_(None))
    return query.order_by(Plan.price.asc(), Plan.id.asc()).all()


def _clean_features(features) -> list[str]:
    return [feature.strip() for feature in features or [] if feature and feature.strip()]


def _validated_fields(name: str, duration_months: int, price) -> tuple[str, int, Decimal]:
    cleaned_name = (name or "").strip()
    if not cleaned_name:
        raise ValidationError("Plan name is required")
    if not MIN_DURATION_MONTHS <= duration_months <= MAX_DURATION_MONTHS:
        raise ValidationError("Duration must be between 1 and 36 months")
    amount = Decimal(str(price))
    if amount < 0:
        raise ValidationError("Price cannot be negative")
    return cleaned_name, duration_months, amount


def _count_subscriptions(db: Session, plan_id: int, status: str | None = None) -> int:
    query = db.query(Subscription).filter(Subscription.plan_id == plan_id)
    if status:
        query = query.filter(Subscription.status == status)
    return query.count()


def create_plan(db: Session, name: str, duration_months: int, price, features, created_by: int | None) -> Plan:
    name, duration_months, price = _validated_fields(name, duration_months, price)
    plan = Plan(
        name=name,
        duration_months=duration_months,
        price=price,
        features=_clean_features(features),
        created_by=created_by,
    )
    db.add(plan)
    db.flush()
    return plan


def update_plan(db: Session, plan_id: int, name: str, duration_months: int, price, features) -> Plan:
    plan = get_plan(db, plan_id, include_deleted=True)
    name, duration_months, price = _validated_fields(name, duration_months, price)
    if _count_subscriptions(db, plan.id, SubscriptionStatus.active.value):
        raise PlanInUse("Cannot modify plan: Active subscriptions exist")
    plan.name = name
    plan.duration_months = duration_months
    plan.price = price
    plan.features = _clean_features(features)
    db.flush()
    return plan


def deactivate_plan(db: Session, plan_id: int) -> Plan:
    plan = get_plan(db, plan_id, include_deleted=True)
    if _count_subscriptions(db, plan.id, SubscriptionStatus.active.value):
        raise PlanInUse("Cannot deactivate plan: Active subscriptions exist")
    plan.deleted_at = datetime.utcnow()
    db.flush()
    return plan


def activate_plan(db: Session, plan_id: int) -> Plan:
    plan = get_plan(db, plan_id, include_deleted=True)
    plan.deleted_at = None
    db.flush()
    return plan


def delete_plan(db: Session, plan_id: int) -> None:
    plan = get_plan(db, plan_id, include_deleted=True)
    if _count_subscriptions(db, plan.id):
        raise PlanInUse("Cannot delete plan: Subscriptions exist")
    db.delete(plan)
    db.flush()
