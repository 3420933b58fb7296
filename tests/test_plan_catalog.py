from datetime import date
from decimal import Decimal

import pytest

from app.models.plan import Plan
from app.models.subscription import Subscription, SubscriptionStatus
from app.services import plan_catalog
from app.services.errors import PlanInUse, PlanNotFound, ValidationError


def _attach_subscription(db, member, plan, status):
    subscription = Subscription(
        user_id=member.id,
        plan_id=plan.id,
        start_date=date(2024, 1, 1),
        end_date=date(2024, 2, 1),
        status=status,
        amount=plan.price,
        duration_months=plan.duration_months,
    )
    db.add(subscription)
    db.commit()
    return subscription


def test_create_plan_cleans_input(db, admin):
    plan = plan_catalog.create_plan(db, "  Student Pass ", 2, "900", ["Gym floor", " ", "Sauna "], admin.id)
    db.commit()

    assert plan.name == "Student Pass"
    assert plan.price == Decimal("900")
    assert plan.features == ["Gym floor", "Sauna"]
    assert plan.created_by == admin.id


@pytest.mark.parametrize(
    "name,duration,price,message",
    [
        ("", 1, "100", "Plan name is required"),
        ("Short", 0, "100", "Duration must be between 1 and 36 months"),
        ("Long", 37, "100", "Duration must be between 1 and 36 months"),
        ("Refund", 1, "-1", "Price cannot be negative"),
    ],
)
def test_create_plan_rejects_invalid_fields(db, name, duration, price, message):
    with pytest.raises(ValidationError) as excinfo:
        plan_catalog.create_plan(db, name, duration, price, [], None)

    assert excinfo.value.message == message


def test_list_plans_hides_deactivated_and_orders_by_price(db, make_plan):
    annual = make_plan(price="12000.00", duration_months=12, name="Annual")
    monthly = make_plan(price="1200.00", name="Monthly")
    retired = make_plan(price="500.00", name="Trial")
    plan_catalog.deactivate_plan(db, retired.id)
    db.commit()

    assert [plan.id for plan in plan_catalog.list_plans(db)] == [monthly.id, annual.id]
    assert [plan.id for plan in plan_catalog.list_plans(db, include_deleted=True)] == [
        retired.id,
        monthly.id,
        annual.id,
    ]


def test_deactivated_plan_is_hidden_until_reactivated(db, make_plan):
    plan = make_plan()
    plan_catalog.deactivate_plan(db, plan.id)
    db.commit()

    with pytest.raises(PlanNotFound):
        plan_catalog.get_plan(db, plan.id)

    plan_catalog.activate_plan(db, plan.id)
    db.commit()
    assert plan_catalog.get_plan(db, plan.id).deleted_at is None


def test_plan_with_active_subscription_cannot_change(db, member, make_plan):
    plan = make_plan()
    _attach_subscription(db, member, plan, SubscriptionStatus.active.value)

    with pytest.raises(PlanInUse):
        plan_catalog.update_plan(db, plan.id, "Renamed", 2, "1500", [])
    with pytest.raises(PlanInUse):
        plan_catalog.deactivate_plan(db, plan.id)


def test_price_change_leaves_existing_subscriptions_alone(db, member, make_plan):
    plan = make_plan(price="1200.00")
    subscription = _attach_subscription(db, member, plan, SubscriptionStatus.pending.value)

    plan_catalog.update_plan(db, plan.id, "Monthly Access", 1, "1500.00", ["Gym floor access"])
    db.commit()
    db.refresh(subscription)

    assert db.get(Plan, plan.id).price == Decimal("1500.00")
    assert subscription.amount == Decimal("1200.00")


def test_delete_plan_with_history_is_refused(db, member, make_plan):
    plan = make_plan()
    _attach_subscription(db, member, plan, SubscriptionStatus.expired.value)

    with pytest.raises(PlanInUse):
        plan_catalog.delete_plan(db, plan.id)


def test_delete_unused_plan(db, make_plan):
    plan = make_plan()

    plan_catalog.delete_plan(db, plan.id)
    db.commit()

    assert db.query(Plan).count() == 0


def test_missing_plan(db):
    with pytest.raises(PlanNotFound):
        plan_catalog.get_plan(db, 404, include_deleted=True)
