"""Public operations of the subscription and payment workflow.

Every function takes an explicit session and the acting user, runs as one
transaction, and returns an ``OperationResult``. Audit entries are written
only after a successful commit.
"""

import logging
from datetime import date

from fastapi import status
from sqlalchemy.orm import Session

from app.models.payment import PaymentMethod
from app.models.user import UserRole
from app.schemas.payment import PaymentSubmission
from app.services import payment_ledger, subscription_ledger, verification_engine
from app.services.actor import STAFF_ROLES, Actor
from app.services.audit_log import log_action
from app.services.errors import AuthorizationError, ValidationError
from app.services.results import OperationResult
from app.services.transactions import run_operation

logger = logging.getLogger(__name__)

DEFAULT_REJECTION_REASON = "Payment rejected by staff"


def _require(actor: Actor, *roles: str) -> OperationResult | None:
    if actor.has_role(*roles):
        return None
    logger.warning("User %s with role=%s denied; needs one of %s", actor.id, actor.role, roles)
    return OperationResult.fail(AuthorizationError())


def _created_message(data: dict) -> str:
    method = data["payment_method"]
    if method == PaymentMethod.cash.value:
        return "Subscription created successfully. Please proceed to the gym to make the cash payment."
    return "Subscription created successfully. Please wait for payment verification."


def create_subscription(
    db: Session,
    actor: Actor,
    user_id: int,
    plan_id: int,
    payment: PaymentSubmission,
    today: date | None = None,
) -> OperationResult:
    """Open a pending subscription together with its first payment.

    Both rows are written in the same transaction, so a subscription is
    never committed without a payment. Members buy for themselves; staff
    may open one on a member's behalf, typically with a cash payment taken
    at the desk and verified afterwards.
    """
    denied = _require(actor, UserRole.member.value, *STAFF_ROLES)
    if denied:
        return denied
    if actor.role == UserRole.member.value and user_id != actor.id:
        return OperationResult.fail(AuthorizationError("Members can only subscribe for themselves"))
    if payment is None:
        return OperationResult.fail(ValidationError("Payment details are required"))

    def operation():
        subscription = subscription_ledger.create(db, user_id, plan_id, today=today)
        created = payment_ledger.create(
            db,
            subscription_id=subscription.id,
            user_id=user_id,
            amount=subscription.amount,
            method=payment.payment_method,
            reference=payment.reference_number,
            proof_ref=payment.proof_ref,
        )
        return {
            "subscription_id": subscription.id,
            "status": subscription.status,
            "payment_id": created.id,
            "payment_method": created.payment_method,
            "reference_number": created.reference_number,
        }

    result = run_operation(
        db,
        "create_subscription",
        operation,
        _created_message,
        success_status=status.HTTP_201_CREATED,
    )
    if result.success:
        log_action(
            actor.id,
            "subscription_created",
            result.data["subscription_id"],
            f"Subscription for user {user_id} on plan {plan_id}",
        )
    return result


def submit_payment(
    db: Session,
    actor: Actor,
    subscription_id: int,
    payment: PaymentSubmission,
) -> OperationResult:
    """Replace the pending payment of a pending subscription.

    Used when a member pays differently than first declared, for example
    sending a GCash proof for a subscription opened with cash at the desk.
    The previous pending payment is retired in the same transaction.
    """
    denied = _require(actor, UserRole.member.value, *STAFF_ROLES)
    if denied:
        return denied

    def operation():
        subscription = subscription_ledger.get(db, subscription_id, for_update=True)
        if actor.role == UserRole.member.value and subscription.user_id != actor.id:
            raise AuthorizationError("You can only pay for your own subscription")
        replaced = verification_engine.supersede(db, subscription.id, actor.id)
        created = payment_ledger.create(
            db,
            subscription_id=subscription.id,
            user_id=subscription.user_id,
            amount=subscription.amount,
            method=payment.payment_method,
            reference=payment.reference_number,
            proof_ref=payment.proof_ref,
        )
        return {
            "payment_id": created.id,
            "subscription_id": subscription.id,
            "status": created.status,
            "replaced_payment_id": replaced.id if replaced else None,
        }

    result = run_operation(
        db,
        "submit_payment",
        operation,
        "Payment submitted. Please wait for payment verification.",
        success_status=status.HTTP_201_CREATED,
    )
    if result.success:
        log_action(actor.id, "payment_submitted", result.data["payment_id"], f"Payment for subscription {subscription_id}")
    return result


def verify_payment(db: Session, actor: Actor, payment_id: int, today: date | None = None) -> OperationResult:
    denied = _require(actor, *STAFF_ROLES)
    if denied:
        return denied

    result = run_operation(
        db,
        "verify_payment",
        lambda: verification_engine.verify(db, payment_id, actor.id, today=today),
        "Payment verified and subscription activated successfully",
    )
    if result.success:
        log_action(
            actor.id,
            "payment_verified",
            payment_id,
            f"Verified payment {payment_id} for subscription {result.data['subscription_id']}",
        )
    return result


def reject_payment(db: Session, actor: Actor, payment_id: int, reason: str | None = None) -> OperationResult:
    denied = _require(actor, *STAFF_ROLES)
    if denied:
        return denied
    if not reason or not reason.strip():
        reason = DEFAULT_REJECTION_REASON

    result = run_operation(
        db,
        "reject_payment",
        lambda: verification_engine.reject(db, payment_id, actor.id, reason),
        "Payment rejected and subscription cancelled",
    )
    if result.success:
        log_action(actor.id, "payment_rejected", payment_id, f"Rejected payment {payment_id}: {reason}")
    return result


def record_manual_payment_and_activate(
    db: Session,
    actor: Actor,
    user_id: int,
    plan_id: int,
    today: date | None = None,
) -> OperationResult:
    """Sell a plan at the front desk: subscription, verified payment and activation at once."""
    denied = _require(actor, *STAFF_ROLES)
    if denied:
        return denied

    result = run_operation(
        db,
        "record_manual_payment_and_activate",
        lambda: verification_engine.record_manual_payment_and_activate(
            db, user_id, plan_id, actor.id, today=today
        ),
        "Subscription verified successfully",
        success_status=status.HTTP_201_CREATED,
    )
    if result.success:
        log_action(
            actor.id,
            "subscription_verified",
            result.data["subscription_id"],
            f"Recorded payment {result.data['payment_id']} at the front desk",
        )
    return result


def delete_subscription(db: Session, actor: Actor, subscription_id: int) -> OperationResult:
    denied = _require(actor, UserRole.admin.value)
    if denied:
        return denied

    def operation():
        subscription_ledger.delete(db, subscription_id)
        return {"subscription_id": subscription_id}

    result = run_operation(db, "delete_subscription", operation, "Subscription deleted successfully")
    if result.success:
        log_action(actor.id, "subscription_deleted", subscription_id, f"Deleted subscription {subscription_id}")
    return result


def renew_membership(db: Session, actor: Actor, member_id: int) -> OperationResult:
    denied = _require(actor, UserRole.admin.value)
    if denied:
        return denied
    return run_operation(
        db,
        "renew_membership",
        lambda: subscription_ledger.renew(db, member_id),
        "Member can renew; continue to plan selection",
    )


def get_latest_payment(db: Session, actor: Actor, subscription_id: int) -> OperationResult:
    def operation():
        subscription = subscription_ledger.get(db, subscription_id)
        if not actor.is_staff and subscription.user_id != actor.id:
            raise AuthorizationError()
        return {"subscription_id": subscription.id, "payment": payment_ledger.get_latest(db, subscription.id)}

    return run_operation(db, "get_latest_payment", operation, "Latest payment fetched")


def list_payments(db: Session, actor: Actor, subscription_id: int) -> OperationResult:
    def operation():
        subscription = subscription_ledger.get(db, subscription_id)
        if not actor.is_staff and subscription.user_id != actor.id:
            raise AuthorizationError()
        return {"subscription_id": subscription.id, "payments": payment_ledger.list_for_subscription(db, subscription.id)}

    return run_operation(db, "list_payments", operation, "Payments fetched")


def expire_lapsed_subscriptions(db: Session, today: date | None = None) -> OperationResult:
    return run_operation(
        db,
        "expire_lapsed_subscriptions",
        lambda: {"expired": subscription_ledger.expire_lapsed(db, today=today)},
        lambda data: f"{data['expired']} subscription(s) expired",
    )
