"""State transitions for a subscription and its payment.

    PENDING --verify--> ACTIVE / VERIFIED
    PENDING --reject--> CANCELLED / REJECTED

A pending payment may also be superseded by a newer submission; the old
payment becomes REJECTED while the subscription stays PENDING.

Terminal states accept nothing further. The payment status check and
update happen in one conditional UPDATE inside the caller's transaction,
so of two concurrent requests for the same payment only one can move it
out of ``pending``; the other sees ``AlreadyProcessed``.

Functions here flush but never commit. ``membership_service`` owns the
transaction boundary.
"""

import logging
import time
from datetime import date, datetime

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.models.payment import Payment, PaymentMethod, PaymentStatus
from app.models.subscription import Subscription, SubscriptionStatus
from app.services import payment_ledger, subscription_ledger
from app.services.errors import (
    AlreadyProcessed,
    ConflictError,
    PaymentNotFound,
    SubscriptionInconsistent,
)
from app.utils.dates import add_months

logger = logging.getLogger(__name__)


def _load_pending_payment(db: Session, payment_id: int) -> Payment:
    payment = (
        db.query(Payment)
        .filter(Payment.id == payment_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if not payment:
        raise PaymentNotFound()
    if payment.status != PaymentStatus.pending.value:
        raise AlreadyProcessed()
    return payment


def _load_subscription(db: Session, payment: Payment) -> Subscription:
    subscription = (
        db.query(Subscription)
        .filter(Subscription.id == payment.subscription_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if not subscription:
        logger.error(
            "Payment id=%s references missing subscription id=%s",
            payment.id,
            payment.subscription_id,
        )
        raise SubscriptionInconsistent()
    return subscription


def _settle_payment(db: Session, payment: Payment, **values) -> None:
    result = db.execute(
        update(Payment)
        .where(Payment.id == payment.id, Payment.status == PaymentStatus.pending.value)
        .values(**values)
    )
    if result.rowcount != 1:
        # Another request settled it between our read and this write
        raise AlreadyProcessed()
    db.refresh(payment)


def _activate(subscription: Subscription, verifier_id: int, today: date, now: datetime) -> None:
    subscription.status = SubscriptionStatus.active.value
    subscription.start_date = today
    subscription.end_date = add_months(today, subscription.duration_months)
    subscription.verified_by = verifier_id
    subscription.verified_at = now


def _outcome(payment: Payment, subscription: Subscription) -> dict:
    return {
        "payment_id": payment.id,
        "payment_status": payment.status,
        "subscription_id": subscription.id,
        "status": subscription.status,
        "start_date": subscription.start_date,
        "end_date": subscription.end_date,
    }


def verify(db: Session, payment_id: int, verifier_id: int, today: date | None = None) -> dict:
    today = today or date.today()
    now = datetime.utcnow()
    payment = _load_pending_payment(db, payment_id)
    subscription = _load_subscription(db, payment)
    if subscription.status != SubscriptionStatus.pending.value:
        # a verified payment must always sit next to an active subscription
        raise AlreadyProcessed("Subscription is no longer awaiting payment")

    _settle_payment(
        db,
        payment,
        status=PaymentStatus.verified.value,
        verified_by=verifier_id,
        verified_at=now,
    )
    _activate(subscription, verifier_id, today, now)
    db.flush()

    logger.info(
        "Payment id=%s verified by user=%s; subscription id=%s is %s until %s",
        payment.id,
        verifier_id,
        subscription.id,
        subscription.status,
        subscription.end_date,
    )
    return _outcome(payment, subscription)


def reject(db: Session, payment_id: int, verifier_id: int, reason: str) -> dict:
    now = datetime.utcnow()
    payment = _load_pending_payment(db, payment_id)
    subscription = _load_subscription(db, payment)

    _settle_payment(
        db,
        payment,
        status=PaymentStatus.rejected.value,
        verified_by=verifier_id,
        verified_at=now,
        rejection_reason=reason,
    )
    if subscription.status == SubscriptionStatus.pending.value:
        subscription.status = SubscriptionStatus.cancelled.value
    db.flush()

    logger.info(
        "Payment id=%s rejected by user=%s; subscription id=%s is %s",
        payment.id,
        verifier_id,
        subscription.id,
        subscription.status,
    )
    return _outcome(payment, subscription)


def supersede(db: Session, subscription_id: int, actor_id: int) -> Payment | None:
    """Retire the pending payment of a subscription in favour of a newer one.

    The subscription stays ``pending``; the caller inserts the replacement
    payment in the same transaction. A verified payment is never replaced.
    """
    subscription = subscription_ledger.get(db, subscription_id, for_update=True)
    if subscription.status != SubscriptionStatus.pending.value:
        raise ConflictError("Subscription is not awaiting payment")

    current = payment_ledger.find_open_payment(db, subscription.id, for_update=True)
    if current is None:
        return None
    if current.status == PaymentStatus.verified.value:
        raise AlreadyProcessed("Subscription payment is already verified")

    _settle_payment(
        db,
        current,
        status=PaymentStatus.rejected.value,
        verified_by=actor_id,
        verified_at=datetime.utcnow(),
        rejection_reason="Superseded by a newer payment",
    )
    logger.info("Payment id=%s on subscription id=%s superseded by user=%s", current.id, subscription.id, actor_id)
    return current


def record_manual_payment_and_activate(
    db: Session,
    user_id: int,
    plan_id: int,
    verifier_id: int,
    today: date | None = None,
) -> dict:
    """Open a subscription paid in person at the front desk and activate it.

    The subscription, its ``admin`` payment and both settlements are written
    together, so the pair is never observable half-made. Ends in the same
    state as ``verify``: a verified payment paired with an active
    subscription.
    """
    today = today or date.today()
    now = datetime.utcnow()
    subscription = subscription_ledger.create(db, user_id, plan_id, today=today)

    payment = payment_ledger.create(
        db,
        subscription_id=subscription.id,
        user_id=subscription.user_id,
        amount=subscription.amount,
        method=PaymentMethod.admin,
        reference=f"ADM-{int(time.time())}-{subscription.id}",
    )
    _settle_payment(
        db,
        payment,
        status=PaymentStatus.verified.value,
        verified_by=verifier_id,
        verified_at=now,
    )
    _activate(subscription, verifier_id, today, now)
    db.flush()

    logger.info(
        "Manual payment id=%s recorded by user=%s; subscription id=%s active until %s",
        payment.id,
        verifier_id,
        subscription.id,
        subscription.end_date,
    )
    return _outcome(payment, subscription)
