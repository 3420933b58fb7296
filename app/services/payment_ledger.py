import random
import time
from decimal import Decimal

from sqlalchemy.orm import Session

from app.models.payment import Payment, PaymentMethod, PaymentStatus
from app.services.errors import PaymentNotFound, ValidationError

# Methods that never carry an uploaded proof
PROOFLESS_METHODS = {PaymentMethod.cash.value, PaymentMethod.admin.value}
OPEN_STATUSES = (PaymentStatus.pending.value, PaymentStatus.verified.value)


def _generate_reference(method: str) -> str:
    return f"{method.upper()}-{int(time.time())}-{random.randint(1000, 9999)}"


def _normalize_method(method) -> str:
    value = method.value if isinstance(method, PaymentMethod) else str(method or "").strip().lower()
    if value not in {item.value for item in PaymentMethod}:
        raise ValidationError("Invalid payment method selected")
    return value


def create(
    db: Session,
    subscription_id: int,
    user_id: int,
    amount,
    method,
    reference: str | None = None,
    proof_ref: str | None = None,
) -> Payment:
    method = _normalize_method(method)
    amount = Decimal(str(amount))
    # Free plans are only ever settled at the front desk
    if amount < 0 or (amount == 0 and method != PaymentMethod.admin.value):
        raise ValidationError("Payment amount must be greater than zero")

    reference = (reference or "").strip() or None
    if method not in PROOFLESS_METHODS and not proof_ref:
        raise ValidationError("Payment proof is required for online payments")
    if method == PaymentMethod.gcash.value and not reference:
        raise ValidationError("Reference number is required for GCash payments")
    if not reference:
        reference = _generate_reference(method)

    payment = Payment(
        subscription_id=subscription_id,
        user_id=user_id,
        amount=amount,
        payment_method=method,
        reference_number=reference,
        payment_proof=proof_ref if method not in PROOFLESS_METHODS else None,
        status=PaymentStatus.pending.value,
    )
    db.add(payment)
    db.flush()
    return payment


def get(db: Session, payment_id: int) -> Payment:
    payment = db.query(Payment).filter(Payment.id == payment_id).first()
    if not payment:
        raise PaymentNotFound()
    return payment


def get_latest(db: Session, subscription_id: int) -> Payment | None:
    return (
        db.query(Payment)
        .filter(Payment.subscription_id == subscription_id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .first()
    )


def find_open_payment(db: Session, subscription_id: int, for_update: bool = False) -> Payment | None:
    query = db.query(Payment).filter(
        Payment.subscription_id == subscription_id,
        Payment.status.in_(OPEN_STATUSES),
    )
    if for_update:
        query = query.with_for_update().populate_existing()
    return query.order_by(Payment.id.desc()).first()


def list_for_subscription(db: Session, subscription_id: int) -> list[Payment]:
    return (
        db.query(Payment)
        .filter(Payment.subscription_id == subscription_id)
        .order_by(Payment.created_at.asc(), Payment.id.asc())
        .all()
    )
