from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from app.models.payment import Payment, PaymentStatus
from app.services import payment_ledger, subscription_ledger
from app.services.errors import PaymentNotFound, ValidationError


@pytest.fixture()
def subscription(db, member, make_plan):
    plan = make_plan(price="1200.00")
    created = subscription_ledger.create(db, member.id, plan.id, today=date(2024, 1, 15))
    db.commit()
    return created


def test_gcash_payment_with_proof_is_pending(db, member, subscription):
    payment = payment_ledger.create(
        db, subscription.id, member.id, Decimal("1200.00"), "gcash", reference="REF1", proof_ref="payments/p.png"
    )
    db.commit()

    assert payment.status == PaymentStatus.pending.value
    assert payment.reference_number == "REF1"
    assert payment.payment_proof == "payments/p.png"
    assert payment.verified_by is None


@pytest.mark.parametrize(
    "kwargs, message",
    [
        ({"amount": 0, "method": "cash"}, "greater than zero"),
        ({"amount": -5, "method": "cash"}, "greater than zero"),
        ({"amount": 100, "method": "bank"}, "Payment proof is required"),
        ({"amount": 100, "method": "gcash", "proof_ref": "payments/p.png"}, "Reference number is required"),
        ({"amount": 100, "method": "gcash", "reference": "   ", "proof_ref": "payments/p.png"}, "Reference number"),
        ({"amount": 100, "method": "crypto"}, "Invalid payment method"),
    ],
)
def test_create_validates_inputs(db, member, subscription, kwargs, message):
    with pytest.raises(ValidationError) as excinfo:
        payment_ledger.create(db, subscription.id, member.id, **kwargs)

    assert message in excinfo.value.message
    assert db.query(Payment).count() == 0


def test_cash_payment_gets_generated_reference_and_no_proof(db, member, subscription):
    payment = payment_ledger.create(db, subscription.id, member.id, 1200, "CASH", proof_ref="payments/ignored.png")

    assert payment.payment_method == "cash"
    assert payment.reference_number.startswith("CASH-")
    assert payment.payment_proof is None


def test_bank_payment_reference_is_generated_when_blank(db, member, subscription):
    payment = payment_ledger.create(db, subscription.id, member.id, 1200, "bank", proof_ref="payments/slip.pdf")

    assert payment.reference_number.startswith("BANK-")


def test_get_latest_returns_most_recent(db, member, subscription):
    older = payment_ledger.create(db, subscription.id, member.id, 1200, "cash")
    older.status = PaymentStatus.rejected.value
    older.created_at = datetime.utcnow() - timedelta(days=2)
    newer = payment_ledger.create(db, subscription.id, member.id, 1200, "cash")
    db.commit()

    assert payment_ledger.get_latest(db, subscription.id).id == newer.id
    assert [item.id for item in payment_ledger.list_for_subscription(db, subscription.id)] == [older.id, newer.id]


def test_get_latest_without_payments(db, subscription):
    assert payment_ledger.get_latest(db, subscription.id) is None
    assert payment_ledger.find_open_payment(db, subscription.id) is None


def test_get_missing_payment(db):
    with pytest.raises(PaymentNotFound):
        payment_ledger.get(db, 404)


def test_zero_amount_is_accepted_for_front_desk_payment(db, member, subscription):
    payment = payment_ledger.create(db, subscription.id, member.id, 0, "admin")

    assert payment.amount == Decimal("0")
    assert payment.reference_number.startswith("ADMIN-")


def test_find_open_payment_skips_rejected(db, member, subscription):
    rejected = payment_ledger.create(db, subscription.id, member.id, 1200, "cash")
    rejected.status = PaymentStatus.rejected.value
    db.flush()
    assert payment_ledger.find_open_payment(db, subscription.id) is None

    pending = payment_ledger.create(db, subscription.id, member.id, 1200, "cash")
    assert payment_ledger.find_open_payment(db, subscription.id).id == pending.id
