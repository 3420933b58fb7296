from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.schemas.payment import PaymentReject, PaymentResponse
from app.services import membership_service, payment_ledger
from app.services.actor import Actor
from app.services.auth_middleware import get_current_actor, get_current_staff
from app.services.errors import AuthorizationError
from app.services.transactions import run_operation
from app.utils.response import handle_exception, result_response

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.get("/{payment_id}")
def get_payment(payment_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    def operation():
        payment = payment_ledger.get(db, payment_id)
        if not actor.is_staff and payment.user_id != actor.id:
            raise AuthorizationError()
        return payment

    try:
        result = run_operation(db, "get_payment", operation, "Payment fetched")
        if not result.success:
            return result_response(result)
        return result_response(result, data=PaymentResponse.model_validate(result.data).model_dump())
    except Exception as exc:
        return handle_exception(exc)


@router.post("/{payment_id}/verify")
def verify_payment(payment_id: int, db: Session = Depends(get_db), staff: Actor = Depends(get_current_staff)):
    try:
        return result_response(membership_service.verify_payment(db, staff, payment_id))
    except Exception as exc:
        return handle_exception(exc)


@router.post("/{payment_id}/reject")
def reject_payment(
    payment_id: int,
    body: PaymentReject,
    db: Session = Depends(get_db),
    staff: Actor = Depends(get_current_staff),
):
    try:
        return result_response(membership_service.reject_payment(db, staff, payment_id, body.reason))
    except Exception as exc:
        return handle_exception(exc)
