import logging

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.subscription import Subscription
from app.schemas.payment import PaymentResponse, PaymentSubmission
from app.schemas.subscription import DeskSubscriptionCreate, SubscriptionCreate, SubscriptionResponse
from app.services import membership_service, payment_ledger, subscription_ledger
from app.services.actor import Actor
from app.services.auth_middleware import get_current_actor, get_current_admin, get_current_staff
from app.services.errors import MembershipError, ValidationError
from app.services.proof_storage import discard_proof, store_proof
from app.services.results import OperationResult
from app.utils.response import create_response, handle_exception, result_response

router = APIRouter(prefix="/subscriptions", tags=["Subscriptions"])
logger = logging.getLogger(__name__)


def _subscription_payload(db: Session, subscription: Subscription) -> dict:
    payload = SubscriptionResponse.model_validate(subscription).model_dump()
    payload["plan_name"] = subscription.plan.name if subscription.plan else None
    latest = payment_ledger.get_latest(db, subscription.id)
    payload["latest_payment"] = PaymentResponse.model_validate(latest).model_dump() if latest else None
    return payload


async def _store_uploaded_proof(submission: PaymentSubmission, upload: UploadFile | None, owner_id: int) -> str | None:
    if not submission.needs_proof:
        return None
    if upload is None or not upload.filename:
        raise ValidationError("Payment proof is required for online payments")
    contents = await upload.read()
    return store_proof(contents, upload.filename, upload.content_type, owner_id)


@router.post("", status_code=status.HTTP_201_CREATED)
async def subscribe(
    plan_id: int = Form(...),
    payment_method: str = Form(...),
    reference_number: str | None = Form(None),
    payment_proof: UploadFile | None = File(None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    proof_ref = None
    result = None
    try:
        submission = PaymentSubmission(payment_method=payment_method, reference_number=reference_number)
        proof_ref = await _store_uploaded_proof(submission, payment_proof, actor.id)
        submission = submission.model_copy(update={"proof_ref": proof_ref})

        result = membership_service.create_subscription(db, actor, actor.id, plan_id, submission)
        return result_response(result)
    except MembershipError as exc:
        return result_response(OperationResult.fail(exc))
    except Exception as exc:
        return handle_exception(exc)
    finally:
        if result is None or not result.success:
            # no committed payment references the stored file
            discard_proof(proof_ref)


@router.post("/admin", status_code=status.HTTP_201_CREATED)
def open_subscription_for_member(
    body: DeskSubscriptionCreate,
    db: Session = Depends(get_db),
    staff: Actor = Depends(get_current_staff),
):
    try:
        submission = PaymentSubmission(payment_method="cash", reference_number=body.reference_number)
        result = membership_service.create_subscription(db, staff, body.user_id, body.plan_id, submission)
        return result_response(result)
    except Exception as exc:
        return handle_exception(exc)


@router.post("/admin/activate", status_code=status.HTTP_201_CREATED)
def sell_at_front_desk(
    body: SubscriptionCreate,
    db: Session = Depends(get_db),
    staff: Actor = Depends(get_current_staff),
):
    try:
        result = membership_service.record_manual_payment_and_activate(db, staff, body.user_id, body.plan_id)
        return result_response(result)
    except Exception as exc:
        return handle_exception(exc)


@router.post("/admin/expire")
def expire_lapsed_subscriptions(db: Session = Depends(get_db), admin: Actor = Depends(get_current_admin)):
    del admin
    try:
        return result_response(membership_service.expire_lapsed_subscriptions(db))
    except Exception as exc:
        return handle_exception(exc)


@router.get("/me")
def my_subscriptions(db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    try:
        subscriptions = subscription_ledger.list_for_user(db, actor.id)
        return create_response(
            message="Subscriptions fetched",
            data={
                "count": len(subscriptions),
                "subscriptions": [_subscription_payload(db, item) for item in subscriptions],
            },
        )
    except Exception as exc:
        return handle_exception(exc)


@router.post("/{subscription_id}/payments", status_code=status.HTTP_201_CREATED)
async def submit_payment(
    subscription_id: int,
    payment_method: str = Form(...),
    reference_number: str | None = Form(None),
    payment_proof: UploadFile | None = File(None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    proof_ref = None
    result = None
    try:
        submission = PaymentSubmission(payment_method=payment_method, reference_number=reference_number)
        proof_ref = await _store_uploaded_proof(submission, payment_proof, actor.id)
        submission = submission.model_copy(update={"proof_ref": proof_ref})

        result = membership_service.submit_payment(db, actor, subscription_id, submission)
        return result_response(result)
    except MembershipError as exc:
        return result_response(OperationResult.fail(exc))
    except Exception as exc:
        return handle_exception(exc)
    finally:
        if result is None or not result.success:
            # no committed payment references the stored file
            discard_proof(proof_ref)


@router.get("/{subscription_id}/payments")
def payment_history(
    subscription_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    try:
        result = membership_service.list_payments(db, actor, subscription_id)
        if not result.success:
            return result_response(result)
        payments = [PaymentResponse.model_validate(item).model_dump() for item in result.data["payments"]]
        return result_response(
            result,
            data={"subscription_id": subscription_id, "count": len(payments), "payments": payments},
        )
    except Exception as exc:
        return handle_exception(exc)


@router.get("/{subscription_id}/payments/latest")
def latest_payment(
    subscription_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    try:
        result = membership_service.get_latest_payment(db, actor, subscription_id)
        if not result.success:
            return result_response(result)
        payment = result.data["payment"]
        return result_response(
            result,
            data={
                "subscription_id": subscription_id,
                "payment": PaymentResponse.model_validate(payment).model_dump() if payment else None,
            },
        )
    except Exception as exc:
        return handle_exception(exc)


@router.delete("/{subscription_id}")
def delete_subscription(
    subscription_id: int,
    db: Session = Depends(get_db),
    admin: Actor = Depends(get_current_admin),
):
    try:
        return result_response(membership_service.delete_subscription(db, admin, subscription_id))
    except Exception as exc:
        return handle_exception(exc)
