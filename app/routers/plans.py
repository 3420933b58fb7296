from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.plan import Plan
from app.schemas.plan import PlanCreate, PlanResponse, PlanUpdate
from app.services import plan_catalog
from app.services.actor import Actor
from app.services.audit_log import log_action
from app.services.auth_middleware import get_current_admin, get_current_user
from app.services.transactions import run_operation
from app.utils.response import create_response, handle_exception, result_response

router = APIRouter(prefix="/plans", tags=["Plans"])


def _plan_payload(plan: Plan) -> dict:
    payload = PlanResponse.model_validate(plan).model_dump()
    payload["is_active"] = plan.deleted_at is None
    payload["billing_term"] = _billing_term(plan.duration_months)
    return payload


def _billing_term(duration_months: int) -> str:
    if duration_months == 1:
        return "Billed monthly"
    if duration_months == 3:
        return "Billed quarterly"
    if duration_months == 12:
        return "Billed yearly"
    return f"Billed every {duration_months} months"


@router.get("")
def list_active_plans(
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    del user
    try:
        plans = plan_catalog.list_plans(db)
        return create_response(
            message="Active plans fetched",
            data={"count": len(plans), "plans": [_plan_payload(plan) for plan in plans]},
        )
    except Exception as exc:
        return handle_exception(exc)


@router.get("/admin")
def list_all_plans(
    include_deleted: bool = Query(
        False,
        description="Include deactivated plans in the response alongside active entries.",
    ),
    db: Session = Depends(get_db),
    admin: Actor = Depends(get_current_admin),
):
    del admin
    try:
        plans = plan_catalog.list_plans(db, include_deleted=include_deleted)
        return create_response(
            message="Plans fetched",
            data={"count": len(plans), "plans": [_plan_payload(plan) for plan in plans]},
        )
    except Exception as exc:
        return handle_exception(exc)


@router.post("/admin", status_code=status.HTTP_201_CREATED)
def create_plan(
    body: PlanCreate,
    db: Session = Depends(get_db),
    admin: Actor = Depends(get_current_admin),
):
    try:
        result = run_operation(
            db,
            "create_plan",
            lambda: plan_catalog.create_plan(
                db, body.name, body.duration_months, body.price, body.features, created_by=admin.id
            ),
            "Plan created",
            success_status=status.HTTP_201_CREATED,
        )
        if not result.success:
            return result_response(result)
        plan = result.data
        log_action(admin.id, "plan_created", plan.id, f"Created plan {plan.name}")
        return result_response(result, data=_plan_payload(plan))
    except Exception as exc:
        return handle_exception(exc)


@router.get("/admin/{plan_id}")
def get_plan(plan_id: int, db: Session = Depends(get_db), admin: Actor = Depends(get_current_admin)):
    del admin
    try:
        result = run_operation(
            db,
            "get_plan",
            lambda: plan_catalog.get_plan(db, plan_id, include_deleted=True),
            "Plan fetched",
        )
        if not result.success:
            return result_response(result)
        return result_response(result, data=_plan_payload(result.data))
    except Exception as exc:
        return handle_exception(exc)


@router.put("/admin/{plan_id}")
def update_plan(
    plan_id: int,
    body: PlanUpdate,
    db: Session = Depends(get_db),
    admin: Actor = Depends(get_current_admin),
):
    try:
        result = run_operation(
            db,
            "update_plan",
            lambda: plan_catalog.update_plan(
                db, plan_id, body.name, body.duration_months, body.price, body.features
            ),
            "Plan updated",
        )
        if not result.success:
            return result_response(result)
        log_action(admin.id, "plan_updated", plan_id, f"Updated plan {result.data.name}")
        return result_response(result, data=_plan_payload(result.data))
    except Exception as exc:
        return handle_exception(exc)


@router.post("/admin/{plan_id}/deactivate")
def deactivate_plan(plan_id: int, db: Session = Depends(get_db), admin: Actor = Depends(get_current_admin)):
    try:
        result = run_operation(db, "deactivate_plan", lambda: plan_catalog.deactivate_plan(db, plan_id), "Plan deactivated")
        if not result.success:
            return result_response(result)
        log_action(admin.id, "plan_deactivated", plan_id, f"Deactivated plan {result.data.name}")
        return result_response(result, data=_plan_payload(result.data))
    except Exception as exc:
        return handle_exception(exc)


@router.post("/admin/{plan_id}/activate")
def activate_plan(plan_id: int, db: Session = Depends(get_db), admin: Actor = Depends(get_current_admin)):
    try:
        result = run_operation(db, "activate_plan", lambda: plan_catalog.activate_plan(db, plan_id), "Plan activated")
        if not result.success:
            return result_response(result)
        log_action(admin.id, "plan_activated", plan_id, f"Activated plan {result.data.name}")
        return result_response(result, data=_plan_payload(result.data))
    except Exception as exc:
        return handle_exception(exc)


@router.delete("/admin/{plan_id}")
def delete_plan(plan_id: int, db: Session = Depends(get_db), admin: Actor = Depends(get_current_admin)):
    try:
        result = run_operation(db, "delete_plan", lambda: plan_catalog.delete_plan(db, plan_id), "Plan deleted")
        if result.success:
            log_action(admin.id, "plan_deleted", plan_id, f"Deleted plan {plan_id}")
        return result_response(result)
    except Exception as exc:
        return handle_exception(exc)
