from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.user import User, UserRole
from app.schemas.user import AdminLogResponse, MemberResponse
from app.services import membership_service
from app.services.actor import Actor
from app.services.audit_log import log_action, recent_actions
from app.services.auth_middleware import get_current_admin, get_current_staff
from app.services.errors import ConflictError, MemberNotFound
from app.services.transactions import run_operation
from app.utils.response import create_response, handle_exception, result_response

router = APIRouter(prefix="/members", tags=["Members"])
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


@router.get("")
def list_members(
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
    staff: Actor = Depends(get_current_staff),
):
    del staff
    try:
        base_query = db.query(User).filter(User.role == UserRole.member.value).order_by(User.id.asc())
        total = base_query.count()
        members = base_query.offset((page - 1) * page_size).limit(page_size).all()
        payload = [MemberResponse.model_validate(member).model_dump() for member in members]
        return create_response(
            message="Members fetched successfully",
            data={
                "page": page,
                "page_size": page_size,
                "count": len(payload),
                "total": total,
                "has_next": page * page_size < total,
                "members": payload,
            },
            status_code=status.HTTP_200_OK,
        )
    except Exception as exc:
        return handle_exception(exc)


@router.get("/logs")
def admin_logs(
    action_type: str | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    admin: Actor = Depends(get_current_admin),
):
    del admin
    try:
        entries = recent_actions(db, action_type=action_type, limit=limit)
        return create_response(
            message="Admin logs fetched",
            data=[AdminLogResponse.model_validate(entry).model_dump() for entry in entries],
        )
    except Exception as exc:
        return handle_exception(exc)


@router.put("/{member_id}/verify")
def verify_member(member_id: int, db: Session = Depends(get_db), staff: Actor = Depends(get_current_staff)):
    def operation():
        member = (
            db.query(User)
            .filter(User.id == member_id, User.role == UserRole.member.value, User.is_active == True)
            .with_for_update()
            .first()
        )
        if not member:
            raise MemberNotFound()
        if member.is_verified:
            raise ConflictError("Member already verified")
        member.is_verified = True
        member.verified_at = datetime.utcnow()
        return {"member_id": member.id, "is_verified": True}

    try:
        result = run_operation(db, "verify_member", operation, "Member verified successfully")
        if result.success:
            log_action(staff.id, "member_verified", member_id, f"Verified member {member_id}")
        return result_response(result)
    except Exception as exc:
        return handle_exception(exc)


@router.post("/{member_id}/renew")
def renew_membership(member_id: int, db: Session = Depends(get_db), admin: Actor = Depends(get_current_admin)):
    try:
        return result_response(membership_service.renew_membership(db, admin, member_id))
    except Exception as exc:
        return handle_exception(exc)
