from typing import List, Optional
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.user import User
from app.schemas.leave import ApprovalDecision, ApprovalResponse, LeaveRequestCreate, LeaveRequestResponse
from app.routers.auth_deps import get_current_org, get_current_user, require_approver
from app.services.leave_workflow import LeaveWorkflowService

router = APIRouter(prefix="/leave", tags=["leave"])


@router.post("/requests", response_model=LeaveRequestResponse, status_code=status.HTTP_201_CREATED)
def submit_leave_request(
    payload: LeaveRequestCreate,
    db: Session = Depends(get_db),
    org_id: int = Depends(get_current_org),
    current_user: User = Depends(get_current_user)
):
    return LeaveWorkflowService(db, org_id).submit(payload, current_user)


@router.get("/requests", response_model=List[LeaveRequestResponse])
def list_leave_requests(
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    org_id: int = Depends(get_current_org),
    current_user: User = Depends(get_current_user)
):
    """Own requests; HR and admins see the whole organization."""
    return LeaveWorkflowService(db, org_id).list_requests(current_user, status)


@router.get("/approvals/pending", response_model=List[ApprovalResponse])
def list_pending_approvals(
    db: Session = Depends(get_db),
    org_id: int = Depends(get_current_org),
    current_user: User = Depends(require_approver())
):
    return LeaveWorkflowService(db, org_id).pending_for(current_user)


@router.post("/approvals/{approval_id}/decision", response_model=LeaveRequestResponse)
def decide_approval(
    approval_id: int,
    decision: ApprovalDecision,
    db: Session = Depends(get_db),
    org_id: int = Depends(get_current_org),
    current_user: User = Depends(require_approver())
):
    return LeaveWorkflowService(db, org_id).decide(approval_id, decision, current_user)
