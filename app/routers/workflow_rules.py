from typing import List
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.user import User
from app.schemas.workflow import (
    ApprovalChain,
    LeaveContext,
    PriorityMove,
    RuleMatchPreview,
    WorkflowRuleCreate,
    WorkflowRuleResponse,
    WorkflowRuleUpdate,
)
from app.routers.auth_deps import get_current_org, require_admin, require_hr
from app.services.workflow_rules import WorkflowRuleService

router = APIRouter(prefix="/admin/workflow-rules", tags=["workflow-rules"])


@router.get("", response_model=List[WorkflowRuleResponse])
def list_workflow_rules(
    active_only: bool = False,
    db: Session = Depends(get_db),
    org_id: int = Depends(get_current_org),
    current_user: User = Depends(require_hr())
):
    """Rules in evaluation order: highest priority first, then oldest."""
    return WorkflowRuleService(db, org_id).list_rules(active_only=active_only)


@router.post("", response_model=WorkflowRuleResponse, status_code=status.HTTP_201_CREATED)
def create_workflow_rule(
    payload: WorkflowRuleCreate,
    db: Session = Depends(get_db),
    org_id: int = Depends(get_current_org),
    current_user: User = Depends(require_admin())
):
    return WorkflowRuleService(db, org_id).create_rule(payload, current_user)


@router.post("/seed-defaults", response_model=List[WorkflowRuleResponse], status_code=status.HTTP_201_CREATED)
def seed_default_rules(
    db: Session = Depends(get_db),
    org_id: int = Depends(get_current_org),
    current_user: User = Depends(require_admin())
):
    """Install the default rule set. Refused when the organization already has rules."""
    return WorkflowRuleService(db, org_id).seed_defaults(current_user)


@router.post("/match", response_model=ApprovalChain)
def preview_rule_match(
    preview: RuleMatchPreview,
    db: Session = Depends(get_db),
    org_id: int = Depends(get_current_org),
    current_user: User = Depends(require_hr())
):
    """Show which chain a request with these attributes would get."""
    context = LeaveContext(**preview.model_dump())
    return WorkflowRuleService(db, org_id).preview(context)


@router.get("/{rule_id}", response_model=WorkflowRuleResponse)
def get_workflow_rule(
    rule_id: int,
    db: Session = Depends(get_db),
    org_id: int = Depends(get_current_org),
    current_user: User = Depends(require_hr())
):
    return WorkflowRuleService(db, org_id).get_rule(rule_id)


@router.patch("/{rule_id}", response_model=WorkflowRuleResponse)
def update_workflow_rule(
    rule_id: int,
    payload: WorkflowRuleUpdate,
    db: Session = Depends(get_db),
    org_id: int = Depends(get_current_org),
    current_user: User = Depends(require_admin())
):
    return WorkflowRuleService(db, org_id).update_rule(rule_id, payload, current_user)


@router.delete("/{rule_id}")
def delete_workflow_rule(
    rule_id: int,
    db: Session = Depends(get_db),
    org_id: int = Depends(get_current_org),
    current_user: User = Depends(require_admin())
):
    WorkflowRuleService(db, org_id).delete_rule(rule_id, current_user)
    return {"message": "Workflow rule deleted", "id": rule_id}


@router.patch("/{rule_id}/priority", response_model=List[WorkflowRuleResponse])
def move_workflow_rule(
    rule_id: int,
    move: PriorityMove,
    db: Session = Depends(get_db),
    org_id: int = Depends(get_current_org),
    current_user: User = Depends(require_admin())
):
    return WorkflowRuleService(db, org_id).move_priority(rule_id, move.direction, current_user)
