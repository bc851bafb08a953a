from typing import List
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.user import User
from app.schemas.delegation import DelegationCreate, DelegationResponse
from app.routers.auth_deps import get_current_org, require_approver
from app.services.delegation import DelegationService

router = APIRouter(prefix="/manager/delegations", tags=["delegations"])


@router.get("", response_model=List[DelegationResponse])
def list_delegations(
    db: Session = Depends(get_db),
    org_id: int = Depends(get_current_org),
    current_user: User = Depends(require_approver())
):
    return DelegationService(db, org_id).list_for(current_user)


@router.post("", response_model=DelegationResponse, status_code=status.HTTP_201_CREATED)
def create_delegation(
    payload: DelegationCreate,
    db: Session = Depends(get_db),
    org_id: int = Depends(get_current_org),
    current_user: User = Depends(require_approver())
):
    return DelegationService(db, org_id).create(payload, current_user)


@router.delete("/{delegation_id}")
def delete_delegation(
    delegation_id: int,
    db: Session = Depends(get_db),
    org_id: int = Depends(get_current_org),
    current_user: User = Depends(require_approver())
):
    DelegationService(db, org_id).delete(delegation_id, current_user)
    return {"message": "Delegation deleted", "id": delegation_id}


@router.post("/{delegation_id}/toggle", response_model=DelegationResponse)
def toggle_delegation(
    delegation_id: int,
    db: Session = Depends(get_db),
    org_id: int = Depends(get_current_org),
    current_user: User = Depends(require_approver())
):
    return DelegationService(db, org_id).toggle(delegation_id, current_user)
