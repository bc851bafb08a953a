from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from app.database import get_db
from app.core.limiter import limiter, TRIGGER_LIMIT
from app.models.user import User
from app.schemas.escalation import EscalationSettingsResponse, EscalationSettingsUpdate, SweepReport
from app.routers.auth_deps import get_current_org, require_admin, require_hr
from app.services.escalation_service import run_escalation_sweep
from app.services.escalation_settings import EscalationSettingsService

router = APIRouter(prefix="/admin/escalation-settings", tags=["escalation-settings"])


@router.get("", response_model=EscalationSettingsResponse)
def get_escalation_settings(
    db: Session = Depends(get_db),
    org_id: int = Depends(get_current_org),
    current_user: User = Depends(require_hr())
):
    service = EscalationSettingsService(db, org_id)
    row = service.get_row()
    if row is None:
        return EscalationSettingsResponse(**service.get_config().model_dump(), organization_id=org_id)
    return row


@router.patch("", response_model=EscalationSettingsResponse)
def update_escalation_settings(
    changes: EscalationSettingsUpdate,
    db: Session = Depends(get_db),
    org_id: int = Depends(get_current_org),
    current_user: User = Depends(require_admin())
):
    return EscalationSettingsService(db, org_id).update(changes, current_user)


@router.post("/test", response_model=SweepReport)
@limiter.limit(TRIGGER_LIMIT)
def test_escalation_settings(
    request: Request,
    db: Session = Depends(get_db),
    org_id: int = Depends(get_current_org),
    current_user: User = Depends(require_admin())
):
    """Dry run: what the next sweep would do for this organization. Nothing is persisted."""
    return run_escalation_sweep(db, triggered_by=f"test:{current_user.id}", dry_run=True, organization_id=org_id)
