import hmac
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session
from app.database import get_db
from app.core.config import settings
from app.core.limiter import limiter, TRIGGER_LIMIT
from app.models.user import User, UserRole
from app.schemas.escalation import SchedulerStatus, SweepReport
from app.routers.auth_deps import get_current_org, require_hr, require_role
from app.services.escalation_service import run_escalation_sweep, scheduler_status

logger = logging.getLogger(__name__)

router = APIRouter(tags=["escalation"])


def verify_cron_secret(authorization: Optional[str] = Header(default=None)) -> None:
    """Cron callers authenticate with `Authorization: Bearer <CRON_SECRET>`."""
    if not settings.cron_secret:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Cron trigger is not configured")
    expected = f"Bearer {settings.cron_secret}"
    if authorization is None or not hmac.compare_digest(authorization, expected):
        logger.warning("Rejected cron trigger with invalid secret")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


@router.post("/escalation/check", response_model=SweepReport)
@limiter.limit(TRIGGER_LIMIT)
def trigger_escalation_check(
    request: Request,
    db: Session = Depends(get_db),
    org_id: int = Depends(get_current_org),
    current_user: User = Depends(require_hr())
):
    """Manual sweep of this organization's pending approvals."""
    logger.info(f"Manual escalation check triggered by user {current_user.id}")
    return run_escalation_sweep(db, triggered_by=f"manual:{current_user.id}", organization_id=org_id)


@router.api_route("/cron/escalation", methods=["GET", "POST"], response_model=SweepReport)
@limiter.limit(TRIGGER_LIMIT)
def cron_escalation(
    request: Request,
    db: Session = Depends(get_db),
    _: None = Depends(verify_cron_secret)
):
    """Sweep across all organizations, called by an external scheduler."""
    return run_escalation_sweep(db, triggered_by="cron")


@router.get("/admin/scheduler", response_model=SchedulerStatus)
def get_scheduler_status(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role([UserRole.ADMIN, UserRole.HR, UserRole.EXECUTIVE]))
):
    return scheduler_status(db)
