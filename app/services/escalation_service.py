"""
Escalation sweep.

Walks every PENDING approval, asks EscalationPolicy what to do, and applies
the decision. Each approval is handled independently: a failure is logged,
stored on that approval and reported, and the sweep moves on. Sweeps are
serialised through a lease row in `sweep_locks`.
"""
import logging
import uuid
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import ApproverNotFoundError, NotFoundError, SweepInProgressError
from app.core.timeutils import ensure_utc, utcnow
from app.models.approval import Approval, ApprovalStatus
from app.models.leave_request import LeaveStatus
from app.models.notification import NotificationCategory
from app.models.sweep import SweepLock, SweepRun
from app.schemas.escalation import (
    SchedulerStatus,
    SweepDecisionView,
    SweepItemError,
    SweepReport,
    SweepRunResponse,
)
from app.schemas.workflow import ApprovalChain
from app.services.approver_directory import ApproverDirectory
from app.services.audit import AuditService
from app.services.base import BaseService
from app.services.escalation_policy import (
    ApprovalSnapshot,
    EscalationAction,
    EscalationDecision,
    EscalationPolicy,
)
from app.services.escalation_settings import EscalationSettingsService
from app.services.notification import NotificationService

logger = logging.getLogger(__name__)

SWEEP_LOCK_NAME = "escalation"
MAX_ERROR_LENGTH = 1000

_COUNTERS = {
    EscalationAction.ESCALATE: "escalated",
    EscalationAction.REDIRECT: "redirected",
    EscalationAction.AUTO_APPROVE: "auto_approved",
    EscalationAction.HOLD: "held",
    EscalationAction.REMIND: "reminded",
}


def _approval_state(approval: Approval) -> dict:
    return {
        "status": approval.status,
        "current_level_index": approval.current_level_index,
        "assigned_approver_id": approval.assigned_approver_id,
        "escalation_count": approval.escalation_count,
    }


class SweepLockService(BaseService):
    """Lease on a named lock row. A lease past expires_at can be taken over."""

    def __init__(self, db: Session, name: str = SWEEP_LOCK_NAME):
        super().__init__(db)
        self.name = name

    def get(self) -> Optional[SweepLock]:
        return self.db.query(SweepLock).filter(SweepLock.name == self.name).first()

    def acquire(self, holder: str, now: datetime) -> None:
        expires_at = now + timedelta(minutes=settings.sweep_lock_ttl_minutes)
        lock = self.get()
        if lock is None:
            self.db.add(SweepLock(name=self.name, holder=holder, acquired_at=now, expires_at=expires_at))
            self.commit()
            return

        if lock.holder is not None and ensure_utc(lock.expires_at) > now:
            raise SweepInProgressError(lock.holder)

        previous = lock.holder
        if previous is not None:
            self.log_warning(f"Taking over expired sweep lock from {previous}")
        holder_filter = SweepLock.holder == previous if previous is not None else SweepLock.holder.is_(None)
        updated = self.db.query(SweepLock).filter(
            SweepLock.name == self.name, holder_filter
        ).update(
            {SweepLock.holder: holder, SweepLock.acquired_at: now, SweepLock.expires_at: expires_at},
            synchronize_session=False
        )
        self.commit()
        if updated == 0:
            raise SweepInProgressError()

    def release(self, holder: str) -> None:
        self.db.query(SweepLock).filter(
            SweepLock.name == self.name, SweepLock.holder == holder
        ).update({SweepLock.holder: None, SweepLock.expires_at: None}, synchronize_session=False)
        self.commit()


class EscalationSweep:
    def __init__(self, db: Session, triggered_by: str, now: Optional[datetime] = None, dry_run: bool = False):
        self.db = db
        self.triggered_by = triggered_by
        self.now = ensure_utc(now) if now is not None else utcnow()
        self.dry_run = dry_run
        self.report = SweepReport(started_at=self.now, dry_run=dry_run)

    def run(self, organization_id: Optional[int] = None) -> SweepReport:
        if self.dry_run:
            self._sweep(organization_id)
            self.report.finished_at = utcnow()
            return self.report

        holder = f"{self.triggered_by}:{uuid.uuid4().hex[:8]}"
        locks = SweepLockService(self.db)
        locks.acquire(holder, self.now)
        run = SweepRun(triggered_by=self.triggered_by, status="RUNNING", started_at=self.now)
        self.db.add(run)
        self.db.commit()
        self.report.run_id = run.id
        try:
            self._sweep(organization_id)
            self._finish_run(run, "COMPLETED")
        except Exception:
            logger.exception("Escalation sweep aborted")
            self._finish_run(run, "FAILED")
            raise
        finally:
            locks.release(holder)

        logger.info(
            f"Escalation sweep {run.id} finished: processed={self.report.processed} "
            f"escalated={self.report.escalated} auto_approved={self.report.auto_approved} "
            f"errors={len(self.report.errors)}"
        )
        return self.report

    def _finish_run(self, run: SweepRun, status: str) -> None:
        self.report.finished_at = utcnow()
        run.status = status
        run.finished_at = self.report.finished_at
        for counter in ("processed", "escalated", "redirected", "auto_approved", "held", "reminded"):
            setattr(run, counter, getattr(self.report, counter))
        run.errors = [error.model_dump() for error in self.report.errors]
        self.db.commit()

    def _organization_ids(self, organization_id: Optional[int]) -> List[int]:
        if organization_id is not None:
            return [organization_id]
        rows = self.db.query(Approval.organization_id).filter(
            Approval.status == ApprovalStatus.PENDING.value
        ).distinct().all()
        return sorted(row[0] for row in rows)

    def _sweep(self, organization_id: Optional[int]) -> None:
        for org_id in self._organization_ids(organization_id):
            self._sweep_organization(org_id)

    def _sweep_organization(self, org_id: int) -> None:
        approvals = self.db.query(Approval).filter(
            Approval.organization_id == org_id,
            Approval.status == ApprovalStatus.PENDING.value
        ).order_by(Approval.id).all()
        if not approvals:
            return

        try:
            config = EscalationSettingsService(self.db, org_id).get_config()
        except Exception as e:
            # Skip this organization; the others are still swept
            message = str(e)[:MAX_ERROR_LENGTH] or e.__class__.__name__
            logger.exception(f"Escalation settings unusable for organization {org_id}", extra={"org_id": org_id})
            self.report.errors.append(SweepItemError(organization_id=org_id, error=message))
            return

        directory = ApproverDirectory(self.db, org_id)
        policy = EscalationPolicy(config, directory)
        notifier = _SweepNotifier(self.db)
        audit = AuditService(self.db, org_id)

        for approval in approvals:
            self.report.processed += 1
            try:
                decision = self._decide(approval, policy, directory)
                if not self.dry_run:
                    self._apply(approval, decision, notifier, audit)
                    approval.last_error = None
            except Exception as e:
                message = str(e)[:MAX_ERROR_LENGTH] or e.__class__.__name__
                logger.exception(f"Escalation failed for approval {approval.id}", extra={"org_id": org_id})
                self.report.errors.append(SweepItemError(approval_id=approval.id, organization_id=org_id, error=message))
                if not self.dry_run:
                    approval.last_error = message
                continue

            counter = _COUNTERS.get(decision.action)
            if counter:
                setattr(self.report, counter, getattr(self.report, counter) + 1)
            if decision.action != EscalationAction.NONE:
                self.report.decisions.append(SweepDecisionView(
                    approval_id=approval.id,
                    leave_request_id=approval.leave_request_id,
                    action=decision.action.value,
                    from_level_index=decision.from_level_index,
                    target_level_index=decision.target_level_index,
                    target_approver_id=decision.target_approver_id,
                    skipped_approver_ids=list(decision.skipped_approver_ids),
                    reason=decision.reason,
                ))

        if not self.dry_run:
            self.db.commit()

    def _decide(self, approval: Approval, policy: EscalationPolicy, directory: ApproverDirectory) -> EscalationDecision:
        leave = approval.leave_request
        if leave is None:
            raise NotFoundError("Leave request", approval.leave_request_id)
        if leave.employee is None:
            raise ApproverNotFoundError("employee", details={"leave_request_id": leave.id})
        chain = ApprovalChain.model_validate(leave.approval_chain)
        resolve = directory.resolver_for(leave.employee, chain)
        return policy.decide(
            ApprovalSnapshot.from_model(approval),
            len(chain.approver_levels),
            resolve,
            self.now,
        )

    def _apply(self, approval: Approval, decision: EscalationDecision,
               notifier: "_SweepNotifier", audit: AuditService) -> None:
        action = decision.action
        if action == EscalationAction.NONE:
            return
        if action == EscalationAction.REMIND:
            if notifier.reminder(approval):
                approval.reminder_sent_at = self.now
            return

        before = _approval_state(approval)
        leave = approval.leave_request
        transition = [before["status"]]

        if action == EscalationAction.REDIRECT:
            approval.delegated_from_id = approval.assigned_approver_id
            approval.assigned_approver_id = decision.target_approver_id
            approval.entered_at = self.now
            approval.reminder_sent_at = None
            approval.escalation_reason = decision.reason
            audit_action = "approval_redirected"
        elif action == EscalationAction.ESCALATE:
            transition += [ApprovalStatus.ESCALATED.value, ApprovalStatus.PENDING.value]
            approval.current_level_index = decision.target_level_index
            approval.assigned_approver_id = decision.target_approver_id
            approval.delegated_from_id = None
            approval.entered_at = self.now
            approval.escalated_at = self.now
            approval.escalation_count = (approval.escalation_count or 0) + 1
            approval.reminder_sent_at = None
            approval.escalation_reason = decision.reason
            approval.status = ApprovalStatus.PENDING.value
            audit_action = "approval_escalated"
        elif action == EscalationAction.AUTO_APPROVE:
            transition.append(ApprovalStatus.AUTO_APPROVED.value)
            approval.status = ApprovalStatus.AUTO_APPROVED.value
            approval.decided_at = self.now
            approval.comments = "Auto-approved by system after maximum escalations"
            approval.escalation_reason = decision.reason
            leave.status = LeaveStatus.APPROVED.value
            audit_action = "approval_auto_approved"
        else:
            transition.append(ApprovalStatus.ESCALATED.value)
            approval.status = ApprovalStatus.ESCALATED.value
            approval.escalated_at = self.now
            approval.escalation_reason = decision.reason
            audit_action = "approval_held"

        audit.log_system_event(
            action=audit_action,
            entity_type="approval",
            entity_id=approval.id,
            details={
                "leave_request_id": approval.leave_request_id,
                "reason": decision.reason,
                "skipped_approver_ids": list(decision.skipped_approver_ids),
                "transition": transition,
                "triggered_by": self.triggered_by,
            },
            before_state=before,
            after_state=_approval_state(approval),
        )
        notifier.after_transition(approval, action, before["assigned_approver_id"])


class _SweepNotifier:
    """Notification side effects of the sweep; never raises."""

    def __init__(self, db: Session):
        self.db = db

    def reminder(self, approval: Approval) -> bool:
        return NotificationService.notify_user(
            self.db,
            approval.assigned_approver_id,
            "Leave Approval Reminder",
            f"Leave request #{approval.leave_request_id} is waiting for your decision and will escalate soon.",
            category=NotificationCategory.APPROVAL_REMINDER,
            type="warning",
            link=NotificationService.approval_link(approval.leave_request_id),
        )

    def after_transition(self, approval: Approval, action: EscalationAction, previous_approver_id: int) -> None:
        request_id = approval.leave_request_id
        employee_id = approval.leave_request.employee_id
        link = NotificationService.approval_link(request_id)

        if action in (EscalationAction.ESCALATE, EscalationAction.REDIRECT):
            NotificationService.notify_user(
                self.db,
                approval.assigned_approver_id,
                "Escalated Leave Request Approval Required",
                f"Leave request #{request_id} has been routed to you for approval "
                f"(previously assigned to user {previous_approver_id}).",
                category=NotificationCategory.APPROVAL_REQUIRED,
                link=link,
            )
        if action == EscalationAction.ESCALATE:
            NotificationService.notify_user(
                self.db, employee_id, "Leave Request Escalated",
                "Your leave request has been escalated to a higher authority for approval",
                category=NotificationCategory.LEAVE_ESCALATED, link=f"/leave/{request_id}",
            )
        elif action == EscalationAction.AUTO_APPROVE:
            NotificationService.notify_user(
                self.db, employee_id, "Leave Request Auto-Approved",
                "Your leave request has been automatically approved after reaching maximum escalation levels",
                category=NotificationCategory.LEAVE_APPROVED, type="success", link=f"/leave/{request_id}",
            )
        elif action == EscalationAction.HOLD:
            NotificationService.notify_user(
                self.db, employee_id, "Leave Request Awaiting HR Review",
                "Your leave request could not be escalated further and is waiting for manual review",
                category=NotificationCategory.LEAVE_ESCALATED, type="warning", link=f"/leave/{request_id}",
            )


def run_escalation_sweep(
    db: Session,
    triggered_by: str,
    now: Optional[datetime] = None,
    dry_run: bool = False,
    organization_id: Optional[int] = None,
) -> SweepReport:
    return EscalationSweep(db, triggered_by, now=now, dry_run=dry_run).run(organization_id)


def scheduler_status(db: Session, limit: int = 10) -> SchedulerStatus:
    lock = SweepLockService(db).get()
    now = utcnow()
    lock_held = bool(lock and lock.holder and ensure_utc(lock.expires_at) > now)
    runs = db.query(SweepRun).order_by(SweepRun.id.desc()).limit(limit).all()
    return SchedulerStatus(
        lock_held=lock_held,
        lock_holder=lock.holder if lock_held else None,
        lock_expires_at=lock.expires_at if lock_held else None,
        cron_endpoint_enabled=bool(settings.cron_secret),
        recent_runs=[SweepRunResponse.model_validate(run) for run in runs],
    )
