"""
Leave request submission and human approval decisions.
"""
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from app.core.exceptions import AccessDeniedError, ApproverNotFoundError, NotFoundError, WorkflowValidationError
from app.core.timeutils import utcnow
from app.models.approval import Approval, ApprovalStatus
from app.models.leave_request import LeaveRequest, LeaveStatus
from app.models.notification import NotificationCategory
from app.models.user import User, UserRole
from app.schemas.leave import ApprovalDecision, LeaveRequestCreate
from app.schemas.workflow import ApprovalChain, LeaveContext
from app.services.approver_directory import ApproverDirectory
from app.services.audit import AuditService
from app.services.base import BaseService
from app.services.escalation_settings import EscalationSettingsService
from app.services.notification import NotificationService
from app.services.workflow_rules import WorkflowRuleService

_OVERRIDE_ROLES = (UserRole.HR, UserRole.ADMIN)


class LeaveWorkflowService(BaseService):
    def __init__(self, db: Session, org_id: int):
        super().__init__(db, org_id)
        self.directory = ApproverDirectory(db, org_id)

    def select_chain(self, context: LeaveContext) -> ApprovalChain:
        return WorkflowRuleService(self.db, self.org_id).preview(context)

    def _first_approver(self, employee: User, chain: ApprovalChain, start_index: int,
                        previous_approver_id: Optional[int], now: datetime) -> Optional[Tuple[int, int]]:
        """
        First usable (level_index, approver_id) from start_index on.

        Required levels sign in order. Optional levels are escalation reserve
        and only stand in when a required approver was absent without a
        substitute. If nobody else can stand in, the first absent required
        approver keeps the item and the escalation sweep moves it on. None
        means every remaining level was a duplicate signature.
        """
        levels = chain.approver_levels
        skip_absent = EscalationSettingsService(self.db, self.org_id).get_config().skip_absent_approvers
        resolve = self.directory.resolver_for(employee, chain)
        fallback: Optional[Tuple[int, int]] = None
        absent_required: Optional[Tuple[int, int]] = None

        for index in range(start_index, len(levels)):
            required = levels[index].required
            if not required and fallback is not None:
                continue
            try:
                approver_id = resolve(index)
            except ApproverNotFoundError:
                if required:
                    raise
                continue
            if chain.skip_duplicate_signatures and approver_id in (employee.id, previous_approver_id):
                self.log_info(f"Skipping duplicate signature of user {approver_id} at level {index}")
                continue
            if skip_absent and self.directory.is_absent(approver_id, now):
                substitute = self.directory.find_substitute(approver_id, now)
                if substitute is None or substitute == employee.id:
                    self.log_info(f"Skipping absent approver {approver_id} at level {index}")
                    if required and absent_required is None:
                        absent_required = (index, approver_id)
                    continue
                approver_id = substitute
            if required:
                return index, approver_id
            fallback = (index, approver_id)

        if absent_required is None:
            return None
        return fallback or absent_required

    # --- submission ---

    def submit(self, payload: LeaveRequestCreate, employee: User) -> LeaveRequest:
        now = utcnow()
        days = payload.effective_days
        context = LeaveContext(
            role=employee.role,
            leave_type_code=payload.leave_type,
            day_count=days,
            department=employee.department_name,
            position=employee.position,
            is_special_leave=payload.is_special_leave,
        )
        chain = self.select_chain(context)
        self.log_info(f"Leave request by user {employee.id} routed through '{chain.rule_name}'")

        leave = LeaveRequest(
            organization_id=self.org_id,
            employee_id=employee.id,
            leave_type=payload.leave_type,
            is_special_leave=payload.is_special_leave,
            start_date=payload.start_date,
            end_date=payload.end_date,
            days_count=days,
            reason=payload.reason,
            status=LeaveStatus.PENDING.value,
            workflow_rule_id=chain.rule_id,
            approval_chain=chain.model_dump(mode="json"),
        )
        self.db.add(leave)
        self.db.flush()

        target = self._first_approver(employee, chain, 0, None, now)
        if target is None:
            leave.status = LeaveStatus.APPROVED.value
            AuditService(self.db, self.org_id).log_action(
                action="leave_auto_approved_on_submit",
                entity_type="leave_request",
                entity_id=leave.id,
                user_id=employee.id,
                user_role=employee.role.value,
                details={"rule": chain.rule_name, "reason": "No approver other than the requester"},
            )
            NotificationService.notify_user(
                self.db, employee.id, "Leave Request Approved",
                "Your leave request did not require further approval",
                category=NotificationCategory.LEAVE_APPROVED, type="success", link=f"/leave/{leave.id}",
            )
        else:
            level_index, approver_id = target
            approval = Approval(
                organization_id=self.org_id,
                leave_request_id=leave.id,
                current_level_index=level_index,
                assigned_approver_id=approver_id,
                entered_at=now,
                escalation_count=0,
                status=ApprovalStatus.PENDING.value,
            )
            self.db.add(approval)
            NotificationService.notify_user(
                self.db, approver_id, "Leave Approval Required",
                f"{employee.display_name} requested {days:g} day(s) of {payload.leave_type} leave",
                category=NotificationCategory.APPROVAL_REQUIRED,
                link=NotificationService.approval_link(leave.id),
            )

        self.commit()
        self.db.refresh(leave)
        return leave

    # --- queries ---

    def list_requests(self, user: User, status: Optional[str] = None) -> List[LeaveRequest]:
        query = self.db.query(LeaveRequest).filter(LeaveRequest.organization_id == self.org_id)
        if user.role not in _OVERRIDE_ROLES:
            query = query.filter(LeaveRequest.employee_id == user.id)
        if status:
            query = query.filter(LeaveRequest.status == status.upper())
        return query.order_by(LeaveRequest.id.desc()).all()

    def pending_for(self, user: User) -> List[Approval]:
        statuses = [ApprovalStatus.PENDING.value]
        query = self.db.query(Approval).filter(Approval.organization_id == self.org_id)
        if user.role in _OVERRIDE_ROLES:
            # HR and admins also work the queue of held requests
            query = query.filter(
                (Approval.assigned_approver_id == user.id) | (Approval.status == ApprovalStatus.ESCALATED.value)
            )
            statuses.append(ApprovalStatus.ESCALATED.value)
        else:
            query = query.filter(Approval.assigned_approver_id == user.id)
        return query.filter(Approval.status.in_(statuses)).order_by(Approval.entered_at).all()

    def get_approval(self, approval_id: int) -> Approval:
        approval = self.db.query(Approval).filter(
            Approval.id == approval_id,
            Approval.organization_id == self.org_id
        ).first()
        if not approval:
            raise NotFoundError("Approval", approval_id)
        return approval

    # --- decisions ---

    def decide(self, approval_id: int, decision: ApprovalDecision, user: User) -> LeaveRequest:
        approval = self.get_approval(approval_id)
        if approval.is_terminal:
            raise WorkflowValidationError(f"Approval {approval_id} was already decided ({approval.status})")

        is_assignee = approval.assigned_approver_id == user.id
        can_override = user.role in _OVERRIDE_ROLES and approval.status == ApprovalStatus.ESCALATED.value
        if not (is_assignee or can_override):
            raise AccessDeniedError("Only the assigned approver can decide on this request")

        leave = approval.leave_request
        if leave.employee_id == user.id:
            raise AccessDeniedError("Requesters cannot approve their own leave")

        now = utcnow()
        before = {"status": approval.status, "current_level_index": approval.current_level_index}
        chain = ApprovalChain.model_validate(leave.approval_chain)

        if not decision.approve:
            self._close(approval, leave, ApprovalStatus.REJECTED, LeaveStatus.REJECTED, user, decision, now)
            category, title = NotificationCategory.LEAVE_REJECTED, "Leave Request Rejected"
            message = "Your leave request was rejected"
        else:
            target = None
            if approval.status == ApprovalStatus.PENDING.value:
                target = self._first_approver(
                    leave.employee, chain, approval.current_level_index + 1, user.id, now
                )
            if target is not None:
                level_index, approver_id = target
                approval.current_level_index = level_index
                approval.assigned_approver_id = approver_id
                approval.delegated_from_id = None
                approval.entered_at = now
                approval.reminder_sent_at = None
                approval.comments = decision.comment
                NotificationService.notify_user(
                    self.db, approver_id, "Leave Approval Required",
                    f"Leave request #{leave.id} was approved at the previous level and needs your decision",
                    category=NotificationCategory.APPROVAL_REQUIRED,
                    link=NotificationService.approval_link(leave.id),
                )
                category, title = NotificationCategory.LEAVE_UPDATE, "Leave Request Progressed"
                message = "Your leave request was approved and moved to the next approval level"
            else:
                self._close(approval, leave, ApprovalStatus.APPROVED, LeaveStatus.APPROVED, user, decision, now)
                category, title = NotificationCategory.LEAVE_APPROVED, "Leave Request Approved"
                message = "Your leave request was approved"

        AuditService(self.db, self.org_id).log_action(
            action="approval_decided",
            entity_type="approval",
            entity_id=approval.id,
            user_id=user.id,
            user_role=user.role.value,
            details={"approve": decision.approve, "comment": decision.comment, "leave_request_id": leave.id},
            before_state=before,
            after_state={"status": approval.status, "current_level_index": approval.current_level_index},
        )
        NotificationService.notify_user(
            self.db, leave.employee_id, title, message, category=category, link=f"/leave/{leave.id}",
        )
        self.commit()
        self.db.refresh(leave)
        self.log_info(f"Approval {approval.id} decided by user {user.id}: {approval.status}")
        return leave

    def _close(self, approval: Approval, leave: LeaveRequest, approval_status: ApprovalStatus,
               leave_status: LeaveStatus, user: User, decision: ApprovalDecision, now: datetime) -> None:
        approval.status = approval_status.value
        approval.decided_by_id = user.id
        approval.decided_at = now
        approval.comments = decision.comment
        leave.status = leave_status.value
