"""
Escalation state machine for a single pending approval.

    PENDING -> ESCALATED -> PENDING (next level) | AUTO_APPROVED
    PENDING -> APPROVED | REJECTED          (human decisions, not handled here)

EscalationPolicy.decide() only reads: the approval snapshot, the injected
EscalationConfig, a clock value and lookups through DelegationDirectory and
the approver resolver. Applying the decision is the sweep's job.
"""
import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Protocol, Tuple

from app.core.timeutils import ensure_utc
from app.models.approval import ApprovalStatus
from app.schemas.escalation import EscalationConfig


class EscalationAction(str, enum.Enum):
    NONE = "NONE"
    REMIND = "REMIND"
    REDIRECT = "REDIRECT"
    ESCALATE = "ESCALATE"
    AUTO_APPROVE = "AUTO_APPROVE"
    HOLD = "HOLD"  # exhausted without auto-approval, waits for manual intervention


@dataclass(frozen=True)
class ApprovalSnapshot:
    approval_id: int
    leave_request_id: int
    status: str
    current_level_index: int
    assigned_approver_id: int
    entered_at: datetime
    escalation_count: int = 0
    reminder_sent: bool = False
    delegated_from_id: Optional[int] = None
    requester_id: Optional[int] = None

    @classmethod
    def from_model(cls, approval) -> "ApprovalSnapshot":
        return cls(
            approval_id=approval.id,
            leave_request_id=approval.leave_request_id,
            status=approval.status,
            current_level_index=approval.current_level_index,
            assigned_approver_id=approval.assigned_approver_id,
            entered_at=ensure_utc(approval.entered_at),
            escalation_count=approval.escalation_count or 0,
            reminder_sent=approval.reminder_sent_at is not None,
            delegated_from_id=approval.delegated_from_id,
            requester_id=approval.leave_request.employee_id if approval.leave_request else None,
        )


@dataclass(frozen=True)
class EscalationDecision:
    action: EscalationAction
    approval_id: int
    from_level_index: int
    target_level_index: Optional[int] = None
    target_approver_id: Optional[int] = None
    skipped_approver_ids: Tuple[int, ...] = field(default_factory=tuple)
    reason: str = ""


class DelegationDirectory(Protocol):
    """Absence and substitute lookups consumed by the policy."""

    def is_absent(self, user_id: int, at: datetime) -> bool: ...

    def find_delegate(self, user_id: int, at: datetime) -> Optional[int]:
        """Explicitly registered, active delegate of user_id."""
        ...

    def find_substitute(self, user_id: int, at: datetime) -> Optional[int]:
        """Available delegate, or a peer able to approve in the same department."""
        ...


# Maps an approver-level index to a user id; raises ApproverNotFoundError
ApproverResolver = Callable[[int], int]


class EscalationPolicy:
    def __init__(self, config: EscalationConfig, directory: DelegationDirectory):
        self.config = config
        self.directory = directory

    @property
    def timeout(self) -> timedelta:
        return timedelta(hours=self.config.escalation_timeout_hours)

    def is_due(self, entered_at: datetime, now: datetime) -> bool:
        return ensure_utc(now) - ensure_utc(entered_at) >= self.timeout

    def reminder_due(self, snapshot: ApprovalSnapshot, now: datetime) -> bool:
        if not self.config.send_reminders or self.config.reminder_hours <= 0 or snapshot.reminder_sent:
            return False
        window_opens = ensure_utc(snapshot.entered_at) + self.timeout - timedelta(hours=self.config.reminder_hours)
        return ensure_utc(now) >= window_opens

    def next_available_approver(
        self,
        start_index: int,
        level_count: int,
        resolve_approver: ApproverResolver,
        now: datetime,
        exclude: Tuple[int, ...] = (),
    ) -> Tuple[Optional[Tuple[int, int]], List[int]]:
        """
        Walk approver levels from start_index. Returns ((level_index,
        approver_id) or None, skipped approver ids).
        """
        skipped: List[int] = []
        for index in range(start_index, level_count):
            approver_id = resolve_approver(index)
            if approver_id in exclude:
                continue
            if self.config.skip_absent_approvers and self.directory.is_absent(approver_id, now):
                substitute = self.directory.find_substitute(approver_id, now)
                if substitute is not None and substitute not in exclude:
                    return (index, substitute), skipped
                skipped.append(approver_id)
                continue
            return (index, approver_id), skipped
        return None, skipped

    def decide(
        self,
        snapshot: ApprovalSnapshot,
        level_count: int,
        resolve_approver: ApproverResolver,
        now: datetime,
    ) -> EscalationDecision:
        def decision(action: EscalationAction, **kwargs) -> EscalationDecision:
            return EscalationDecision(
                action=action,
                approval_id=snapshot.approval_id,
                from_level_index=snapshot.current_level_index,
                **kwargs,
            )

        if snapshot.status != ApprovalStatus.PENDING.value or not self.config.enabled:
            return decision(EscalationAction.NONE)

        if not self.is_due(snapshot.entered_at, now):
            if self.reminder_due(snapshot, now):
                return decision(EscalationAction.REMIND, target_approver_id=snapshot.assigned_approver_id)
            return decision(EscalationAction.NONE)

        timeout_hours = self.config.escalation_timeout_hours

        # A delegate takes over at the same level once per level
        if self.config.skip_if_delegated and snapshot.delegated_from_id is None:
            delegate_id = self.directory.find_delegate(snapshot.assigned_approver_id, now)
            if delegate_id is not None and delegate_id not in (snapshot.assigned_approver_id, snapshot.requester_id):
                return decision(
                    EscalationAction.REDIRECT,
                    target_level_index=snapshot.current_level_index,
                    target_approver_id=delegate_id,
                    reason=f"Redirected to delegate after {timeout_hours}h without a decision",
                )

        if snapshot.escalation_count + 1 > self.config.max_escalation_levels:
            return self._exhausted(decision, f"Maximum of {self.config.max_escalation_levels} escalations reached")

        exclude = (snapshot.assigned_approver_id,)
        if snapshot.requester_id is not None:
            exclude += (snapshot.requester_id,)
        if snapshot.delegated_from_id is not None:
            exclude += (snapshot.delegated_from_id,)
        target, skipped = self.next_available_approver(
            snapshot.current_level_index + 1, level_count, resolve_approver, now, exclude
        )
        if target is None:
            reason = "No higher approver available in the chain"
            if skipped:
                reason += f"; skipped absent approvers: {len(skipped)}"
            return self._exhausted(decision, reason, skipped)

        level_index, approver_id = target
        reason = f"Auto-escalated after {timeout_hours}h without a decision"
        if skipped:
            reason += f". Skipped absent approvers: {len(skipped)}"
        return decision(
            EscalationAction.ESCALATE,
            target_level_index=level_index,
            target_approver_id=approver_id,
            skipped_approver_ids=tuple(skipped),
            reason=reason,
        )

    def _exhausted(self, decision, reason: str, skipped: Optional[List[int]] = None) -> EscalationDecision:
        skipped_ids = tuple(skipped or ())
        if self.config.auto_approve_after_max:
            return decision(
                EscalationAction.AUTO_APPROVE,
                skipped_approver_ids=skipped_ids,
                reason=f"{reason}; auto-approved by system",
            )
        return decision(
            EscalationAction.HOLD,
            skipped_approver_ids=skipped_ids,
            reason=f"{reason}; awaiting manual intervention",
        )
