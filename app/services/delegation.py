from datetime import date
from typing import List, Optional

from app.core.exceptions import AccessDeniedError, NotFoundError, WorkflowValidationError
from app.models.delegation import Delegation
from app.models.user import User
from app.schemas.delegation import DelegationCreate
from app.services.audit import AuditService
from app.services.base import BaseService


def _overlaps(start_a: date, end_a: Optional[date], start_b: date, end_b: Optional[date]) -> bool:
    """Inclusive date ranges; a missing end is open-ended."""
    return (end_b is None or start_a <= end_b) and (end_a is None or start_b <= end_a)


class DelegationService(BaseService):
    def list_for(self, user: User) -> List[Delegation]:
        return self.db.query(Delegation).filter(
            Delegation.organization_id == self.org_id,
            Delegation.delegator_id == user.id
        ).order_by(Delegation.start_date.desc(), Delegation.id.desc()).all()

    def get_owned(self, delegation_id: int, user: User) -> Delegation:
        delegation = self.db.query(Delegation).filter(
            Delegation.id == delegation_id,
            Delegation.organization_id == self.org_id
        ).first()
        if not delegation:
            raise NotFoundError("Delegation", delegation_id)
        if delegation.delegator_id != user.id:
            raise AccessDeniedError("You can only manage your own delegations")
        return delegation

    def _check_overlap(self, user: User, start: date, end: Optional[date], exclude_id: Optional[int] = None):
        active = self.db.query(Delegation).filter(
            Delegation.organization_id == self.org_id,
            Delegation.delegator_id == user.id,
            Delegation.is_active == True  # noqa: E712
        ).all()
        for other in active:
            if other.id != exclude_id and _overlaps(start, end, other.start_date, other.end_date):
                raise WorkflowValidationError(
                    "An active delegation already covers this period",
                    details={"delegation_id": other.id}
                )

    def create(self, payload: DelegationCreate, user: User) -> Delegation:
        if payload.delegate_id == user.id:
            raise WorkflowValidationError("You cannot delegate to yourself")

        delegate = self.db.query(User).filter(
            User.id == payload.delegate_id,
            User.organization_id == self.org_id
        ).first()
        if not delegate or not delegate.is_active:
            raise NotFoundError("Delegate", payload.delegate_id)
        if not delegate.can_approve:
            raise WorkflowValidationError("Delegate must hold an approving role")

        self._check_overlap(user, payload.start_date, payload.end_date)

        delegation = Delegation(
            organization_id=self.org_id,
            delegator_id=user.id,
            delegate_id=delegate.id,
            start_date=payload.start_date,
            end_date=payload.end_date,
            reason=payload.reason,
            is_active=True,
        )
        self.db.add(delegation)
        self.db.flush()
        AuditService(self.db, self.org_id).log_action(
            action="create_delegation",
            entity_type="delegation",
            entity_id=delegation.id,
            user_id=user.id,
            user_role=user.role.value,
            details={"delegate_id": delegate.id, "start_date": payload.start_date, "end_date": payload.end_date},
        )
        self.commit()
        self.db.refresh(delegation)
        self.log_info(f"User {user.id} delegated approvals to user {delegate.id}")
        return delegation

    def delete(self, delegation_id: int, user: User) -> None:
        delegation = self.get_owned(delegation_id, user)
        AuditService(self.db, self.org_id).log_action(
            action="delete_delegation",
            entity_type="delegation",
            entity_id=delegation.id,
            user_id=user.id,
            user_role=user.role.value,
            details={"delegate_id": delegation.delegate_id},
        )
        self.db.delete(delegation)
        self.commit()

    def toggle(self, delegation_id: int, user: User) -> Delegation:
        """Flip is_active. Activating one delegation deactivates the user's others."""
        delegation = self.get_owned(delegation_id, user)
        activate = not delegation.is_active
        if activate:
            self.db.query(Delegation).filter(
                Delegation.organization_id == self.org_id,
                Delegation.delegator_id == user.id,
                Delegation.id != delegation.id
            ).update({Delegation.is_active: False}, synchronize_session=False)
        delegation.is_active = activate
        AuditService(self.db, self.org_id).log_action(
            action="toggle_delegation",
            entity_type="delegation",
            entity_id=delegation.id,
            user_id=user.id,
            user_role=user.role.value,
            details={"is_active": activate},
        )
        self.commit()
        self.db.refresh(delegation)
        return delegation
