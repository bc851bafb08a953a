"""
SQL-backed approver lookups: chain role -> user, absence, delegation.
"""
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy.orm import Session

from app.core.exceptions import ApproverNotFoundError
from app.models.delegation import Delegation
from app.models.department import Department
from app.models.leave_request import LeaveRequest, LeaveStatus
from app.models.user import User, UserRole, APPROVER_ROLES
from app.schemas.workflow import ApprovalChain, ChainRole
from app.services.base import BaseService

_HR_ROLES = {ChainRole.HR, ChainRole.HR_VERIFICATION, ChainRole.HR_MANAGER}


class ApproverDirectory(BaseService):
    def __init__(self, db: Session, org_id: int):
        super().__init__(db, org_id)

    # --- users ---

    def get_user(self, user_id: int) -> User:
        user = self.db.query(User).filter(
            User.id == user_id,
            User.organization_id == self.org_id
        ).first()
        if user is None:
            raise ApproverNotFoundError("user", details={"user_id": user_id})
        return user

    def _first_with_role(self, role: UserRole, exclude_id: int, department_id: Optional[int] = None) -> Optional[int]:
        query = self.db.query(User.id).filter(
            User.organization_id == self.org_id,
            User.role == role,
            User.is_active == True,  # noqa: E712
            User.id != exclude_id
        )
        if department_id is not None:
            query = query.filter(User.department_id == department_id)
        row = query.order_by(User.id).first()
        return row[0] if row else None

    def _active_user_id(self, user_id: Optional[int], exclude_id: int) -> Optional[int]:
        if user_id is None or user_id == exclude_id:
            return None
        user = self.db.query(User).filter(User.id == user_id).first()
        return user.id if user is not None and user.is_active else None

    # --- role resolution ---

    def resolve_role(self, role: ChainRole, requester: User) -> int:
        """Return the user id acting as `role` for `requester`."""
        approver_id: Optional[int] = None
        department = requester.department_rel

        if role == ChainRole.EMPLOYEE:
            approver_id = requester.id
        elif role == ChainRole.MANAGER:
            approver_id = self._active_user_id(requester.manager_id, requester.id)
            if approver_id is None and department is not None:
                approver_id = self._active_user_id(department.manager_user_id, requester.id)
        elif role == ChainRole.DEPARTMENT_DIRECTOR:
            if department is not None and department.parent_id is not None:
                parent = self.db.query(Department).filter(Department.id == department.parent_id).first()
                if parent is not None:
                    approver_id = self._active_user_id(parent.manager_user_id, requester.id)
            if approver_id is None:
                approver_id = self._first_with_role(
                    UserRole.DEPARTMENT_DIRECTOR, requester.id, requester.department_id
                )
        elif role in _HR_ROLES:
            approver_id = self._first_with_role(UserRole.HR, requester.id)
        elif role == ChainRole.EXECUTIVE:
            approver_id = self._first_with_role(UserRole.EXECUTIVE, requester.id)

        if approver_id is None:
            raise ApproverNotFoundError(role.value, details={"requester_id": requester.id})
        return approver_id

    def resolver_for(self, requester: User, chain: ApprovalChain):
        """Approver-level index -> user id, memoised for one request."""
        levels = chain.approver_levels
        cache: Dict[int, int] = {}

        def resolve(index: int) -> int:
            if index not in cache:
                cache[index] = self.resolve_role(levels[index].role, requester)
            return cache[index]

        return resolve

    # --- absence and delegation ---

    def is_absent(self, user_id: int, at: datetime) -> bool:
        user = self.get_user(user_id)
        if not user.is_active:
            return True
        day = at.date()
        on_leave = self.db.query(LeaveRequest.id).filter(
            LeaveRequest.employee_id == user_id,
            LeaveRequest.status == LeaveStatus.APPROVED.value,
            LeaveRequest.start_date <= day,
            LeaveRequest.end_date >= day
        ).first()
        return on_leave is not None

    def find_delegate(self, user_id: int, at: datetime) -> Optional[int]:
        day = at.date()
        delegations = self.db.query(Delegation).filter(
            Delegation.organization_id == self.org_id,
            Delegation.delegator_id == user_id,
            Delegation.is_active == True,  # noqa: E712
            Delegation.start_date <= day
        ).order_by(Delegation.id).all()
        for delegation in delegations:
            if not delegation.covers(day):
                continue
            if self.is_absent(delegation.delegate_id, at):
                self.log_info(f"Delegate {delegation.delegate_id} of {user_id} is also absent")
                continue
            return delegation.delegate_id
        return None

    def find_substitute(self, user_id: int, at: datetime) -> Optional[int]:
        delegate_id = self.find_delegate(user_id, at)
        if delegate_id is not None:
            return delegate_id

        approver = self.get_user(user_id)
        if approver.department_id is None:
            return None
        peers = self.db.query(User).filter(
            User.organization_id == self.org_id,
            User.department_id == approver.department_id,
            User.id != user_id,
            User.role.in_(APPROVER_ROLES),
            User.is_active == True  # noqa: E712
        ).order_by(User.id).all()
        for peer in peers:
            if not self.is_absent(peer.id, at):
                return peer.id
        return None
