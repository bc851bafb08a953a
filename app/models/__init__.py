# Models package
# Importing modules here ensures they are registered with SQLAlchemy Base
from . import (
    organization, user, department, leave_request,
    workflow_rule, escalation_settings, approval, delegation,
    notification, audit_log, sweep
)

# Explicit class exports for cleaner imports
from .user import User, UserRole
from .organization import Organization
from .department import Department
from .leave_request import LeaveRequest, LeaveStatus
from .workflow_rule import WorkflowRule
from .escalation_settings import EscalationSettings
from .approval import Approval, ApprovalStatus
from .delegation import Delegation
from .notification import Notification
from .audit_log import AuditLog
from .sweep import SweepLock, SweepRun

__all__ = [
    "User",
    "UserRole",
    "Organization",
    "Department",
    "LeaveRequest",
    "LeaveStatus",
    "WorkflowRule",
    "EscalationSettings",
    "Approval",
    "ApprovalStatus",
    "Delegation",
    "Notification",
    "AuditLog",
    "SweepLock",
    "SweepRun",
]
