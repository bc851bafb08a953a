from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from app.database import Base
import enum


class ApprovalStatus(str, enum.Enum):
    PENDING = "PENDING"
    ESCALATED = "ESCALATED"  # Chain or escalation budget exhausted, waiting on HR
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    AUTO_APPROVED = "AUTO_APPROVED"


TERMINAL_STATUSES = {
    ApprovalStatus.APPROVED.value,
    ApprovalStatus.REJECTED.value,
    ApprovalStatus.AUTO_APPROVED.value,
}


class Approval(Base):
    """
    Current approval state of a leave request. `current_level_index` points
    into the approver levels of the request's chain snapshot.
    """
    __tablename__ = "approvals"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    leave_request_id = Column(Integer, ForeignKey("leave_requests.id", ondelete="CASCADE"), nullable=False, unique=True)

    current_level_index = Column(Integer, nullable=False, default=0)
    assigned_approver_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    delegated_from_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    entered_at = Column(DateTime(timezone=True), nullable=False)
    escalation_count = Column(Integer, nullable=False, default=0)
    status = Column(String, nullable=False, default=ApprovalStatus.PENDING.value, index=True)

    reminder_sent_at = Column(DateTime(timezone=True), nullable=True)
    escalated_at = Column(DateTime(timezone=True), nullable=True)
    escalation_reason = Column(Text, nullable=True)
    last_error = Column(Text, nullable=True)

    decided_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    decided_at = Column(DateTime(timezone=True), nullable=True)
    comments = Column(Text, nullable=True)

    leave_request = relationship("LeaveRequest", back_populates="approvals")
    assigned_approver = relationship("User", foreign_keys=[assigned_approver_id])

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
