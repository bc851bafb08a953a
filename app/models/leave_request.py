from sqlalchemy import Column, Integer, String, Date, Float, Boolean, ForeignKey, DateTime, JSON
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.database import Base
import enum

class LeaveStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"

class LeaveRequest(Base):
    __tablename__ = "leave_requests"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    employee_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    leave_type = Column(String, index=True, nullable=False)  # Leave type code, e.g. "ANNUAL", "SICK"
    is_special_leave = Column(Boolean, default=False, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    days_count = Column(Float, nullable=False)
    reason = Column(String, nullable=True)
    status = Column(String, default=LeaveStatus.PENDING.value, nullable=False, index=True)

    # Chain snapshot taken at submission so later rule edits don't reroute in-flight requests
    workflow_rule_id = Column(Integer, ForeignKey("workflow_rules.id", ondelete="SET NULL"), nullable=True)
    approval_chain = Column(JSON, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    employee = relationship("User", foreign_keys=[employee_id])
    approvals = relationship("Approval", back_populates="leave_request", cascade="all, delete-orphan")
