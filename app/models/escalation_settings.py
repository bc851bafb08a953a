from sqlalchemy import Column, Integer, Boolean, DateTime, ForeignKey
from sqlalchemy.sql import func
from app.database import Base


class EscalationSettings(Base):
    """One row per organization, edited through the settings endpoint."""
    __tablename__ = "escalation_settings"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, unique=True)

    enabled = Column(Boolean, nullable=False, default=True)
    escalation_timeout_hours = Column(Integer, nullable=False, default=48)
    max_escalation_levels = Column(Integer, nullable=False, default=3)
    auto_approve_after_max = Column(Boolean, nullable=False, default=True)
    reminder_hours = Column(Integer, nullable=False, default=24)
    send_reminders = Column(Boolean, nullable=False, default=True)
    skip_absent_approvers = Column(Boolean, nullable=False, default=True)
    skip_if_delegated = Column(Boolean, nullable=False, default=True)

    updated_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
