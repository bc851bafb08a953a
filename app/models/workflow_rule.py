from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, JSON
from sqlalchemy.sql import func
from app.database import Base


class WorkflowRule(Base):
    """
    Maps request conditions to an approval chain.
    `conditions` holds tagged predicates, `approval_levels` an ordered list
    of {"role", "required"} entries. Higher priority is evaluated first and
    ties fall back to creation order (id).
    """
    __tablename__ = "workflow_rules"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)

    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    conditions = Column(JSON, nullable=False, default=list)
    approval_levels = Column(JSON, nullable=False)
    priority = Column(Integer, nullable=False, default=0, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    skip_duplicate_signatures = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<WorkflowRule {self.id} '{self.name}' p={self.priority}>"
