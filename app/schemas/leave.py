from pydantic import BaseModel, ConfigDict, Field, model_validator
from datetime import date, datetime
from typing import List, Optional

from app.schemas.workflow import ApprovalChain


class LeaveRequestCreate(BaseModel):
    leave_type: str = Field(min_length=1)
    start_date: date
    end_date: date
    days_count: Optional[float] = Field(default=None, gt=0)
    is_special_leave: bool = False
    reason: Optional[str] = None

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date cannot be before start_date")
        return self

    @property
    def effective_days(self) -> float:
        """Inclusive calendar days unless the caller supplied a count."""
        if self.days_count is not None:
            return self.days_count
        return float((self.end_date - self.start_date).days + 1)


class ApprovalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    leave_request_id: int
    status: str
    current_level_index: int
    assigned_approver_id: int
    delegated_from_id: Optional[int] = None
    entered_at: datetime
    escalation_count: int
    escalated_at: Optional[datetime] = None
    escalation_reason: Optional[str] = None
    last_error: Optional[str] = None
    decided_by_id: Optional[int] = None
    decided_at: Optional[datetime] = None
    comments: Optional[str] = None


class LeaveRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    employee_id: int
    leave_type: str
    is_special_leave: bool
    start_date: date
    end_date: date
    days_count: float
    reason: Optional[str] = None
    status: str
    workflow_rule_id: Optional[int] = None
    approval_chain: ApprovalChain
    approvals: List[ApprovalResponse] = []


class ApprovalDecision(BaseModel):
    approve: bool
    comment: Optional[str] = None
