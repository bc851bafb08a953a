from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class EscalationConfig(BaseModel):
    """
    Escalation settings for one organization, passed explicitly into the
    policy and the sweep.
    """
    model_config = ConfigDict(from_attributes=True, frozen=True)

    enabled: bool = True
    escalation_timeout_hours: int = Field(default=48, ge=1, le=168)
    max_escalation_levels: int = Field(default=3, ge=1, le=5)
    auto_approve_after_max: bool = True
    reminder_hours: int = Field(default=24, ge=0)
    send_reminders: bool = True
    skip_absent_approvers: bool = True
    skip_if_delegated: bool = True

    @model_validator(mode="after")
    def reminder_before_timeout(self):
        if self.reminder_hours >= self.escalation_timeout_hours:
            raise ValueError("reminder_hours must be lower than escalation_timeout_hours")
        return self


class EscalationSettingsUpdate(BaseModel):
    enabled: Optional[bool] = None
    escalation_timeout_hours: Optional[int] = Field(default=None, ge=1, le=168)
    max_escalation_levels: Optional[int] = Field(default=None, ge=1, le=5)
    auto_approve_after_max: Optional[bool] = None
    reminder_hours: Optional[int] = Field(default=None, ge=0)
    send_reminders: Optional[bool] = None
    skip_absent_approvers: Optional[bool] = None
    skip_if_delegated: Optional[bool] = None


class EscalationSettingsResponse(EscalationConfig):
    organization_id: int
    updated_at: Optional[datetime] = None


class SweepItemError(BaseModel):
    """One failed approval, or a whole organization when its setup failed."""
    approval_id: Optional[int] = None
    organization_id: Optional[int] = None
    error: str


class SweepDecisionView(BaseModel):
    approval_id: int
    leave_request_id: int
    action: str
    from_level_index: int
    target_level_index: Optional[int] = None
    target_approver_id: Optional[int] = None
    skipped_approver_ids: List[int] = []
    reason: str = ""


class SweepReport(BaseModel):
    run_id: Optional[int] = None
    dry_run: bool = False
    started_at: datetime
    finished_at: Optional[datetime] = None
    processed: int = 0
    escalated: int = 0
    redirected: int = 0
    auto_approved: int = 0
    held: int = 0
    reminded: int = 0
    errors: List[SweepItemError] = []
    decisions: List[SweepDecisionView] = []


class SweepRunResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    triggered_by: str
    status: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    processed: int
    escalated: int
    redirected: int
    auto_approved: int
    held: int
    reminded: int
    errors: Optional[List[SweepItemError]] = None


class SchedulerStatus(BaseModel):
    lock_held: bool
    lock_holder: Optional[str] = None
    lock_expires_at: Optional[datetime] = None
    cron_endpoint_enabled: bool
    recent_runs: List[SweepRunResponse] = []
