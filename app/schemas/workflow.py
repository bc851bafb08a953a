"""
Workflow rule schemas.

Rule conditions are a tagged union discriminated by `type`; the evaluator in
app.services.workflow_engine dispatches on the concrete class. The loosely
typed shape used by older admin forms is converted on input.
"""
import enum
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator

from app.models.user import UserRole


class ChainRole(str, enum.Enum):
    EMPLOYEE = "employee"
    MANAGER = "manager"
    DEPARTMENT_DIRECTOR = "department_director"
    HR = "hr"
    HR_VERIFICATION = "hr_verification"
    HR_MANAGER = "hr_manager"
    EXECUTIVE = "executive"


# --- Conditions ---

class RoleCondition(BaseModel):
    type: Literal["role_in"] = "role_in"
    roles: List[UserRole] = []


class LeaveTypeCondition(BaseModel):
    type: Literal["leave_type_in"] = "leave_type_in"
    codes: List[str] = []


class DepartmentCondition(BaseModel):
    type: Literal["department_in"] = "department_in"
    departments: List[str] = []


class PositionCondition(BaseModel):
    type: Literal["position_in"] = "position_in"
    positions: List[str] = []


class DayCountCondition(BaseModel):
    type: Literal["day_count"] = "day_count"
    days_greater_than: Optional[float] = None
    days_less_than: Optional[float] = None

    @model_validator(mode="after")
    def check_bounds(self):
        low, high = self.days_greater_than, self.days_less_than
        if low is not None and high is not None and low >= high:
            raise ValueError("days_greater_than must be lower than days_less_than")
        return self


class SpecialLeaveCondition(BaseModel):
    type: Literal["special_leave"] = "special_leave"
    is_special: bool = True


RuleCondition = Annotated[
    Union[
        RoleCondition,
        LeaveTypeCondition,
        DepartmentCondition,
        PositionCondition,
        DayCountCondition,
        SpecialLeaveCondition,
    ],
    Field(discriminator="type"),
]

_conditions_adapter = TypeAdapter(List[RuleCondition])


def conditions_from_legacy(raw: Dict[str, Any]) -> List[Dict[str, Any]]:
    """
    Convert the flat form shape ({"userRole": [...], "daysGreaterThan": 5, ...})
    into tagged condition dicts.
    """
    converted: List[Dict[str, Any]] = []
    if raw.get("userRole"):
        converted.append({"type": "role_in", "roles": raw["userRole"]})
    if raw.get("leaveType"):
        converted.append({"type": "leave_type_in", "codes": raw["leaveType"]})
    if raw.get("department"):
        converted.append({"type": "department_in", "departments": raw["department"]})
    if raw.get("position"):
        converted.append({"type": "position_in", "positions": raw["position"]})
    if raw.get("isSpecialLeave") is not None:
        converted.append({"type": "special_leave", "is_special": raw["isSpecialLeave"]})
    if raw.get("daysGreaterThan") is not None or raw.get("daysLessThan") is not None:
        converted.append({
            "type": "day_count",
            "days_greater_than": raw.get("daysGreaterThan"),
            "days_less_than": raw.get("daysLessThan"),
        })
    return converted


def parse_conditions(raw: Any) -> List[RuleCondition]:
    """Accept tagged lists, the legacy dict shape, or None (wildcard)."""
    if raw is None:
        return []
    if isinstance(raw, dict):
        raw = conditions_from_legacy(raw)
    return _conditions_adapter.validate_python(raw)


# --- Approval levels and chains ---

class ApprovalLevel(BaseModel):
    role: ChainRole
    required: bool = True


class ApprovalChain(BaseModel):
    """Ordered approval levels selected for one request."""
    rule_id: Optional[int] = None
    rule_name: str
    levels: List[ApprovalLevel]
    skip_duplicate_signatures: bool = True
    is_default: bool = False

    @property
    def approver_levels(self) -> List[ApprovalLevel]:
        """Levels that need someone other than the requester to act."""
        return [level for level in self.levels if level.role != ChainRole.EMPLOYEE]


class LeaveContext(BaseModel):
    """Request attributes the rule matcher looks at."""
    model_config = ConfigDict(frozen=True)

    role: UserRole
    leave_type_code: str
    day_count: float
    department: Optional[str] = None
    position: Optional[str] = None
    is_special_leave: bool = False


class RuleDefinition(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    name: str
    description: Optional[str] = None
    conditions: List[RuleCondition] = []
    approval_levels: List[ApprovalLevel]
    priority: int = 0
    is_active: bool = True
    skip_duplicate_signatures: bool = True

    @field_validator("conditions", mode="before")
    @classmethod
    def accept_legacy_conditions(cls, value):
        if value is None:
            return []
        if isinstance(value, dict):
            return conditions_from_legacy(value)
        return value

    def to_chain(self) -> ApprovalChain:
        return ApprovalChain(
            rule_id=self.id,
            rule_name=self.name,
            levels=list(self.approval_levels),
            skip_duplicate_signatures=self.skip_duplicate_signatures,
        )


# --- API payloads ---

def _required_name(value: str) -> str:
    if not value.strip():
        raise ValueError("Rule name is required")
    return value.strip()


class WorkflowRuleCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    conditions: List[RuleCondition] = []
    approval_levels: List[ApprovalLevel] = Field(min_length=1)
    priority: int = 0
    skip_duplicate_signatures: bool = True

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        return _required_name(value)

    @field_validator("conditions", mode="before")
    @classmethod
    def accept_legacy_conditions(cls, value):
        if value is None:
            return []
        if isinstance(value, dict):
            return conditions_from_legacy(value)
        return value


class WorkflowRuleUpdate(BaseModel):
    name: Optional[Annotated[str, Field(min_length=1, max_length=200)]] = None
    description: Optional[str] = None
    conditions: Optional[List[RuleCondition]] = None
    approval_levels: Optional[Annotated[List[ApprovalLevel], Field(min_length=1)]] = None
    priority: Optional[int] = None
    is_active: Optional[bool] = None
    skip_duplicate_signatures: Optional[bool] = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else _required_name(value)

    @field_validator("conditions", mode="before")
    @classmethod
    def accept_legacy_conditions(cls, value):
        if isinstance(value, dict):
            return conditions_from_legacy(value)
        return value


class WorkflowRuleResponse(RuleDefinition):
    id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PriorityMove(BaseModel):
    direction: Literal["up", "down"]


class RuleMatchPreview(BaseModel):
    role: UserRole
    leave_type_code: str
    day_count: float = Field(gt=0)
    department: Optional[str] = None
    position: Optional[str] = None
    is_special_leave: bool = False
