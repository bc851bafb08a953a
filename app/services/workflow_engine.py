"""
Rule matching.

Pure functions over rule definitions: no session, no clock. Safe to call
concurrently and deterministic for identical inputs.
"""
from functools import singledispatch
from typing import Dict, List, Optional, Sequence

from app.models.user import UserRole
from app.schemas.workflow import (
    ApprovalChain,
    ApprovalLevel,
    ChainRole,
    DayCountCondition,
    DepartmentCondition,
    LeaveContext,
    LeaveTypeCondition,
    PositionCondition,
    RoleCondition,
    RuleDefinition,
    SpecialLeaveCondition,
)


@singledispatch
def evaluate_condition(condition, request: LeaveContext) -> bool:
    raise TypeError(f"Unsupported rule condition: {type(condition).__name__}")


@evaluate_condition.register
def _(condition: RoleCondition, request: LeaveContext) -> bool:
    return not condition.roles or request.role in condition.roles


@evaluate_condition.register
def _(condition: LeaveTypeCondition, request: LeaveContext) -> bool:
    return not condition.codes or request.leave_type_code in condition.codes


@evaluate_condition.register
def _(condition: DepartmentCondition, request: LeaveContext) -> bool:
    return not condition.departments or request.department in condition.departments


@evaluate_condition.register
def _(condition: PositionCondition, request: LeaveContext) -> bool:
    return not condition.positions or request.position in condition.positions


@evaluate_condition.register
def _(condition: DayCountCondition, request: LeaveContext) -> bool:
    # Both bounds are strict
    if condition.days_greater_than is not None and not request.day_count > condition.days_greater_than:
        return False
    if condition.days_less_than is not None and not request.day_count < condition.days_less_than:
        return False
    return True


@evaluate_condition.register
def _(condition: SpecialLeaveCondition, request: LeaveContext) -> bool:
    return request.is_special_leave == condition.is_special


def rule_matches(rule: RuleDefinition, request: LeaveContext) -> bool:
    return all(evaluate_condition(condition, request) for condition in rule.conditions)


def order_rules(rules: Sequence[RuleDefinition]) -> List[RuleDefinition]:
    """Active rules, highest priority first. sorted() is stable, so ties keep input order."""
    return sorted((rule for rule in rules if rule.is_active), key=lambda rule: -rule.priority)


def find_matching_rule(request: LeaveContext, rules: Sequence[RuleDefinition]) -> Optional[RuleDefinition]:
    for rule in order_rules(rules):
        if rule_matches(rule, request):
            return rule
    return None


def match_rule(
    request: LeaveContext,
    rules: Sequence[RuleDefinition],
    default_chain: ApprovalChain,
) -> ApprovalChain:
    """
    Select the approval chain for a request.

    Rules are expected in creation order; the first satisfied rule by
    descending priority wins, otherwise `default_chain` is returned.
    """
    rule = find_matching_rule(request, rules)
    if rule is None:
        return default_chain
    return rule.to_chain()


def _levels(*roles, optional=()) -> List[ApprovalLevel]:
    return [ApprovalLevel(role=role, required=role not in optional) for role in roles]


_DEFAULT_LEVELS: Dict[UserRole, List[ApprovalLevel]] = {
    UserRole.EMPLOYEE: _levels(ChainRole.EMPLOYEE, ChainRole.MANAGER),
    UserRole.MANAGER: _levels(ChainRole.EMPLOYEE, ChainRole.DEPARTMENT_DIRECTOR),
    UserRole.DEPARTMENT_DIRECTOR: _levels(
        ChainRole.EMPLOYEE, ChainRole.EXECUTIVE, optional=(ChainRole.EXECUTIVE,)
    ),
    UserRole.EXECUTIVE: _levels(ChainRole.EMPLOYEE),
    UserRole.HR: _levels(ChainRole.EMPLOYEE, ChainRole.HR_MANAGER),
    UserRole.ADMIN: _levels(ChainRole.EMPLOYEE),
}


def default_chain_for_role(role: UserRole) -> ApprovalChain:
    """Fallback chain when no configured rule matches."""
    levels = _DEFAULT_LEVELS.get(role, _DEFAULT_LEVELS[UserRole.EMPLOYEE])
    return ApprovalChain(
        rule_name="Default Rule",
        levels=[level.model_copy() for level in levels],
        skip_duplicate_signatures=True,
        is_default=True,
    )


def default_rules() -> List[RuleDefinition]:
    """Seed rule set for a fresh organization."""
    return [
        RuleDefinition(
            name="Special Leave - HR Verification Required",
            description="Special leaves requiring HR document verification",
            conditions=[SpecialLeaveCondition(is_special=True)],
            approval_levels=_levels(
                ChainRole.EMPLOYEE, ChainRole.HR_VERIFICATION, ChainRole.MANAGER,
                ChainRole.DEPARTMENT_DIRECTOR, optional=(ChainRole.DEPARTMENT_DIRECTOR,)
            ),
            priority=100,
        ),
        RuleDefinition(
            name="Executive Leave Request",
            description="Executives self-approve",
            conditions=[RoleCondition(roles=[UserRole.EXECUTIVE])],
            approval_levels=_levels(ChainRole.EMPLOYEE),
            priority=90,
        ),
        RuleDefinition(
            name="Department Director Leave",
            description="Department directors report to executives",
            conditions=[RoleCondition(roles=[UserRole.DEPARTMENT_DIRECTOR])],
            approval_levels=_levels(ChainRole.EMPLOYEE, ChainRole.EXECUTIVE),
            priority=80,
        ),
        RuleDefinition(
            name="Manager Leave",
            description="Managers report to department directors",
            conditions=[RoleCondition(roles=[UserRole.MANAGER])],
            approval_levels=_levels(ChainRole.EMPLOYEE, ChainRole.DEPARTMENT_DIRECTOR),
            priority=70,
        ),
        RuleDefinition(
            name="HR Employee Leave",
            description="HR employees follow HR hierarchy",
            conditions=[RoleCondition(roles=[UserRole.HR])],
            approval_levels=_levels(ChainRole.EMPLOYEE, ChainRole.HR_MANAGER),
            priority=60,
        ),
        RuleDefinition(
            name="Standard Employee Leave",
            description="Default workflow for regular employee leave requests",
            conditions=[RoleCondition(roles=[UserRole.EMPLOYEE])],
            approval_levels=_levels(
                ChainRole.EMPLOYEE, ChainRole.MANAGER, ChainRole.DEPARTMENT_DIRECTOR, ChainRole.HR,
                optional=(ChainRole.DEPARTMENT_DIRECTOR, ChainRole.HR)
            ),
            priority=10,
        ),
    ]
