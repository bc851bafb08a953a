from typing import List, Optional

from app.core.exceptions import ConflictError, NotFoundError, WorkflowValidationError
from app.models.user import User
from app.models.workflow_rule import WorkflowRule
from app.schemas.workflow import (
    ApprovalChain,
    LeaveContext,
    RuleDefinition,
    WorkflowRuleCreate,
    WorkflowRuleUpdate,
)
from app.services.audit import AuditService
from app.services.base import BaseService
from app.services.workflow_engine import default_chain_for_role, default_rules, match_rule


def _rule_state(rule: WorkflowRule) -> dict:
    return {
        "name": rule.name,
        "priority": rule.priority,
        "is_active": rule.is_active,
        "conditions": rule.conditions,
        "approval_levels": rule.approval_levels,
    }


class WorkflowRuleService(BaseService):
    """Rule store for one organization."""

    def list_rules(self, active_only: bool = False) -> List[WorkflowRule]:
        query = self.db.query(WorkflowRule).filter(WorkflowRule.organization_id == self.org_id)
        if active_only:
            query = query.filter(WorkflowRule.is_active == True)  # noqa: E712
        return query.order_by(WorkflowRule.priority.desc(), WorkflowRule.id).all()

    def get_rule(self, rule_id: int) -> WorkflowRule:
        rule = self.db.query(WorkflowRule).filter(
            WorkflowRule.id == rule_id,
            WorkflowRule.organization_id == self.org_id
        ).first()
        if not rule:
            raise NotFoundError("Workflow rule", rule_id)
        return rule

    def _audit(self, action: str, rule: WorkflowRule, user: User, details: dict,
               before: Optional[dict] = None, after: Optional[dict] = None):
        AuditService(self.db, self.org_id).log_action(
            action=action,
            entity_type="workflow_rule",
            entity_id=rule.id,
            user_id=user.id,
            user_role=user.role.value,
            details=details,
            before_state=before,
            after_state=after,
        )

    def create_rule(self, payload: WorkflowRuleCreate, user: User) -> WorkflowRule:
        rule = WorkflowRule(
            organization_id=self.org_id,
            name=payload.name,
            description=payload.description,
            conditions=[c.model_dump(mode="json") for c in payload.conditions],
            approval_levels=[level.model_dump(mode="json") for level in payload.approval_levels],
            priority=payload.priority,
            is_active=True,
            skip_duplicate_signatures=payload.skip_duplicate_signatures,
        )
        self.db.add(rule)
        self.db.flush()
        self._audit("create_workflow_rule", rule, user, {"name": rule.name}, after=_rule_state(rule))
        self.commit()
        self.db.refresh(rule)
        self.log_info(f"Workflow rule {rule.id} '{rule.name}' created by user {user.id}")
        return rule

    def update_rule(self, rule_id: int, payload: WorkflowRuleUpdate, user: User) -> WorkflowRule:
        rule = self.get_rule(rule_id)
        before = _rule_state(rule)
        changes = payload.model_dump(exclude_unset=True)

        for field in ("name", "priority", "is_active", "skip_duplicate_signatures"):
            if changes.get(field) is not None:
                setattr(rule, field, changes[field])
        if "description" in changes:
            rule.description = changes["description"]
        if payload.conditions is not None:
            rule.conditions = [c.model_dump(mode="json") for c in payload.conditions]
        if payload.approval_levels is not None:
            rule.approval_levels = [level.model_dump(mode="json") for level in payload.approval_levels]

        self._audit("update_workflow_rule", rule, user, {"changes": sorted(changes)},
                    before=before, after=_rule_state(rule))
        self.commit()
        self.db.refresh(rule)
        return rule

    def delete_rule(self, rule_id: int, user: User) -> None:
        rule = self.get_rule(rule_id)
        self._audit("delete_workflow_rule", rule, user, {"name": rule.name}, before=_rule_state(rule))
        self.db.delete(rule)
        self.commit()
        self.log_info(f"Workflow rule {rule_id} deleted by user {user.id}")

    def move_priority(self, rule_id: int, direction: str, user: User) -> List[WorkflowRule]:
        """
        Swap the rule with its neighbour in evaluation order, then renumber
        upwards wherever the new order would otherwise fall back on the id
        tie-break. Rules outside that range keep their priorities.
        """
        rules = self.list_rules()
        position = next((i for i, rule in enumerate(rules) if rule.id == rule_id), None)
        if position is None:
            raise NotFoundError("Workflow rule", rule_id)

        neighbour_position = position - 1 if direction == "up" else position + 1
        if neighbour_position < 0 or neighbour_position >= len(rules):
            raise WorkflowValidationError(f"Rule is already at the {'top' if direction == 'up' else 'bottom'}")

        previous = {r.id: r.priority for r in rules}
        rule, neighbour = rules[position], rules[neighbour_position]
        rule.priority, neighbour.priority = neighbour.priority, rule.priority

        order = list(rules)
        order[position], order[neighbour_position] = neighbour, rule
        upper = min(position, neighbour_position)
        for i in range(min(upper + 1, len(order) - 2), -1, -1):
            above, below = order[i], order[i + 1]
            if above.priority > below.priority:
                if i <= upper:
                    break
                continue
            above.priority = below.priority + 1

        renumbered = {str(r.id): r.priority for r in rules if r.priority != previous[r.id]}
        self._audit("move_workflow_rule", rule, user,
                    {"direction": direction, "swapped_with": neighbour.id, "priorities": renumbered})
        self.commit()
        return self.list_rules()

    def seed_defaults(self, user: User) -> List[WorkflowRule]:
        existing = self.db.query(WorkflowRule.id).filter(WorkflowRule.organization_id == self.org_id).first()
        if existing:
            raise ConflictError("Workflow rules already exist for this organization")

        for definition in default_rules():
            rule = WorkflowRule(
                organization_id=self.org_id,
                name=definition.name,
                description=definition.description,
                conditions=[c.model_dump(mode="json") for c in definition.conditions],
                approval_levels=[level.model_dump(mode="json") for level in definition.approval_levels],
                priority=definition.priority,
                is_active=True,
                skip_duplicate_signatures=definition.skip_duplicate_signatures,
            )
            self.db.add(rule)
        AuditService(self.db, self.org_id).log_action(
            action="seed_workflow_rules",
            entity_type="workflow_rule",
            entity_id=None,
            user_id=user.id,
            user_role=user.role.value,
            details={"count": len(default_rules())},
        )
        self.commit()
        self.log_info(f"Default workflow rules seeded by user {user.id}")
        return self.list_rules()

    def preview(self, context: LeaveContext) -> ApprovalChain:
        rows = self.db.query(WorkflowRule).filter(
            WorkflowRule.organization_id == self.org_id
        ).order_by(WorkflowRule.id).all()
        rules = [RuleDefinition.model_validate(row) for row in rows]
        return match_rule(context, rules, default_chain_for_role(context.role))
