from typing import Optional

from pydantic import ValidationError

from app.core.config import settings
from app.core.exceptions import WorkflowValidationError
from app.models.escalation_settings import EscalationSettings
from app.models.user import User
from app.schemas.escalation import EscalationConfig, EscalationSettingsUpdate
from app.services.audit import AuditService
from app.services.base import BaseService

_CONFIG_FIELDS = tuple(EscalationConfig.model_fields.keys())


class EscalationSettingsService(BaseService):
    """Per-organization escalation settings, falling back to configured defaults."""

    def get_row(self) -> Optional[EscalationSettings]:
        return self.db.query(EscalationSettings).filter(
            EscalationSettings.organization_id == self.org_id
        ).first()

    def get_config(self) -> EscalationConfig:
        row = self.get_row()
        if row is None:
            return EscalationConfig(**settings.escalation.model_dump())
        return EscalationConfig.model_validate(row)

    def update(self, changes: EscalationSettingsUpdate, user: User) -> EscalationSettings:
        current = self.get_config()
        merged = {**current.model_dump(), **changes.model_dump(exclude_unset=True, exclude_none=True)}
        try:
            validated = EscalationConfig(**merged)
        except ValidationError as e:
            messages = "; ".join(err["msg"] for err in e.errors())
            raise WorkflowValidationError(f"Invalid escalation settings: {messages}")

        row = self.get_row()
        if row is None:
            row = EscalationSettings(organization_id=self.org_id)
            self.db.add(row)
        for name in _CONFIG_FIELDS:
            setattr(row, name, getattr(validated, name))
        row.updated_by_id = user.id

        AuditService(self.db, self.org_id).log_action(
            action="update_escalation_settings",
            entity_type="escalation_settings",
            entity_id=None,
            user_id=user.id,
            user_role=user.role.value,
            details={"changes": changes.model_dump(exclude_unset=True)},
            before_state=current.model_dump(),
            after_state=validated.model_dump(),
        )
        self.commit()
        self.db.refresh(row)
        self.log_info(f"Escalation settings updated by user {user.id}")
        return row
