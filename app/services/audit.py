from app.services.base import BaseService
from app.models.audit_log import AuditLog
from typing import Optional


def _sanitize(obj):
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    if isinstance(obj, dict):
        return {k: _sanitize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_sanitize(i) for i in obj]
    if hasattr(obj, "isoformat"):
        return obj.isoformat()
    if hasattr(obj, "value") and not isinstance(obj, (int, float, str, bool)):
        return obj.value
    return obj


class AuditService(BaseService):
    def log_action(
        self,
        action: str,
        entity_type: str,
        entity_id: Optional[int],
        user_id: Optional[int],
        user_role: Optional[str],
        details: dict,
        organization_id: Optional[int] = None,
        before_state: Optional[dict] = None,
        after_state: Optional[dict] = None
    ):
        """
        Create a centralized audit log entry.
        Strictly append-only. Added to the caller's session without
        committing so the entry shares the fate of the audited change.
        """
        try:
            db_log = AuditLog(
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                user_id=user_id,
                user_role=user_role,
                details=_sanitize(details),
                organization_id=organization_id or self.org_id,
                before_state=_sanitize(before_state),
                after_state=_sanitize(after_state)
            )
            self.db.add(db_log)
            return db_log
        except Exception as e:
            # Never break the main app flow because of an audit failure
            self._logger.error(f"FAILED TO AUDIT LOG: {e}", exc_info=True)
            return None

    def log_system_event(self, action: str, entity_type: str, entity_id: Optional[int], details: dict,
                         organization_id: Optional[int] = None, before_state: Optional[dict] = None,
                         after_state: Optional[dict] = None):
        """Transitions made by the escalation sweep rather than a person."""
        return self.log_action(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=None,
            user_role="system",
            details=details,
            organization_id=organization_id,
            before_state=before_state,
            after_state=after_state
        )
