import pytest
from pydantic import ValidationError
from app.core.config import EscalationDefaults, settings


def test_loaded_escalation_defaults_are_consistent():
    assert settings.escalation.reminder_hours < settings.escalation.escalation_timeout_hours


@pytest.mark.parametrize("values", [
    {"escalation_timeout_hours": 12, "reminder_hours": 24},
    {"escalation_timeout_hours": 0},
    {"escalation_timeout_hours": 169},
    {"max_escalation_levels": 6},
])
def test_invalid_escalation_defaults_fail_at_load(values):
    with pytest.raises(ValidationError) as exc_info:
        EscalationDefaults(**values)
    assert "Invalid escalation defaults" in str(exc_info.value)


def test_valid_escalation_defaults_accepted():
    defaults = EscalationDefaults(escalation_timeout_hours=12, reminder_hours=6)
    assert defaults.escalation_timeout_hours == 12
