import pytest
from datetime import date, datetime, timedelta, timezone
from app.core.exceptions import SweepInProgressError
from app.core.timeutils import utcnow
from app.models.approval import Approval, ApprovalStatus
from app.models.audit_log import AuditLog
from app.models.delegation import Delegation
from app.models.escalation_settings import EscalationSettings
from app.models.leave_request import LeaveRequest, LeaveStatus
from app.models.notification import Notification
from app.models.sweep import SweepLock, SweepRun
from app.services.escalation_service import run_escalation_sweep


def _submit(client, auth_headers, user):
    start = date.today() + timedelta(days=30)
    response = client.post(
        "/api/leave/requests",
        headers=auth_headers(user),
        json={"start_date": start.isoformat(), "end_date": (start + timedelta(days=2)).isoformat(),
              "leave_type": "ANNUAL"}
    )
    assert response.status_code == 201
    return response.json()["approvals"][0]["id"]


@pytest.fixture
def seeded(client, people, auth_headers):
    response = client.post("/api/admin/workflow-rules/seed-defaults", headers=auth_headers(people["admin"]))
    assert response.status_code == 201
    return people


def _settings(db_session, org, **values):
    row = EscalationSettings(organization_id=org.id, **values)
    db_session.add(row)
    db_session.commit()
    return row


def _later(hours):
    return utcnow() + timedelta(hours=hours)


def test_overdue_approval_escalates(client, seeded, auth_headers, db_session):
    approval_id = _submit(client, auth_headers, seeded["employee"])

    report = run_escalation_sweep(db_session, triggered_by="test", now=_later(49))

    assert report.processed == 1
    assert report.escalated == 1
    assert report.errors == []
    approval = db_session.get(Approval, approval_id)
    assert approval.status == ApprovalStatus.PENDING.value
    assert approval.current_level_index == 1
    assert approval.assigned_approver_id == seeded["director"].id
    assert approval.escalation_count == 1
    assert approval.escalated_at is not None

    audit = db_session.query(AuditLog).filter(AuditLog.action == "approval_escalated").one()
    assert audit.details["transition"] == ["PENDING", "ESCALATED", "PENDING"]
    assert db_session.query(Notification).filter(
        Notification.user_id == seeded["director"].id,
        Notification.category == "APPROVAL_REQUIRED"
    ).count() == 1
    assert db_session.query(Notification).filter(
        Notification.user_id == seeded["employee"].id,
        Notification.category == "LEAVE_ESCALATED"
    ).count() == 1


def test_not_overdue_is_left_alone(client, seeded, auth_headers, db_session):
    approval_id = _submit(client, auth_headers, seeded["employee"])
    report = run_escalation_sweep(db_session, triggered_by="test", now=_later(1))
    assert report.processed == 1
    assert report.escalated == 0
    assert db_session.get(Approval, approval_id).current_level_index == 0


def test_reminder_before_timeout(client, seeded, auth_headers, db_session):
    approval_id = _submit(client, auth_headers, seeded["employee"])

    report = run_escalation_sweep(db_session, triggered_by="test", now=_later(30))
    assert report.reminded == 1
    assert db_session.get(Approval, approval_id).reminder_sent_at is not None

    report = run_escalation_sweep(db_session, triggered_by="test", now=_later(31))
    assert report.reminded == 0


def test_auto_approve_after_max_escalations(client, seeded, auth_headers, db_session, org):
    _settings(db_session, org, max_escalation_levels=2, auto_approve_after_max=True)
    approval_id = _submit(client, auth_headers, seeded["employee"])

    first = run_escalation_sweep(db_session, triggered_by="test", now=_later(49))
    assert first.escalated == 1
    second = run_escalation_sweep(db_session, triggered_by="test", now=_later(98))
    assert second.escalated == 1

    approval = db_session.get(Approval, approval_id)
    assert approval.escalation_count == 2
    assert approval.assigned_approver_id == seeded["hr"].id

    third = run_escalation_sweep(db_session, triggered_by="test", now=_later(147))
    assert third.auto_approved == 1
    db_session.refresh(approval)
    assert approval.status == ApprovalStatus.AUTO_APPROVED.value
    assert approval.escalation_count == 2
    assert approval.leave_request.status == LeaveStatus.APPROVED.value

    # Terminal approvals are not picked up again
    fourth = run_escalation_sweep(db_session, triggered_by="test", now=_later(500))
    assert fourth.processed == 0


def test_hold_when_auto_approve_disabled(client, seeded, auth_headers, db_session, org):
    _settings(db_session, org, max_escalation_levels=1, auto_approve_after_max=False)
    approval_id = _submit(client, auth_headers, seeded["employee"])

    run_escalation_sweep(db_session, triggered_by="test", now=_later(49))
    report = run_escalation_sweep(db_session, triggered_by="test", now=_later(98))

    assert report.held == 1
    approval = db_session.get(Approval, approval_id)
    assert approval.status == ApprovalStatus.ESCALATED.value
    assert approval.leave_request.status == LeaveStatus.PENDING.value


def test_redirects_to_active_delegate(client, seeded, auth_headers, db_session, org):
    approval_id = _submit(client, auth_headers, seeded["employee"])
    db_session.add(Delegation(
        organization_id=org.id,
        delegator_id=seeded["manager"].id,
        delegate_id=seeded["hr"].id,
        start_date=date.today(),
        end_date=date.today() + timedelta(days=30),
        is_active=True,
    ))
    db_session.commit()

    report = run_escalation_sweep(db_session, triggered_by="test", now=_later(49))

    assert report.redirected == 1
    approval = db_session.get(Approval, approval_id)
    assert approval.assigned_approver_id == seeded["hr"].id
    assert approval.delegated_from_id == seeded["manager"].id
    assert approval.current_level_index == 0
    assert approval.escalation_count == 0


def test_one_failure_does_not_stop_the_sweep(client, seeded, auth_headers, db_session):
    broken_id = _submit(client, auth_headers, seeded["employee"])
    healthy_id = _submit(client, auth_headers, seeded["employee2"])

    broken = db_session.get(Approval, broken_id)
    broken.leave_request.approval_chain = {"rule_name": "corrupt", "levels": "not-a-list"}
    db_session.commit()

    report = run_escalation_sweep(db_session, triggered_by="test", now=_later(49))

    assert report.processed == 2
    assert report.escalated == 1
    assert [e.approval_id for e in report.errors] == [broken_id]
    assert db_session.get(Approval, healthy_id).escalation_count == 1

    broken = db_session.get(Approval, broken_id)
    assert broken.last_error
    assert broken.status == ApprovalStatus.PENDING.value

    run = db_session.get(SweepRun, report.run_id)
    assert run.status == "COMPLETED"
    assert run.escalated == 1
    assert run.errors[0]["approval_id"] == broken_id


def test_dry_run_persists_nothing(client, seeded, auth_headers, db_session):
    approval_id = _submit(client, auth_headers, seeded["employee"])

    report = run_escalation_sweep(db_session, triggered_by="test", now=_later(49), dry_run=True)

    assert report.dry_run is True
    assert report.run_id is None
    assert report.escalated == 1
    assert report.decisions[0].action == "ESCALATE"
    assert report.decisions[0].target_approver_id == seeded["director"].id
    assert db_session.get(Approval, approval_id).escalation_count == 0
    assert db_session.query(SweepRun).count() == 0


def test_live_lock_blocks_second_sweep(db_session, seeded):
    db_session.add(SweepLock(
        name="escalation",
        holder="cron:abc",
        acquired_at=utcnow(),
        expires_at=utcnow() + timedelta(minutes=10),
    ))
    db_session.commit()

    with pytest.raises(SweepInProgressError):
        run_escalation_sweep(db_session, triggered_by="test")


def test_expired_lock_is_taken_over(db_session, seeded):
    db_session.add(SweepLock(
        name="escalation",
        holder="cron:dead",
        acquired_at=utcnow() - timedelta(hours=2),
        expires_at=utcnow() - timedelta(hours=1),
    ))
    db_session.commit()

    report = run_escalation_sweep(db_session, triggered_by="test")

    assert report.run_id is not None
    lock = db_session.get(SweepLock, "escalation")
    assert lock.holder is None


def _other_org_with_pending_approval(db_session):
    from app.models.organization import Organization
    from app.models.user import User, UserRole
    other = Organization(name="Beta Corp", slug="beta-corp")
    db_session.add(other)
    db_session.flush()
    boss = User(email="boss@betacorp.com", full_name="Boss", role=UserRole.MANAGER,
                organization_id=other.id, is_active=True)
    db_session.add(boss)
    db_session.flush()
    worker = User(email="worker@betacorp.com", full_name="Worker", role=UserRole.EMPLOYEE,
                  organization_id=other.id, is_active=True, manager_id=boss.id)
    db_session.add(worker)
    db_session.flush()
    start = date.today() + timedelta(days=30)
    leave = LeaveRequest(organization_id=other.id, employee_id=worker.id, leave_type="ANNUAL",
                         start_date=start, end_date=start, days_count=1, status=LeaveStatus.PENDING.value,
                         approval_chain={"rule_name": "Default Rule",
                                         "levels": [{"role": "employee"}, {"role": "manager"}]})
    db_session.add(leave)
    db_session.flush()
    approval = Approval(organization_id=other.id, leave_request_id=leave.id, current_level_index=0,
                        assigned_approver_id=boss.id, entered_at=utcnow(), escalation_count=0,
                        status=ApprovalStatus.PENDING.value)
    db_session.add(approval)
    db_session.commit()
    return other, approval


def test_unusable_settings_skip_only_that_organization(client, seeded, auth_headers, db_session, org):
    _submit(client, auth_headers, seeded["employee"])
    # Written around the settings endpoint, which would refuse it
    _settings(db_session, org, escalation_timeout_hours=12, reminder_hours=24)
    other, other_approval = _other_org_with_pending_approval(db_session)

    report = run_escalation_sweep(db_session, triggered_by="test", now=_later(1))

    assert report.processed == 1
    assert len(report.errors) == 1
    assert report.errors[0].organization_id == org.id
    assert report.errors[0].approval_id is None
    assert "reminder_hours" in report.errors[0].error

    run = db_session.get(SweepRun, report.run_id)
    assert run.status == "COMPLETED"
    assert db_session.get(Approval, other_approval.id).last_error is None
