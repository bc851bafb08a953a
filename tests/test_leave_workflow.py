import pytest
from datetime import date, timedelta
from app.models.approval import Approval, ApprovalStatus
from app.models.escalation_settings import EscalationSettings
from app.models.leave_request import LeaveRequest, LeaveStatus
from app.models.notification import Notification


def _submit(client, auth_headers, user, days=3, leave_type="ANNUAL", **extra):
    start = date.today() + timedelta(days=10)
    end = start + timedelta(days=days - 1)
    return client.post(
        "/api/leave/requests",
        headers=auth_headers(user),
        json={"start_date": start.isoformat(), "end_date": end.isoformat(), "leave_type": leave_type, **extra}
    )


def _seed_rules(client, auth_headers, admin):
    response = client.post("/api/admin/workflow-rules/seed-defaults", headers=auth_headers(admin))
    assert response.status_code == 201
    return response.json()


def _decide(client, auth_headers, user, approval_id, approve=True, comment=None):
    return client.post(
        f"/api/leave/approvals/{approval_id}/decision",
        headers=auth_headers(user),
        json={"approve": approve, "comment": comment}
    )


def test_submit_uses_default_chain_without_rules(client, people, auth_headers, db_session):
    response = _submit(client, auth_headers, people["employee"])
    assert response.status_code == 201
    data = response.json()
    assert data["status"] == LeaveStatus.PENDING.value
    assert data["days_count"] == 3
    assert data["approval_chain"]["is_default"] is True
    assert data["approvals"][0]["assigned_approver_id"] == people["manager"].id

    notification = db_session.query(Notification).filter(Notification.user_id == people["manager"].id).first()
    assert notification is not None
    assert notification.category == "APPROVAL_REQUIRED"


def test_submit_snapshots_matched_rule(client, people, auth_headers):
    _seed_rules(client, auth_headers, people["admin"])
    response = _submit(client, auth_headers, people["employee"])
    data = response.json()
    assert data["approval_chain"]["rule_name"] == "Standard Employee Leave"
    assert data["workflow_rule_id"] is not None
    roles = [level["role"] for level in data["approval_chain"]["levels"]]
    assert roles == ["employee", "manager", "department_director", "hr"]


def test_special_leave_goes_to_hr_first(client, people, auth_headers):
    _seed_rules(client, auth_headers, people["admin"])
    response = _submit(client, auth_headers, people["employee"], is_special_leave=True)
    data = response.json()
    assert data["approval_chain"]["rule_name"] == "Special Leave - HR Verification Required"
    assert data["approvals"][0]["assigned_approver_id"] == people["hr"].id


def test_multi_level_approval(client, people, auth_headers, db_session):
    """Special leave: HR verifies, then the manager signs; the director level is reserve only."""
    _seed_rules(client, auth_headers, people["admin"])
    leave = _submit(client, auth_headers, people["employee"], is_special_leave=True).json()
    approval_id = leave["approvals"][0]["id"]

    first = _decide(client, auth_headers, people["hr"], approval_id)
    assert first.status_code == 200
    assert first.json()["status"] == LeaveStatus.PENDING.value
    assert first.json()["approvals"][0]["assigned_approver_id"] == people["manager"].id
    assert first.json()["approvals"][0]["current_level_index"] == 1

    second = _decide(client, auth_headers, people["manager"], approval_id, comment="Enjoy")
    assert second.status_code == 200
    assert second.json()["status"] == LeaveStatus.APPROVED.value
    assert second.json()["approvals"][0]["status"] == ApprovalStatus.APPROVED.value
    assert second.json()["approvals"][0]["decided_by_id"] == people["manager"].id


def test_rejection_ends_workflow(client, people, auth_headers):
    leave = _submit(client, auth_headers, people["employee"]).json()
    approval_id = leave["approvals"][0]["id"]

    response = _decide(client, auth_headers, people["manager"], approval_id, approve=False, comment="Release week")
    assert response.status_code == 200
    assert response.json()["status"] == LeaveStatus.REJECTED.value

    again = _decide(client, auth_headers, people["manager"], approval_id)
    assert again.status_code == 400


def test_only_assigned_approver_can_decide(client, people, auth_headers):
    leave = _submit(client, auth_headers, people["employee"]).json()
    approval_id = leave["approvals"][0]["id"]

    response = _decide(client, auth_headers, people["director"], approval_id)
    assert response.status_code == 403

    # HR can only step in once the request is held
    response = _decide(client, auth_headers, people["hr"], approval_id)
    assert response.status_code == 403


def test_hr_decides_held_request(client, people, auth_headers, db_session):
    leave = _submit(client, auth_headers, people["employee"]).json()
    approval = db_session.get(Approval, leave["approvals"][0]["id"])
    approval.status = ApprovalStatus.ESCALATED.value
    db_session.commit()

    pending = client.get("/api/leave/approvals/pending", headers=auth_headers(people["hr"]))
    assert [a["id"] for a in pending.json()] == [approval.id]

    response = _decide(client, auth_headers, people["hr"], approval.id)
    assert response.status_code == 200
    assert response.json()["status"] == LeaveStatus.APPROVED.value


def test_executive_request_needs_no_approver(client, people, auth_headers):
    _seed_rules(client, auth_headers, people["admin"])
    response = _submit(client, auth_headers, people["executive"])
    assert response.status_code == 201
    assert response.json()["status"] == LeaveStatus.APPROVED.value
    assert response.json()["approvals"] == []


def test_absent_manager_is_skipped_on_submit(client, people, auth_headers, db_session):
    """Manager on approved leave today: the director from the reserve level signs instead."""
    _seed_rules(client, auth_headers, people["admin"])
    today = date.today()
    db_session.add(LeaveRequest(
        organization_id=people["manager"].organization_id,
        employee_id=people["manager"].id,
        leave_type="ANNUAL",
        start_date=today - timedelta(days=1),
        end_date=today + timedelta(days=5),
        days_count=7,
        status=LeaveStatus.APPROVED.value,
        approval_chain={"rule_name": "seed", "levels": [{"role": "employee"}]},
    ))
    db_session.commit()

    response = _submit(client, auth_headers, people["employee"])
    approval = response.json()["approvals"][0]
    assert approval["assigned_approver_id"] == people["director"].id
    assert approval["current_level_index"] == 1


def test_pending_queue_lists_own_items(client, people, auth_headers):
    _submit(client, auth_headers, people["employee"])
    _submit(client, auth_headers, people["employee2"])

    response = client.get("/api/leave/approvals/pending", headers=auth_headers(people["manager"]))
    assert response.status_code == 200
    assert len(response.json()) == 2

    response = client.get("/api/leave/approvals/pending", headers=auth_headers(people["director"]))
    assert response.json() == []


def test_list_requests_scoped_to_requester(client, people, auth_headers):
    _submit(client, auth_headers, people["employee"])
    _submit(client, auth_headers, people["employee2"])

    own = client.get("/api/leave/requests", headers=auth_headers(people["employee"]))
    assert len(own.json()) == 1

    everyone = client.get("/api/leave/requests", headers=auth_headers(people["hr"]))
    assert len(everyone.json()) == 2

    filtered = client.get("/api/leave/requests?status=approved", headers=auth_headers(people["hr"]))
    assert filtered.json() == []


def test_end_before_start_rejected(client, people, auth_headers):
    start = date.today() + timedelta(days=10)
    response = client.post(
        "/api/leave/requests",
        headers=auth_headers(people["employee"]),
        json={"start_date": start.isoformat(), "end_date": (start - timedelta(days=1)).isoformat(), "leave_type": "ANNUAL"}
    )
    assert response.status_code == 422
    assert response.json()["success"] is False


def test_requires_authentication(client):
    response = client.get("/api/leave/requests")
    assert response.status_code == 401


def _on_leave_today(db_session, user):
    today = date.today()
    db_session.add(LeaveRequest(
        organization_id=user.organization_id,
        employee_id=user.id,
        leave_type="ANNUAL",
        start_date=today - timedelta(days=1),
        end_date=today + timedelta(days=5),
        days_count=7,
        status=LeaveStatus.APPROVED.value,
        approval_chain={"rule_name": "seed", "levels": [{"role": "employee"}]},
    ))
    db_session.commit()


def test_lone_absent_manager_keeps_request_pending(client, people, auth_headers, db_session, org):
    """No substitute and no reserve level: the request waits for the escalation sweep."""
    db_session.add(EscalationSettings(organization_id=org.id, auto_approve_after_max=False))
    db_session.commit()
    _on_leave_today(db_session, people["manager"])

    response = _submit(client, auth_headers, people["employee"], days=1)
    assert response.status_code == 201
    data = response.json()
    assert data["status"] == LeaveStatus.PENDING.value
    assert len(data["approvals"]) == 1
    assert data["approvals"][0]["status"] == ApprovalStatus.PENDING.value
    assert data["approvals"][0]["assigned_approver_id"] == people["manager"].id
    assert data["approvals"][0]["current_level_index"] == 0


def test_absent_next_approver_keeps_request_pending(client, people, auth_headers, db_session):
    rule = {
        "name": "Two signatures",
        "priority": 10,
        "conditions": [{"type": "role_in", "roles": ["EMPLOYEE"]}],
        "approval_levels": [{"role": "employee"}, {"role": "manager"}, {"role": "department_director"}],
    }
    assert client.post("/api/admin/workflow-rules", headers=auth_headers(people["admin"]), json=rule).status_code == 201
    leave = _submit(client, auth_headers, people["employee"]).json()
    approval_id = leave["approvals"][0]["id"]
    _on_leave_today(db_session, people["director"])

    response = _decide(client, auth_headers, people["manager"], approval_id)
    assert response.status_code == 200
    assert response.json()["status"] == LeaveStatus.PENDING.value
    assert response.json()["approvals"][0]["assigned_approver_id"] == people["director"].id
    assert response.json()["approvals"][0]["current_level_index"] == 1
