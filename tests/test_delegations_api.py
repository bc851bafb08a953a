import pytest
from datetime import date, timedelta
from app.models.delegation import Delegation

BASE = "/api/manager/delegations"


def _create(client, auth_headers, delegator, delegate, start_offset=0, days=5):
    start = date.today() + timedelta(days=start_offset)
    return client.post(BASE, headers=auth_headers(delegator), json={
        "delegate_id": delegate.id,
        "start_date": start.isoformat(),
        "end_date": (start + timedelta(days=days)).isoformat(),
        "reason": "Conference",
    })


def test_create_and_list(client, people, auth_headers):
    response = _create(client, auth_headers, people["manager"], people["director"])
    assert response.status_code == 201
    assert response.json()["delegate_id"] == people["director"].id
    assert response.json()["is_active"] is True

    listing = client.get(BASE, headers=auth_headers(people["manager"]))
    assert len(listing.json()) == 1

    # Listing only shows the caller's own delegations
    assert client.get(BASE, headers=auth_headers(people["director"])).json() == []


def test_cannot_delegate_to_self(client, people, auth_headers):
    response = _create(client, auth_headers, people["manager"], people["manager"])
    assert response.status_code == 400


def test_delegate_must_be_approver(client, people, auth_headers):
    response = _create(client, auth_headers, people["manager"], people["employee"])
    assert response.status_code == 400


def test_employees_cannot_delegate(client, people, auth_headers):
    response = _create(client, auth_headers, people["employee"], people["manager"])
    assert response.status_code == 403


def test_overlapping_delegation_rejected(client, people, auth_headers):
    assert _create(client, auth_headers, people["manager"], people["director"]).status_code == 201
    overlapping = _create(client, auth_headers, people["manager"], people["hr"], start_offset=3)
    assert overlapping.status_code == 400

    later = _create(client, auth_headers, people["manager"], people["hr"], start_offset=10)
    assert later.status_code == 201


def test_end_before_start_rejected(client, people, auth_headers):
    response = client.post(BASE, headers=auth_headers(people["manager"]), json={
        "delegate_id": people["director"].id,
        "start_date": date.today().isoformat(),
        "end_date": (date.today() - timedelta(days=1)).isoformat(),
    })
    assert response.status_code == 422


def test_toggle_deactivates_others(client, people, auth_headers, db_session):
    first = _create(client, auth_headers, people["manager"], people["director"]).json()
    second = _create(client, auth_headers, people["manager"], people["hr"], start_offset=10).json()

    off = client.post(f"{BASE}/{second['id']}/toggle", headers=auth_headers(people["manager"]))
    assert off.json()["is_active"] is False

    on = client.post(f"{BASE}/{second['id']}/toggle", headers=auth_headers(people["manager"]))
    assert on.json()["is_active"] is True

    db_session.expire_all()
    assert db_session.get(Delegation, first["id"]).is_active is False


def test_only_owner_can_manage(client, people, auth_headers):
    delegation = _create(client, auth_headers, people["manager"], people["director"]).json()

    response = client.delete(f"{BASE}/{delegation['id']}", headers=auth_headers(people["hr"]))
    assert response.status_code == 403

    response = client.delete(f"{BASE}/{delegation['id']}", headers=auth_headers(people["manager"]))
    assert response.status_code == 200
    assert client.get(BASE, headers=auth_headers(people["manager"])).json() == []
