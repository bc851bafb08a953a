import pytest
from datetime import timedelta
from fastapi import status
from app.services import auth as auth_service


def test_token_round_trip():
    """Tokens minted with the shared secret decode to their claims."""
    token = auth_service.create_access_token({"sub": "someone@alphacorp.com", "role": "HR", "org_id": 1})
    payload = auth_service.decode_access_token(token)
    assert payload["sub"] == "someone@alphacorp.com"
    assert payload["type"] == "access"


def test_expired_token_is_flagged():
    token = auth_service.create_access_token({"sub": "x@alphacorp.com"}, expires_delta=timedelta(seconds=-5))
    assert auth_service.decode_access_token(token) == {"error": "TOKEN_EXPIRED"}


def test_tampered_token_is_rejected():
    token = auth_service.create_access_token({"sub": "x@alphacorp.com"})
    assert auth_service.decode_access_token(token[:-2] + "xx") is None


def test_expired_token_returns_401(client, people):
    token = auth_service.create_access_token(
        {"sub": people["hr"].email, "role": "HR", "org_id": people["hr"].organization_id},
        expires_delta=timedelta(seconds=-5)
    )
    response = client.get("/api/leave/requests", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["errors"][0]["msg"] == "TOKEN_EXPIRED"


def test_unknown_user_returns_401(client, org):
    token = auth_service.create_access_token({"sub": "ghost@alphacorp.com", "role": "HR", "org_id": org.id})
    response = client.get("/api/leave/requests", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_organization_mismatch_is_forbidden(client, people, get_token, org):
    token = get_token(people["hr"], org.id + 1000)
    response = client.get("/api/leave/requests", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_inactive_user_is_forbidden(client, people, auth_headers, db_session):
    people["employee"].is_active = False
    db_session.commit()
    response = client.get("/api/leave/requests", headers=auth_headers(people["employee"]))
    assert response.status_code == status.HTTP_403_FORBIDDEN
