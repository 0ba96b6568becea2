from fastapi import status
from sqlalchemy import select

from addressbook import models
from addressbook.core import get_settings


def test_valid_token_registers_user_once(client, auth, db_session):
    for _ in range(2):
        response = client.get("/contacts/list", params={"mine": "true"}, headers=auth())
        assert response.status_code == status.HTTP_200_OK

    users = db_session.scalars(select(models.User)).all()
    assert [(u.auth0_sub, u.nickname) for u in users] == [("google-oauth2|1", "alice")]


def test_garbage_token_is_rejected(client):
    response = client.get(
        "/contacts/new",
        params={"name": "Bob", "email": "b@x.com"},
        headers={"Authorization": "Bearer not-a-jwt"},
    )
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json() == {
        "success": False,
        "message": "Could not validate credentials",
    }


def test_invalid_token_is_rejected_on_public_route(client):
    response = client.get(
        "/contacts/list", headers={"Authorization": "Bearer not-a-jwt"}
    )
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_expired_token_is_rejected(client, token_factory):
    token = token_factory(expires_in=-60)
    response = client.get("/mypage", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_token_without_subject_is_rejected(client, token_factory):
    token = token_factory(sub=None)
    response = client.get("/mypage", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_nickname_falls_back_to_name_claim(client, token_factory):
    token = token_factory(sub="auth0|7", nickname=None, name="Carol")
    response = client.get("/mypage", headers={"Authorization": f"Bearer {token}"})
    assert response.json()["result"]["nickname"] == "Carol"


def test_audience_is_checked_when_configured(client, token_factory, monkeypatch):
    monkeypatch.setattr(get_settings(), "AUTH_AUDIENCE", "address-book")

    wrong = token_factory(aud="another-api")
    response = client.get("/mypage", headers={"Authorization": f"Bearer {wrong}"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED

    right = token_factory(aud="address-book")
    response = client.get("/mypage", headers={"Authorization": f"Bearer {right}"})
    assert response.status_code == status.HTTP_200_OK
