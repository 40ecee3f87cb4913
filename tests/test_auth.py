"""Tests for access token verification."""

import time
import uuid

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from jose import jwt

import auth
from auth import AuthManager, AuthError, TokenExpiredError

SECRET = "test-jwt-secret"
USER_ID = str(uuid.uuid4())

def make_token(secret=SECRET, **claims):
    payload = {
        "sub": USER_ID,
        "aud": "authenticated",
        "exp": int(time.time()) + 3600
    }
    payload.update(claims)
    return jwt.encode({k: v for k, v in payload.items() if v is not None}, secret, algorithm="HS256")

@pytest.fixture
def manager():
    return AuthManager(secret=SECRET, algorithm="HS256", audience="authenticated")

def test_verify_valid_token(manager):
    """Test that a valid token yields its subject."""
    assert manager.verify_token(make_token()) == USER_ID

def test_expired_token(manager):
    """Test that an expired token raises TokenExpiredError."""
    token = make_token(exp=int(time.time()) - 60)

    with pytest.raises(TokenExpiredError):
        manager.verify_token(token)

def test_wrong_signature(manager):
    """Test that a token signed with another secret is rejected."""
    with pytest.raises(AuthError):
        manager.verify_token(make_token(secret="other-secret"))

def test_wrong_audience(manager):
    """Test that a token for another audience is rejected."""
    with pytest.raises(AuthError):
        manager.verify_token(make_token(aud="anon"))

def test_subject_must_be_uuid(manager):
    """Test that a non-UUID subject is rejected."""
    with pytest.raises(AuthError) as exc_info:
        manager.verify_token(make_token(sub="not-a-user"))

    assert "valid user id" in str(exc_info.value)

def test_missing_subject(manager):
    """Test that a token without a subject is rejected."""
    with pytest.raises(AuthError) as exc_info:
        manager.verify_token(make_token(sub=None))

    assert "no subject" in str(exc_info.value)

def test_unconfigured_secret():
    """Test that verification fails closed without a secret."""
    with pytest.raises(AuthError):
        AuthManager(secret="").verify_token(make_token())

@pytest.mark.asyncio
async def test_get_current_user_dependency(manager, monkeypatch):
    """Test the route dependency with and without credentials."""
    monkeypatch.setattr(auth, "manager", manager)

    credentials = HTTPAuthorizationCredentials(scheme="Bearer", credentials=make_token())
    assert await auth.get_current_user(credentials) == USER_ID

    with pytest.raises(HTTPException) as exc_info:
        await auth.get_current_user(None)
    assert exc_info.value.status_code == 401

    assert await auth.get_optional_user(None) is None

    bad = HTTPAuthorizationCredentials(scheme="Bearer", credentials="garbage")
    with pytest.raises(HTTPException) as exc_info:
        await auth.get_optional_user(bad)
    assert exc_info.value.status_code == 401
