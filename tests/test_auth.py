"""Tests for Firebase token verification and owner resolution"""

import asyncio
import base64
import datetime
import json
import time

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.x509.oid import NameOID
from fastapi import HTTPException

from meeting_scheduler import auth
from meeting_scheduler.models import User

PROJECT = "test-project"


def claims(**overrides):
    now = int(time.time())
    values = {
        "aud": PROJECT,
        "iss": f"https://securetoken.google.com/{PROJECT}",
        "sub": "firebase-uid-1",
        "email": "New.Owner@Example.com",
        "name": "New Owner",
        "email_verified": True,
        "iat": now - 10,
        "exp": now + 3600,
        "auth_time": now - 10,
    }
    values.update(overrides)
    return values


def b64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()


@pytest.fixture(scope="module")
def signing_key():
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "securetoken")])
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=1))
        .sign(key, hashes.SHA256())
    )
    pem = cert.public_bytes(serialization.Encoding.PEM).decode()
    return key, {"kid-1": pem}


def make_token(key, payload, kid="kid-1", alg="RS256"):
    header = b64(json.dumps({"alg": alg, "kid": kid}).encode())
    body = b64(json.dumps(payload).encode())
    signature = key.sign(f"{header}.{body}".encode(), padding.PKCS1v15(), hashes.SHA256())
    return f"{header}.{body}.{b64(signature)}"


@pytest.fixture
def google_keys(monkeypatch, signing_key):
    _, keys = signing_key

    async def fake_keys(force_refresh=False):
        return keys

    monkeypatch.setattr(auth, "get_google_public_keys", fake_keys)
    return keys


def test_verify_claims_accepts_valid_payload():
    payload = claims()
    assert auth.verify_claims(payload) is payload


@pytest.mark.parametrize(
    "overrides, detail",
    [
        ({"aud": "other-project"}, "Invalid token audience"),
        ({"iss": "https://evil.example.com"}, "Invalid token issuer"),
        ({"iat": int(time.time()) + 3600}, "Invalid token"),
    ],
)
def test_verify_claims_rejections(overrides, detail):
    with pytest.raises(HTTPException) as exc_info:
        auth.verify_claims(claims(**overrides))
    assert exc_info.value.status_code == 401
    assert exc_info.value.detail == detail


def test_expired_token_sets_header():
    with pytest.raises(HTTPException) as exc_info:
        auth.verify_claims(claims(exp=int(time.time()) - 120))
    assert exc_info.value.headers == {"X-Token-Expired": "true"}


def test_missing_auth_time():
    payload = claims()
    del payload["auth_time"]
    with pytest.raises(HTTPException):
        auth.verify_claims(payload)


def test_verify_firebase_token_checks_signature(google_keys, signing_key):
    key, _ = signing_key
    token = make_token(key, claims())

    verified = asyncio.run(auth.verify_firebase_token(token))
    assert verified["sub"] == "firebase-uid-1"

    # Swap the payload but keep the original signature
    header, _, signature = token.split(".")
    tampered = f"{header}.{b64(json.dumps(claims(sub='attacker')).encode())}.{signature}"
    with pytest.raises(HTTPException) as exc_info:
        asyncio.run(auth.verify_firebase_token(tampered))
    assert exc_info.value.detail == "Invalid token signature"


def test_verify_firebase_token_rejects_unknown_kid_and_alg(google_keys, signing_key):
    key, _ = signing_key
    with pytest.raises(HTTPException) as exc_info:
        asyncio.run(auth.verify_firebase_token(make_token(key, claims(), kid="kid-unknown")))
    assert exc_info.value.detail == "Unable to verify token signature"

    with pytest.raises(HTTPException) as exc_info:
        asyncio.run(auth.verify_firebase_token(make_token(key, claims(), alg="HS256")))
    assert exc_info.value.detail == "Invalid token algorithm"

    with pytest.raises(HTTPException):
        asyncio.run(auth.verify_firebase_token("not-a-jwt"))


def test_resolve_user_creates_owner_on_first_sign_in(db):
    user = auth.resolve_user(db, claims())

    assert user.id is not None
    assert user.email == "new.owner@example.com"
    assert user.email_verified is True
    assert auth.resolve_user(db, claims()).id == user.id
    assert db.query(User).count() == 1


def test_resolve_user_rekeys_existing_email(db, owner):
    user = auth.resolve_user(db, claims(sub="new-provider-uid", email="owner@example.com"))

    assert user.id == owner.id
    assert user.firebase_uid == "new-provider-uid"


def test_resolve_user_requires_subject(db):
    payload = claims()
    del payload["sub"]
    with pytest.raises(HTTPException) as exc_info:
        auth.resolve_user(db, payload)
    assert exc_info.value.status_code == 401


def test_missing_bearer_token_is_401(db):
    from fastapi.testclient import TestClient

    from meeting_scheduler.database import get_db
    from meeting_scheduler.main import app

    def override_db():
        yield db

    app.dependency_overrides[get_db] = override_db
    try:
        response = TestClient(app).get("/scheduler/events")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code in (401, 403)
