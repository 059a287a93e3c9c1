import base64
import json

import pytest
from fastapi import HTTPException

from services.auth import create_access_token, decode_access_token, extract_bearer_token


def _b64(data: dict) -> str:
    return base64.urlsafe_b64encode(json.dumps(data).encode()).decode().rstrip("=")


def test_token_round_trip_carries_subject_and_email():
    payload = decode_access_token(create_access_token("user-alice", "alice@example.com"))
    assert payload["sub"] == "user-alice"
    assert payload["email"] == "alice@example.com"


def test_create_token_requires_user_id():
    with pytest.raises(ValueError):
        create_access_token("")


def test_expired_token_rejected():
    token = create_access_token("user-alice", ttl_seconds=-10)
    with pytest.raises(HTTPException) as excinfo:
        decode_access_token(token)
    assert excinfo.value.status_code == 401
    assert excinfo.value.detail == "Token expired"


def test_tampered_payload_rejected():
    header, _payload, signature = create_access_token("user-alice").split(".")
    forged = _b64({"sub": "user-admin", "exp": 9999999999})
    with pytest.raises(HTTPException) as excinfo:
        decode_access_token(f"{header}.{forged}.{signature}")
    assert excinfo.value.detail == "Invalid token signature"


def test_unsigned_algorithm_rejected():
    _header, payload, signature = create_access_token("user-alice").split(".")
    header = _b64({"alg": "none", "typ": "JWT"})
    with pytest.raises(HTTPException) as excinfo:
        decode_access_token(f"{header}.{payload}.{signature}")
    assert excinfo.value.detail == "Unsupported token algorithm"


@pytest.mark.parametrize("value", [None, "", "Basic abc", "Bearer   "])
def test_bearer_header_parsing(value):
    with pytest.raises(HTTPException) as excinfo:
        extract_bearer_token(value)
    assert excinfo.value.status_code == 401


def test_protected_routes_reject_bad_tokens(client):
    expired = create_access_token("user-alice", ttl_seconds=-10)
    for path in ("/medicines", "/reminders", "/family/groups", "/analytics", "/export/medicines.csv"):
        assert client.get(path).status_code == 401
        assert client.get(path, headers={"Authorization": f"Bearer {expired}"}).status_code == 401


def test_public_routes_need_no_token(client):
    assert client.get("/health").json()["status"] == "ok"
    response = client.post("/drug-interactions", json={"medicines": ["warfarin", "aspirin"]})
    assert response.status_code == 200
