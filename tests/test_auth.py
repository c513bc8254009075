from datetime import timedelta

import jwt
import pytest

from auth import TokenVerifier, bearer_token
from errors import Unauthorized

SECRET = "test-secret"


def test_verify_returns_user_id():
    verifier = TokenVerifier(SECRET)
    assert verifier.verify(verifier.sign("user-1")) == "user-1"


def test_verify_accepts_sub_claim():
    token = jwt.encode({"sub": "user-2"}, SECRET, algorithm="HS256")
    assert TokenVerifier(SECRET).verify(token) == "user-2"


@pytest.mark.parametrize("token", [None, "", "not-a-jwt"])
def test_verify_rejects_missing_or_malformed(token):
    with pytest.raises(Unauthorized):
        TokenVerifier(SECRET).verify(token)


def test_verify_rejects_wrong_secret():
    token = TokenVerifier("other-secret").sign("user-1")
    with pytest.raises(Unauthorized):
        TokenVerifier(SECRET).verify(token)


def test_verify_rejects_expired():
    verifier = TokenVerifier(SECRET)
    token = verifier.sign("user-1", expires_in=timedelta(seconds=-10))
    with pytest.raises(Unauthorized) as exc:
        verifier.verify(token)
    assert exc.value.detail == "Token expired"


def test_verify_rejects_token_without_identity():
    token = jwt.encode({"role": "user"}, SECRET, algorithm="HS256")
    with pytest.raises(Unauthorized):
        TokenVerifier(SECRET).verify(token)


def test_bearer_token_parsing():
    assert bearer_token(None) is None
    assert bearer_token("Bearer abc") == "abc"
    assert bearer_token("bearer abc") == "abc"
    with pytest.raises(Unauthorized):
        bearer_token("Token abc")


def test_routes_require_token(client):
    assert client.get("/api/posts").status_code == 401
    assert client.get("/api/posts", headers={"Authorization": "Bearer nope"}).status_code == 401
    assert client.post("/api/comments", json={"post_id": "x", "content": "hi"}).status_code == 401


def test_public_root_needs_no_token(client):
    res = client.get("/")
    assert res.status_code == 200
    assert client.get("/test").json()["connection_status"] == "Connected"
