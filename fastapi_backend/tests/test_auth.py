from datetime import datetime, timedelta, timezone

from jose import jwt

from src.api.auth_utils import SESSION_COOKIE


def _bearer(token):
    return {"Authorization": f"Bearer {token}"}


def test_sign_up_returns_token_and_public_user(client):
    resp = client.post(
        "/auth/sign-up/email",
        json={"name": "Ada", "email": "Ada@Example.com", "password": "correct-horse"},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["token"]
    assert body["user"]["email"] == "ada@example.com"
    assert body["user"]["email_verified"] is False
    assert "password_hash" not in body["user"]
    assert SESSION_COOKIE in resp.cookies


def test_sign_up_duplicate_email_conflicts(client, signed_up):
    resp = client.post(
        "/auth/sign-up/email",
        json={"name": "Other", "email": "ADA@example.com", "password": "another-pass"},
    )
    assert resp.status_code == 409
    assert resp.json()["message"] == "User already exists"


def test_sign_up_rejects_unknown_fields(client, store):
    resp = client.post(
        "/auth/sign-up/email",
        json={"name": "Ada", "email": "ada@example.com", "password": "correct-horse", "role": "admin"},
    )
    assert resp.status_code == 400
    body = resp.json()
    assert body["statusCode"] == 400
    assert "property role should not exist" in body["message"]
    assert store.users == {}


def test_sign_up_rejects_short_password(client):
    resp = client.post(
        "/auth/sign-up/email",
        json={"name": "Ada", "email": "ada@example.com", "password": "short"},
    )
    assert resp.status_code == 400
    assert any(m.startswith("password:") for m in resp.json()["message"])


def test_sign_in_with_valid_credentials(client, signed_up):
    _, user = signed_up
    resp = client.post(
        "/auth/sign-in/email",
        json={"email": "ADA@example.com", "password": "correct-horse"},
    )
    assert resp.status_code == 200
    assert resp.json()["user"]["id"] == user["id"]


def test_sign_in_with_wrong_password(client, signed_up):
    resp = client.post(
        "/auth/sign-in/email",
        json={"email": "ada@example.com", "password": "wrong-password"},
    )
    assert resp.status_code == 401
    assert resp.json()["message"] == "Invalid email or password"


def test_sign_in_unknown_user(client):
    resp = client.post(
        "/auth/sign-in/email",
        json={"email": "ghost@example.com", "password": "whatever-pass"},
    )
    assert resp.status_code == 401


def test_get_session_requires_credentials(client):
    resp = client.get("/auth/get-session")
    assert resp.status_code == 401
    assert resp.headers["www-authenticate"] == "Bearer"


def test_get_session_rejects_garbage_token(client):
    resp = client.get("/auth/get-session", headers=_bearer("garbage"))
    assert resp.status_code == 401
    assert resp.json()["message"] == "Invalid token"


def test_get_session_with_bearer_token(client, signed_up):
    token, user = signed_up
    resp = client.get("/auth/get-session", headers=_bearer(token))
    assert resp.status_code == 200
    body = resp.json()
    assert body["user"]["id"] == user["id"]
    assert body["session"]["user_id"] == user["id"]


def test_get_session_with_cookie(client):
    resp = client.post(
        "/auth/sign-up/email",
        json={"name": "Bob", "email": "bob@example.com", "password": "correct-horse"},
    )
    assert resp.status_code == 200
    # The client keeps the session cookie from the sign-up response.
    resp = client.get("/auth/get-session")
    assert resp.status_code == 200
    assert resp.json()["user"]["email"] == "bob@example.com"


def test_sign_out_revokes_token(client, signed_up, store):
    token, _ = signed_up
    resp = client.post("/auth/sign-out", headers=_bearer(token))
    assert resp.status_code == 200
    assert resp.json() == {"success": True}
    assert store.sessions == {}

    resp = client.get("/auth/get-session", headers=_bearer(token))
    assert resp.status_code == 401
    assert resp.json()["message"] == "Session not found"


def test_sign_out_requires_credentials(client):
    assert client.post("/auth/sign-out").status_code == 401


def test_expired_session_is_rejected_and_removed(client, signed_up, store):
    token, _ = signed_up
    (session_id,) = list(store.sessions)
    store.sessions[session_id]["expires_at"] = datetime.now(timezone.utc) - timedelta(seconds=1)

    resp = client.get("/auth/get-session", headers=_bearer(token))
    assert resp.status_code == 401
    assert session_id not in store.sessions


def test_token_past_its_exp_removes_session_row(client, auth, store):
    user = store.create_user("old@example.com", "Old", "hash")
    session = store.create_session(user["id"], datetime.now(timezone.utc) - timedelta(minutes=5))
    token = auth._issue_token(session)

    resp = client.get("/auth/get-session", headers=_bearer(token))
    assert resp.status_code == 401
    assert resp.json()["message"] == "Session expired"
    assert session["id"] not in store.sessions


def test_expired_token_with_wrong_signature_keeps_session(client, store):
    user = store.create_user("old@example.com", "Old", "hash")
    session = store.create_session(user["id"], datetime.now(timezone.utc) - timedelta(minutes=5))
    forged = jwt.encode(
        {"sub": str(user["id"]), "sid": str(session["id"]), "exp": session["expires_at"]},
        "some-other-secret",
        algorithm="HS256",
    )

    resp = client.get("/auth/get-session", headers=_bearer(forged))
    assert resp.status_code == 401
    assert session["id"] in store.sessions


def test_auth_ok_is_public(client):
    resp = client.get("/auth/ok")
    assert resp.status_code == 200
    assert resp.json() == {"ok": True}
