"""
Signup, login, logout and the current-user endpoint.
"""
from conftest import ADMIN_SECRET, PASSWORD, bearer, signup


def test_signup_returns_token_and_free_level(client):
    body = signup(client, "alice", email="alice@example.com")

    assert body["ok"] is True
    assert body["subscriptionLevel"] == "Free"
    assert body["token"]
    assert body["user"]["username"] == "alice"
    assert body["user"]["email"] == "alice@example.com"
    assert "passwordHash" not in body["user"]
    assert "password_hash" not in body["user"]


def test_signup_rejects_duplicate_username(client):
    signup(client, "alice")
    response = client.post("/api/auth/signup", json={"username": "alice", "password": PASSWORD})

    assert response.status_code == 400
    assert response.json()["error"] == "Username already exists"


def test_signup_rejects_duplicate_email(client):
    signup(client, "alice", email="shared@example.com")
    response = client.post(
        "/api/auth/signup",
        json={"username": "bob", "password": PASSWORD, "email": "shared@example.com"},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Email already in use"


def test_signup_validates_input(client):
    short_password = client.post("/api/auth/signup", json={"username": "alice", "password": "123"})
    bad_email = client.post(
        "/api/auth/signup", json={"username": "alice", "password": PASSWORD, "email": "not-an-email"}
    )
    short_name = client.post("/api/auth/signup", json={"username": "  al ", "password": PASSWORD})

    for response in (short_password, bad_email, short_name):
        assert response.status_code == 422
        assert response.json()["ok"] is False


def test_signup_with_promo_code_upgrades_account(client):
    created = client.post(
        "/api/promo-codes/create",
        json={"adminSecret": ADMIN_SECRET, "code": "welcome", "subscriptionLevel": "Paid", "validityDays": 30},
    )
    assert created.status_code == 200

    body = signup(client, "alice", promoCode="Welcome")

    assert body["subscriptionLevel"] == "Paid"
    assert body["user"]["subscriptionEnd"] is not None


def test_signup_with_invalid_promo_code_creates_nothing(client):
    response = client.post(
        "/api/auth/signup", json={"username": "alice", "password": PASSWORD, "promoCode": "NOPE"}
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid promo code"

    # The username is still free
    assert signup(client, "alice")["ok"] is True


def test_login_and_me(client):
    signup(client, "alice")
    response = client.post("/api/auth/login", json={"username": "alice", "password": PASSWORD})
    assert response.status_code == 200
    token = response.json()["token"]

    me = client.get("/api/auth/me", headers=bearer(token))
    assert me.status_code == 200
    assert me.json()["user"]["username"] == "alice"
    assert me.json()["user"]["lastLoginAt"] is not None


def test_login_with_wrong_password(client):
    signup(client, "alice")
    response = client.post("/api/auth/login", json={"username": "alice", "password": "wrong-password"})

    assert response.status_code == 401
    assert response.json() == {
        "ok": False,
        "error": "Invalid credentials",
        "type": "AuthenticationException",
        "status_code": 401,
    }


def test_login_with_blank_username(client):
    response = client.post("/api/auth/login", json={"username": "   ", "password": PASSWORD})
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid input"


def test_me_without_token_is_anonymous(client):
    response = client.get("/api/auth/me")
    assert response.status_code == 200
    assert response.json() == {"ok": True, "user": None}


def test_logout_invalidates_session(client):
    token = signup(client, "alice")["token"]

    assert client.post("/api/auth/logout", headers=bearer(token)).json() == {"ok": True}

    assert client.get("/api/auth/me", headers=bearer(token)).json()["user"] is None
    protected = client.get("/api/subscription/info", headers=bearer(token))
    assert protected.status_code == 401


def test_sessions_are_independent(client):
    first = signup(client, "alice")["token"]
    second = client.post("/api/auth/login", json={"username": "alice", "password": PASSWORD}).json()["token"]
    assert first != second

    client.post("/api/auth/logout", headers=bearer(first))

    assert client.get("/api/auth/me", headers=bearer(second)).json()["user"]["username"] == "alice"


def test_protected_route_without_token(client):
    response = client.get("/api/subscription/info")
    assert response.status_code == 401
    assert response.json()["error"] == "Unauthorized"
