"""
Promo code creation, administration and redemption.
"""
from datetime import datetime, timedelta, timezone

from core.config import settings
from conftest import ADMIN_SECRET


def _create_code(client, **fields):
    body = {"adminSecret": ADMIN_SECRET, "code": "launch", **fields}
    return client.post("/api/promo-codes/create", json=body)


def test_create_requires_admin_secret(client):
    response = client.post("/api/promo-codes/create", json={"adminSecret": "guess", "code": "launch"})
    assert response.status_code == 403
    assert response.json()["error"] == "Unauthorized"


def test_create_normalizes_code_and_defaults_to_tester(client):
    response = _create_code(client, code="  launch ", maxUses="", validityDays="14")

    assert response.status_code == 200
    promo = response.json()["promoCode"]
    assert promo["code"] == "LAUNCH"
    assert promo["subscriptionLevel"] == "Tester"
    assert promo["maxUses"] is None
    assert promo["validityDays"] == 14
    assert promo["currentUses"] == 0


def test_create_rejects_duplicates_and_bad_input(client):
    _create_code(client)

    duplicate = _create_code(client, code="LAUNCH")
    bad_level = _create_code(client, code="other", subscriptionLevel="Gold")
    bad_number = _create_code(client, code="third", maxUses="lots")
    missing = _create_code(client, code="  ")

    assert duplicate.json()["error"] == "Code already exists"
    assert bad_level.json()["error"] == "Invalid subscription level"
    assert bad_number.status_code == 400
    assert missing.json()["error"] == "Code is required"


def test_redeem_upgrades_once(client, user_headers):
    _create_code(client, subscriptionLevel="Paid", validityDays=30)

    response = client.post("/api/promo-codes/redeem", json={"code": "launch"}, headers=user_headers)
    assert response.json() == {
        "ok": True,
        "subscriptionLevel": "Paid",
        "message": "Successfully upgraded to Paid tier!",
    }

    info = client.get("/api/subscription/info", headers=user_headers).json()["subscription"]
    assert info["level"] == "Paid"
    assert info["promoCodeUsed"] == "LAUNCH"
    end = datetime.fromisoformat(info["end"])
    assert timedelta(days=29) < end - datetime.now(timezone.utc) <= timedelta(days=30)

    again = client.post("/api/promo-codes/redeem", json={"code": "LAUNCH"}, headers=user_headers)
    assert again.status_code == 400
    assert again.json()["error"] == "You have already redeemed this code"


def test_redeem_respects_max_uses(client, make_user):
    _create_code(client, maxUses=1)
    first = make_user("alice")
    second = make_user("bob")

    assert client.post("/api/promo-codes/redeem", json={"code": "LAUNCH"}, headers=first).status_code == 200
    response = client.post("/api/promo-codes/redeem", json={"code": "LAUNCH"}, headers=second)

    assert response.status_code == 400
    assert response.json()["error"] == "This promo code has reached its usage limit"


def test_redeem_expired_code(client, user_headers):
    yesterday = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
    _create_code(client, expiresAt=yesterday)

    response = client.post("/api/promo-codes/redeem", json={"code": "LAUNCH"}, headers=user_headers)
    assert response.json()["error"] == "This promo code has expired"


def test_subscription_end_is_capped_by_code_expiry(client, user_headers):
    in_five_days = datetime.now(timezone.utc) + timedelta(days=5)
    _create_code(client, expiresAt=in_five_days.isoformat(), validityDays=30)

    client.post("/api/promo-codes/redeem", json={"code": "LAUNCH"}, headers=user_headers)

    end = client.get("/api/subscription/info", headers=user_headers).json()["subscription"]["end"]
    assert abs(datetime.fromisoformat(end) - in_five_days) < timedelta(seconds=1)


def test_redeem_unknown_or_blank_code(client, user_headers):
    unknown = client.post("/api/promo-codes/redeem", json={"code": "NOPE"}, headers=user_headers)
    blank = client.post("/api/promo-codes/redeem", json={"code": ""}, headers=user_headers)

    assert unknown.json()["error"] == "Invalid promo code"
    assert blank.json()["error"] == "Code is required"


def test_admin_lists_updates_and_deletes(client, admin_headers, user_headers):
    promo_id = _create_code(client).json()["promoCode"]["id"]
    client.post("/api/promo-codes/redeem", json={"code": "LAUNCH"}, headers=user_headers)

    codes = client.get("/api/promo-codes", headers=admin_headers).json()["promoCodes"]
    assert [c["code"] for c in codes] == ["LAUNCH"]
    assert codes[0]["currentUses"] == 1
    assert codes[0]["redemptions"][0]["user"]["username"] == "alice"

    updated = client.patch(
        "/api/promo-codes",
        json={"id": promo_id, "description": "Launch week", "maxUses": 50},
        headers=admin_headers,
    ).json()["promoCode"]
    assert updated["description"] == "Launch week"
    assert updated["maxUses"] == 50
    assert updated["validityDays"] is None

    assert client.delete("/api/promo-codes", params={"id": promo_id}, headers=admin_headers).json() == {"ok": True}
    assert client.get("/api/promo-codes", headers=admin_headers).json()["promoCodes"] == []


def test_admin_routes_reject_non_admins(client, user_headers):
    assert client.get("/api/promo-codes", headers=user_headers).status_code == 403
    assert client.delete("/api/promo-codes", params={"id": 1}, headers=user_headers).status_code == 403


def test_delete_requires_id(client, admin_headers):
    response = client.delete("/api/promo-codes", headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["error"] == "Promo code ID is required"


def test_create_uses_configured_secret(client, monkeypatch):
    monkeypatch.setattr(settings, "admin_secret", "rotated")
    assert _create_code(client).status_code == 403
    assert client.post(
        "/api/promo-codes/create", json={"adminSecret": "rotated", "code": "new"}
    ).status_code == 200
