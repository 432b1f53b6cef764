"""
Subscription tiers, their limits and the premium gate.
"""
import pytest

from conftest import run
from db_config import AsyncSessionLocal
from models.models import SubscriptionLevelEnum
from services.subscription_service import (
    UsageService, can_create_course, can_generate_lesson, can_use_feature, get_subscription_limits, parse_level,
)


def test_parse_level():
    assert parse_level("Paid") is SubscriptionLevelEnum.Paid
    assert parse_level(SubscriptionLevelEnum.Tester) is SubscriptionLevelEnum.Tester
    assert parse_level("paid") is None
    assert parse_level(None) is None


def test_free_limits():
    limits = get_subscription_limits("Free")

    assert limits.max_courses == 3
    assert limits.max_lessons_per_course == 10
    assert limits.to_dict()["maxApiCallsPerMonth"] == 100
    assert can_create_course("Free", 2) == (True, None)
    allowed, reason = can_create_course("Free", 3)
    assert allowed is False
    assert "3 courses" in reason
    assert can_generate_lesson("Free", 10)[0] is False
    assert can_use_feature("Free", "can_use_quick_learn") is False


def test_premium_levels_are_unlimited():
    for level in ("Paid", "Tester"):
        assert get_subscription_limits(level).max_courses is None
        assert can_create_course(level, 10_000) == (True, None)
        assert can_generate_lesson(level, 10_000) == (True, None)
        assert can_use_feature(level, "can_export_pdf") is True


def test_unknown_level_gets_free_limits():
    assert get_subscription_limits("Gold") == get_subscription_limits("Free")


def test_self_service_update(client, user_headers):
    response = client.post("/api/subscription/update", json={"subscriptionLevel": "Paid"}, headers=user_headers)
    assert response.json() == {"ok": True, "subscriptionLevel": "Paid"}

    info = client.get("/api/subscription/info", headers=user_headers).json()
    assert info["subscription"]["level"] == "Paid"
    assert info["limits"]["maxCourses"] is None

    invalid = client.post("/api/subscription/update", json={"subscriptionLevel": "Gold"}, headers=user_headers)
    assert invalid.status_code == 400
    assert invalid.json()["error"] == "Invalid subscription level"


def test_premium_routes_reject_free_users(client, user_headers, fake_openai):
    response = client.post(
        "/api/generate-flashcards", json={"content": "x" * 60, "count": 3}, headers=user_headers
    )

    assert response.status_code == 403
    assert response.json()["type"] == "PremiumRequiredException"
    assert fake_openai.calls == []


def test_premium_routes_require_login(client, fake_openai):
    response = client.post("/api/topic-suggest", json={"subject": "Bio", "prompt": "More on cells"})
    assert response.status_code == 401


async def _usage_round_trip(user_id):
    async with AsyncSessionLocal() as db:
        usage = UsageService(db)
        await usage.increment_usage(user_id, "api_calls")
        await usage.increment_usage(user_id, "api_calls")
        await usage.increment_usage(user_id, "lessons_generated")
        counted = await usage.get_usage_stats(user_id)
        await usage.reset_monthly_usage(user_id)
        reset = await usage.get_usage_stats(user_id)
        await db.commit()
    return counted, reset


def test_usage_counters_and_monthly_reset(client, user_headers):
    user_id = client.get("/api/auth/me", headers=user_headers).json()["user"]["id"]

    counted, reset = run(_usage_round_trip(user_id))

    assert counted == {"courses_created": 0, "lessons_generated": 1, "api_calls": 2}
    assert reset == {"courses_created": 0, "lessons_generated": 0, "api_calls": 0}


def test_unknown_usage_counter_is_rejected():
    async def bump():
        async with AsyncSessionLocal() as db:
            await UsageService(db).increment_usage(1, "tokens")

    with pytest.raises(ValueError):
        run(bump())
