"""
Keyword-field logging through StructuredLogger.
"""
import logging

from core.config import settings
from core.logging import StructuredLogger


def _logger(name):
    return StructuredLogger("app", logging.getLogger(name))


def test_fields_named_like_parameters_are_logged(caplog):
    logger = _logger("synapse.tests.fields")

    with caplog.at_level(logging.INFO, logger="synapse.tests.fields"):
        logger.info("Subscription level changed", level="Paid", msg="kept", user_id=7)

    record = caplog.records[-1]
    assert record.levelno == logging.INFO
    assert record.getMessage() == "Subscription level changed [level=Paid, msg=kept, user_id=7]"


def test_json_format_moves_fields_into_extra(caplog, monkeypatch):
    monkeypatch.setattr(settings, "log_format", "json")
    logger = _logger("synapse.tests.json")

    with caplog.at_level(logging.WARNING, logger="synapse.tests.json"):
        logger.warning("Promo code redeemed", level="Tester", msg="kept", password="hunter2")

    record = caplog.records[-1]
    assert record.getMessage() == "Promo code redeemed"
    assert record.level == "Tester"
    assert record.msg_ == "kept"
    assert record.password == "[REDACTED]"
    assert record.component == "app"


def test_signup_logs_the_level_without_failing(client):
    response = client.post("/api/auth/signup", json={"username": "leveluser", "password": "secret123"})
    assert response.status_code == 200
    assert response.json()["user"]["subscriptionLevel"] == "Free"


def test_only_used_levels_are_exposed():
    for name in ("debug", "info", "warning", "error"):
        assert callable(getattr(StructuredLogger, name))
    assert not hasattr(StructuredLogger, "critical")
    assert not hasattr(StructuredLogger, "exception")
