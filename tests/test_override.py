from daypass.services.override_service import OverrideDenial, authorize_override

from conftest import OVERRIDE_PASSWORD

REASON = "VIP client meeting"


def test_correct_password_and_reason_authorize():
    decision = authorize_override(REASON, OVERRIDE_PASSWORD)
    assert decision.authorized
    assert decision.cause is None


def test_reason_is_checked_before_password():
    decision = authorize_override("too short", "wrong")
    assert not decision.authorized
    assert decision.cause == OverrideDenial.reason
    assert "at least 10 characters" in decision.message


def test_blank_reason_is_denied():
    decision = authorize_override("   ", OVERRIDE_PASSWORD)
    assert decision.cause == OverrideDenial.reason
    assert decision.message == "Override reason is required"


def test_overlong_reason_is_denied():
    decision = authorize_override("x" * 501, OVERRIDE_PASSWORD)
    assert decision.cause == OverrideDenial.reason


def test_wrong_or_missing_password_is_denied_without_echo():
    wrong = authorize_override(REASON, "guess-123")
    assert wrong.cause == OverrideDenial.password
    assert wrong.message == "Incorrect password"
    assert OVERRIDE_PASSWORD not in wrong.message

    missing = authorize_override(REASON, None)
    assert missing.cause == OverrideDenial.password
    assert missing.message == "Override password is required"


def test_unconfigured_secret_denies_every_override(monkeypatch):
    from daypass.services import override_service

    monkeypatch.setattr(override_service.settings, "OVERRIDE_PASSWORD", "")
    decision = authorize_override(REASON, "")
    assert decision.cause == OverrideDenial.password
    decision = authorize_override(REASON, "anything")
    assert decision.cause == OverrideDenial.password
