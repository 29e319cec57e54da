from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from cbt.services.access import (
    AccessType, add_months, as_utc, days_remaining, evaluate_access, trial_end,
)

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


def make_user(registered=NOW, is_premium=False, premium_expires_at=None):
    return SimpleNamespace(registration_date=registered, is_premium=is_premium,
                           premium_expires_at=premium_expires_at)


def test_new_user_is_on_trial_for_three_days():
    status = evaluate_access(make_user(), NOW)
    assert status.has_access
    assert status.type is AccessType.TRIAL
    assert status.expires_at == NOW + timedelta(days=3)


def test_trial_ends_exactly_at_three_days():
    user = make_user(registered=NOW - timedelta(days=3))
    status = evaluate_access(user, NOW)
    assert not status.has_access
    assert status.type is AccessType.EXPIRED
    assert status.expires_at == NOW


def test_active_premium_wins_over_trial():
    expiry = NOW + timedelta(days=200)
    status = evaluate_access(make_user(is_premium=True, premium_expires_at=expiry), NOW)
    assert status.has_access
    assert status.type is AccessType.PREMIUM
    assert status.expires_at == expiry


def test_lapsed_premium_falls_back_to_trial_rules():
    user = make_user(registered=NOW - timedelta(days=400), is_premium=True,
                     premium_expires_at=NOW - timedelta(seconds=1))
    status = evaluate_access(user, NOW)
    assert status.type is AccessType.EXPIRED
    assert not status.has_access


def test_premium_flag_must_be_true_not_just_truthy():
    user = make_user(registered=NOW - timedelta(days=10), is_premium="yes",
                     premium_expires_at=NOW + timedelta(days=30))
    assert evaluate_access(user, NOW).type is AccessType.EXPIRED


def test_unreadable_timestamps_mean_expired():
    user = make_user(registered="not a date", is_premium=True, premium_expires_at="garbage")
    status = evaluate_access(user, NOW)
    assert status.type is AccessType.EXPIRED
    assert status.expires_at is None
    assert status.to_dict() == {"hasAccess": False, "type": "expired", "expiresAt": None}


def test_naive_and_string_timestamps_read_as_utc():
    naive = datetime(2025, 1, 14, 12, 0)
    assert as_utc(naive) == datetime(2025, 1, 14, 12, 0, tzinfo=timezone.utc)
    assert as_utc("2025-01-14T12:00:00Z") == datetime(2025, 1, 14, 12, 0, tzinfo=timezone.utc)
    assert evaluate_access(make_user(registered=naive), NOW).type is AccessType.TRIAL


def test_to_dict_uses_iso_strings():
    data = evaluate_access(make_user(), NOW).to_dict()
    assert data == {"hasAccess": True, "type": "trial", "expiresAt": "2025-01-18T12:00:00+00:00"}


def test_add_months_clamps_day():
    assert add_months(datetime(2024, 1, 31, tzinfo=timezone.utc), 1) == datetime(2024, 2, 29, tzinfo=timezone.utc)
    assert add_months(datetime(2025, 1, 31, tzinfo=timezone.utc), 1) == datetime(2025, 2, 28, tzinfo=timezone.utc)
    assert add_months(NOW, 9) == datetime(2025, 10, 15, 12, 0, tzinfo=timezone.utc)
    assert add_months(datetime(2025, 11, 30, tzinfo=timezone.utc), 3) == datetime(2026, 2, 28, tzinfo=timezone.utc)


def test_trial_end_of_missing_registration():
    assert trial_end(None) is None


def test_days_remaining_rounds_up():
    status = evaluate_access(make_user(registered=NOW - timedelta(hours=36)), NOW)
    assert days_remaining(status, NOW) == 2
    expired = evaluate_access(make_user(registered=NOW - timedelta(days=9)), NOW)
    assert days_remaining(expired, NOW) == 0
