from datetime import datetime, timedelta, timezone

import httpx
import pytest

from cbt.client.api import APIError, CBTClient
from cbt.client.context import SessionContext
from cbt.client.helpers import (
    calculate_percentage, days_remaining, display_name, format_time, grade_for, is_trial_expired,
    time_remaining, validate_exam_config,
)
from cbt.client.storage import JSONFileStorage, MemoryStorage
from cbt.core.auth import create_token
from cbt.services import unlock

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def api(client):
    return CBTClient(SessionContext(MemoryStorage()), http=client)


def test_student_journey(api, db, seed_questions):
    seed_questions(5)
    api.register("Tunde Bakare", "tunde@example.com", "pw-12345", phone="0801")
    assert api.context.is_authenticated
    assert api.context.user["email"] == "tunde@example.com"
    assert api.check_access()["type"] == "trial"

    assert api.exam_types() == ["JAMB"]
    assert api.subjects("JAMB") == ["Mathematics"]
    assert api.years("JAMB", "Mathematics") == [2020]

    session = api.start_exam("JAMB", "Mathematics", number_of_questions=5)
    assert api.context.current_session["sessionId"] == session["sessionId"]
    for q in session["questions"]:
        assert api.submit_answer(session["sessionId"], q["id"], "A")["isCorrect"] is True

    results = api.complete_exam(session["sessionId"])
    assert results["percentage"] == "100.00"
    assert api.context.exam_results == results
    assert api.context.current_session is None

    [code] = unlock.generate_codes(db, 1, 9, None)
    api.unlock(code)
    assert api.context.user["isPremium"] is True

    api.logout()
    assert not api.context.is_authenticated
    assert api.context.user is None


def test_login_and_errors(api, student):
    with pytest.raises(APIError) as exc_info:
        api.login("student@example.com", "wrong")
    assert exc_info.value.status_code == 401
    assert exc_info.value.message == "Invalid email or password"
    assert not api.context.is_authenticated

    api.login("student@example.com", "s3cret-pass")
    assert api.context.user["fullName"] == "Ada Obi"


def test_profile_rejection_signs_out(api, student):
    api.context.token = create_token(student.id, student.email, student.role,
                                     now=datetime.now(timezone.utc) - timedelta(days=40))
    api.context.user = {"fullName": "Ada Obi"}
    with pytest.raises(APIError) as exc_info:
        api.profile()
    assert exc_info.value.status_code == 401
    assert api.context.token is None and api.context.user is None
    assert api.check_access() == {"hasAccess": False, "type": "expired", "expiresAt": None}


def test_admin_methods(api, admin_user, student):
    api.login("admin@example.com", "s3cret-pass")
    assert api.context.is_admin
    codes = api.generate_codes(quantity=2, duration=3)
    assert len(api.get_codes()) == 2
    api.delete_code(api.get_codes()[0]["id"])
    assert len(api.get_codes()) == 1

    assert api.upload_questions([{
        "examType": "JAMB", "subject": "Biology", "questionText": "Cell?", "options": ["a", "b"],
        "correctAnswer": "a",
    }]) == 1
    api.grant_premium(student.id, months=1)
    assert {u["email"] for u in api.get_users()} == {"admin@example.com", "student@example.com"}
    api.revoke_premium(student.id)
    assert api.statistics()["totalQuestions"] == 1
    assert api.recent_activity() == []
    assert len(codes) == 2


def test_network_failure_is_status_zero():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    http = httpx.Client(base_url="http://cbt.invalid", transport=httpx.MockTransport(refuse))
    api = CBTClient(http=http)
    with pytest.raises(APIError) as exc_info:
        api.exam_types()
    assert exc_info.value.status_code == 0


def test_non_json_error_body():
    http = httpx.Client(base_url="http://cbt.invalid",
                        transport=httpx.MockTransport(lambda request: httpx.Response(502, text="Bad Gateway")))
    with pytest.raises(APIError) as exc_info:
        CBTClient(http=http).statistics()
    assert exc_info.value.status_code == 502
    assert exc_info.value.message == "Bad Gateway"


def test_json_file_storage_persists(tmp_path):
    path = tmp_path / "state" / "client.json"
    ctx = SessionContext(JSONFileStorage(path))
    ctx.token = "abc"
    ctx.user = {"fullName": "Ngozi Adeyemi", "role": "admin"}

    reopened = SessionContext(JSONFileStorage(path))
    assert reopened.token == "abc"
    assert reopened.is_admin
    reopened.clear()
    assert SessionContext(JSONFileStorage(path)).token is None


def test_json_file_storage_ignores_corrupt_file(tmp_path):
    path = tmp_path / "client.json"
    path.write_text("{not json", encoding="utf-8")
    assert JSONFileStorage(path).get("token") is None


def test_time_helpers():
    left = time_remaining(NOW - timedelta(minutes=10), 120, now=NOW)
    assert (left.total, left.hours, left.minutes, left.seconds) == (6600, 1, 50, 0)
    over = time_remaining(NOW - timedelta(minutes=200), 180, now=NOW)
    assert over.total == -1200 and over.hours == over.minutes == over.seconds == 0
    assert format_time(3725) == "01:02:05"
    assert format_time(-5) == "00:00:00"


def test_scoring_helpers():
    assert calculate_percentage(7, 10) == 70
    assert calculate_percentage(2, 3) == 67
    assert calculate_percentage(0, 0) == 0
    assert grade_for(90)["grade"] == "A+"
    assert grade_for(89.9)["grade"] == "A"
    assert grade_for(70)["grade"] == "B"
    assert grade_for(60)["grade"] == "C"
    assert grade_for(50)["grade"] == "D"
    assert grade_for(49)["grade"] == "F"


def test_validate_exam_config():
    assert validate_exam_config("JAMB", "Physics", 40) == []
    assert validate_exam_config("", None, 0) == [
        "Please select an exam type", "Please select a subject", "Please select number of questions",
    ]
    assert validate_exam_config("JAMB", "Physics", 101) == ["Maximum 100 questions allowed"]


def test_trial_helpers():
    trial_user = {"registrationDate": (NOW - timedelta(days=1)).isoformat()}
    assert not is_trial_expired(trial_user, now=NOW)
    assert days_remaining(trial_user, now=NOW) == 2

    lapsed = {"trialEndsAt": (NOW - timedelta(hours=1)).isoformat()}
    assert is_trial_expired(lapsed, now=NOW)
    assert days_remaining(lapsed, now=NOW) == 0

    premium = {"isPremium": True, "premiumExpiresAt": (NOW + timedelta(days=30)).isoformat(),
               "trialEndsAt": (NOW - timedelta(days=10)).isoformat()}
    assert not is_trial_expired(premium, now=NOW)
    assert days_remaining(premium, now=NOW) == 30

    assert is_trial_expired(None)
    assert days_remaining({}) == 0


def test_display_name():
    assert display_name({"fullName": "Ngozi Adeyemi"}) == "Ngozi"
    assert display_name({"fullName": ""}) == "User"
    assert display_name(None) == "User"
