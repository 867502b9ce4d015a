# tests/test_store.py
"""Row mapping and SQL shape at the store boundary, with the database mocked out."""

from datetime import date, datetime, time
from unittest.mock import MagicMock

import pandas as pd
import pytest

from colloquy import store
from colloquy.errors import NotFound

MEETING_ROW = {
    "id": 1, "title": "Semester review", "description": None, "location": "Hall B",
    "meeting_date": date(2024, 5, 6), "start_time": time(10), "end_time": time(11),
    "status": "scheduled", "department_id": 10, "target_role_id": 1, "year": 2,
    "created_by": 7,
}


@pytest.fixture
def fetch(monkeypatch):
    mock = MagicMock(return_value=[])
    monkeypatch.setattr(store, "fetch_rows", mock)
    return mock


@pytest.fixture
def write(monkeypatch):
    mock = MagicMock(return_value=None)
    monkeypatch.setattr(store, "run_query", mock)
    return mock


def test_get_meeting_maps_row(fetch):
    fetch.return_value = [MEETING_ROW]
    meeting = store.get_meeting(1)
    assert meeting.target_role_id == 1
    assert meeting.location == "Hall B"
    assert fetch.call_args.args[1] == (1,)


def test_get_meeting_missing(fetch):
    with pytest.raises(NotFound, match="Meeting 5"):
        store.get_meeting(5)


def test_list_meetings_filters(fetch):
    store.list_meetings(department_id=10, statuses=("scheduled", "rescheduled"))
    sql, params = fetch.call_args.args
    assert "department_id IS NULL" in sql
    assert "status = ANY(%s)" in sql
    assert params == (10, ["scheduled", "rescheduled"])


def test_list_meetings_unfiltered(fetch):
    store.list_meetings()
    sql, params = fetch.call_args.args
    assert "WHERE" not in sql
    assert params == ()


def test_update_meeting_missing_row(write, make_meeting):
    with pytest.raises(NotFound):
        store.update_meeting(make_meeting(id=3))


def test_update_status_leaves_cancelled_rows(write):
    store.update_meeting_status(1, "completed")
    sql, params = write.call_args.args
    assert "status <> 'cancelled'" in sql
    assert params == ("completed", 1)


def test_get_profile_roles(fetch):
    fetch.return_value = [{
        "id": 500, "username": "jdoe", "full_name": "Jo Doe",
        "department_id": 10, "year": None, "roles": ["staff", "hod"],
    }]
    profile = store.get_profile(500)
    assert profile.roles == ("staff", "hod")


def test_list_profiles_with_no_ids_skips_query(fetch):
    assert store.list_profiles(set()) == {}
    fetch.assert_not_called()


def test_list_departments(monkeypatch):
    monkeypatch.setattr(
        store, "query_df", lambda sql: pd.DataFrame({"id": [10, 20], "name": ["Physics", "History"]})
    )
    assert store.list_departments() == {10: "Physics", 20: "History"}


def test_upsert_feedback_payload(monkeypatch):
    admin = MagicMock()
    admin.table.return_value.upsert.return_value.execute.return_value.data = [{
        "id": 9, "rating": 4, "notes": None, "user_id": 500, "question_id": 100,
        "meeting_id": 1, "submitted_at": "2024-05-06T10:15:00",
    }]
    monkeypatch.setattr(store, "get_supabase_admin", lambda: admin)

    entry = store.upsert_feedback(500, 100, 4, None, 1, datetime(2024, 5, 6, 10, 15))

    payload = admin.table.return_value.upsert.call_args.args[0]
    assert "notes" not in payload
    assert admin.table.return_value.upsert.call_args.kwargs["on_conflict"] == "user_id,question_id"
    assert entry.id == 9


def test_list_questions_by_department(fetch):
    store.list_questions(meeting_id=1, active_only=True, department_id=10)
    sql, params = fetch.call_args.args
    assert "department_id = %s" in sql
    assert "active = TRUE" in sql
    assert params == (10, 1)


def test_list_hod_responses_filters(fetch):
    fetch.return_value = [{
        "id": 3, "question_id": 100, "hod_id": 700, "department_id": 10,
        "meeting_id": None, "response": "Noted", "responded": True,
        "responded_at": datetime(2024, 5, 6, 12),
    }]
    responses = store.list_hod_responses(department_id=10, hod_id=700)
    sql, params = fetch.call_args.args
    assert "department_id = %s AND hod_id = %s" in sql
    assert params == (10, 700)
    assert responses[0].response == "Noted"


def test_upsert_hod_response_keeps_meeting_when_absent(monkeypatch):
    admin = MagicMock()
    admin.table.return_value.upsert.return_value.execute.return_value.data = [{
        "id": 3, "question_id": 100, "hod_id": 700, "department_id": 10,
        "meeting_id": 1, "response": "Noted", "responded": True,
        "responded_at": "2024-05-06T12:00:00",
    }]
    monkeypatch.setattr(store, "get_supabase_admin", lambda: admin)

    stored = store.upsert_hod_response(700, 100, 10, "Noted", None, datetime(2024, 5, 6, 12))

    admin.table.assert_called_with("hod_responses")
    upsert = admin.table.return_value.upsert
    assert "meeting_id" not in upsert.call_args.args[0]
    assert upsert.call_args.kwargs["on_conflict"] == "question_id,hod_id"
    assert stored.meeting_id == 1
