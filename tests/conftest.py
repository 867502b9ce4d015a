# tests/conftest.py
"""
Shared fixtures.

Record factories build valid models with sensible defaults so each test only
spells out the fields it cares about.  `fake_store` swaps every function in
colloquy.store for an in-memory version, so service, feedback, report and
job tests never need a database.
"""

import os
from datetime import date, datetime, time

import pytest

os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")

from colloquy import store
from colloquy.errors import NotFound
from colloquy.models import FeedbackEntry, HodResponse, Meeting, Question, RespondentProfile

MEETING_DAY = date(2024, 5, 6)


def at(hour: int, minute: int = 0, second: int = 0, day: date = MEETING_DAY) -> datetime:
    """Naive instant on the default meeting day."""
    return datetime.combine(day, time(hour, minute, second))


# ============== Record factories ==============

@pytest.fixture
def make_meeting():
    def _make(**overrides) -> Meeting:
        fields = {
            "id":             1,
            "title":          "Semester review",
            "meeting_date":   MEETING_DAY,
            "start_time":     time(10, 0),
            "end_time":       time(11, 0),
            "status":         "scheduled",
            "department_id":  10,
            "target_role_id": 1,
            "year":           2,
        }
        fields.update(overrides)
        return Meeting(**fields)
    return _make


@pytest.fixture
def make_question():
    def _make(**overrides) -> Question:
        fields = {
            "id":            100,
            "text":          "How clear was the agenda?",
            "role":          "both",
            "department_id": 10,
            "meeting_id":    1,
            "active":        True,
        }
        fields.update(overrides)
        return Question(**fields)
    return _make


@pytest.fixture
def make_profile():
    def _make(**overrides) -> RespondentProfile:
        fields = {
            "id":            500,
            "username":      "E2001",
            "department_id": 10,
            "year":          2,
            "roles":         ["student"],
        }
        fields.update(overrides)
        return RespondentProfile(**fields)
    return _make


@pytest.fixture
def make_entry():
    counter = {"next": 1}

    def _make(**overrides) -> FeedbackEntry:
        fields = {
            "id":          counter["next"],
            "rating":      4,
            "user_id":     500,
            "question_id": 100,
            "meeting_id":  1,
        }
        fields.update(overrides)
        counter["next"] += 1
        return FeedbackEntry(**fields)
    return _make


# ============== In-memory store ==============

class FakeStore:
    """Dict-backed stand-in for colloquy.store with call recording."""

    def __init__(self):
        self.meetings      = {}
        self.questions     = {}
        self.profiles      = {}
        self.departments   = {}
        self.feedback      = []
        self.status_writes = []
        self.upserts       = []
        self.created       = []
        self.hod_responses = []

    # -- seeding --
    def add(self, *records):
        for record in records:
            if isinstance(record, Meeting):
                self.meetings[record.id] = record
            elif isinstance(record, Question):
                self.questions[record.id] = record
            elif isinstance(record, RespondentProfile):
                self.profiles[record.id] = record
            elif isinstance(record, FeedbackEntry):
                self.feedback.append(record)
            elif isinstance(record, HodResponse):
                self.hod_responses.append(record)
        return self

    # -- store API --
    def get_meeting(self, meeting_id):
        if meeting_id not in self.meetings:
            raise NotFound("Meeting", meeting_id)
        return self.meetings[meeting_id]

    def list_meetings(self, department_id=None, statuses=None):
        result = list(self.meetings.values())
        if department_id is not None:
            result = [m for m in result if m.department_id in (department_id, None)]
        if statuses:
            result = [m for m in result if m.status in statuses]
        return result

    def create_meeting(self, meeting):
        created = meeting.model_copy(update={"id": max(self.meetings, default=0) + 1})
        self.meetings[created.id] = created
        self.created.append(created)
        return created

    def update_meeting(self, meeting):
        if meeting.id not in self.meetings:
            raise NotFound("Meeting", meeting.id)
        self.meetings[meeting.id] = meeting
        return meeting

    def update_meeting_status(self, meeting_id, status):
        self.status_writes.append((meeting_id, status))
        current = self.meetings[meeting_id]
        if current.status != "cancelled":
            self.meetings[meeting_id] = current.model_copy(update={"status": status})

    def get_question(self, question_id):
        if question_id not in self.questions:
            raise NotFound("Question", question_id)
        return self.questions[question_id]

    def list_questions(self, meeting_id=None, active_only=False, department_id=None):
        result = list(self.questions.values())
        if department_id is not None:
            result = [q for q in result if q.department_id == department_id]
        if meeting_id is not None:
            result = [q for q in result if q.meeting_id == meeting_id]
        if active_only:
            result = [q for q in result if q.active]
        return result

    def get_profile(self, user_id):
        if user_id not in self.profiles:
            raise NotFound("User", user_id)
        return self.profiles[user_id]

    def list_profiles(self, user_ids=None):
        if user_ids is None:
            return dict(self.profiles)
        return {uid: p for uid, p in self.profiles.items() if uid in set(user_ids)}

    def list_departments(self):
        return dict(self.departments)

    def list_feedback(self, meeting_id=None):
        if meeting_id is None:
            return list(self.feedback)
        return [e for e in self.feedback if e.meeting_id == meeting_id]

    def upsert_feedback(self, user_id, question_id, rating, notes, meeting_id, submitted_at):
        self.upserts.append({
            "user_id": user_id, "question_id": question_id, "rating": rating,
            "notes": notes, "meeting_id": meeting_id, "submitted_at": submitted_at,
        })
        existing = next(
            (e for e in self.feedback if e.user_id == user_id and e.question_id == question_id),
            None,
        )
        entry = FeedbackEntry(
            id=existing.id if existing else len(self.feedback) + 1,
            rating=rating,
            notes=notes or (existing.notes if existing else None),
            user_id=user_id,
            question_id=question_id,
            meeting_id=meeting_id,
            submitted_at=submitted_at,
        )
        if existing:
            self.feedback[self.feedback.index(existing)] = entry
        else:
            self.feedback.append(entry)
        return entry

    def list_hod_responses(self, question_id=None, department_id=None, hod_id=None):
        return [
            r for r in self.hod_responses
            if question_id in (None, r.question_id)
            and department_id in (None, r.department_id)
            and hod_id in (None, r.hod_id)
        ]

    def upsert_hod_response(self, hod_id, question_id, department_id, response, meeting_id, responded_at):
        existing = next(
            (r for r in self.hod_responses if r.question_id == question_id and r.hod_id == hod_id),
            None,
        )
        stored = HodResponse(
            id=existing.id if existing else len(self.hod_responses) + 1,
            question_id=question_id,
            hod_id=hod_id,
            department_id=department_id,
            meeting_id=meeting_id if meeting_id is not None else (existing.meeting_id if existing else None),
            response=response,
            responded_at=responded_at,
        )
        if existing:
            self.hod_responses[self.hod_responses.index(existing)] = stored
        else:
            self.hod_responses.append(stored)
        return stored


_STORE_FUNCTIONS = (
    "get_meeting", "list_meetings", "create_meeting", "update_meeting",
    "update_meeting_status", "get_question", "list_questions", "get_profile",
    "list_profiles", "list_departments", "list_feedback", "upsert_feedback",
    "list_hod_responses", "upsert_hod_response",
)


@pytest.fixture
def fake_store(monkeypatch):
    fake = FakeStore()
    for name in _STORE_FUNCTIONS:
        monkeypatch.setattr(store, name, getattr(fake, name))
    return fake
