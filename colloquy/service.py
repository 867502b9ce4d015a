"""
colloquy/service.py
Request-facing operations on meetings, questions and HOD responses.

Each function loads a snapshot from colloquy.store, runs the pure core over
it, and writes back whatever the core changed.  Privilege *policy* lives
here (role names → flags); the core only ever sees the resulting booleans.
"""

import logging

from colloquy import store
from colloquy.errors import AuthorizationError, ValidationError
from colloquy.feedback import resolve_meeting_id
from colloquy.gate import GateResult, questions_visible
from colloquy.models import HodResponse, HodResponseSubmission, Meeting, MeetingDraft, parse
from colloquy.roles import (
    can_reschedule,
    classify,
    is_hod,
    is_manager,
    meeting_matches_respondent,
)
from colloquy.scheduler import (
    SCHEDULE_FIELDS,
    advance_all,
    apply_edit,
    categorize_meetings,
    new_meeting,
    system_clock,
)

logger = logging.getLogger(__name__)


# ─── Meetings ─────────────────────────────────────────────────────────────────

def _lazy_advance(meetings, now) -> list:
    """
    Lazy status check performed on every listing.

    Uses the same advance_all() as the periodic sweep and persists only the
    meetings whose status changed.
    """
    advanced, changed = advance_all(meetings, now)
    for meeting in changed:
        store.update_meeting_status(meeting.id, meeting.status)
        logger.info("Meeting %s marked %s on read", meeting.id, meeting.status)
    return advanced


def list_meetings(department_id: int | None = None, clock=system_clock) -> list:
    """Return meetings (optionally for one department) with statuses brought up to date."""
    return _lazy_advance(store.list_meetings(department_id=department_id), clock())


def meetings_for_respondent(user_id: int, clock=system_clock) -> dict:
    """
    Return the meetings addressed to a respondent, split by calendar date.

    Returns:
        {
            "respondent": {"id", "username", "category", "department_id", "year"},
            "past": [...], "current": [...], "future": [...],
        }
    """
    now      = clock()
    profile  = store.get_profile(user_id)
    category = classify(profile)

    meetings = _lazy_advance(
        store.list_meetings(department_id=profile.department_id), now
    )
    addressed = [
        m for m in meetings
        if meeting_matches_respondent(m, profile, category)
    ]

    return {
        "respondent": {
            "id":            profile.id,
            "username":      profile.username,
            "category":      category,
            "department_id": profile.department_id,
            "year":          profile.year,
        },
        **categorize_meetings(addressed, now.date()),
    }


def create_meeting(payload: dict, created_by: int, role_names) -> Meeting:
    """Validate a draft and store a new meeting in 'scheduled' status."""
    if not can_reschedule(role_names):
        raise AuthorizationError("Only directors can schedule meetings")
    draft = parse(MeetingDraft, payload)
    return store.create_meeting(new_meeting(draft, created_by=created_by))


def edit_meeting(meeting_id: int, changes: dict, role_names, clock=system_clock) -> Meeting:
    """
    Apply an edit to a stored meeting and persist the result.

    Only managers may edit at all, and only directors may move the date or
    times.  A head of department whose edit would move the schedule gets
    AuthorizationError and nothing is written.
    """
    if not is_manager(role_names):
        raise AuthorizationError("You don't have permission to edit meetings")

    meeting     = store.get_meeting(meeting_id)
    rescheduler = can_reschedule(role_names)
    edited      = apply_edit(meeting, changes, clock(), can_reschedule=rescheduler)

    moved = [f for f in SCHEDULE_FIELDS if getattr(edited, f) != getattr(meeting, f)]
    if moved and not rescheduler:
        raise AuthorizationError(
            f"Only directors can reschedule meetings ({', '.join(moved)} changed)"
        )
    if edited == meeting:
        return meeting
    return store.update_meeting(edited)


# ─── Questions ────────────────────────────────────────────────────────────────

def visible_questions(meeting_id: int, role_names, clock=system_clock) -> GateResult:
    """
    Gate a meeting's questions for the requester.

    Managers bypass the time gate.  The meeting's status is advanced first
    so a meeting that just ended reads as closed on the same request.
    """
    now = clock()
    meeting = _lazy_advance([store.get_meeting(meeting_id)], now)[0]
    questions = store.list_questions(meeting_id=meeting_id, active_only=True)
    return questions_visible(
        meeting,
        questions,
        now,
        requester_is_manager=is_manager(role_names),
    )



# ─── HOD responses (minutes of meeting) ───────────────────────────────────────

def respond_to_question(hod_id: int, payload: dict, role_names, clock=system_clock) -> HodResponse:
    """
    Record a head of department's response to a question.

    There is one response per (question, HOD); answering again replaces the
    text.  The department defaults to the HOD's own, and the meeting follows
    the same rule as feedback (feedback.resolve_meeting_id).
    """
    if not is_hod(role_names):
        raise AuthorizationError("Only heads of department can respond to questions")

    submission = parse(HodResponseSubmission, payload)
    question   = store.get_question(submission.question_id)
    meeting_id = resolve_meeting_id(question, submission.meeting_id)

    department_id = submission.department_id
    if department_id is None:
        department_id = store.get_profile(hod_id).department_id
    if department_id is None:
        raise ValidationError("HOD's department not found")

    return store.upsert_hod_response(
        hod_id=hod_id,
        question_id=question.id,
        department_id=department_id,
        response=submission.response,
        meeting_id=meeting_id,
        responded_at=clock(),
    )


def responses_for_question(question_id: int, role_names) -> list:
    """Return every HOD response to one question (managers only)."""
    if not is_manager(role_names):
        raise AuthorizationError("You don't have permission to view responses")
    store.get_question(question_id)
    return store.list_hod_responses(question_id=question_id)


def questions_with_responses(department_id: int, role_names) -> list:
    """
    Return a department's questions, each with the HOD responses given for it.

    Returns:
        [{"question": Question, "responses": [HodResponse, ...]}, ...]
        in the store's question order; unanswered questions have [].
    """
    if not is_manager(role_names):
        raise AuthorizationError("You don't have permission to view responses")

    by_question = {}
    for response in store.list_hod_responses(department_id=department_id):
        by_question.setdefault(response.question_id, []).append(response)

    return [
        {"question": q, "responses": by_question.get(q.id, [])}
        for q in store.list_questions(department_id=department_id)
    ]


def meetings_responded_by_hod(hod_id: int, department_id: int, role_names) -> list[int]:
    """Return the ids of meetings this HOD has responded to in a department."""
    if not is_hod(role_names):
        raise AuthorizationError("Only heads of department can list their responses")
    responses = store.list_hod_responses(department_id=department_id, hod_id=hod_id)
    return sorted({r.meeting_id for r in responses if r.meeting_id is not None})
