"""
colloquy/store.py
Store boundary: get / list / create / update for meetings, questions,
respondents, feedback and HOD responses.

Rows are turned into colloquy.models records here so nothing above this
module sees a cursor or a DataFrame.  Missing rows raise NotFound.  Database
exceptions are raised to the caller unchanged.

Concurrency contract:
  - upsert_feedback() is atomic per (user_id, question_id), and
    upsert_hod_response() per (question_id, hod_id), thanks to the
    unique constraint and ON CONFLICT upsert; the core never does its own
    check-then-insert.
  - update_meeting_status() never touches a cancelled row, so a sweep and a
    lazy check racing on the same meeting both write the same value.
"""

import logging
from datetime import datetime

from colloquy.db import fetch_rows, get_supabase_admin, query_df, run_query
from colloquy.errors import NotFound
from colloquy.models import (
    FeedbackEntry,
    HodResponse,
    Meeting,
    Question,
    RespondentProfile,
    parse,
)

logger = logging.getLogger(__name__)


_MEETING_COLUMNS = """
    id, title, description, location, meeting_date, start_time, end_time,
    status, department_id, role_id AS target_role_id, year, created_by
"""

_QUESTION_COLUMNS = "id, text, role, year, department_id, meeting_id, active"

_FEEDBACK_COLUMNS = "id, rating, notes, user_id, question_id, meeting_id, submitted_at"

_HOD_RESPONSE_COLUMNS = (
    "id, question_id, hod_id, department_id, meeting_id, response, responded, responded_at"
)

_PROFILE_SQL = """
    SELECT  u.id, u.username, u.full_name, u.department_id, u.year,
            ARRAY_REMOVE(ARRAY_AGG(r.name ORDER BY ur.role_id), NULL) AS roles
    FROM    users u
    LEFT JOIN user_roles ur ON ur.user_id = u.id
    LEFT JOIN roles      r  ON r.id       = ur.role_id
    {where}
    GROUP BY u.id
"""


# ─── Meetings ─────────────────────────────────────────────────────────────────

def get_meeting(meeting_id: int) -> Meeting:
    """Return one meeting or raise NotFound."""
    rows = fetch_rows(
        f"SELECT {_MEETING_COLUMNS} FROM meetings WHERE id = %s",
        (meeting_id,),
    )
    if not rows:
        raise NotFound("Meeting", meeting_id)
    return parse(Meeting, rows[0])


def list_meetings(department_id: int | None = None, statuses=None) -> list[Meeting]:
    """
    Return meetings, newest first.

    department_id narrows to one department plus meetings addressed to all
    departments (NULL department).  statuses, when given, is an iterable of
    status values to keep.
    """
    clauses = []
    params: list = []
    if department_id is not None:
        clauses.append("(department_id = %s OR department_id IS NULL)")
        params.append(department_id)
    if statuses:
        clauses.append("status = ANY(%s)")
        params.append(list(statuses))

    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    rows = fetch_rows(
        f"SELECT {_MEETING_COLUMNS} FROM meetings {where} "
        "ORDER BY meeting_date DESC, start_time DESC",
        tuple(params),
    )
    return [parse(Meeting, row) for row in rows]


def create_meeting(meeting: Meeting) -> Meeting:
    """Insert a meeting and return it with its generated id."""
    row = run_query(
        f"""
        INSERT INTO meetings (title, description, location, meeting_date,
                              start_time, end_time, status, department_id,
                              role_id, year, created_by)
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        RETURNING {_MEETING_COLUMNS}
        """,
        (
            meeting.title, meeting.description, meeting.location,
            meeting.meeting_date, meeting.start_time, meeting.end_time,
            meeting.status, meeting.department_id, meeting.target_role_id,
            meeting.year, meeting.created_by,
        ),
    )
    return parse(Meeting, row)


def update_meeting(meeting: Meeting) -> Meeting:
    """Write every editable field of a meeting back; raise NotFound if it is gone."""
    row = run_query(
        f"""
        UPDATE meetings
        SET    title = %s, description = %s, location = %s,
               meeting_date = %s, start_time = %s, end_time = %s,
               status = %s, department_id = %s, role_id = %s, year = %s,
               updated_at = NOW()
        WHERE  id = %s
        RETURNING {_MEETING_COLUMNS}
        """,
        (
            meeting.title, meeting.description, meeting.location,
            meeting.meeting_date, meeting.start_time, meeting.end_time,
            meeting.status, meeting.department_id, meeting.target_role_id,
            meeting.year, meeting.id,
        ),
    )
    if row is None:
        raise NotFound("Meeting", meeting.id)
    return parse(Meeting, row)


def update_meeting_status(meeting_id: int, status: str) -> None:
    """
    Persist a status produced by the transition function.

    Cancelled rows are never overwritten.  Writing the same status twice is
    harmless, which is what lets the sweep and lazy checks run unlocked.
    """
    run_query(
        """
        UPDATE meetings
        SET    status = %s, updated_at = NOW()
        WHERE  id = %s AND status <> 'cancelled'
        """,
        (status, meeting_id),
    )


# ─── Questions ────────────────────────────────────────────────────────────────

def get_question(question_id: int) -> Question:
    """Return one question or raise NotFound."""
    rows = fetch_rows(
        f"SELECT {_QUESTION_COLUMNS} FROM questions WHERE id = %s",
        (question_id,),
    )
    if not rows:
        raise NotFound("Question", question_id)
    return parse(Question, rows[0])


def list_questions(
    meeting_id: int | None = None,
    active_only: bool = False,
    department_id: int | None = None,
) -> list[Question]:
    """Return questions, optionally for one meeting, one department and/or active only, newest first."""
    clauses = []
    params: list = []
    if department_id is not None:
        clauses.append("department_id = %s")
        params.append(department_id)
    if meeting_id is not None:
        clauses.append("meeting_id = %s")
        params.append(meeting_id)
    if active_only:
        clauses.append("active = TRUE")

    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    rows = fetch_rows(
        f"SELECT {_QUESTION_COLUMNS} FROM questions {where} ORDER BY created_at DESC",
        tuple(params),
    )
    return [parse(Question, row) for row in rows]


# ─── Respondents & departments ────────────────────────────────────────────────

def get_profile(user_id: int) -> RespondentProfile:
    """Return one respondent with their role tags, or raise NotFound."""
    rows = fetch_rows(_PROFILE_SQL.format(where="WHERE u.id = %s"), (user_id,))
    if not rows:
        raise NotFound("User", user_id)
    return parse(RespondentProfile, rows[0])


def list_profiles(user_ids=None) -> dict:
    """
    Return {user_id: RespondentProfile}.

    user_ids narrows the lookup to the respondents a report actually needs;
    None loads everyone.
    """
    if user_ids is None:
        rows = fetch_rows(_PROFILE_SQL.format(where=""))
    else:
        ids = sorted(set(user_ids))
        if not ids:
            return {}
        rows = fetch_rows(_PROFILE_SQL.format(where="WHERE u.id = ANY(%s)"), (ids,))
    profiles = (parse(RespondentProfile, row) for row in rows)
    return {p.id: p for p in profiles}


def list_departments() -> dict:
    """Return {department_id: name} for active departments (cached reporting read)."""
    df = query_df("SELECT id, name FROM departments WHERE active = TRUE ORDER BY id")
    if df.empty:
        return {}
    return dict(zip(df["id"].tolist(), df["name"].tolist()))


# ─── Feedback ─────────────────────────────────────────────────────────────────

def list_feedback(meeting_id: int | None = None) -> list[FeedbackEntry]:
    """Return feedback entries, optionally for one meeting, newest first."""
    if meeting_id is None:
        rows = fetch_rows(
            f"SELECT {_FEEDBACK_COLUMNS} FROM feedback ORDER BY submitted_at DESC"
        )
    else:
        rows = fetch_rows(
            f"SELECT {_FEEDBACK_COLUMNS} FROM feedback "
            "WHERE meeting_id = %s ORDER BY submitted_at DESC",
            (meeting_id,),
        )
    return [parse(FeedbackEntry, row) for row in rows]


def upsert_feedback(
    user_id: int,
    question_id: int,
    rating: int,
    notes: str | None,
    meeting_id: int | None,
    submitted_at: datetime,
) -> FeedbackEntry:
    """
    Insert or update the single feedback entry for (user_id, question_id).

    Goes through the Supabase admin client so the upsert runs as one
    INSERT ... ON CONFLICT statement against the unique constraint; two
    concurrent submissions can never create two rows.
    """
    payload = {
        "user_id":      user_id,
        "question_id":  question_id,
        "rating":       rating,
        "meeting_id":   meeting_id,
        "submitted_at": submitted_at.isoformat(),
    }
    # A resubmission without notes keeps the earlier notes.
    if notes:
        payload["notes"] = notes

    admin    = get_supabase_admin()
    response = (
        admin.table("feedback")
        .upsert(payload, on_conflict="user_id,question_id")
        .execute()
    )
    logger.info("Feedback stored for user %s on question %s", user_id, question_id)
    return parse(FeedbackEntry, response.data[0])


# ─── HOD responses ────────────────────────────────────────────────────────────

def list_hod_responses(
    question_id: int | None = None,
    department_id: int | None = None,
    hod_id: int | None = None,
) -> list[HodResponse]:
    """Return HOD responses matching every filter given, most recent first."""
    clauses = []
    params: list = []
    for column, value in (
        ("question_id", question_id),
        ("department_id", department_id),
        ("hod_id", hod_id),
    ):
        if value is not None:
            clauses.append(f"{column} = %s")
            params.append(value)

    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    rows = fetch_rows(
        f"SELECT {_HOD_RESPONSE_COLUMNS} FROM hod_responses {where} "
        "ORDER BY responded_at DESC",
        tuple(params),
    )
    return [parse(HodResponse, row) for row in rows]


def upsert_hod_response(
    hod_id: int,
    question_id: int,
    department_id: int,
    response: str | None,
    meeting_id: int | None,
    responded_at: datetime,
) -> HodResponse:
    """
    Insert or update the single response for (question_id, hod_id).

    Same atomic ON CONFLICT upsert as upsert_feedback().  An update without
    a meeting keeps the meeting already on the row.
    """
    payload = {
        "question_id":   question_id,
        "hod_id":        hod_id,
        "department_id": department_id,
        "response":      response,
        "responded":     True,
        "responded_at":  responded_at.isoformat(),
    }
    if meeting_id is not None:
        payload["meeting_id"] = meeting_id

    admin  = get_supabase_admin()
    result = (
        admin.table("hod_responses")
        .upsert(payload, on_conflict="question_id,hod_id")
        .execute()
    )
    logger.info("HOD response stored for hod %s on question %s", hod_id, question_id)
    return parse(HodResponse, result.data[0])
