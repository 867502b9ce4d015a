"""
colloquy/reports.py
Reporting entry points: fetch flat data, then roll it up.

Two steps, always in this order:
  1. Fetch flat FeedbackEntry rows plus lookup tables (questions,
     departments, respondents) from colloquy.store.
  2. Run the store-agnostic aggregation in colloquy.stats.

Export callers (spreadsheet generation lives outside this package) use
rollup_frames() to get tabular DataFrames.
"""

import logging

import pandas as pd

from colloquy import store
from colloquy.stats import (
    ROLE_ORDER,
    Rollup,
    aggregate,
    build_contexts,
    compare_rollups,
    individual_report,
    scope_entries,
)

logger = logging.getLogger(__name__)

# Report types individual_role_report() accepts.
INDIVIDUAL_REPORT_ROLES = ("student", "staff")


def _lookups(entries) -> tuple[dict, dict, dict]:
    """Load the question, department and respondent tables a set of entries needs."""
    questions   = {q.id: q for q in store.list_questions()}
    departments = store.list_departments()
    profiles    = store.list_profiles({e.user_id for e in entries})
    return questions, departments, profiles


def build_rollup(meeting_id: int | None = None) -> Rollup:
    """
    Build the full rollup, optionally scoped to one meeting.

    Raises NotFound when meeting_id names a meeting that does not exist.
    Entries whose question has since been deleted are skipped (and logged)
    by the aggregator rather than failing the report.
    """
    if meeting_id is not None:
        store.get_meeting(meeting_id)

    entries = scope_entries(store.list_feedback(meeting_id=meeting_id), meeting_id)
    questions, departments, profiles = _lookups(entries)
    contexts = build_contexts(entries, questions, departments, profiles)

    rollup = aggregate(entries, contexts)
    logger.info(
        "Built rollup for %s: %d entries counted, %d skipped",
        f"meeting {meeting_id}" if meeting_id is not None else "all meetings",
        rollup.overall.count,
        rollup.skipped,
    )
    return rollup


def meeting_trend(previous_meeting_id: int, current_meeting_id: int) -> dict:
    """Compare two meetings' rollups on unrounded averages (see stats.compare_rollups)."""
    return compare_rollups(
        build_rollup(previous_meeting_id),
        build_rollup(current_meeting_id),
    )


def individual_role_report(target_role: str, meeting_id: int | None = None) -> dict:
    """
    Per-respondent feedback for one role, grouped by department.

    target_role must be 'student' or 'staff'; anything else is a ValueError
    raised before any data is fetched.
    """
    if target_role not in INDIVIDUAL_REPORT_ROLES:
        raise ValueError(f"Invalid role type: {target_role}")

    entries = scope_entries(store.list_feedback(meeting_id=meeting_id), meeting_id)
    questions, departments, profiles = _lookups(entries)
    return individual_report(entries, questions, departments, profiles, target_role)


# ─── Tabular views ────────────────────────────────────────────────────────────

_BUCKET_COLUMNS = ["count", "average_rating", "rating_5", "rating_4", "rating_3", "rating_2", "rating_1"]


def _bucket_row(bucket) -> dict:
    row = {
        "count":          bucket.count,
        "average_rating": round(bucket.average, 2),
    }
    for rating in (5, 4, 3, 2, 1):
        row[f"rating_{rating}"] = bucket.histogram.get(rating, 0)
    return row


def rollup_frames(rollup: Rollup) -> dict[str, pd.DataFrame]:
    """
    Flatten a rollup into one DataFrame per dimension.

    Returns {"overall", "departments", "roles", "questions"}.  Averages are
    rounded to 2 dp here, at the presentation boundary.  Empty dimensions
    yield an empty frame with the expected columns.
    """
    overall = pd.DataFrame([_bucket_row(rollup.overall)], columns=_BUCKET_COLUMNS)

    departments = pd.DataFrame(
        [
            {"department_id": dept_id, "department_name": b.department_name, **_bucket_row(b)}
            for dept_id, b in rollup.by_department.items()
        ],
        columns=["department_id", "department_name"] + _BUCKET_COLUMNS,
    )

    roles = pd.DataFrame(
        [
            {"role": role, **_bucket_row(rollup.by_role[role])}
            for role in ROLE_ORDER
            if role in rollup.by_role
        ],
        columns=["role"] + _BUCKET_COLUMNS,
    )

    questions = pd.DataFrame(
        [
            {
                "question_id":     qid,
                "question_text":   b.question_text,
                "department_name": b.department_name,
                **_bucket_row(b),
            }
            for qid, b in rollup.by_question.items()
        ],
        columns=["question_id", "question_text", "department_name"] + _BUCKET_COLUMNS,
    )

    return {
        "overall":     overall,
        "departments": departments,
        "roles":       roles,
        "questions":   questions,
    }
