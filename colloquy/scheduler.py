"""
colloquy/scheduler.py
Meeting lifecycle state machine.

Statuses:
  scheduled ──(now > end)──────────────► completed
  rescheduled / in-progress ──(now > end)► completed
  scheduled / in-progress ──(edit moves date/time, director)──► rescheduled
  cancelled : terminal, never left

advance() is the single transition function.  The periodic sweep
(colloquy.jobs) and the lazy check done on every listing (colloquy.service)
both go through advance_all(), so the two paths can never disagree.  The
transition is idempotent: running it twice, or from both paths at once,
leaves the same status.
"""

import logging
from datetime import date, datetime, time

from colloquy.errors import ValidationError
from colloquy.models import OPEN_STATUSES, Meeting, MeetingDraft, parse

logger = logging.getLogger(__name__)


# Fields whose change counts as moving the meeting.
SCHEDULE_FIELDS = ("meeting_date", "start_time", "end_time")

EDITABLE_FIELDS = SCHEDULE_FIELDS + (
    "title",
    "description",
    "location",
    "department_id",
    "target_role_id",
    "year",
    "status",
)

# Statuses an edit by a director may turn into 'rescheduled'.
RESCHEDULABLE_STATUSES = ("scheduled", "in-progress")


# ─── Clock & instants ─────────────────────────────────────────────────────────

def system_clock() -> datetime:
    """Default clock: local wall-clock time, matching how meetings are entered."""
    return datetime.now()


def instant(day: date, at: time, now: datetime) -> datetime:
    """
    Combine a meeting date and time into one comparable instant.

    Takes the tzinfo of `now` so an aware clock compares against aware
    instants and a naive clock against naive ones.
    """
    return datetime.combine(day, at, tzinfo=now.tzinfo)


# ─── Transitions ──────────────────────────────────────────────────────────────

def new_meeting(draft: MeetingDraft, created_by: int | None = None) -> Meeting:
    """Build a meeting from a validated draft.  Every meeting starts 'scheduled'."""
    return Meeting(
        **draft.model_dump(),
        status="scheduled",
        created_by=created_by,
    )


def advance(meeting: Meeting, now: datetime) -> Meeting:
    """
    Apply the time rule to a meeting and return the resulting meeting.

    A meeting whose end instant has passed moves to 'completed'.  Completed
    and cancelled meetings are returned unchanged, which makes the function
    idempotent: advance(advance(m, t), t) == advance(m, t).
    """
    if meeting.status not in OPEN_STATUSES:
        return meeting

    if now > instant(meeting.meeting_date, meeting.end_time, now):
        return meeting.model_copy(update={"status": "completed"})

    return meeting


def apply_edit(meeting: Meeting, changes: dict, now: datetime, can_reschedule: bool = False) -> Meeting:
    """
    Apply an explicit edit to a meeting and return the edited meeting.

    Rules:
      - Only EDITABLE_FIELDS may change; anything else is a ValidationError.
      - A cancelled meeting keeps its status; asking for another status
        raises ValidationError.
      - When the editor may reschedule, no explicit status is requested, and
        the date, start or end time actually changes value, a scheduled or
        in-progress meeting becomes 'rescheduled'.
      - The result is passed through advance() so an edit that lands in the
        past converges to the same status the sweep would give it.

    The privilege decision belongs to the caller; this function only reads
    the can_reschedule flag.
    """
    unknown = sorted(set(changes) - set(EDITABLE_FIELDS))
    if unknown:
        raise ValidationError(f"Fields cannot be edited: {', '.join(unknown)}")

    requested_status = changes.get("status")
    if requested_status == meeting.status:
        requested_status = None

    if meeting.status == "cancelled" and requested_status is not None:
        raise ValidationError("A cancelled meeting cannot be reopened")

    edited = parse(Meeting, {**meeting.model_dump(), **changes})
    if edited.end_time <= edited.start_time:
        raise ValidationError("end_time must be after start_time")

    moved = [f for f in SCHEDULE_FIELDS if getattr(edited, f) != getattr(meeting, f)]
    if (
        moved
        and can_reschedule
        and requested_status is None
        and meeting.status in RESCHEDULABLE_STATUSES
    ):
        logger.info("Meeting %s rescheduled (%s changed)", meeting.id, ", ".join(moved))
        edited = edited.model_copy(update={"status": "rescheduled"})

    return advance(edited, now)


def advance_all(meetings, now: datetime) -> tuple[list, list]:
    """
    Advance every meeting in a batch.

    Returns (advanced, changed): the full list in input order, and the
    subset whose status differs from the input so callers persist only those.
    """
    advanced = []
    changed  = []
    for meeting in meetings:
        result = advance(meeting, now)
        advanced.append(result)
        if result.status != meeting.status:
            changed.append(result)
    return advanced, changed


# ─── Listing helpers ──────────────────────────────────────────────────────────

def categorize_meetings(meetings, today: date) -> dict:
    """
    Split meetings into past, current and future by calendar date only.

    Returns {"past": [...], "current": [...], "future": [...]}, each list
    keeping the input order.  Time of day is ignored: a meeting earlier today
    is still 'current'.
    """
    buckets = {"past": [], "current": [], "future": []}
    for meeting in meetings:
        if meeting.meeting_date < today:
            buckets["past"].append(meeting)
        elif meeting.meeting_date == today:
            buckets["current"].append(meeting)
        else:
            buckets["future"].append(meeting)
    return buckets
