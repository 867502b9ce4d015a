"""
colloquy/gate.py
Time-gated question visibility.

A meeting's questions open to respondents shortly before the meeting starts
and close when it ends.  Managers bypass the gate entirely so they can
prepare and review questions at any time.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime

from colloquy.models import Meeting
from colloquy.scheduler import instant

# Minutes before the start instant at which questions open.
QUESTION_LEAD_MINUTES = 5

# The gate stays closed while the countdown is at or above this value.
# Together with the lead time this keeps the first minute of the lead window
# closed: a 10:00 meeting reports -1 at 09:56 and opens at 09:57.
_LAST_CLOSED_COUNTDOWN = -1


@dataclass(frozen=True)
class GateResult:
    """
    Outcome of a visibility check.

    available         : True when questions may be shown.
    minutes_until_open: countdown shown to respondents before opening,
                         None once the window has been reached or passed.
    questions         : active questions of the meeting when available.
    reason            : 'open', 'manager', 'not_yet_open', 'closed' or
                         'cancelled'.
    """

    available:          bool
    reason:             str
    minutes_until_open: int | None = None
    questions:          list = field(default_factory=list)


def minutes_until_open(meeting: Meeting, now: datetime) -> int:
    """
    Whole-minute countdown to the open boundary.

    floor((start - now) / 60s) - QUESTION_LEAD_MINUTES.  Rounds down, so it
    is negative once the start is fewer than five whole minutes away.
    """
    start = instant(meeting.meeting_date, meeting.start_time, now)
    return math.floor((start - now).total_seconds() / 60) - QUESTION_LEAD_MINUTES


def active_questions(meeting: Meeting, questions) -> list:
    """Return the meeting's active questions, preserving input order."""
    return [
        q for q in questions
        if q.active and q.meeting_id == meeting.id
    ]


def questions_visible(meeting: Meeting, questions, now: datetime, requester_is_manager: bool = False) -> GateResult:
    """
    Decide whether a meeting's questions are visible to a requester at `now`.

    `questions` is the candidate list fetched by the caller; only active
    questions attached to this meeting are ever returned.  Managers always
    see them.  Respondents see them only inside the window, which closes at
    the meeting's end instant and never opens for a cancelled meeting.
    """
    visible = active_questions(meeting, questions)

    if requester_is_manager:
        return GateResult(available=True, reason="manager", questions=visible)

    if meeting.status == "cancelled":
        return GateResult(available=False, reason="cancelled")

    end = instant(meeting.meeting_date, meeting.end_time, now)
    if meeting.status == "completed" or now > end:
        return GateResult(available=False, reason="closed")

    countdown = minutes_until_open(meeting, now)
    if countdown >= _LAST_CLOSED_COUNTDOWN:
        return GateResult(
            available=False,
            reason="not_yet_open",
            minutes_until_open=countdown,
        )

    return GateResult(available=True, reason="open", questions=visible)
