"""
colloquy/feedback.py
Feedback submission.

Submission order:
  1. Payload validation (rating in 1..5, required fields), ValidationError
  2. Question and respondent lookup, NotFound
  3. Eligibility (active, department, year, role), ValidationError or
     AuthorizationError
  4. Question gate for meeting questions, AuthorizationError
  5. Atomic upsert on (user_id, question_id)

Nothing reaches the aggregator without passing step 1, so every stored
rating is inside the histogram range.
"""

import logging

from colloquy import store
from colloquy.errors import AuthorizationError, ValidationError
from colloquy.gate import questions_visible
from colloquy.models import FeedbackEntry, FeedbackSubmission, Question, RespondentProfile, parse
from colloquy.roles import classify, question_matches_respondent
from colloquy.scheduler import advance, system_clock

logger = logging.getLogger(__name__)


def check_eligibility(question: Question, profile: RespondentProfile) -> None:
    """
    Raise if `profile` may not answer `question`; return None otherwise.

    - An inactive question is a ValidationError.
    - A different department, a different year (for year-bound questions),
      or a category the question is not aimed at is an AuthorizationError.

    The respondent's category comes from roles.classify, the same
    classification every report uses.
    """
    if not question.active:
        raise ValidationError("This question is no longer active")

    if question_matches_respondent(question, profile, classify(profile)):
        return

    if question.department_id is not None and question.department_id != profile.department_id:
        raise AuthorizationError("You cannot submit feedback for a different department")
    if question.year is not None and question.year != profile.year:
        raise AuthorizationError("You cannot submit feedback for a different year")
    raise AuthorizationError(f"This question is only for {question.role}")


def resolve_meeting_id(question: Question, requested: int | None) -> int | None:
    """
    Return the meeting a response to `question` belongs to.

    A question attached to a meeting always answers for that meeting; naming
    a different one is a ValidationError.  A free-standing question takes
    the meeting named in the payload, if any.
    """
    if question.meeting_id is None:
        return requested
    if requested is not None and requested != question.meeting_id:
        raise ValidationError(
            f"Question {question.id} belongs to meeting {question.meeting_id}, not {requested}"
        )
    return question.meeting_id


def submit_feedback(user_id: int, payload: dict, clock=system_clock) -> FeedbackEntry:
    """
    Validate and store one rating, returning the stored entry.

    A repeat submission for the same question updates the existing entry
    (rating, submission time, meeting) instead of adding a second one; the
    earlier notes are kept when the new submission has none.  The meeting is
    the question's own (see resolve_meeting_id), and its gate must be open.
    """
    submission = parse(FeedbackSubmission, payload)
    question   = store.get_question(submission.question_id)
    profile    = store.get_profile(user_id)

    check_eligibility(question, profile)

    now        = clock()
    meeting_id = resolve_meeting_id(question, submission.meeting_id)
    if meeting_id is not None:
        meeting = advance(store.get_meeting(meeting_id), now)
        gate = questions_visible(meeting, [question], now)
        if not gate.available:
            logger.info(
                "Rejected feedback from user %s on question %s: gate %s",
                user_id, question.id, gate.reason,
            )
            raise AuthorizationError(
                f"Questions for this meeting are not open ({gate.reason})"
            )

    return store.upsert_feedback(
        user_id=user_id,
        question_id=question.id,
        rating=submission.rating,
        notes=submission.notes,
        meeting_id=meeting_id,
        submitted_at=now,
    )
