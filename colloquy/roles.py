"""
colloquy/roles.py
Respondent classification, privilege helpers and audience filters.

classify() is the one place a respondent's category is decided.  Every
report and eligibility check goes through it so the same person is never
counted as a student in one view and staff in another.
"""

import re

from colloquy.models import ROLE_IDS, Meeting, Question, RespondentProfile

# Privilege precedence, higher is more privileged.
_ROLE_RANK = {
    "student":            0,
    "staff":              0,
    "hod":                1,
    "academic_director":  2,
    "executive_director": 2,
}

# Minimum rank for each privileged action.
_PRIVILEGE_RANK = {
    "bypass_gate": 1,   # heads of department and directors manage questions
    "reschedule":  2,   # only directors move a meeting's schedule
}

_STUDENT_ID = re.compile(r"^E\d")
_STAFF_ID   = re.compile(r"^S\d")


# ─── Classification ───────────────────────────────────────────────────────────

def _classify_username(username: str | None) -> str | None:
    if not username:
        return None
    if _STUDENT_ID.match(username) or username.startswith("ST"):
        return "student"
    if (
        _STAFF_ID.match(username)
        or username.startswith("SF")
        or "staff" in username.lower()
    ):
        return "staff"
    return None


def _classify_tags(tags) -> str | None:
    for tag in tags or ():
        name = str(tag).strip().lower()
        if name == "staff":
            return "staff"
        if name == "student":
            return "student"
    return None


def classify(respondent: RespondentProfile | None, target_role: str | None = None) -> str:
    """
    Return 'student', 'staff' or 'other' for a respondent.

    Rules are evaluated in this order and the first match wins:
      1. Username pattern. ^E<digit> or an 'ST' prefix is a student;
         ^S<digit>, an 'SF' prefix or 'staff' anywhere (any case) is staff.
      2. Explicit role tags, in the order they are attached.
      3. When the caller is looking for staff and the respondent belongs to a
         department, they are counted as staff.
      4. Anything else is 'other'.

    The order is a business rule relied on by every report type: a username
    like 'E1023' stays a student even when tagged 'staff'.  Never raises.
    """
    if respondent is None:
        return "other"

    category = _classify_username(respondent.username)
    if category:
        return category

    category = _classify_tags(respondent.roles)
    if category:
        return category

    if target_role == "staff" and respondent.department_id is not None:
        return "staff"

    return "other"


# ─── Privileges ───────────────────────────────────────────────────────────────

def _normalise_role_name(name: str) -> str:
    """'ROLE_ACADEMIC_DIRECTOR' and 'Academic Director' both map to 'academic_director'."""
    name = str(name).strip().lower()
    if name.startswith("role_"):
        name = name[len("role_"):]
    return name.replace(" ", "_").replace("-", "_")


def role_rank(role_names) -> int:
    """Return the highest privilege rank among role_names, or -1 for none."""
    ranks = [_ROLE_RANK.get(_normalise_role_name(n), -1) for n in role_names or ()]
    return max(ranks, default=-1)


def is_manager(role_names) -> bool:
    """True for heads of department and directors (gate bypass)."""
    return role_rank(role_names) >= _PRIVILEGE_RANK["bypass_gate"]


def can_reschedule(role_names) -> bool:
    """True for roles allowed to move a meeting's date or times."""
    return role_rank(role_names) >= _PRIVILEGE_RANK["reschedule"]


def is_hod(role_names) -> bool:
    """True when one of role_names is head of department (minutes-of-meeting responses)."""
    return any(_normalise_role_name(n) == "hod" for n in role_names or ())


# ─── Audience filters ─────────────────────────────────────────────────────────

def meeting_matches_respondent(meeting: Meeting, profile: RespondentProfile, category: str) -> bool:
    """
    Return True if a meeting is addressed to this respondent.

    A meeting with no department is for every department.  Students see
    student meetings for their year (or with no year set); staff see staff
    meetings; anyone else is not filtered by target role.
    """
    if meeting.department_id is not None and meeting.department_id != profile.department_id:
        return False

    if category == "student":
        if meeting.target_role_id != ROLE_IDS["student"]:
            return False
        return meeting.year is None or profile.year is None or meeting.year == profile.year

    if category == "staff":
        return meeting.target_role_id == ROLE_IDS["staff"]

    return True


def question_matches_respondent(question: Question, profile: RespondentProfile, category: str) -> bool:
    """
    Return True if a question may be answered by this respondent.

    Questions targeted at 'both' are open to students and staff alike.  A
    student question with a year only matches respondents of that year.
    """
    if question.role != "both" and question.role != category:
        return False
    if question.department_id is not None and question.department_id != profile.department_id:
        return False
    if question.year is not None and question.year != profile.year:
        return False
    return True
