"""
colloquy/stats.py
Feedback statistics rollup engine.

Rolls a flat list of feedback entries into four dimensions in one pass:
  - overall       every counted entry
  - by_department keyed by the question's department
  - by_role       keyed by the respondent's classified category
  - by_question   keyed by question id

Data is fetched elsewhere (colloquy.reports) as flat entries plus lookup
tables; build_contexts() resolves those lookups, and aggregate() never
touches the store.  Meeting scoping is a pre-filter (scope_entries), so the
aggregation itself knows nothing about meetings.

Entry points:
  aggregate(entries, contexts) -> Rollup
  rollup_to_dict(rollup)       -> presentation dict (averages rounded)
"""

import logging
from dataclasses import dataclass, field

from colloquy.errors import AggregationSkip
from colloquy.models import RATING_MAX, RATING_MIN, Question
from colloquy.roles import classify

logger = logging.getLogger(__name__)


# ─── CONSTANTS ────────────────────────────────────────────────────────────────

RATINGS = tuple(range(RATING_MIN, RATING_MAX + 1))

# by_role always carries these keys, even at zero, so report columns stay
# stable.  by_department / by_question omit empty buckets.
ALWAYS_PRESENT_ROLES = ("student", "staff")
ROLE_ORDER           = ("student", "staff", "other")

UNKNOWN_DEPARTMENT = "Unknown Department"
UNKNOWN_QUESTION   = "Unknown Question"

# Rounding applies at the presentation boundary only.
AVERAGE_DECIMALS = 2


def _empty_histogram() -> dict:
    return {rating: 0 for rating in RATINGS}


# ─── RESULT TYPES ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RollupBucket:
    count:      int = 0
    sum_rating: int = 0
    histogram:  dict = field(default_factory=_empty_histogram)

    @property
    def average(self) -> float:
        """Unrounded mean rating; 0.0 for an empty bucket."""
        return self.sum_rating / self.count if self.count else 0.0


@dataclass(frozen=True)
class DepartmentBucket(RollupBucket):
    department_name: str = UNKNOWN_DEPARTMENT


@dataclass(frozen=True)
class QuestionBucket(RollupBucket):
    question_text:   str = UNKNOWN_QUESTION
    department_id:   int | None = None
    department_name: str = UNKNOWN_DEPARTMENT


@dataclass(frozen=True)
class Rollup:
    overall:       RollupBucket
    by_department: dict
    by_role:       dict
    by_question:   dict
    skipped:       int = 0


@dataclass(frozen=True)
class EntryContext:
    """Resolved dimension values for one feedback entry."""

    question:        Question | None
    department_name: str | None = None
    role:            str = "other"


# ─── PRIVATE HELPERS ──────────────────────────────────────────────────────────

class _Tally:
    """Mutable accumulator; only ever lives inside a single aggregate() call."""

    __slots__ = ("count", "total", "histogram")

    def __init__(self):
        self.count     = 0
        self.total     = 0
        self.histogram = _empty_histogram()

    def add(self, rating: int) -> None:
        self.count += 1
        self.total += rating
        self.histogram[rating] += 1

    def freeze(self, bucket_cls=RollupBucket, **labels) -> RollupBucket:
        return bucket_cls(
            count=self.count,
            sum_rating=self.total,
            histogram=dict(self.histogram),
            **labels,
        )


def _resolve(entry, context: EntryContext | None):
    """
    Return (question, department_name, role) for an entry or raise AggregationSkip.

    An entry is skipped when its question is missing (deleted or never
    resolved) or its rating falls outside the histogram range.
    """
    if context is None or context.question is None:
        raise AggregationSkip(entry.id, f"question {entry.question_id} is missing")
    if entry.rating not in RATINGS:
        raise AggregationSkip(entry.id, f"rating {entry.rating} is out of range")

    role = context.role if context.role in ROLE_ORDER else "other"
    return context.question, context.department_name or UNKNOWN_DEPARTMENT, role


def _round(value: float) -> float:
    return round(value, AVERAGE_DECIMALS)


def _bucket_to_dict(bucket: RollupBucket) -> dict:
    result = {
        "count":          bucket.count,
        "sum_rating":     bucket.sum_rating,
        "average_rating": _round(bucket.average),
        "histogram":      dict(bucket.histogram),
    }
    if isinstance(bucket, DepartmentBucket):
        result["department_name"] = bucket.department_name
    if isinstance(bucket, QuestionBucket):
        result["question_text"]   = bucket.question_text
        result["department_id"]   = bucket.department_id
        result["department_name"] = bucket.department_name
    return result


# ─── CONTEXT BUILDING ─────────────────────────────────────────────────────────

def scope_entries(entries, meeting_id: int | None = None) -> list:
    """Return the entries belonging to one meeting, or all of them when meeting_id is None."""
    if meeting_id is None:
        return list(entries)
    return [e for e in entries if e.meeting_id == meeting_id]


def build_contexts(
    entries,
    questions: dict,
    departments: dict,
    profiles: dict,
    target_role: str | None = None,
) -> list:
    """
    Resolve each entry's dimensions from flat lookup tables.

    questions  : {question_id: Question}
    departments: {department_id: name}
    profiles   : {user_id: RespondentProfile}

    Returns a list of EntryContext aligned with `entries`.  Missing lookups
    are left as None and handled (skipped or labelled unknown) by aggregate().
    """
    contexts = []
    for entry in entries:
        question = questions.get(entry.question_id)
        department_name = None
        if question is not None and question.department_id is not None:
            department_name = departments.get(question.department_id)
        contexts.append(
            EntryContext(
                question=question,
                department_name=department_name,
                role=classify(profiles.get(entry.user_id), target_role),
            )
        )
    return contexts


# ─── PUBLIC ENTRY POINT ───────────────────────────────────────────────────────

def aggregate(entries, contexts) -> Rollup:
    """
    Roll feedback entries up into overall, department, role and question buckets.

    `contexts` is a sequence aligned with `entries` (see build_contexts).
    Single linear pass: each counted entry increments exactly one bucket per
    dimension.  Entries that cannot be placed are logged at WARNING and
    counted in Rollup.skipped; they never fail the whole rollup.

    When nothing is skipped, overall.count equals the sum of by_question
    counts (and of by_department and by_role counts).
    """
    entries  = list(entries)
    contexts = list(contexts)
    if len(entries) != len(contexts):
        raise ValueError(
            f"aggregate() needs one context per entry "
            f"({len(entries)} entries, {len(contexts)} contexts)"
        )

    overall          = _Tally()
    department_tally = {}
    department_names = {}
    role_tally       = {role: _Tally() for role in ALWAYS_PRESENT_ROLES}
    question_tally   = {}
    question_labels  = {}
    skipped          = 0

    for entry, context in zip(entries, contexts):
        try:
            question, department_name, role = _resolve(entry, context)
        except AggregationSkip as skip:
            logger.warning("Skipping feedback in rollup: %s", skip)
            skipped += 1
            continue

        rating = entry.rating
        overall.add(rating)

        dept_id = question.department_id
        department_tally.setdefault(dept_id, _Tally()).add(rating)
        department_names.setdefault(dept_id, department_name)

        role_tally.setdefault(role, _Tally()).add(rating)

        question_tally.setdefault(entry.question_id, _Tally()).add(rating)
        question_labels.setdefault(entry.question_id, {
            "question_text":   question.text or UNKNOWN_QUESTION,
            "department_id":   dept_id,
            "department_name": department_name,
        })

    by_department = {
        dept_id: tally.freeze(DepartmentBucket, department_name=department_names[dept_id])
        for dept_id, tally in department_tally.items()
    }
    by_role = {
        role: role_tally[role].freeze()
        for role in ROLE_ORDER
        if role in role_tally
    }
    by_question = {
        qid: tally.freeze(QuestionBucket, **question_labels[qid])
        for qid, tally in question_tally.items()
    }

    if skipped:
        logger.info("Rollup counted %d entries, skipped %d", overall.count, skipped)

    return Rollup(
        overall=overall.freeze(),
        by_department=by_department,
        by_role=by_role,
        by_question=by_question,
        skipped=skipped,
    )


def rollup_to_dict(rollup: Rollup) -> dict:
    """
    Presentation form of a rollup: plain dicts with averages rounded to 2 dp.

    Returns:
        {
            "overall":       {count, sum_rating, average_rating, histogram},
            "by_department": {dept_id: {... , department_name}},
            "by_role":       {"student": {...}, "staff": {...}[, "other": {...}]},
            "by_question":   {question_id: {..., question_text, department_id, department_name}},
            "skipped":       int,
        }
    """
    return {
        "overall":       _bucket_to_dict(rollup.overall),
        "by_department": {k: _bucket_to_dict(b) for k, b in rollup.by_department.items()},
        "by_role":       {k: _bucket_to_dict(b) for k, b in rollup.by_role.items()},
        "by_question":   {k: _bucket_to_dict(b) for k, b in rollup.by_question.items()},
        "skipped":       rollup.skipped,
    }


# ─── DERIVED VIEWS ────────────────────────────────────────────────────────────

def rank_questions(rollup: Rollup) -> list:
    """
    Return (question_id, QuestionBucket) pairs, highest average first.

    Ties keep the order in which questions were first seen.
    """
    return sorted(
        rollup.by_question.items(),
        key=lambda item: item[1].average,
        reverse=True,
    )


def _compare(previous: RollupBucket | None, current: RollupBucket | None) -> dict:
    # Empty buckets have no average.
    prev_avg = previous.average if previous and previous.count else None
    curr_avg = current.average if current and current.count else None
    delta = None
    if prev_avg is not None and curr_avg is not None:
        delta = curr_avg - prev_avg
    return {
        "previous_average": prev_avg,
        "current_average":  curr_avg,
        "average_delta":    delta,
        "previous_count":   previous.count if previous else 0,
        "current_count":    current.count if current else 0,
    }


def compare_rollups(previous: Rollup, current: Rollup) -> dict:
    """
    Trend comparison between two rollups (e.g. two meetings).

    Works on unrounded averages.  A side that is missing or empty (such as
    a zero-filled role bucket) gets None, and so does the delta.
    """
    def _dimension(name: str) -> dict:
        before = getattr(previous, name)
        after  = getattr(current, name)
        keys   = list(before) + [k for k in after if k not in before]
        return {k: _compare(before.get(k), after.get(k)) for k in keys}

    return {
        "overall":       _compare(previous.overall, current.overall),
        "by_department": _dimension("by_department"),
        "by_role":       _dimension("by_role"),
        "by_question":   _dimension("by_question"),
    }


def individual_report(
    entries,
    questions: dict,
    departments: dict,
    profiles: dict,
    target_role: str,
) -> dict:
    """
    Group one role's feedback by the respondent's department, then respondent.

    Respondents are classified with target_role as context, so department
    members with no other signal count as staff in a staff report.  Entries
    from unknown respondents or other categories are left out.

    Returns:
        {
            department_id: {
                "department_name": str,
                "respondents": {
                    user_id: {"name", "year", "feedback": [
                        {"entry_id", "question_id", "question_text",
                         "rating", "notes", "submitted_at"}, ...
                    ]},
                },
            },
        }
    """
    report = {}
    for entry in entries:
        profile = profiles.get(entry.user_id)
        if profile is None:
            logger.debug("No profile for user %s; entry %s left out", entry.user_id, entry.id)
            continue
        if classify(profile, target_role) != target_role:
            continue

        dept_id = profile.department_id
        department = report.setdefault(dept_id, {
            "department_name": departments.get(dept_id, UNKNOWN_DEPARTMENT),
            "respondents":     {},
        })
        respondent = department["respondents"].setdefault(profile.id, {
            "name":     profile.full_name or profile.username or "Anonymous",
            "year":     profile.year,
            "feedback": [],
        })

        question = questions.get(entry.question_id)
        respondent["feedback"].append({
            "entry_id":      entry.id,
            "question_id":   entry.question_id,
            "question_text": question.text if question else UNKNOWN_QUESTION,
            "rating":        entry.rating,
            "notes":         entry.notes,
            "submitted_at":  entry.submitted_at,
        })
    return report

