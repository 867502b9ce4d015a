# tests/test_gate.py
"""Question visibility window around a meeting's start and end."""

import pytest

from colloquy.gate import QUESTION_LEAD_MINUTES, minutes_until_open, questions_visible

from conftest import at


@pytest.fixture
def questions(make_question):
    return [
        make_question(id=100),
        make_question(id=101, active=False),
        make_question(id=102, meeting_id=2),
        make_question(id=103),
    ]


class TestCountdown:

    def test_hour_before(self, make_meeting):
        assert minutes_until_open(make_meeting(), at(9)) == 55

    def test_rounds_down(self, make_meeting):
        # 64.5 minutes to start -> 64 - 5
        assert minutes_until_open(make_meeting(), at(8, 55, 30)) == 59

    def test_negative_inside_lead(self, make_meeting):
        assert minutes_until_open(make_meeting(), at(9, 56)) == -1
        assert minutes_until_open(make_meeting(), at(9, 57)) == -2

    def test_lead_constant(self):
        assert QUESTION_LEAD_MINUTES == 5


class TestWindow:

    def test_well_before_start(self, make_meeting, questions):
        result = questions_visible(make_meeting(), questions, at(9))
        assert not result.available
        assert result.reason == "not_yet_open"
        assert result.minutes_until_open == 55
        assert result.questions == []

    def test_closed_at_0956(self, make_meeting, questions):
        result = questions_visible(make_meeting(), questions, at(9, 56))
        assert not result.available
        assert result.minutes_until_open == -1

    def test_open_at_0957(self, make_meeting, questions):
        result = questions_visible(make_meeting(), questions, at(9, 57))
        assert result.available
        assert result.reason == "open"
        assert result.minutes_until_open is None

    def test_open_during_meeting(self, make_meeting, questions):
        assert questions_visible(make_meeting(), questions, at(10, 30)).available

    def test_open_at_end_instant(self, make_meeting, questions):
        assert questions_visible(make_meeting(), questions, at(11)).available

    def test_closed_after_end(self, make_meeting, questions):
        result = questions_visible(make_meeting(), questions, at(11, 1))
        assert not result.available
        assert result.reason == "closed"

    def test_completed_status_closes(self, make_meeting, questions):
        result = questions_visible(make_meeting(status="completed"), questions, at(10, 30))
        assert result.reason == "closed"

    def test_cancelled_never_opens(self, make_meeting, questions):
        result = questions_visible(make_meeting(status="cancelled"), questions, at(10, 30))
        assert not result.available
        assert result.reason == "cancelled"

    @pytest.mark.parametrize("status", ["rescheduled", "in-progress"])
    def test_other_open_statuses_follow_clock(self, make_meeting, questions, status):
        assert questions_visible(make_meeting(status=status), questions, at(10, 30)).available


class TestFiltering:

    def test_only_active_questions_of_meeting(self, make_meeting, questions):
        result = questions_visible(make_meeting(), questions, at(10, 30))
        assert [q.id for q in result.questions] == [100, 103]

    @pytest.mark.parametrize("now", [at(6), at(10, 30), at(23)])
    @pytest.mark.parametrize("status", ["scheduled", "completed", "cancelled"])
    def test_manager_bypass(self, make_meeting, questions, now, status):
        result = questions_visible(make_meeting(status=status), questions, now, requester_is_manager=True)
        assert result.available
        assert result.reason == "manager"
        assert [q.id for q in result.questions] == [100, 103]

    def test_no_questions(self, make_meeting):
        result = questions_visible(make_meeting(), [], at(10, 30))
        assert result.available
        assert result.questions == []
