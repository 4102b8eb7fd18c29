import pytest

from khata.models.schemas import MatchedMark, MatchStatus
from khata.services.matcher import match_all
from khata.services.validator import validate_batch, validate_marks, validate_row
from khata.utils import messages


class TestValidateMarks:

    @pytest.mark.parametrize("value", [0, 100, 55.5])
    def test_accepted(self, value):
        assert validate_marks(value) is None

    @pytest.mark.parametrize("value", [-1, 101])
    def test_out_of_range(self, value):
        assert validate_marks(value) == messages.marks_out_of_range(100)

    @pytest.mark.parametrize("value", [None, float("nan"), float("inf"), True])
    def test_not_a_number(self, value):
        assert validate_marks(value) == messages.MARKS_NOT_NUMBER

    def test_custom_maximum(self):
        assert validate_marks(150, maximum=200) is None


def test_validate_row_collects_every_problem():
    row = MatchedMark(roll_number="", name="", total_marks=None)
    assert validate_row(row) == [messages.NAME_REQUIRED, messages.ROLL_REQUIRED, messages.MARKS_NOT_NUMBER]


class TestValidateBatch:

    def test_empty_batch(self):
        report = validate_batch([])
        assert report.valid is False
        assert report.errors == [messages.NO_DATA]

    def test_clean_batch(self, roster):
        rows = match_all([MatchedMark(roll_number="01", name="করিম", total_marks=80)], roster)
        report = validate_batch(rows)
        assert report.valid
        assert report.errors == []

    def test_row_problems_are_numbered(self, roster):
        rows = match_all([
            MatchedMark(roll_number="01", name="করিম", total_marks=80),
            MatchedMark(roll_number="02", name="রহিম", total_marks=120),
        ], roster)
        report = validate_batch(rows)
        assert not report.valid
        assert messages.row_problem(2, messages.marks_out_of_range(100)) in report.errors
        assert report.errors[-1] == messages.rows_with_errors(1)

    def test_duplicate_reported_once(self, roster):
        rows = match_all([
            MatchedMark(roll_number="05", name="ক", total_marks=10),
            MatchedMark(roll_number="05", name="খ", total_marks=20),
            MatchedMark(roll_number="05", name="গ", total_marks=30),
        ], roster)
        assert rows[1].match_status is MatchStatus.ERROR
        report = validate_batch(rows)
        assert report.errors.count(messages.duplicate_roll("05")) == 1
        assert report.errors[-1] == messages.rows_with_errors(2)

    def test_ambiguous_roster_row_blocks(self):
        row = MatchedMark(
            roll_number="01", name="করিম", total_marks=50,
            match_status=MatchStatus.ERROR, validation_errors=[messages.AMBIGUOUS_ROSTER],
        )
        report = validate_batch([row])
        assert not report.valid
        assert messages.row_problem(1, messages.AMBIGUOUS_ROSTER) in report.errors
