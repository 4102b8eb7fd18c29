import pytest

from khata.models.schemas import ExtractedMark, MatchStatus, RosterStudent
from khata.services.matcher import match_all, match_record, name_similarity, suggest_by_name
from khata.utils import messages

from conftest import CLASS_ID


def mark(roll, name, total=50):
    return ExtractedMark(roll_number=roll, name=name, total_marks=total)


class TestMatchRecord:

    def test_found_by_roll(self, roster):
        result = match_record(mark("01", "করিম"), roster)
        assert result.match_status is MatchStatus.FOUND
        assert result.student_id == "s1"
        assert result.matched_student.name == "করিম"

    def test_roll_is_normalized_before_lookup(self, roster):
        result = match_record(mark("১", "করিম"), roster)
        assert result.roll_number == "01"
        assert result.student_id == "s1"

    def test_name_mismatch_still_found(self, roster):
        # roll decides, the written name is kept as-is
        result = match_record(mark("02", "অন্য নাম"), roster)
        assert result.match_status is MatchStatus.FOUND
        assert result.student_id == "s2"
        assert result.name == "অন্য নাম"

    def test_new_when_roll_unknown(self, roster):
        result = match_record(mark("09", "নতুন"), roster)
        assert result.match_status is MatchStatus.NEW
        assert result.student_id is None

    def test_missing_name_is_error(self, roster):
        result = match_record(mark("01", "  "), roster)
        assert result.match_status is MatchStatus.ERROR
        assert messages.NAME_REQUIRED in result.validation_errors

    def test_missing_roll_is_error(self, roster):
        result = match_record(mark("", "করিম"), roster)
        assert result.match_status is MatchStatus.ERROR
        assert messages.ROLL_REQUIRED in result.validation_errors

    def test_bad_marks_do_not_change_status(self, roster):
        result = match_record(mark("01", "করিম", total=150), roster)
        assert result.match_status is MatchStatus.FOUND
        assert result.validation_errors == [messages.marks_out_of_range(100)]

    def test_ambiguous_roster_is_error(self, roster):
        clash = roster + [RosterStudent(id="s3", name="অন্য", roll_number="1", class_id=CLASS_ID)]
        result = match_record(mark("01", "করিম"), clash)
        assert result.match_status is MatchStatus.ERROR
        assert messages.AMBIGUOUS_ROSTER in result.validation_errors
        assert result.student_id is None

    def test_suggestion_for_close_name(self):
        roster = [RosterStudent(id="s9", name="Abdul Karim", roll_number="07", class_id=CLASS_ID)]
        result = match_record(mark("17", "Abdul Karin"), roster)
        assert result.match_status is MatchStatus.NEW
        assert result.suggested_student.id == "s9"
        assert result.suggestion_score >= 0.8
        assert result.student_id is None


class TestMatchAll:

    def test_statuses(self, roster):
        results = match_all([mark("01", "করিম"), mark("07", "নতুন"), mark("", "কেউ")], roster)
        assert [r.match_status for r in results] == [MatchStatus.FOUND, MatchStatus.NEW, MatchStatus.ERROR]

    def test_duplicate_roll_first_wins(self, roster):
        results = match_all([mark("01", "করিম"), mark("1", "অন্য")], roster)
        assert results[0].match_status is MatchStatus.FOUND
        assert results[1].match_status is MatchStatus.ERROR
        assert messages.duplicate_roll("01") in results[1].validation_errors

    def test_idempotent(self, roster):
        rows = [mark("01", "করিম"), mark("05", "নতুন"), mark("05", "আবার"), mark("", "কেউ")]
        first = match_all(rows, roster)
        assert match_all(first, roster) == first

    def test_empty(self, roster):
        assert match_all([], roster) == []


class TestNameSimilarity:

    def test_identical(self):
        assert name_similarity("Karim", "karim") == 1.0

    def test_whitespace_ignored(self):
        assert name_similarity("Abdul  Karim", "abdul karim") == 1.0

    def test_empty(self):
        assert name_similarity("", "") == 0.0

    def test_close_spelling(self):
        assert name_similarity("Abdul Karin", "Abdul Karim") == pytest.approx(0.91)

    def test_best_suggestion_wins(self):
        roster = [
            RosterStudent(id="a", name="Abdul Karim", roll_number="07", class_id=CLASS_ID),
            RosterStudent(id="b", name="Abdul Karin", roll_number="08", class_id=CLASS_ID),
        ]
        student, score = suggest_by_name("abdul  karin", roster)
        assert student.id == "b"
        assert score == 1.0

    def test_no_suggestion_from_empty_roster(self):
        assert suggest_by_name("Karim", []) is None

    def test_below_threshold_gives_no_suggestion(self, roster):
        assert suggest_by_name("সম্পূর্ণ ভিন্ন", roster) is None
