import pytest

from khata.models.schemas import ExtractedMark, MarkRecord, MarkTarget, MatchStatus
from khata.repositories.memory import InMemoryMarkRepository, InMemoryRosterRepository
from khata.services.commit import commit_marks
from khata.services.conflicts import detect_conflicts
from khata.services.matcher import match_all
from khata.utils import messages
from khata.utils.exceptions import StorageError, StudentCreationError

from conftest import CLASS_ID


def existing(student_id="s1", subject_id="math", term=1, year=2024, total=40):
    return MarkRecord(
        student_id=student_id, class_id=CLASS_ID, subject_id=subject_id,
        term=term, year=year, total_marks=total,
    )


class TestDetectConflicts:

    def test_no_rows(self, target, mark_repo):
        assert detect_conflicts([], target, mark_repo).has_conflicts is False

    def test_existing_record_conflicts(self, target, roster, mark_repo):
        mark_repo.upsert(existing())
        rows = match_all([ExtractedMark(roll_number="01", name="করিম", total_marks=85)], roster)
        report = detect_conflicts(rows, target, mark_repo)
        assert report.has_conflicts
        assert report.conflicting_student_ids == ["s1"]

    def test_identical_value_still_conflicts(self, target, roster, mark_repo):
        mark_repo.upsert(existing(total=85))
        rows = match_all([ExtractedMark(roll_number="01", name="করিম", total_marks=85)], roster)
        assert detect_conflicts(rows, target, mark_repo).has_conflicts

    @pytest.mark.parametrize("change", [
        {"subject_id": "science"},
        {"term": 2},
        {"year": 2023},
    ])
    def test_other_key_is_not_a_conflict(self, target, roster, mark_repo, change):
        mark_repo.upsert(existing(**change))
        rows = match_all([ExtractedMark(roll_number="01", name="করিম", total_marks=85)], roster)
        assert detect_conflicts(rows, target, mark_repo).has_conflicts is False

    def test_other_class_is_not_a_conflict(self, roster, mark_repo):
        mark_repo.upsert(existing())
        other = MarkTarget(class_id="class-6", subject_id="math", term=1, year=2024)
        rows = match_all([ExtractedMark(roll_number="01", name="করিম", total_marks=85)], roster)
        assert detect_conflicts(rows, other, mark_repo).has_conflicts is False

    def test_new_rows_never_conflict(self, target, roster, mark_repo):
        rows = match_all([ExtractedMark(roll_number="09", name="নতুন", total_marks=85)], roster)
        assert detect_conflicts(rows, target, mark_repo).has_conflicts is False


class FlakyRosterRepository(InMemoryRosterRepository):
    """Fails to create the student for one roll number."""

    def __init__(self, students, failing_roll):
        super().__init__(students)
        self.failing_roll = failing_roll

    def create(self, class_id, name, roll_number, teacher_id=None):
        if roll_number == self.failing_roll:
            raise StudentCreationError("write failed")
        return super().create(class_id, name, roll_number, teacher_id)


class FlakyMarkRepository(InMemoryMarkRepository):
    """Fails to write marks for one student."""

    def __init__(self, failing_student):
        super().__init__()
        self.failing_student = failing_student

    def upsert(self, record):
        if record.student_id == self.failing_student:
            raise StorageError("disk full")
        return super().upsert(record)


class TestCommitMarks:

    def test_found_and_new_rows(self, target, roster, roster_repo, mark_repo):
        rows = match_all([
            ExtractedMark(roll_number="01", name="করিম", total_marks=85),
            ExtractedMark(roll_number="07", name="নতুন", total_marks=60),
        ], roster)
        result = commit_marks(rows, target, roster_repo, mark_repo, teacher_id="t1")

        assert result.saved_count == 2
        assert result.total_rows == 2
        assert mark_repo.get("s1", CLASS_ID, "math", 1, 2024).total_marks == 85

        created = [s for s in roster_repo.lookup(CLASS_ID) if s.roll_number == "07"]
        assert len(created) == 1
        assert created[0].teacher_id == "t1"
        assert mark_repo.get(created[0].id, CLASS_ID, "math", 1, 2024).total_marks == 60

    def test_new_record_defaults(self, target, roster, roster_repo, mark_repo):
        rows = match_all([ExtractedMark(roll_number="01", name="করিম", total_marks=85)], roster)
        commit_marks(rows, target, roster_repo, mark_repo)
        record = mark_repo.get("s1", CLASS_ID, "math", 1, 2024)
        assert (record.quiz_marks, record.quiz_count, record.class_engagement) == (0, 0, 0)

    def test_overwrite_replaces_existing(self, target, roster, roster_repo, mark_repo):
        mark_repo.upsert(existing(total=40))
        rows = match_all([ExtractedMark(roll_number="01", name="করিম", total_marks=85)], roster)
        commit_marks(rows, target, roster_repo, mark_repo)
        assert len(mark_repo.query(CLASS_ID, "math", 1, 2024)) == 1
        assert mark_repo.get("s1", CLASS_ID, "math", 1, 2024).total_marks == 85

    def test_failed_create_skips_only_that_row(self, target, roster, mark_repo):
        roster_repo = FlakyRosterRepository(roster, failing_roll="08")
        rows = match_all([
            ExtractedMark(roll_number="07", name="এক", total_marks=10),
            ExtractedMark(roll_number="08", name="দুই", total_marks=20),
            ExtractedMark(roll_number="09", name="তিন", total_marks=30),
        ], roster)
        result = commit_marks(rows, target, roster_repo, mark_repo)

        assert result.saved_count == 2
        assert result.skipped == [messages.row_problem(2, messages.STUDENT_ADD_FAILED)]
        saved_rolls = {s.roll_number for s in roster_repo.lookup(CLASS_ID)}
        assert {"07", "09"} <= saved_rolls
        assert "08" not in saved_rolls
        assert len(mark_repo.query(CLASS_ID, "math", 1, 2024)) == 2

    def test_row_without_student_is_skipped(self, target, roster_repo, mark_repo):
        rows = match_all([ExtractedMark(roll_number="", name="কেউ", total_marks=10)], [])
        assert rows[0].match_status is MatchStatus.ERROR
        result = commit_marks(rows, target, roster_repo, mark_repo)
        assert result.saved_count == 0
        assert len(result.skipped) == 1

    def test_failed_write_skips_only_that_row(self, target, roster, roster_repo):
        mark_repo = FlakyMarkRepository(failing_student="s2")
        rows = match_all([
            ExtractedMark(roll_number="01", name="করিম", total_marks=85),
            ExtractedMark(roll_number="02", name="রহিম", total_marks=70),
            ExtractedMark(roll_number="07", name="নতুন", total_marks=60),
        ], roster)
        result = commit_marks(rows, target, roster_repo, mark_repo)

        assert result.saved_count == 2
        assert result.total_rows == 3
        assert result.skipped == [messages.row_problem(2, messages.SAVE_FAILED)]
        assert mark_repo.get("s1", CLASS_ID, "math", 1, 2024).total_marks == 85
        assert mark_repo.get("s2", CLASS_ID, "math", 1, 2024) is None
        created = next(s for s in roster_repo.lookup(CLASS_ID) if s.roll_number == "07")
        assert mark_repo.get(created.id, CLASS_ID, "math", 1, 2024).total_marks == 60
