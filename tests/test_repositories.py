import pytest

from khata.models.schemas import MarkRecord, RosterStudent
from khata.repositories.json_store import JsonMarkRepository, JsonRosterRepository
from khata.repositories.memory import InMemoryMarkRepository, InMemoryRosterRepository
from khata.utils.exceptions import StorageError, StudentCreationError


def record(student_id="s1", total=50):
    return MarkRecord(student_id=student_id, class_id="c1", subject_id="math", term=1, year=2024, total_marks=total)


@pytest.fixture(params=["memory", "json"])
def repos(request, tmp_path):
    if request.param == "memory":
        return InMemoryRosterRepository(), InMemoryMarkRepository()
    return JsonRosterRepository(str(tmp_path)), JsonMarkRepository(str(tmp_path))


def test_roster_create_and_lookup(repos):
    roster_repo, _ = repos
    roster_repo.create("c1", name="খ", roll_number="10")
    roster_repo.create("c1", name="ক", roll_number="02")
    roster_repo.create("c2", name="গ", roll_number="01")

    students = roster_repo.lookup("c1")
    assert [s.roll_number for s in students] == ["02", "10"]
    assert all(s.id for s in students)


def test_roster_rejects_used_roll(repos):
    roster_repo, _ = repos
    roster_repo.create("c1", name="ক", roll_number="02")
    with pytest.raises(StudentCreationError):
        roster_repo.create("c1", name="খ", roll_number="2")
    # another class may reuse it
    roster_repo.create("c2", name="খ", roll_number="02")


def test_marks_upsert_never_duplicates(repos):
    _, mark_repo = repos
    mark_repo.upsert(record(total=40))
    mark_repo.upsert(record(total=90))
    mark_repo.upsert(record(student_id="s2"))

    records = mark_repo.query("c1", "math", 1, 2024)
    assert len(records) == 2
    assert mark_repo.get("s1", "c1", "math", 1, 2024).total_marks == 90
    assert mark_repo.get("s1", "c1", "math", 2, 2024) is None
    assert mark_repo.query("c1", "math", 2, 2024) == []


def test_json_store_persists(tmp_path):
    JsonRosterRepository(str(tmp_path)).create("c1", name="করিম", roll_number="01")
    JsonMarkRepository(str(tmp_path)).upsert(record())

    assert JsonRosterRepository(str(tmp_path)).lookup("c1")[0].name == "করিম"
    assert JsonMarkRepository(str(tmp_path)).get("s1", "c1", "math", 1, 2024).total_marks == 50


def test_json_store_corrupted_file(tmp_path):
    (tmp_path / "marks.json").write_text("not json", encoding="utf-8")
    with pytest.raises(StorageError):
        JsonMarkRepository(str(tmp_path)).query("c1", "math", 1, 2024)


def test_memory_repository_seed():
    repo = InMemoryRosterRepository([RosterStudent(id="x", name="ক", roll_number="3", class_id="c1")])
    assert repo.lookup("c1")[0].id == "x"
