from typing import Dict, List, Optional, Tuple
from uuid import uuid4

from loguru import logger

from khata.models.schemas import MarkRecord, RosterStudent
from khata.repositories.base import MarkRepository, RosterRepository
from khata.utils.exceptions import StudentCreationError
from khata.utils.numerals import format_roll_number


def _roll_sort_key(student: RosterStudent) -> Tuple[int, str]:
    digits = format_roll_number(student.roll_number)
    return (int(digits) if digits else 0, student.roll_number)


def _check_roll_free(students: List[RosterStudent], class_id: str, roll_number: str) -> None:
    wanted = format_roll_number(roll_number)
    for student in students:
        if student.class_id == class_id and format_roll_number(student.roll_number) == wanted:
            raise StudentCreationError(
                f"Roll number {roll_number} is already used in class {class_id}",
                details={"class_id": class_id, "roll_number": roll_number, "student_id": student.id},
            )


class InMemoryRosterRepository(RosterRepository):

    def __init__(self, students: Optional[List[RosterStudent]] = None):
        self._students: List[RosterStudent] = list(students or [])

    def lookup(self, class_id: str) -> List[RosterStudent]:
        return sorted((s for s in self._students if s.class_id == class_id), key=_roll_sort_key)

    def create(self, class_id, name, roll_number, teacher_id=None) -> RosterStudent:
        _check_roll_free(self._students, class_id, roll_number)
        student = RosterStudent(
            id=uuid4().hex,
            name=name,
            roll_number=roll_number,
            class_id=class_id,
            teacher_id=teacher_id,
        )
        self._students.append(student)
        logger.info(f"Created student '{name}' (roll {roll_number}) in class {class_id}")
        return student


class InMemoryMarkRepository(MarkRepository):

    def __init__(self, records: Optional[List[MarkRecord]] = None):
        self._records: Dict[tuple, MarkRecord] = {}
        for record in records or []:
            self._records[record.key] = record

    def query(self, class_id, subject_id, term, year) -> List[MarkRecord]:
        return [
            r for r in self._records.values()
            if r.class_id == class_id and r.subject_id == subject_id and r.term == term and r.year == year
        ]

    def get(self, student_id, class_id, subject_id, term, year) -> Optional[MarkRecord]:
        return self._records.get((student_id, class_id, subject_id, term, year))

    def upsert(self, record: MarkRecord) -> MarkRecord:
        self._records[record.key] = record
        return record
