from abc import ABC, abstractmethod
from typing import List, Optional

from khata.models.schemas import MarkRecord, RosterStudent


class RosterRepository(ABC):
    """Students of a teacher's class. The pipeline only reads, except for new students."""

    @abstractmethod
    def lookup(self, class_id: str) -> List[RosterStudent]:
        """All students of a class, in roll-number order."""
        pass

    @abstractmethod
    def create(
        self,
        class_id: str,
        name: str,
        roll_number: str,
        teacher_id: Optional[str] = None,
    ) -> RosterStudent:
        """
        Add a student to a class and return it with its generated id.

        Raises:
            StudentCreationError: the roll number is already used in the class
        """
        pass


class MarkRepository(ABC):
    """Mark records keyed by (student, class, subject, term, year)."""

    @abstractmethod
    def query(self, class_id: str, subject_id: str, term: int, year: int) -> List[MarkRecord]:
        pass

    @abstractmethod
    def get(
        self,
        student_id: str,
        class_id: str,
        subject_id: str,
        term: int,
        year: int,
    ) -> Optional[MarkRecord]:
        pass

    @abstractmethod
    def upsert(self, record: MarkRecord) -> MarkRecord:
        """Insert, or replace the record with the same key. Never duplicates."""
        pass
