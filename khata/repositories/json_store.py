"""
JSON-file backed repositories.

Each store is one JSON array on disk, read and rewritten as a whole on
every call. There is no locking: one process, one writer.
"""
import json
from pathlib import Path
from typing import List, Optional
from uuid import uuid4

from loguru import logger
from pydantic import TypeAdapter

from khata.models.schemas import MarkRecord, RosterStudent
from khata.repositories.base import MarkRepository, RosterRepository
from khata.repositories.memory import _check_roll_free, _roll_sort_key
from khata.utils.exceptions import StorageError


class _JsonBlob:

    def __init__(self, path: Path, item_type):
        self.path = path
        self._adapter = TypeAdapter(List[item_type])

    def read(self) -> list:
        if not self.path.exists():
            return []
        try:
            return self._adapter.validate_json(self.path.read_bytes())
        except Exception as e:
            logger.error(f"Corrupted store {self.path}: {e}")
            raise StorageError(f"Could not read {self.path.name}: {e}")

    def write(self, items: list) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            payload = self._adapter.dump_python(items, mode="json")
            tmp = self.path.with_suffix(".tmp")
            tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
            tmp.replace(self.path)
        except OSError as e:
            logger.error(f"Failed to write store {self.path}: {e}")
            raise StorageError(f"Could not write {self.path.name}: {e}")


class JsonRosterRepository(RosterRepository):

    def __init__(self, storage_dir: str):
        self._blob = _JsonBlob(Path(storage_dir) / "students.json", RosterStudent)

    def lookup(self, class_id: str) -> List[RosterStudent]:
        return sorted((s for s in self._blob.read() if s.class_id == class_id), key=_roll_sort_key)

    def create(self, class_id, name, roll_number, teacher_id=None) -> RosterStudent:
        students = self._blob.read()
        _check_roll_free(students, class_id, roll_number)
        student = RosterStudent(
            id=uuid4().hex,
            name=name,
            roll_number=roll_number,
            class_id=class_id,
            teacher_id=teacher_id,
        )
        students.append(student)
        self._blob.write(students)
        logger.info(f"Created student '{name}' (roll {roll_number}) in class {class_id}")
        return student


class JsonMarkRepository(MarkRepository):

    def __init__(self, storage_dir: str):
        self._blob = _JsonBlob(Path(storage_dir) / "marks.json", MarkRecord)

    def query(self, class_id, subject_id, term, year) -> List[MarkRecord]:
        return [
            r for r in self._blob.read()
            if r.class_id == class_id and r.subject_id == subject_id and r.term == term and r.year == year
        ]

    def get(self, student_id, class_id, subject_id, term, year) -> Optional[MarkRecord]:
        key = (student_id, class_id, subject_id, term, year)
        return next((r for r in self._blob.read() if r.key == key), None)

    def upsert(self, record: MarkRecord) -> MarkRecord:
        records = [r for r in self._blob.read() if r.key != record.key]
        records.append(record)
        self._blob.write(records)
        return record
