from typing import List, Sequence

from loguru import logger

from khata.models.schemas import ConflictReport, MarkTarget, MatchedMark
from khata.repositories.base import MarkRepository


def detect_conflicts(
    rows: Sequence[MatchedMark],
    target: MarkTarget,
    mark_repo: MarkRepository,
) -> ConflictReport:
    """
    Flag every resolved student that already has a mark record for the exact
    (class, subject, term, year) being written. Only membership is compared:
    an identical existing value still counts as a conflict.
    """
    resolved = [row.student_id for row in rows if row.student_id]
    if not resolved:
        return ConflictReport()

    existing = {
        record.student_id
        for record in mark_repo.query(target.class_id, target.subject_id, target.term, target.year)
    }

    conflicting: List[str] = []
    for student_id in resolved:
        if student_id in existing and student_id not in conflicting:
            conflicting.append(student_id)

    if conflicting:
        logger.info(
            f"{len(conflicting)} student(s) already have marks for class={target.class_id} "
            f"subject={target.subject_id} term={target.term} year={target.year}"
        )

    return ConflictReport(has_conflicts=bool(conflicting), conflicting_student_ids=conflicting)
