from datetime import datetime, timezone
from typing import Dict, Optional, Sequence

from loguru import logger

from khata.models.schemas import CommitResult, MarkRecord, MarkTarget, MatchedMark, MatchStatus
from khata.repositories.base import MarkRepository, RosterRepository
from khata.utils import messages


def commit_marks(
    rows: Sequence[MatchedMark],
    target: MarkTarget,
    roster_repo: RosterRepository,
    mark_repo: MarkRepository,
    teacher_id: Optional[str] = None,
) -> CommitResult:
    """
    Write reviewed rows to the stores, strictly in row order.

    "new" rows create their roster student first. A failed create or write
    skips that row only; the returned saved_count says how many made it.
    """
    result = CommitResult(total_rows=len(rows))
    created: Dict[str, str] = {}

    for index, row in enumerate(rows, start=1):
        student_id = row.student_id

        if not student_id and row.match_status is MatchStatus.NEW:
            student_id = created.get(row.roll_number)
            if not student_id:
                try:
                    student = roster_repo.create(
                        target.class_id,
                        name=row.name,
                        roll_number=row.roll_number,
                        teacher_id=teacher_id,
                    )
                except Exception as e:
                    logger.error(f"Error creating student for row {index} (roll {row.roll_number}): {e}")
                    result.skipped.append(messages.row_problem(index, messages.STUDENT_ADD_FAILED))
                    continue
                student_id = student.id
                created[row.roll_number] = student_id

        if not student_id:
            logger.warning(f"Row {index} has no resolved student, skipping")
            result.skipped.append(messages.row_problem(index, messages.ROLL_REQUIRED))
            continue

        try:
            mark_repo.upsert(MarkRecord(
                student_id=student_id,
                class_id=target.class_id,
                subject_id=target.subject_id,
                teacher_id=teacher_id,
                term=target.term,
                year=target.year,
                total_marks=row.total_marks,
                last_updated=datetime.now(timezone.utc),
            ))
        except Exception as e:
            logger.error(f"Error saving marks for row {index} (student {student_id}): {e}")
            result.skipped.append(messages.row_problem(index, messages.SAVE_FAILED))
            continue

        result.saved_count += 1

    logger.info(f"Committed {result.saved_count}/{result.total_rows} mark rows")
    return result
