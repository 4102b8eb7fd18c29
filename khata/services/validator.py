import math
from collections import Counter
from typing import List, Optional, Sequence

from khata.core.config import settings
from khata.models.schemas import MatchedMark, MatchStatus, ValidationReport
from khata.utils import messages


def validate_marks(value: Optional[float], maximum: Optional[float] = None) -> Optional[str]:
    """Return the problem with a total-marks value, or None when it is fine."""
    upper = settings.max_total_marks if maximum is None else maximum
    if value is None or isinstance(value, bool):
        return messages.MARKS_NOT_NUMBER
    try:
        number = float(value)
    except (TypeError, ValueError):
        return messages.MARKS_NOT_NUMBER
    if not math.isfinite(number):
        return messages.MARKS_NOT_NUMBER
    if number < 0 or number > upper:
        return messages.marks_out_of_range(upper)
    return None


def validate_row(row: MatchedMark) -> List[str]:
    errors: List[str] = []
    if not (row.name or "").strip():
        errors.append(messages.NAME_REQUIRED)
    if not (row.roll_number or "").strip():
        errors.append(messages.ROLL_REQUIRED)
    marks_error = validate_marks(row.total_marks)
    if marks_error:
        errors.append(marks_error)
    return errors


def validate_batch(rows: Sequence[MatchedMark]) -> ValidationReport:
    """
    Holistic check run before conflict detection and commit.

    Nothing is dropped here: every problem is reported so the teacher can
    fix or delete the row.
    """
    if not rows:
        return ValidationReport(valid=False, errors=[messages.NO_DATA])

    errors: List[str] = []

    counts = Counter(row.roll_number for row in rows if row.roll_number)
    duplicates = {messages.duplicate_roll(roll) for roll, count in counts.items() if count > 1}
    errors.extend(sorted(duplicates))

    bad_rows = 0
    for number, row in enumerate(rows, start=1):
        problems = validate_row(row)
        if row.match_status is MatchStatus.ERROR:
            problems += [p for p in row.validation_errors if p not in problems]
        # duplicate rolls are reported once for the whole batch
        problems = [p for p in problems if p not in duplicates]
        if problems or row.match_status is MatchStatus.ERROR:
            bad_rows += 1
        errors.extend(messages.row_problem(number, p) for p in problems)

    if bad_rows:
        errors.append(messages.rows_with_errors(bad_rows))

    return ValidationReport(valid=not errors, errors=errors)
