"""
Roster matching - resolves extracted rows against the class roster.

Matching Strategy:
1. Exact normalized roll number match decides the status
   (found / new / error)
2. For rows that stay "new", a name-similarity hint is attached so the
   teacher can spot a mistyped roll number; the hint never changes status

Both functions are pure: same rows and same roster snapshot always give
the same result.
"""
from typing import Iterable, List, Optional, Sequence, Set, Tuple, Union

from thefuzz import fuzz, process

from khata.core.config import settings
from khata.models.schemas import ExtractedMark, MatchedMark, MatchStatus, RosterStudent
from khata.services.validator import validate_row
from khata.utils import messages
from khata.utils.numerals import format_roll_number


NAME_SUGGESTION_THRESHOLD = 0.8

MarkRow = Union[ExtractedMark, MatchedMark]


def _clean_name(name: str) -> str:
    return " ".join(name.casefold().split())


def name_similarity(left: str, right: str) -> float:
    left, right = _clean_name(left), _clean_name(right)
    if not left or not right:
        return 0.0
    return fuzz.ratio(left, right) / 100.0


def suggest_by_name(
    name: str,
    roster: Iterable[RosterStudent],
    threshold: float = NAME_SUGGESTION_THRESHOLD,
) -> Optional[Tuple[RosterStudent, float]]:
    students = list(roster)
    if not students or not _clean_name(name):
        return None

    # dict choices make extractOne hand back the roster index
    best = process.extractOne(
        name,
        {index: student.name for index, student in enumerate(students)},
        processor=_clean_name,
        scorer=fuzz.ratio,
        score_cutoff=round(threshold * 100),
    )
    if best is None:
        return None
    _, score, index = best
    return students[index], score / 100.0


def match_record(
    row: MarkRow,
    roster: Sequence[RosterStudent],
    taken_rolls: Optional[Set[str]] = None,
) -> MatchedMark:
    """Resolve a single row. ``taken_rolls`` holds rolls used earlier in the batch."""
    roll = format_roll_number(row.roll_number, settings.roll_number_width)
    name = row.name.strip()

    base = MatchedMark(
        roll_number=roll,
        name=name,
        total_marks=row.total_marks,
        confidence=row.confidence,
    )
    errors = validate_row(base)

    if not name or not roll:
        return base.model_copy(update={"match_status": MatchStatus.ERROR, "validation_errors": errors})

    if taken_rolls and roll in taken_rolls:
        errors.append(messages.duplicate_roll(roll))
        return base.model_copy(update={"match_status": MatchStatus.ERROR, "validation_errors": errors})

    candidates = [s for s in roster if format_roll_number(s.roll_number, settings.roll_number_width) == roll]
    if len(candidates) > 1:
        errors.append(messages.AMBIGUOUS_ROSTER)
        return base.model_copy(update={"match_status": MatchStatus.ERROR, "validation_errors": errors})

    if candidates:
        student = candidates[0]
        return base.model_copy(update={
            "student_id": student.id,
            "matched_student": student,
            "match_status": MatchStatus.FOUND,
            "validation_errors": errors,
        })

    update = {"match_status": MatchStatus.NEW, "validation_errors": errors}
    suggestion = suggest_by_name(name, roster)
    if suggestion:
        update["suggested_student"], update["suggestion_score"] = suggestion
    return base.model_copy(update=update)


def match_all(rows: Iterable[MarkRow], roster: Sequence[RosterStudent]) -> List[MatchedMark]:
    """Match rows in order; the first occurrence of a roll number wins."""
    taken: Set[str] = set()
    matched: List[MatchedMark] = []
    for row in rows:
        result = match_record(row, roster, taken)
        if result.roll_number:
            taken.add(result.roll_number)
        matched.append(result)
    return matched
