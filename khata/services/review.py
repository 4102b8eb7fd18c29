"""
Review-step edits. Each function takes the current rows and returns a new
tuple; nothing is mutated in place. Every edit re-runs matching over the
whole batch so duplicate detection and roster lookups stay current.
"""
from typing import Optional, Sequence, Tuple

from khata.models.schemas import MatchedMark, MatchStatus, RosterStudent, SummaryStats
from khata.services.matcher import match_all
from khata.utils.exceptions import RowNotFoundError


Rows = Tuple[MatchedMark, ...]


def _check_index(rows: Sequence[MatchedMark], index: int) -> None:
    if index < 0 or index >= len(rows):
        raise RowNotFoundError(index)


def edit_row(
    rows: Sequence[MatchedMark],
    index: int,
    roster: Sequence[RosterStudent],
    roll_number: Optional[str] = None,
    name: Optional[str] = None,
    total_marks: Optional[float] = None,
) -> Rows:
    _check_index(rows, index)
    changes = {}
    if roll_number is not None:
        changes["roll_number"] = roll_number
    if name is not None:
        changes["name"] = name
    if total_marks is not None:
        changes["total_marks"] = total_marks

    updated = list(rows)
    updated[index] = rows[index].model_copy(update=changes)
    return tuple(match_all(updated, roster))


def delete_row(rows: Sequence[MatchedMark], index: int, roster: Sequence[RosterStudent]) -> Rows:
    _check_index(rows, index)
    remaining = [row for i, row in enumerate(rows) if i != index]
    return tuple(match_all(remaining, roster))


def add_row(
    rows: Sequence[MatchedMark],
    roster: Sequence[RosterStudent],
    roll_number: str = "",
    name: str = "",
    total_marks: Optional[float] = 0,
) -> Rows:
    new_row = MatchedMark(roll_number=roll_number, name=name, total_marks=total_marks)
    return tuple(match_all([*rows, new_row], roster))


def summarize(rows: Sequence[MatchedMark]) -> SummaryStats:
    return SummaryStats(
        total=len(rows),
        matched=sum(1 for r in rows if r.match_status is MatchStatus.FOUND),
        new=sum(1 for r in rows if r.match_status is MatchStatus.NEW),
        errors=sum(1 for r in rows if r.match_status is MatchStatus.ERROR),
    )
