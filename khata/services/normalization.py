from typing import Any, Dict, Iterable, List, Optional, Tuple

from loguru import logger

from khata.core.config import settings
from khata.models.schemas import ExtractedMark
from khata.utils import messages
from khata.utils.numerals import bengali_to_arabic, format_roll_number, parse_marks


_NAME_KEYS = ("name", "studentName", "student_name")
_ROLL_KEYS = ("rollNumber", "roll_number", "roll", "rollNo")
_MARKS_KEYS = ("totalMarks", "total_marks", "marks", "total")
_CONFIDENCE_LEVELS = {"high", "medium", "low"}


def _first_present(row: Dict[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        if row.get(key) not in (None, ""):
            return row[key]
    return None


def _clean_name(value: Any) -> str:
    if value is None:
        return ""
    return " ".join(bengali_to_arabic(str(value)).split())


def _clean_confidence(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip().lower() in _CONFIDENCE_LEVELS:
        return value.strip().lower()
    return None


def normalize_rows(
    rows: List[Dict[str, Any]],
    roll_width: Optional[int] = None,
    existing_rolls: Iterable[str] = (),
) -> Tuple[List[ExtractedMark], List[str]]:
    """
    Build ExtractedMark values from recovered row dicts.

    Rows without a name are dropped. Rows without a roll number get a
    sequential placeholder that starts after the largest roll number seen
    in this batch (including ``existing_rolls`` from earlier images).

    Returns the rows and the warnings to surface to the teacher.
    """
    width = roll_width or settings.roll_number_width
    warnings: List[str] = []
    staged: List[Dict[str, Any]] = []

    for row in rows:
        name = _clean_name(_first_present(row, _NAME_KEYS))
        if not name:
            logger.debug(f"Dropping row without a name: {row}")
            continue
        staged.append({
            "roll_number": format_roll_number(_first_present(row, _ROLL_KEYS), width),
            "name": name,
            "total_marks": parse_marks(_first_present(row, _MARKS_KEYS)),
            "confidence": _clean_confidence(row.get("confidence")),
        })

    numeric_rolls = [int(r) for r in existing_rolls if r.isdigit()]
    numeric_rolls += [int(s["roll_number"]) for s in staged if s["roll_number"]]
    next_roll = max(numeric_rolls, default=0) + 1

    extracted: List[ExtractedMark] = []
    for item in staged:
        if not item["roll_number"]:
            item["roll_number"] = str(next_roll).zfill(width)
            next_roll += 1
            warnings.append(messages.placeholder_roll(item["name"], item["roll_number"]))
        extracted.append(ExtractedMark(**item))

    return extracted, warnings
