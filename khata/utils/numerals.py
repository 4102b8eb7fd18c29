import math
import re
from typing import Any, Optional


BENGALI_DIGITS = "০১২৩৪৫৬৭৮৯"
ARABIC_DIGITS = "0123456789"

_TO_ARABIC = str.maketrans(BENGALI_DIGITS, ARABIC_DIGITS)
_TO_BENGALI = str.maketrans(ARABIC_DIGITS, BENGALI_DIGITS)

_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")


def bengali_to_arabic(text: str) -> str:
    """'০১২৩' -> '0123'. Everything that is not a Bengali digit is kept."""
    return text.translate(_TO_ARABIC)


def to_bengali_number(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).translate(_TO_BENGALI)


def format_roll_number(roll: Any, width: int = 2) -> str:
    """
    Normalize a roll number for matching: Bengali digits become Arabic,
    anything that is not a digit is dropped, and the result is left-padded
    with zeros to ``width``. An empty result stays empty.
    """
    if roll is None:
        return ""
    if isinstance(roll, float) and roll.is_integer():
        roll = int(roll)
    digits = re.sub(r"\D", "", bengali_to_arabic(str(roll)))
    if not digits:
        return ""
    return digits.zfill(width)


def parse_marks(value: Any) -> Optional[float]:
    """
    Read a total-marks value the model produced. Numbers pass through,
    strings like '৮৫', '85.5' or '85/100' give the first number in them.
    Returns None when nothing numeric is found.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return None if math.isnan(number) else number

    match = _NUMBER_RE.search(bengali_to_arabic(str(value)))
    if not match:
        return None
    return float(match.group(0))
