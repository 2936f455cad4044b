"""
Parsing helpers shared by condition normalization and field transforms.

Numbers may arrive locale-formatted ("1.234,56", "R$ 1,5", "1,234.56");
dates as ISO strings, ISO datetimes or day-first "DD/MM/YYYY".
"""

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Union

_NUMBER_NOISE = re.compile(r"[^\d,.\-]")
_DAY_FIRST_DATE = re.compile(r"^(\d{1,2})[/.-](\d{1,2})[/.-](\d{4})$")

_TRUE_WORDS = {"true", "1", "yes", "y", "sim", "s", "on"}
_FALSE_WORDS = {"false", "0", "no", "n", "nao", "não", "off"}


def is_blank(value: Any) -> bool:
    """None, whitespace-only strings and empty collections count as blank."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


def plain(value: Any) -> Any:
    """Unwrap enums to their raw value."""
    if isinstance(value, Enum):
        return value.value
    return value


def parse_number(value: Any) -> Union[int, float]:
    """Parse a possibly locale-formatted number; integral results come back as int."""
    if isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
    elif isinstance(value, str):
        number = _parse_number_text(value)
    else:
        raise ValueError(f"Not a number: {value!r}")
    if number != number or number in (float("inf"), float("-inf")):
        raise ValueError(f"Not a finite number: {value!r}")
    if number.is_integer():
        return int(number)
    return number


def _parse_number_text(text: str) -> float:
    cleaned = _NUMBER_NOISE.sub("", text.strip())
    if not cleaned or cleaned in ("-", ".", ","):
        raise ValueError(f"Not a number: {text!r}")

    if "," in cleaned and "." in cleaned:
        # The right-most separator is the decimal one.
        if cleaned.rfind(",") > cleaned.rfind("."):
            cleaned = cleaned.replace(".", "").replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
    elif "," in cleaned:
        if cleaned.count(",") > 1:
            cleaned = cleaned.replace(",", "")
        else:
            cleaned = cleaned.replace(",", ".")
    elif cleaned.count(".") > 1:
        cleaned = cleaned.replace(".", "")

    try:
        return float(Decimal(cleaned))
    except InvalidOperation as exc:
        raise ValueError(f"Not a number: {text!r}") from exc


def parse_date(value: Any) -> date:
    """Parse a date from a date, datetime or common textual representations."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Not a date: {value!r}")

    text = value.strip()
    match = _DAY_FIRST_DATE.match(text)
    if match:
        day, month, year = (int(part) for part in match.groups())
        return date(year, month, day)

    if len(text) >= 10:
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError as exc:
        raise ValueError(f"Not a date: {value!r}") from exc


def format_iso_date(value: Any) -> str:
    return parse_date(value).isoformat()


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    raise ValueError(f"Not a boolean: {value!r}")


def digits_only(value: Any) -> str:
    return re.sub(r"\D", "", str(value))
