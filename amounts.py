import math
import re
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Optional

_STRIP_PATTERN = re.compile(r"[^0-9.\-]")
_LEADING_NUMBER = re.compile(r"-?(?:\d+(?:\.\d*)?|\.\d+)")

_TIMESTAMP_FORMATS = ("%Y-%m-%d", "%d.%m.%Y", "%m/%d/%Y", "%Y-%m-%d %H:%M:%S")


def to_number(value: Any) -> float:
    """
    Coerce a loosely typed money/count value from the backend into a finite float.

    Strings have every character other than digits, '-' and '.' removed before
    parsing ("$1,234.50" -> 1234.5). Anything that cannot be read as a number
    yields 0, so sums and sorts downstream never see NaN.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
        return number if math.isfinite(number) else 0.0

    clean = _STRIP_PATTERN.sub("", str(value))
    match = _LEADING_NUMBER.match(clean)
    if not match:
        return 0.0
    try:
        number = float(match.group(0))
    except ValueError:
        return 0.0
    return number if math.isfinite(number) else 0.0


def format_currency(amount: Any) -> str:
    if isinstance(amount, bool) or not isinstance(amount, (int, float, Decimal)):
        amount = 0
    number = float(amount)
    if not math.isfinite(number):
        number = 0.0
    sign = "-" if number < 0 else ""
    return f"{sign}${abs(number):,.2f}"


def humanize_key(key: str) -> str:
    words = str(key).replace("_", " ").split(" ")
    return " ".join(word[:1].upper() + word[1:] for word in words)


def parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time())

    text = str(value).strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        pass
    for fmt in _TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None
