from __future__ import annotations

import math
from datetime import date, datetime
from typing import Optional


def to_number(val) -> Optional[float]:
    """
    Robust numeric coercion for technician entries and stored cell values:
    - Accepts int/float directly (NaN -> None)
    - Parses strings with commas and surrounding whitespace
    - Parentheses negatives '(1,234.5)' -> -1234.5
    - Returns None if not parseable or empty
    """
    if val is None or isinstance(val, bool):
        return None
    if isinstance(val, (int, float)):
        if isinstance(val, float) and math.isnan(val):
            return None
        return float(val)

    s = str(val).strip()
    if not s:
        return None

    negative = False
    if s.startswith("(") and s.endswith(")"):
        negative = True
        s = s[1:-1].strip()

    s = s.replace(",", "")
    try:
        num = float(s)
    except ValueError:
        return None
    if math.isnan(num):
        return None
    return -num if negative else num


def cell_text(value) -> str:
    """Render a cell value the way the sheet shows it, trimmed."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.strftime("%m/%d/%Y")
    if isinstance(value, date):
        return value.strftime("%m/%d/%Y")
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()
