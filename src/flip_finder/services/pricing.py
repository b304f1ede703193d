from __future__ import annotations

import math
import re
from typing import Union

_NON_NUMERIC = re.compile(r"[^0-9.]")
_LEADING_NUMBER = re.compile(r"\d*\.?\d+|\d+")
# str() of a float can come out in exponent form ("1e-05")
_FLOAT_REPR = re.compile(r"^\d+(?:\.\d+)?e[-+]?\d+$", re.IGNORECASE)


def parse_price(text: Union[str, float, int, None]) -> float:
    """Parse a free-text currency string into a non-negative float.

    Examples: "$1,200" -> 1200.0, "1.299.00" -> 1.299, "N/A" -> 0.0.
    Everything but digits and dots is dropped, then the leading numeric
    prefix is parsed. Never raises.
    """
    if text is None:
        return 0.0
    if isinstance(text, (int, float)):
        val = abs(float(text))
        return val if math.isfinite(val) else 0.0
    s = str(text).strip()
    if _FLOAT_REPR.match(s):
        val = float(s)
        return val if math.isfinite(val) else 0.0
    m = _LEADING_NUMBER.match(_NON_NUMERIC.sub("", s))
    if not m:
        return 0.0
    try:
        val = float(m.group(0))
    except ValueError:
        return 0.0
    return val if math.isfinite(val) else 0.0
