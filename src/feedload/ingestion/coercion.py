"""Per-field coercion of raw CSV text.

Every field is converted on its own, with no declared column type: the
same column may hold a number on one row and a string on the next. Codes
with leading zeros ("0042") therefore load as numbers. Integrators who
need such codes preserved must declare the column TEXT in the target
table or pre-process the file.
"""

import re

from feedload.types import FeedRow, Scalar

_INTEGER = re.compile(r"[+-]?\d+", re.ASCII)
_DECIMAL = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?", re.ASCII)

# Range of a signed 64-bit store integer.
_INT_MIN = -(2**63)
_INT_MAX = 2**63 - 1


def coerce_field(value: str) -> Scalar:
    """Convert one raw field.

    - ``""`` becomes None
    - a plain decimal number becomes int (when it fits in 64 bits) or float
    - anything else is returned unchanged

    Text Python's float() would also accept ("nan", "inf", " 1", "1_000")
    stays a string.
    """
    if value == "":
        return None
    if _INTEGER.fullmatch(value):
        number = int(value)
        if _INT_MIN <= number <= _INT_MAX:
            return number
        return float(value)
    if _DECIMAL.fullmatch(value):
        return float(value)
    return value


def coerce_row(columns: list[str], values: list[str]) -> FeedRow:
    return {column: coerce_field(value) for column, value in zip(columns, values)}
