"""Integer paise arithmetic for every money comparison."""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

Number = Union[Decimal, int, str]

_PAISE = Decimal('0.01')


def to_paise(value: Number) -> int:
    amount = value if isinstance(value, Decimal) else Decimal(str(value))
    return int(amount.quantize(_PAISE, rounding=ROUND_HALF_UP) * 100)


def optional_paise(value: Optional[Number]) -> Optional[int]:
    return None if value is None else to_paise(value)


def format_rupees(paise: int) -> str:
    sign = '-' if paise < 0 else ''
    rupees, rem = divmod(abs(paise), 100)
    return f"{sign}Rs {rupees:,}.{rem:02d}"
