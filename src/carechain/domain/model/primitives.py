"""Domain primitives: scalar aliases and value-unit conversion.

Ledger value amounts are integers in the smallest unit (18 decimals, like wei).
Conversions go through ``Decimal`` so human input never touches float rounding.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation

type Address = str
type ContentId = str
type BaseUnits = int
type UnixSeconds = int

VALUE_DECIMALS = 18
_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def is_address(value: str) -> bool:
    return bool(_ADDRESS_RE.match(value.strip()))


def to_base_units(amount: str | int | Decimal, *, decimals: int = VALUE_DECIMALS) -> BaseUnits:
    """Convert a human-entered amount (``"1.5"``) into integer base units.

    Raises ``ValueError`` for non-numeric input or precision finer than ``decimals``.
    """

    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation as exc:
        raise ValueError(f"Not a numeric amount: {amount!r}") from exc
    if not value.is_finite():
        raise ValueError(f"Not a finite amount: {amount!r}")
    scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(f"Amount {amount!r} has more than {decimals} decimal places")
    return int(scaled)


def format_amount(units: BaseUnits, *, decimals: int = VALUE_DECIMALS) -> str:
    """Render base units as a plain decimal string, ``1500000000000000000 -> "1.5"``."""

    value = Decimal(units).scaleb(-decimals)
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


def short_address(address: Address) -> str:
    if len(address) <= 12:
        return address
    return f"{address[:6]}...{address[-4:]}"
