"""Date/amount normalization and sign conventions for incoming rows.

Every source (manual entry, CSV, PDF extraction, bank sync) goes through these
helpers before fingerprinting, so two renderings of the same transaction end
up with identical canonical values:

- dates become ``datetime.date`` (rendered ``YYYY-MM-DD``)
- amounts become ``Decimal`` quantized to cents, negative for money out

Parsing never raises on bad input; callers get ``None`` and decide how to
report it.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Literal

type SignConvention = Literal["negative_expenses", "positive_expenses"]

SIGN_CONVENTIONS: tuple[str, ...] = ("negative_expenses", "positive_expenses")

_CENT = Decimal("0.01")
_CURRENCY_SYMBOLS = "$€£¥"

_ISO_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:[T ].*)?$")
# Month-first with a consistent delimiter; the year is optional.
_MDY_RE = re.compile(r"^(\d{1,2})([/.-])(\d{1,2})(?:\2(\d{4}|\d{2}))?$")
_TEXT_FORMATS: tuple[str, ...] = (
    "%b %d, %Y",
    "%B %d, %Y",
    "%b %d %Y",
    "%B %d %Y",
    "%d %b %Y",
    "%d %B %Y",
    "%Y/%m/%d",
)


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------


def _expand_year(two_digit: int) -> int:
    # 51..99 -> 1951..1999, 00..50 -> 2000..2050
    return 1900 + two_digit if two_digit > 50 else 2000 + two_digit


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def normalize_date(raw: Any, *, today: date | None = None) -> date | None:
    """Parse ``raw`` into a calendar date, or return ``None``.

    Accepted shapes (after trimming whitespace):

    - ``date``/``datetime`` objects (as returned by provider SDKs)
    - ISO ``YYYY-MM-DD`` (a trailing time part is ignored)
    - ``M/D/YYYY``, ``M/D/YY`` and ``M/D``, also with ``-`` or ``.`` as the
      delimiter; two-digit years above 50 are 19xx, the rest 20xx, and a
      missing year means the current year (``today``)
    - month-name text such as ``Jan 15, 2025`` or ``15 January 2025``

    Impossible dates such as ``02/30/2025`` yield ``None``.
    """

    if raw is None:
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    s = str(raw).strip()
    if not s:
        return None

    m = _ISO_RE.match(s)
    if m:
        return _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))

    m = _MDY_RE.match(s)
    if m:
        month, day, year_s = int(m.group(1)), int(m.group(3)), m.group(4)
        if year_s is None:
            year = (today or date.today()).year
        elif len(year_s) == 2:
            year = _expand_year(int(year_s))
        else:
            year = int(year_s)
        return _safe_date(year, month, day)

    collapsed = " ".join(s.split())
    for fmt in _TEXT_FORMATS:
        try:
            return datetime.strptime(collapsed, fmt).date()
        except ValueError:
            continue
    return None


def format_date(d: date) -> str:
    return d.strftime("%Y-%m-%d")


# ---------------------------------------------------------------------------
# Amounts
# ---------------------------------------------------------------------------


def quantize_amount(value: Decimal) -> Decimal:
    """Round to cents (half-up); negative zero collapses to ``0.00``.

    Raises ``decimal.InvalidOperation`` when the value has too many digits to
    be held at cent precision.
    """

    q = value.quantize(_CENT, rounding=ROUND_HALF_UP)
    return q if q != 0 else Decimal("0.00")


def _strip_markers(s: str) -> tuple[str, bool]:
    negative = False
    # Iteratively strip leading sign, currency symbol and surrounding
    # parentheses until stable, so "-($1,234.56)" and "$(12.00)" both work.
    while True:
        changed = False
        if s.startswith("+"):
            s = s[1:].lstrip()
            changed = True
        elif s.startswith("-"):
            negative = True
            s = s[1:].lstrip()
            changed = True
        if s[:1] and s[0] in _CURRENCY_SYMBOLS:
            s = s[1:].lstrip()
            changed = True
        if s.startswith("(") and s.endswith(")") and len(s) >= 2:
            negative = True
            s = s[1:-1].strip()
            changed = True
        if s[-1:] and s[-1] in _CURRENCY_SYMBOLS:
            s = s[:-1].rstrip()
            changed = True
        # Trailing minus as printed by some statements ("45.23-").
        if s.endswith("-"):
            negative = True
            s = s[:-1].rstrip()
            changed = True
        if not changed:
            return s, negative


def parse_amount(raw: Any) -> Decimal | None:
    """Parse a signed money amount, or return ``None`` when unparseable.

    Strips currency symbols, thousands separators and whitespace; honours a
    leading or trailing minus and accounting parentheses. NaN and infinities
    are rejected, as are values too large to carry at cent precision.
    """

    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, Decimal):
        d = raw
    elif isinstance(raw, int | float):
        d = Decimal(str(raw))
    else:
        s = str(raw).strip()
        if not s:
            return None
        s, negative = _strip_markers(s)
        s = s.replace(",", "").replace(" ", "")
        if not s:
            return None
        try:
            d = Decimal(s)
        except InvalidOperation:
            return None
        if negative:
            d = -abs(d)
    if not d.is_finite():
        return None
    try:
        return quantize_amount(d)
    except InvalidOperation:
        # Too many digits for cent precision, e.g. "1e30".
        return None


def format_amount(d: Decimal) -> str:
    # Exactly two decimals, ASCII dot, leading minus for negatives.
    return f"{quantize_amount(d):.2f}"


# ---------------------------------------------------------------------------
# Sign conventions
# ---------------------------------------------------------------------------


def apply_sign_convention(amount: Decimal, convention: SignConvention) -> Decimal:
    """Return ``amount`` in ledger convention (negative = money out).

    ``positive_expenses`` sources (many card statements, PDF extractions)
    report spending as positive numbers; every amount from such a source is
    negated, so refunds and payments flip to positive as well.
    """

    if convention == "negative_expenses":
        return quantize_amount(amount)
    if convention == "positive_expenses":
        return quantize_amount(-amount)
    raise ValueError(
        f"Unsupported sign convention: {convention!r}. Allowed: {list(SIGN_CONVENTIONS)}"
    )


def from_bank_sync_amount(amount: Decimal | float | int | str) -> Decimal:
    """Convert a bank-sync provider amount (outflow positive) to ledger sign."""

    parsed = parse_amount(amount)
    if parsed is None:
        raise ValueError(f"invalid provider amount: {amount!r}")
    return quantize_amount(-parsed)


__all__ = [
    "SIGN_CONVENTIONS",
    "SignConvention",
    "apply_sign_convention",
    "format_amount",
    "format_date",
    "from_bank_sync_amount",
    "normalize_date",
    "parse_amount",
    "quantize_amount",
]
