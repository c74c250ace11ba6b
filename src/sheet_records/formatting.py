"""Display-text rendering — cell value + number format -> shown string.

openpyxl exposes a cell's typed value and its number-format code but not
the text a spreadsheet application would show.  This module covers the
format codes found in ordinary workbooks: General, fixed decimals,
thousands separators, percentages, currency literals, scientific notation
and date/time patterns.  Anything it cannot interpret falls back to the
value's plain string form.
"""

from __future__ import annotations

import calendar
import math
import re
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Context, Decimal
from typing import Any

from openpyxl.utils.datetime import WINDOWS_EPOCH, from_excel

_LOCALE_CURRENCY_RE = re.compile(r"\[\$([^\]-]*)(?:-[^\]]*)?\]")
_BRACKET_RE = re.compile(r"\[[^\]]*\]")
_QUOTED_OR_ESCAPED_RE = re.compile(r'"[^"]*"|\\.|_.|\*.')

_DATE_TOKEN_RE = re.compile(
    r'"[^"]*"|\\.|_.|\*.|AM/PM|A/P|yyyy|yy|mmmmm|mmmm|mmm|mm|m|dddd|ddd|dd|d|hh|h|ss|s|.',
    re.IGNORECASE,
)
_NUMBER_TOKEN_RE = re.compile(
    r'"[^"]*"|\\.|_.|\*.|[#0?][#0?,]*(?:\.[#0?]*)?(?:E[+-]0+)?|%|.',
    re.IGNORECASE,
)

_EXCEL_BASE_DATE = date(1899, 12, 30)

# characters a General cell shows before switching to scientific notation
_GENERAL_WIDTH = 11
# wide enough for any finite float written out in full
_DECIMAL_CONTEXT = Context(prec=400)


def _clean_section(section: str) -> str:
    section = _LOCALE_CURRENCY_RE.sub(lambda m: m.group(1), section)
    return _BRACKET_RE.sub("", section).strip()


def _pick_section(number_format: str, value: float) -> tuple[str, bool]:
    """Return ``(section, signed)`` for *value* from a ``pos;neg;zero`` code."""
    sections = number_format.split(";")
    if value < 0 and len(sections) > 1 and sections[1].strip():
        return _clean_section(sections[1]), False
    if value == 0 and len(sections) > 2 and sections[2].strip():
        return _clean_section(sections[2]), True
    return _clean_section(sections[0]), True


def is_temporal_format(number_format: str) -> bool:
    """True when *number_format* renders dates or times."""
    cleaned = _QUOTED_OR_ESCAPED_RE.sub("", _clean_section(number_format.split(";")[0]))
    if not cleaned or cleaned.lower() == "general":
        return False
    if re.search(r"[ydhs]", cleaned, re.IGNORECASE):
        return True
    return bool(re.search(r"m", cleaned, re.IGNORECASE)) and not re.search(r"[0#?]", cleaned)


def _quantize(exact: Decimal, decimals: int) -> Decimal:
    return exact.quantize(
        Decimal(1).scaleb(-decimals), rounding=ROUND_HALF_UP, context=_DECIMAL_CONTEXT
    )


def _round_half_up(value: float, decimals: int) -> Decimal:
    """Round *value* to *decimals* places, halves away from zero."""
    return _quantize(Decimal(repr(value)), decimals)


def _scientific(value: float, decimals: int) -> tuple[str, int]:
    """Return ``(mantissa, exponent)`` for non-negative *value*."""
    exact = Decimal(repr(value))
    exponent = exact.adjusted() if exact else 0
    mantissa = _quantize(exact.scaleb(-exponent), decimals)
    if mantissa >= 10:
        exponent += 1
        mantissa = _quantize(exact.scaleb(-exponent), decimals)
    return f"{mantissa:f}", exponent


def _trim_fraction(text: str) -> str:
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def format_general(value: Any) -> str:
    """Render a number the way a General cell shows it in a default-width column.

    Up to eleven characters of fixed notation, otherwise six significant
    digits in scientific notation (``1.23457E+11``).
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, float) and not math.isfinite(value):
        return str(value)
    if value == 0:
        return "0"

    sign = "-" if value < 0 else ""
    magnitude = abs(value)
    if magnitude < 10 ** _GENERAL_WIDTH:
        int_digits = len(str(int(magnitude)))
        decimals = max(0, _GENERAL_WIDTH - int_digits - 1)
        text = _trim_fraction(f"{_round_half_up(magnitude, decimals):f}")
        exact = Decimal(text) == Decimal(repr(magnitude))
        if text != "0" and (exact or magnitude >= 1e-4):
            return sign + text

    mantissa, exponent = _scientific(magnitude, 5)
    exp_sign = "-" if exponent < 0 else "+"
    return f"{sign}{_trim_fraction(mantissa)}E{exp_sign}{abs(exponent):02d}"


# ── Dates ────────────────────────────────────────────────────────


def _as_datetime(value: date | time) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time())
    return datetime.combine(_EXCEL_BASE_DATE, value)


def format_temporal(value: date | time, number_format: str) -> str:
    dt = _as_datetime(value)
    section = _clean_section(number_format.split(";")[0])
    tokens = _DATE_TOKEN_RE.findall(section)
    lowered = [tok.lower() for tok in tokens]
    twelve_hour = any(tok in ("am/pm", "a/p") for tok in lowered)

    def _is_minute(idx: int) -> bool:
        for prev in reversed(lowered[:idx]):
            if prev in ("h", "hh"):
                return True
            if prev in ("d", "dd", "ddd", "dddd", "y", "yy", "yyyy", "m", "mm"):
                break
        for nxt in lowered[idx + 1:]:
            if nxt in ("s", "ss"):
                return True
            if nxt not in (":", " ", "."):
                break
        return False

    hour = (dt.hour % 12 or 12) if twelve_hour else dt.hour
    out: list[str] = []
    for idx, (tok, low) in enumerate(zip(tokens, lowered)):
        if low == "yyyy":
            out.append(f"{dt.year:04d}")
        elif low == "yy":
            out.append(f"{dt.year % 100:02d}")
        elif low in ("m", "mm") and _is_minute(idx):
            out.append(f"{dt.minute:02d}" if low == "mm" else str(dt.minute))
        elif low == "mmmmm":
            out.append(calendar.month_name[dt.month][0])
        elif low == "mmmm":
            out.append(calendar.month_name[dt.month])
        elif low == "mmm":
            out.append(calendar.month_abbr[dt.month])
        elif low == "mm":
            out.append(f"{dt.month:02d}")
        elif low == "m":
            out.append(str(dt.month))
        elif low == "dddd":
            out.append(calendar.day_name[dt.weekday()])
        elif low == "ddd":
            out.append(calendar.day_abbr[dt.weekday()])
        elif low == "dd":
            out.append(f"{dt.day:02d}")
        elif low == "d":
            out.append(str(dt.day))
        elif low == "hh":
            out.append(f"{hour:02d}")
        elif low == "h":
            out.append(str(hour))
        elif low == "ss":
            out.append(f"{dt.second:02d}")
        elif low == "s":
            out.append(str(dt.second))
        elif low == "am/pm":
            out.append("AM" if dt.hour < 12 else "PM")
        elif low == "a/p":
            out.append("A" if dt.hour < 12 else "P")
        else:
            out.append(_literal(tok))
    return "".join(out)


# ── Numbers ──────────────────────────────────────────────────────


def _literal(tok: str) -> str:
    if tok.startswith('"') and tok.endswith('"') and len(tok) >= 2:
        return tok[1:-1]
    if tok.startswith("\\") and len(tok) == 2:
        return tok[1]
    if tok.startswith("_") and len(tok) == 2:
        return " "
    if tok.startswith("*") and len(tok) == 2:
        return ""
    return tok


def _format_digits(value: float, spec: str) -> str:
    """Render non-negative *value* with a digit placeholder *spec* like ``#,##0.00``."""
    exponent = ""
    match = re.search(r"E[+-]0+$", spec, re.IGNORECASE)
    if match:
        exponent = match.group(0)
        spec = spec[: match.start()]
    int_spec, _, frac_spec = spec.partition(".")
    decimals = sum(1 for ch in frac_spec if ch in "#0?")
    min_decimals = frac_spec.count("0")

    if exponent:
        mantissa, power = _scientific(value, decimals)
        exp_digits = len(exponent) - 2
        if power < 0:
            exp_sign = "-"
        else:
            exp_sign = "+" if exponent[1] == "+" else ""
        return f"{mantissa}{exponent[0]}{exp_sign}{abs(power):0{exp_digits}d}"

    thousands = "," in int_spec.strip(",")
    rounded = _round_half_up(value, decimals)
    rendered = f"{rounded:,f}" if thousands else f"{rounded:f}"
    int_part, _, frac_part = rendered.partition(".")

    while len(frac_part) > min_decimals and frac_part.endswith("0"):
        frac_part = frac_part[:-1]

    int_zeros = int_spec.count("0")
    if int_part == "0" and int_zeros == 0:
        int_part = ""
    elif not thousands and len(int_part) < int_zeros:
        int_part = int_part.zfill(int_zeros)

    if frac_part:
        return f"{int_part}.{frac_part}"
    if spec.endswith("."):
        return f"{int_part}."
    return int_part


def format_number(value: int | float, number_format: str) -> str:
    if isinstance(value, float) and not math.isfinite(value):
        return format_general(value)
    section, signed = _pick_section(number_format, value)
    if not section or section.lower() == "general" or section == "@":
        return format_general(value)

    tokens = _NUMBER_TOKEN_RE.findall(section)
    # percent scaling in decimal so 0.0125 becomes exactly 1.25
    magnitude = float(Decimal(repr(abs(float(value)))).scaleb(2 * tokens.count("%")))

    out: list[str] = []
    placed = False
    for tok in tokens:
        if not placed and tok[0] in "#0?":
            out.append(_format_digits(magnitude, tok))
            placed = True
        else:
            out.append(_literal(tok))
    if not placed:
        return "".join(out)

    text = "".join(out)
    if signed and value < 0 and magnitude != 0:
        text = "-" + text
    return text


def format_cell_text(
    value: Any, number_format: str | None = "General", *, epoch: datetime = WINDOWS_EPOCH
) -> str:
    """Return the display text of a cell holding *value* under *number_format*.

    Numbers under a date/time format are read as serial dates relative to
    *epoch* (the workbook's 1900 or 1904 date system).
    """
    number_format = number_format or "General"
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, str):
        return value
    if isinstance(value, (datetime, date, time)):
        if is_temporal_format(number_format):
            return format_temporal(value, number_format)
        return value.isoformat()
    if isinstance(value, (int, float)):
        if is_temporal_format(number_format):
            try:
                return format_temporal(from_excel(value, epoch), number_format)
            except (OverflowError, ValueError, TypeError):
                return format_general(value)
        return format_number(value, number_format)
    return str(value)
