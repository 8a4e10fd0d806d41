"""Decimal and timestamp conversion helpers shared by the reducer and compiler."""

from __future__ import annotations

import datetime as dt
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP


def parse_decimal_input(value: Decimal | str | int | float, places: int) -> Decimal:
    """Parse a grid input into a Decimal with at most ``places`` fractional digits.

    Strings are parsed directly so sub-cent crypto quantities such as
    ``"0.000000099"`` never pass through float. Values that already fit within
    ``places`` keep their original exponent, so ``"100"`` stays ``100``.

    Raises:
        ValueError: If the value is not a finite decimal.
    """
    if isinstance(value, bool):
        raise ValueError("Boolean is not a decimal")
    try:
        if isinstance(value, Decimal):
            parsed = value
        elif isinstance(value, str):
            parsed = Decimal(value.strip().replace(",", ""))
        else:
            parsed = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Invalid decimal: {value!r}") from exc
    if not parsed.is_finite():
        raise ValueError(f"Invalid decimal: {value!r}")
    exponent = parsed.as_tuple().exponent
    if isinstance(exponent, int) and -exponent > places:
        try:
            parsed = parsed.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)
        except InvalidOperation as exc:
            raise ValueError(f"Decimal out of range: {value!r}") from exc
    return parsed


def is_blank(value: object) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def to_decimal_string(value: object) -> str | None:
    """Render a numeric value as a plain decimal string for API payloads.

    Returns None for missing, blank or non-finite values so callers can omit
    the field. Exponent notation is never produced.
    """
    if is_blank(value) or isinstance(value, bool):
        return None
    if isinstance(value, str):
        trimmed = value.strip()
        try:
            parsed = Decimal(trimmed)
        except InvalidOperation:
            return None
        if not parsed.is_finite():
            return None
        if "e" in trimmed.lower():
            return format(parsed, "f")
        # Keep the caller's string to preserve its precision
        return trimmed
    if isinstance(value, Decimal):
        if not value.is_finite():
            return None
        return format(value, "f")
    if isinstance(value, (int, float)):
        try:
            parsed = Decimal(str(value))
        except InvalidOperation:
            return None
        if not parsed.is_finite():
            return None
        return format(parsed, "f")
    return None


def to_comparable_number(value: object) -> Decimal:
    """Coerce a value to a Decimal for change detection, treating missing as 0."""
    if is_blank(value) or isinstance(value, bool):
        return Decimal("0")
    try:
        parsed = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except InvalidOperation:
        return Decimal("0")
    if parsed.is_nan():
        return Decimal("0")
    return parsed


def parse_timestamp(value: dt.datetime | dt.date | str) -> dt.datetime:
    """Parse a datetime, date or ISO-8601 string into an aware UTC datetime.

    Naive values are treated as UTC.

    Raises:
        ValueError: If the value cannot be interpreted as a timestamp.
    """
    if isinstance(value, dt.datetime):
        parsed = value
    elif isinstance(value, dt.date):
        parsed = dt.datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("Timestamp is empty")
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = dt.datetime.fromisoformat(text)
        except ValueError as exc:
            raise ValueError(f"Invalid timestamp: {value!r}") from exc
    else:
        raise ValueError(f"Invalid timestamp: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return parsed.astimezone(dt.timezone.utc)


def to_instant(value: object) -> float | None:
    """Resolve a value to a POSIX timestamp for comparison, or None."""
    if value is None:
        return None
    try:
        return parse_timestamp(value).timestamp()  # type: ignore[arg-type]
    except ValueError:
        return None


def to_iso_string(value: dt.datetime | None) -> str | None:
    if value is None:
        return None
    return parse_timestamp(value).isoformat().replace("+00:00", "Z")


def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)
