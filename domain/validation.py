import calendar
import re
from datetime import date

_HEX_COLOR = re.compile(r"#[0-9A-Fa-f]{6}")
_FINANCIAL_YEAR = re.compile(r"\d{4}-\d{2}")


def parse_ymd(value: str | date) -> date:
    if isinstance(value, date):
        return value
    if not value:
        raise ValueError("Date value is empty")
    if not re.fullmatch(r"\d{4}-\d{2}-\d{2}", value):
        raise ValueError("Invalid date format")
    year, month, day = map(int, value.split("-"))
    if not (1 <= month <= 12):
        raise ValueError("Invalid month")
    last_day = calendar.monthrange(year, month)[1]
    if not (1 <= day <= last_day):
        raise ValueError("Invalid day")
    return date(year, month, day)


def date_as_text(value: str | date) -> str:
    return parse_ymd(value).isoformat()


def ensure_positive_amount(value, field_name: str = "amount") -> float:
    try:
        amount = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{field_name} must be a number") from exc
    if amount <= 0:
        raise ValueError(f"{field_name} must be positive")
    return amount


def ensure_non_negative(value, field_name: str) -> float:
    try:
        amount = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{field_name} must be a number") from exc
    if amount < 0:
        raise ValueError(f"{field_name} cannot be negative")
    return amount


def ensure_hex_color(value: str) -> str:
    color = (value or "").strip()
    if not _HEX_COLOR.fullmatch(color):
        raise ValueError(f"Invalid hex color: {value!r}")
    return color.upper()


def ensure_text(value, field_name: str) -> str:
    text = str(value or "").strip()
    if not text:
        raise ValueError(f"{field_name} is required")
    return text


def normalize_ticker(value: str) -> str:
    ticker = (value or "").strip().upper()
    if not ticker:
        raise ValueError("Ticker is required")
    return ticker


def ensure_financial_year(value: str | None) -> str | None:
    if value is None or value == "":
        return None
    if not _FINANCIAL_YEAR.fullmatch(value):
        raise ValueError("Financial year must look like YYYY-YY")
    return value


def month_key(year: int, month: int) -> str:
    if not (1 <= int(month) <= 12):
        raise ValueError("Invalid month")
    return f"{int(year):04d}-{int(month):02d}"
