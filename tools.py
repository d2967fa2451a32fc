import datetime
import math
from decimal import Decimal, ROUND_HALF_UP


EPOCH = datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc)


class MathTools:
    """Provides small numeric helpers for dashboard statistics."""

    @staticmethod
    def round_half_away(value: float) -> int:
        """Round ``value`` to the nearest integer, halves away from zero."""
        return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    @classmethod
    def percent_change(cls, current: int, previous: int) -> int:
        """Return the rounded change from ``previous`` to ``current`` in percent.

        A previous value of zero yields 100 when there is any current
        activity and 0 otherwise.
        """
        if previous == 0:
            return 100 if current > 0 else 0
        return cls.round_half_away((current - previous) / previous * 100)

    @classmethod
    def average(cls, values: list[float]) -> int:
        """Return the rounded mean of ``values`` or 0 for an empty list."""
        if not values:
            return 0
        return cls.round_half_away(sum(values) / len(values))

    @staticmethod
    def format_number(value: float | None) -> str:
        """Render ``value`` the way a JavaScript number prints.

        Whole numbers drop the ``.0``; values between ``1e-6`` and ``1e21``
        are written positionally, anything outside uses exponent notation.
        """
        if value is None:
            return "-"
        value = float(value)
        magnitude = abs(value)
        if math.isfinite(value) and (magnitude >= 1e21 or 0 < magnitude < 1e-6):
            return repr(value).replace("e-0", "e-").replace("e+0", "e+")
        if value.is_integer():
            return str(int(value))
        if not math.isfinite(value):
            return {"inf": "Infinity", "-inf": "-Infinity"}.get(repr(value), "NaN")
        return format(Decimal(repr(value)), "f")


class DateTools:
    """Parse and compare the date strings stored by the repositories."""

    @staticmethod
    def parse_timestamp(ts: str | None) -> datetime.datetime | None:
        """Return ``ts`` as a timezone-aware datetime in UTC.

        Date-only values map to midnight; naive values are assumed to be UTC.
        Missing or unparseable values return ``None``.
        """
        if not ts:
            return None
        try:
            dt = datetime.datetime.fromisoformat(ts.replace("Z", "+00:00"))
        except (TypeError, ValueError):
            return None
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=datetime.timezone.utc)
        return dt.astimezone(datetime.timezone.utc)

    @classmethod
    def sort_key(cls, ts: str | None) -> datetime.datetime:
        """Return the parsed timestamp or the epoch for missing values."""
        return cls.parse_timestamp(ts) or EPOCH

    @classmethod
    def parse_date(cls, value: str | None) -> datetime.date | None:
        if not value:
            return None
        try:
            return datetime.date.fromisoformat(value[:10])
        except ValueError:
            dt = cls.parse_timestamp(value)
            return dt.date() if dt else None

    @staticmethod
    def shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
        """Return ``(year, month)`` moved by ``delta`` calendar months."""
        index = year * 12 + (month - 1) + delta
        return index // 12, index % 12 + 1

    @staticmethod
    def shift_date_months(day: datetime.date, delta: int) -> datetime.date:
        """Return ``day`` moved by ``delta`` months, clamping the day of month."""
        year, month = DateTools.shift_month(day.year, day.month, delta)
        for d in (day.day, 30, 29, 28):
            try:
                return datetime.date(year, month, d)
            except ValueError:
                continue
        return datetime.date(year, month, 28)
