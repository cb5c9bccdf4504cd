"""Wall-clock time ranges within a single calendar day.

Times travel as "HH:MM" strings and are compared as datetimes built from the
day they belong to. Ranges are half-open: [start, end).
"""
import re
from datetime import date, datetime, time
from typing import NamedTuple

from appointment_desk.core.errors import ValidationError

_CLOCK_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


def parse_clock(value: str | None) -> time:
    """Parse "H:MM" or "HH:MM" into a time; raise ValidationError otherwise."""
    if value is None or not str(value).strip():
        raise ValidationError("Time is required.")
    match = _CLOCK_RE.match(str(value).strip())
    if not match:
        raise ValidationError(f"Invalid time {value!r}; expected HH:MM.")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValidationError(f"Invalid time {value!r}; expected HH:MM.")
    return time(hour, minute)


def format_clock(t: time) -> str:
    return t.strftime("%H:%M")


def at(day: date, clock: str) -> datetime:
    """Timestamp for `clock` on `day`."""
    return datetime.combine(day, parse_clock(clock))


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    # touching ranges (a_end == b_start) do not overlap
    return a_start < b_end and b_start < a_end


class TimeRange(NamedTuple):
    start: time
    end: time

    @classmethod
    def parse(cls, start: str | None, end: str | None) -> "TimeRange":
        """Parse a start/end pair; start must be strictly before end."""
        rng = cls(parse_clock(start), parse_clock(end))
        if rng.start >= rng.end:
            raise ValidationError("Start time must be before end time.")
        return rng

    def on(self, day: date) -> tuple[datetime, datetime]:
        return datetime.combine(day, self.start), datetime.combine(day, self.end)

    def overlaps(self, other: "TimeRange") -> bool:
        return self.start < other.end and other.start < self.end

    @property
    def start_str(self) -> str:
        return format_clock(self.start)

    @property
    def end_str(self) -> str:
        return format_clock(self.end)

    def as_dict(self) -> dict[str, str]:
        return {"start_time": self.start_str, "end_time": self.end_str}
