"""Cron schedules and due-in durations.

A template is due when the first occurrence of its cron schedule after the last
successful run lies in the past.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter

_DESCRIPTORS: dict[str, str] = {
    "@yearly": "0 0 1 1 *",
    "@annually": "0 0 1 1 *",
    "@monthly": "0 0 1 * *",
    "@weekly": "0 0 * * 0",
    "@daily": "0 0 * * *",
    "@midnight": "0 0 * * *",
    "@hourly": "0 * * * *",
}

_TZ_PREFIXES = ("CRON_TZ=", "TZ=")

# Unit sizes in nanoseconds; totals are converted to a timedelta once.
_UNITS: dict[str, int] = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "μs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3_600 * 1_000_000_000,
    "d": 86_400 * 1_000_000_000,
    "w": 604_800 * 1_000_000_000,
}

# Longest units first so that "ms" is not read as "m" followed by garbage.
_DURATION_PART = re.compile(
    r"(\d+(?:\.\d*)?|\.\d+)(" + "|".join(sorted(_UNITS, key=len, reverse=True)) + r")"
)

# One comma-separated component of a standard cron field: `*`, `?`, a value or a
# range, with an optional step. Values are numbers or three-letter names.
_FIELD_COMPONENT = re.compile(r"(\*|\?|(\d+|[A-Za-z]{3})(-(\d+|[A-Za-z]{3}))?)(/\d+)?")


@dataclass(frozen=True, slots=True)
class Schedule:
    """A parsed cron schedule.

    Either `expression` is a five-field cron expression, or `every` holds a fixed
    interval (from `@every <duration>`).
    """

    source: str
    expression: str | None
    every: timedelta | None
    zone: tzinfo

    def next_after(self, moment: datetime) -> datetime:
        """Return the first activation strictly after `moment`, in UTC."""

        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=UTC)

        if self.every is not None:
            # Constant-delay schedules activate on whole seconds.
            base = moment.astimezone(UTC).replace(microsecond=0)
            return base + self.every

        local = moment.astimezone(self.zone)
        upcoming: datetime = croniter(self.expression, local).get_next(datetime)
        return upcoming.astimezone(UTC)


def _split_zone(expression: str) -> tuple[tzinfo, str]:
    for prefix in _TZ_PREFIXES:
        if expression.startswith(prefix):
            zone_name, _, rest = expression[len(prefix) :].partition(" ")
            try:
                return ZoneInfo(zone_name), rest.strip()
            except (ZoneInfoNotFoundError, ValueError) as e:
                raise ValueError(f"Unknown time zone {zone_name!r}") from e
    return UTC, expression


def _check_standard_fields(fields: list[str]) -> None:
    """Reject croniter extensions (`L`, `W`, `#`, `H`, day-of-week 7)."""

    for field in fields:
        for component in field.split(","):
            if not _FIELD_COMPONENT.fullmatch(component):
                raise ValueError(f"Unsupported cron field {field!r}")

    day_of_week = fields[4]
    for number in re.findall(r"\d+", re.sub(r"/\d+", "", day_of_week)):
        if int(number) > 6:
            raise ValueError(f"Day of week out of range (0-6): {day_of_week!r}")


def parse_schedule(expression: str) -> Schedule:
    """Parse a standard cron expression.

    Accepts five fields, the usual `@daily`-style descriptors, `@every <duration>`
    and an optional leading `CRON_TZ=<zone>` (or `TZ=<zone>`).

    Raises:
        ValueError: If the expression is empty or invalid.
    """

    source = (expression or "").strip()
    if not source:
        raise ValueError("Empty cron expression")

    zone, rest = _split_zone(source)
    if not rest:
        raise ValueError(f"Empty cron expression after time zone: {source!r}")

    if rest.startswith("@every"):
        interval = parse_duration(rest[len("@every") :].strip())
        if interval <= timedelta(0):
            raise ValueError(f"@every requires a positive duration: {source!r}")
        # Sub-second precision is dropped; activations land on whole seconds.
        interval = timedelta(seconds=max(1, int(interval.total_seconds())))
        return Schedule(source=source, expression=None, every=interval, zone=zone)

    if rest.startswith("@"):
        mapped = _DESCRIPTORS.get(rest.lower())
        if mapped is None:
            raise ValueError(f"Unrecognized descriptor: {rest!r}")
        rest = mapped

    fields = rest.split()
    if len(fields) != 5:
        raise ValueError(f"Expected exactly 5 fields, found {len(fields)}: {rest!r}")

    _check_standard_fields(fields)
    normalized = " ".join(fields)
    if not croniter.is_valid(normalized):
        raise ValueError(f"Invalid cron expression: {rest!r}")

    return Schedule(source=source, expression=normalized, every=None, zone=zone)


def is_due(next_time: datetime, now: datetime) -> bool:
    """Return True if `next_time` lies strictly before `now`."""

    return next_time < now


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as `24h`, `1h30m`, `1.5h` or `7d`.

    Raises:
        ValueError: If the value is empty or malformed.
    """

    original = text
    value = (text or "").strip()
    if not value:
        raise ValueError("Empty duration")

    sign = 1
    if value[0] in "+-":
        sign = -1 if value[0] == "-" else 1
        value = value[1:]

    if value == "0":
        return timedelta(0)
    if not value:
        raise ValueError(f"Invalid duration {original!r}")

    total_ns = 0.0
    pos = 0
    while pos < len(value):
        match = _DURATION_PART.match(value, pos)
        if match is None:
            raise ValueError(f"Invalid duration {original!r}")
        number, unit = match.groups()
        total_ns += float(number) * _UNITS[unit]
        pos = match.end()

    try:
        return timedelta(microseconds=sign * total_ns / 1_000)
    except OverflowError as e:
        raise ValueError(f"Invalid duration {original!r}: out of range") from e
