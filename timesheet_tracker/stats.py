"""Duration, week-bucketing and earnings helpers for logged sessions.

Everything here is pure: functions take plain entry mappings (as stored and
served by the API) plus a course-rate mapping and return fresh values.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

DEFAULT_HOURLY_RATE = 18
WEEKLY_TARGET_MINUTES = 20 * 60

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class Duration:
    total_minutes: int
    hours: int
    minutes: int


@dataclass(frozen=True)
class WeekBounds:
    week_start: str
    week_end: str


@dataclass
class WeeklyStats:
    week_start: str
    week_end: str
    total_minutes: int
    session_count: int
    pending_minutes: int
    projected_earnings: float


@dataclass
class CumulativeStats:
    total_minutes: int = 0
    session_count: int = 0
    total_earnings: float = 0.0


ZERO_DURATION = Duration(total_minutes=0, hours=0, minutes=0)


def to_json(obj: Any) -> Dict[str, Any]:
    """Dump a stats dataclass with the camelCase keys the API speaks."""
    payload = {}
    for key, value in asdict(obj).items():
        head, *rest = key.split("_")
        payload[head + "".join(part.title() for part in rest)] = value
    return payload


def _to_int(value: str) -> Optional[int]:
    value = value.strip()
    if not value or not value.lstrip("+-").isdigit():
        return None
    try:
        return int(value)
    except ValueError:
        return None


def parse_time_of_day(value: Any) -> Optional[int]:
    """Return minutes since midnight for ``HH:MM``, or ``None`` when invalid."""
    if not isinstance(value, str):
        return None
    parts = value.split(":")
    if len(parts) != 2:
        return None
    hours, minutes = (_to_int(part) for part in parts)
    if hours is None or minutes is None:
        return None
    if not 0 <= hours <= 23 or not 0 <= minutes <= 59:
        return None
    return hours * 60 + minutes


def parse_iso_date(value: Any) -> Optional[date]:
    if not isinstance(value, str):
        return None
    parts = value.split("-")
    if len(parts) != 3:
        return None
    year, month, day = (_to_int(part) for part in parts)
    if year is None or month is None or day is None:
        return None
    if not 1 <= month <= 12 or not 1 <= day <= 31:
        return None
    try:
        return date(year, month, day)
    except ValueError:
        return None


def minutes_to_duration(total_minutes: float) -> Duration:
    safe_total = max(0, math.floor(total_minutes))
    hours, minutes = divmod(safe_total, 60)
    return Duration(total_minutes=safe_total, hours=hours, minutes=minutes)


def duration(time_in: Any, time_out: Any) -> Duration:
    """Minutes between two ``HH:MM`` values.

    Never negative: a time-out before the time-in clamps to zero, and an
    unparseable value on either side yields the zero duration rather than
    an error.
    """
    start = parse_time_of_day(time_in)
    end = parse_time_of_day(time_out)
    if start is None or end is None:
        return ZERO_DURATION
    return minutes_to_duration(max(0, end - start))


def week_bounds(value: Any) -> Optional[WeekBounds]:
    """Monday-to-Sunday week containing ``value`` as ISO date strings."""
    anchor = parse_iso_date(value)
    if anchor is None:
        return None
    start = anchor - timedelta(days=anchor.weekday())
    try:
        end = start + timedelta(days=6)
    except OverflowError:
        # Last week of year 9999 ends past date.max.
        return None
    return WeekBounds(week_start=start.isoformat(), week_end=end.isoformat())


def format_duration(value: Duration) -> str:
    if value.total_minutes == 0:
        return "0m"
    parts = []
    if value.hours > 0:
        parts.append(f"{value.hours}h")
    if value.minutes > 0:
        parts.append(f"{value.minutes}m")
    return " ".join(parts) or "0m"


def format_date(value: Any) -> Any:
    parsed = parse_iso_date(value)
    if parsed is None:
        return value
    return f"{parsed:%a}, {parsed:%B} {parsed.day}, {parsed.year}"


def format_time_range(time_in: Optional[str], time_out: Optional[str]) -> str:
    return f"{time_in or '--:--'} - {time_out or '--:--'}"


def format_week_range(week_start: str, week_end: str) -> str:
    start = parse_iso_date(week_start)
    end = parse_iso_date(week_end)
    if start is None or end is None:
        return f"{week_start} - {week_end}"
    return f"{start:%b} {start.day} – {end:%b} {end.day}, {end.year}"


def hourly_rate(course_name: Any, rates: Mapping[str, Any]) -> float:
    """Configured rate for a course, or ``DEFAULT_HOURLY_RATE``.

    The default also covers blank course names and stored rates that are
    not finite non-negative numbers.
    """
    if not isinstance(course_name, str):
        return DEFAULT_HOURLY_RATE
    trimmed = course_name.strip()
    if not trimmed:
        return DEFAULT_HOURLY_RATE
    rate = rates.get(trimmed)
    if isinstance(rate, bool) or not isinstance(rate, (int, float)):
        return DEFAULT_HOURLY_RATE
    try:
        if not math.isfinite(float(rate)) or rate < 0:
            return DEFAULT_HOURLY_RATE
    except OverflowError:
        return DEFAULT_HOURLY_RATE
    return rate


def _minutes_and_earnings(entry: Mapping[str, Any], rates: Mapping[str, Any]) -> Tuple[int, float]:
    worked = duration(entry.get("timeIn"), entry.get("timeOut")).total_minutes
    return worked, (worked / 60) * hourly_rate(entry.get("courseName"), rates)


def weekly_stats(entries: Iterable[Mapping[str, Any]], rates: Mapping[str, Any]) -> List[WeeklyStats]:
    """Per-week totals, newest week first.

    Entries whose date is missing or does not parse are left out.
    """
    totals: Dict[str, WeeklyStats] = {}
    for entry in entries:
        bounds = week_bounds(entry.get("date"))
        if bounds is None:
            continue
        bucket = totals.setdefault(
            bounds.week_start,
            WeeklyStats(
                week_start=bounds.week_start,
                week_end=bounds.week_end,
                total_minutes=0,
                session_count=0,
                pending_minutes=0,
                projected_earnings=0.0,
            ),
        )
        worked, earned = _minutes_and_earnings(entry, rates)
        bucket.total_minutes += worked
        bucket.session_count += 1
        bucket.projected_earnings += earned

    stats = sorted(totals.values(), key=lambda item: item.week_start, reverse=True)
    for item in stats:
        item.pending_minutes = max(0, WEEKLY_TARGET_MINUTES - item.total_minutes)
    return stats


def cumulative_stats(entries: Iterable[Mapping[str, Any]], rates: Mapping[str, Any]) -> CumulativeStats:
    # Unlike weekly_stats, entries with bad dates still count here.
    totals = CumulativeStats()
    for entry in entries:
        worked, earned = _minutes_and_earnings(entry, rates)
        totals.total_minutes += worked
        totals.session_count += 1
        totals.total_earnings += earned
    return totals


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def entry_timestamp(entry: Mapping[str, Any]) -> datetime:
    """Effective time of an entry, used for newest-first ordering.

    Tried in order: date plus time-out (or time-in), date at midnight,
    ``createdAt``, then the epoch.
    """
    base_date = entry.get("date")
    base_time = entry.get("timeOut") or entry.get("timeIn")
    if base_date and base_time:
        resolved = _parse_timestamp(f"{base_date}T{base_time}")
        if resolved is not None:
            return resolved
    if base_date:
        resolved = _parse_timestamp(f"{base_date}T00:00")
        if resolved is not None:
            return resolved
    return _parse_timestamp(entry.get("createdAt")) or _EPOCH


def sort_entries_newest_first(entries: Iterable[Mapping[str, Any]]) -> List[Mapping[str, Any]]:
    return sorted(entries, key=entry_timestamp, reverse=True)


def group_entries_by_week(entries: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    groups: Dict[str, Dict[str, Any]] = {}
    for entry in entries:
        bounds = week_bounds(entry.get("date"))
        key = bounds.week_start if bounds else "unknown"
        group = groups.get(key)
        if group is None:
            group = groups[key] = {
                "weekStart": bounds.week_start if bounds else "",
                "weekEnd": bounds.week_end if bounds else "",
                "label": format_week_range(bounds.week_start, bounds.week_end) if bounds else "Unknown week",
                "entries": [],
            }
        group["entries"].append(entry)
    return list(groups.values())


def course_overview(entries: Iterable[Mapping[str, Any]], rates: Mapping[str, Any]) -> Dict[str, List[str]]:
    known = set(rates)
    for entry in entries:
        name = entry.get("courseName")
        if isinstance(name, str) and name.strip():
            known.add(name.strip())
    courses = sorted(known)
    return {
        "courses": courses,
        "missingRates": [course for course in courses if course not in rates],
    }


def entry_summary(entry: Mapping[str, Any]) -> Dict[str, Any]:
    """Display labels for one entry as shown in the session log."""
    worked = duration(entry.get("timeIn"), entry.get("timeOut"))
    return {
        "dateLabel": format_date(entry.get("date")),
        "timeRange": format_time_range(entry.get("timeIn"), entry.get("timeOut")),
        "durationMinutes": worked.total_minutes,
        "durationLabel": format_duration(worked),
    }
