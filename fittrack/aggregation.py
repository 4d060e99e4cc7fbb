"""Aggregation of activity entries into daily/weekly/monthly buckets.

Entries are plain dicts as kept by the store (``date`` is an ISO day string,
numeric fields may be missing). Nothing here touches persistence; the stats
are derived on every call.
"""

import math
from dataclasses import dataclass, asdict
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from fittrack.activities import canonical_activity, met_for
from fittrack.errors import ValidationError

FREQUENCIES = ('daily', 'weekly', 'monthly')


@dataclass
class Bucket:
    """Entries sharing one period key."""
    name: str
    start: date
    duration: float = 0
    distance: float = 0
    steps: float = 0
    count: int = 0

    def to_dict(self) -> dict:
        data = asdict(self)
        data['start'] = self.start.isoformat()
        return data


@dataclass
class Stats:
    total_duration: float = 0
    avg_duration: float = 0
    total_steps: float = 0
    avg_steps: float = 0
    total_distance: float = 0
    avg_distance: float = 0
    calories_burned: int = 0

    def to_dict(self) -> dict:
        return {
            'totalDuration': self.total_duration,
            'avgDuration': self.avg_duration,
            'totalSteps': self.total_steps,
            'avgSteps': self.avg_steps,
            'totalDistance': self.total_distance,
            'avgDistance': self.avg_distance,
            'caloriesBurned': self.calories_burned,
        }


def parse_day(value) -> date:
    """Return the calendar day of ``value``; time-of-day is dropped.

    Accepts ``date``/``datetime`` objects, ``YYYY-MM-DD`` strings and ISO-8601
    datetime strings (a trailing ``Z`` included).
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValidationError('Date is required (YYYY-MM-DD).')
    text = value.strip()
    try:
        return datetime.fromisoformat(text.replace('Z', '+00:00')).date()
    except ValueError:
        raise ValidationError(f"Invalid date '{text}' (expected YYYY-MM-DD).") from None


def period_start(day: date, frequency: str) -> date:
    if frequency == 'daily':
        return day
    if frequency == 'weekly':
        # isoweekday: Monday=1 .. Sunday=7, so Sunday closes the prior week
        return day - timedelta(days=day.isoweekday() - 1)
    if frequency == 'monthly':
        return day.replace(day=1)
    raise ValidationError(f"Unknown frequency '{frequency}' (use one of {', '.join(FREQUENCIES)}).")


def period_key(day: date, frequency: str) -> str:
    start = period_start(day, frequency)
    if frequency == 'monthly':
        return f'{start.year}-{start.month}'
    return start.isoformat()


def filter_entries(entries: Iterable[dict], activity: str) -> list[dict]:
    """Entries whose activity matches ``activity`` case-insensitively."""
    key = canonical_activity(activity)
    return [e for e in entries if canonical_activity(e.get('activity', '')) == key]


def aggregate(entries: Iterable[dict], frequency: str) -> list[Bucket]:
    """Group entries by period and sum their numeric fields.

    Buckets come back in chronological order of their period start.
    """
    if frequency not in FREQUENCIES:
        raise ValidationError(f"Unknown frequency '{frequency}' (use one of {', '.join(FREQUENCIES)}).")
    groups: dict[date, Bucket] = {}
    for entry in entries:
        day = parse_day(entry.get('date'))
        start = period_start(day, frequency)
        bucket = groups.get(start)
        if bucket is None:
            bucket = groups[start] = Bucket(name=period_key(day, frequency), start=start)
        bucket.duration += entry.get('duration') or 0
        bucket.distance += entry.get('distance') or 0
        bucket.steps += entry.get('steps') or 0
        bucket.count += 1
    return [groups[start] for start in sorted(groups)]


def estimate_calories(activity: str, weight_kg: float, duration_min: float) -> int:
    """MET x weight(kg) x hours, rounded half up."""
    kcal = met_for(activity) * weight_kg * (duration_min / 60)
    return int(math.floor(kcal + 0.5))


def compute_stats(buckets: list[Bucket], user_weight: float, activity: str) -> Stats:
    if not buckets:
        return Stats()
    total_duration = sum(b.duration for b in buckets)
    total_steps = sum(b.steps for b in buckets)
    total_distance = sum(b.distance for b in buckets)
    n = len(buckets)
    return Stats(
        total_duration=total_duration,
        avg_duration=total_duration / n,
        total_steps=total_steps,
        avg_steps=total_steps / n,
        total_distance=total_distance,
        avg_distance=total_distance / n,
        calories_burned=estimate_calories(activity, user_weight, total_duration),
    )


def entries_in_range(entries: Iterable[dict], start: Optional[date], end: Optional[date]) -> list[dict]:
    """Entries dated within ``start``..``end`` inclusive; a None bound is open."""
    selected = []
    for entry in entries:
        day = parse_day(entry.get('date'))
        if start is not None and day < start:
            continue
        if end is not None and day > end:
            continue
        selected.append(entry)
    return selected
