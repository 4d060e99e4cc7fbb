"""Goal-gated workout logging and the read operations built on it.

All rules live here; the store only persists documents and the HTTP layer
only translates requests. Every write goes through ``FitnessService``.
"""

import logging
import math
import uuid
from datetime import date
from typing import Callable, Optional

from fittrack.activities import canonical_activity, fields_for, NUMERIC_FIELDS
from fittrack.aggregation import (
    aggregate,
    compute_stats,
    entries_in_range,
    estimate_calories,
    filter_entries,
    parse_day,
)
from fittrack.errors import (
    DuplicateEntryError,
    FutureDateError,
    NoGoalError,
    NotFound,
    ValidationError,
)
from fittrack.store import ProfileStore

logger = logging.getLogger(__name__)

DEFAULT_WEIGHT_KG = 70

# (low, high) sanity bounds for optional profile fields
PROFILE_RANGES = {
    'age': (1, 120, 'Age out of range (1-120).'),
    'height': (50, 250, 'Height out of range (50-250 cm).'),
    'weight': (20, 400, 'Weight out of range (20-400 kg).'),
}


def _number(value, field: str):
    """Coerce a numeric input; missing values count as 0."""
    if value is None or value == '':
        return 0
    if isinstance(value, bool):
        raise ValidationError(f'{field.capitalize()} must be a number.')
    if isinstance(value, str):
        try:
            value = float(value) if any(c in value for c in '.eE') else int(value)
        except ValueError:
            raise ValidationError(f'{field.capitalize()} must be a number.') from None
    if not isinstance(value, (int, float)):
        raise ValidationError(f'{field.capitalize()} must be a number.')
    try:
        as_float = float(value)
    except OverflowError:
        raise ValidationError(f'{field.capitalize()} must be a number.') from None
    if math.isnan(as_float) or math.isinf(as_float):
        raise ValidationError(f'{field.capitalize()} must be a number.')
    if value < 0:
        raise ValidationError(f'{field.capitalize()} must not be negative.')
    return value


def _activity_name(activity) -> str:
    if not isinstance(activity, str) or not activity.strip():
        raise ValidationError('Activity is required.')
    return activity.strip()


def _validate_profile_fields(fields: dict) -> dict:
    """Validate optional age/height/weight; omitted ones stay None."""
    errors: list[str] = []
    cleaned = {}
    for key, (low, high, message) in PROFILE_RANGES.items():
        raw = fields.get(key)
        if raw is None or raw == '':
            cleaned[key] = None
            continue
        try:
            value = _number(raw, key)
        except ValidationError as e:
            errors.append(e.message)
            continue
        if not (low <= value <= high):
            errors.append(message)
        cleaned[key] = value
    if errors:
        raise ValidationError('; '.join(errors))
    return cleaned


def find_goal(profile: Optional[dict], activity: str) -> Optional[dict]:
    if not profile:
        return None
    key = canonical_activity(activity)
    for goal in profile.get('goals', []):
        if canonical_activity(goal.get('activity', '')) == key:
            return goal
    return None


class FitnessService:
    """Business rules over a ``ProfileStore``.

    ``today`` is injectable so the future-date rule can be exercised with a
    fixed calendar.
    """

    def __init__(self, store: ProfileStore, today: Callable[[], date] = date.today,
                 default_weight: float = DEFAULT_WEIGHT_KG):
        self.store = store
        self.today = today
        self.default_weight = default_weight

    def has_goal(self, username: str, activity: str) -> tuple[bool, Optional[dict]]:
        goal = find_goal(self.store.find_one(username), activity)
        return goal is not None, goal

    def upsert_goal(self, username: str, activity, duration=None, distance=None, steps=None,
                    age=None, height=None, weight=None) -> tuple[dict, bool]:
        """Create or fully replace the goal for (username, activity).

        Returns ``(goal, created)``.
        """
        goal = {
            'activity': _activity_name(activity),
            'duration': _number(duration, 'duration'),
            'distance': _number(distance, 'distance'),
            'steps': _number(steps, 'steps'),
        }
        profile_fields = _validate_profile_fields({'age': age, 'height': height, 'weight': weight})
        saved, created = self.store.upsert_goal(username, goal, profile_fields)
        logger.info(f"Goal {'saved' if created else 'updated'} for {username}/{saved['activity']}")
        return saved, created

    def record_entry(self, username: str, activity, entry_date, duration=None, distance=None, steps=None) -> dict:
        """Append one workout entry after the goal/date/duplicate checks.

        Checks run in this order: activity name and date (ValidationError),
        future date (FutureDateError), goal gate (NoGoalError), numeric
        fields (ValidationError), duplicate (DuplicateEntryError).
        """
        name = _activity_name(activity)
        day = parse_day(entry_date)
        if day > self.today():
            logger.warning(f'Rejected future-dated entry for {username}/{name} on {day}')
            raise FutureDateError('Cannot log workouts for future dates.')

        with self.store.lock:
            profile = self.store.find_one(username)
            if profile is None:
                raise NoGoalError('No goals set for this user.')
            if find_goal(profile, name) is None:
                raise NoGoalError(f"Goal not set for activity '{name}'.")

            values = {
                'duration': _number(duration, 'duration'),
                'distance': _number(distance, 'distance'),
                'steps': _number(steps, 'steps'),
            }
            recorded = fields_for(name)
            extra = [f for f in NUMERIC_FIELDS if f not in recorded and values[f]]
            if extra:
                raise ValidationError(f"{name} entries do not record {', '.join(extra)}.")

            key = canonical_activity(name)
            for existing in profile.get('activities', []):
                if (canonical_activity(existing.get('activity', '')) == key
                        and parse_day(existing.get('date')) == day):
                    logger.warning(f'Rejected duplicate entry for {username}/{name} on {day}')
                    raise DuplicateEntryError('An entry for this activity already exists on this date.')

            entry = {'id': uuid.uuid4().hex, 'activity': name, 'date': day.isoformat(), **values}
            saved = self.store.append_entry(username, entry)
        logger.info(f'Entry saved for {username}/{name} on {day}')
        return saved

    def get_profile(self, username: str) -> dict:
        profile = self.store.find_one(username)
        if profile is None:
            raise NotFound(f"User '{username}' not found.")
        return profile

    def list_entries(self, username: str) -> list[dict]:
        profile = self.store.find_one(username)
        return profile.get('activities', []) if profile else []

    def _weight(self, profile: Optional[dict]) -> float:
        return (profile or {}).get('weight') or self.default_weight

    def get_stats(self, username: str, activity: str, start_date=None, end_date=None) -> dict:
        """Totals for ``activity`` between two inclusive, optional dates."""
        start = parse_day(start_date) if start_date else None
        end = parse_day(end_date) if end_date else None
        if start and end and start > end:
            raise ValidationError('Start date must not be after end date.')
        profile = self.store.find_one(username)
        entries = entries_in_range(filter_entries((profile or {}).get('activities', []), activity), start, end)
        total_duration = sum(e.get('duration') or 0 for e in entries)
        return {
            'activity': activity,
            'startDate': start.isoformat() if start else None,
            'endDate': end.isoformat() if end else None,
            'totalDuration': total_duration,
            'totalDistance': sum(e.get('distance') or 0 for e in entries),
            'totalSteps': sum(e.get('steps') or 0 for e in entries),
            'totalCalories': estimate_calories(activity, self._weight(profile), total_duration),
        }

    def dashboard(self, username: str, activity: str, frequency: str = 'monthly') -> dict:
        """Bucketed history, stats and goal for one activity."""
        profile = self.get_profile(username)
        entries = filter_entries(profile.get('activities', []), activity)
        buckets = aggregate(entries, frequency)
        stats = compute_stats(buckets, self._weight(profile), activity)
        return {
            'activity': activity,
            'frequency': frequency,
            'buckets': buckets,
            'stats': stats,
            'goal': find_goal(profile, activity),
            'hasSteps': any((e.get('steps') or 0) > 0 for e in entries),
        }
