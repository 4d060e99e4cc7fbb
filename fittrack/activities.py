"""Activity vocabulary: names, MET values and the fields each activity records."""

ACTIVITIES = ['Running', 'Cycling', 'Skipping', 'Walking', 'Gym', 'Hiking', 'Yoga']

NUMERIC_FIELDS = ('duration', 'distance', 'steps')

# MET values (approx.) for calorie estimation, keyed by canonical name
MET_VALUES = {
    'running': 9.8,
    'cycling': 7.5,
    'skipping': 8.0,
    'walking': 3.5,
    'gym': 6,
    'hiking': 6,
    'yoga': 3,
}
DEFAULT_MET = 6

ACTIVITY_FIELDS = {
    'running': ('duration', 'distance'),
    'cycling': ('duration', 'distance'),
    'skipping': ('duration', 'steps'),
    'gym': ('duration',),
    'hiking': ('duration', 'distance'),
    'yoga': ('duration',),
    'walking': NUMERIC_FIELDS,
}


def canonical_activity(name: str) -> str:
    """Key used wherever two activity names are compared."""
    return (name or '').strip().lower()


def met_for(activity: str) -> float:
    return MET_VALUES.get(canonical_activity(activity), DEFAULT_MET)


def fields_for(activity: str) -> tuple:
    """Fields an entry of ``activity`` records; unknown activities record all of them."""
    return ACTIVITY_FIELDS.get(canonical_activity(activity), NUMERIC_FIELDS)


def describe_activities() -> list[dict]:
    return [
        {'activity': name, 'met': met_for(name), 'fields': list(fields_for(name))}
        for name in ACTIVITIES
    ]
