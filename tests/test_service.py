from datetime import date, timedelta

import pytest

from fittrack.errors import (
    DuplicateEntryError,
    FutureDateError,
    NoGoalError,
    NotFound,
    ValidationError,
)
from fittrack.service import FitnessService
from fittrack.store import ProfileStore

TODAY = date(2024, 6, 15)


@pytest.fixture()
def store(tmp_path):
    return ProfileStore(str(tmp_path / "data.json"))


@pytest.fixture()
def service(store):
    return FitnessService(store, today=lambda: TODAY)


@pytest.fixture()
def runner(service):
    service.upsert_goal('u', 'Running', duration=30, distance=5)
    return service


def test_entry_dated_today_succeeds(runner):
    saved = runner.record_entry('u', 'Running', TODAY.isoformat(), duration=30, distance=5)
    assert saved['date'] == '2024-06-15'
    assert saved['id']


def test_future_entry_rejected(runner):
    tomorrow = (TODAY + timedelta(days=1)).isoformat()
    with pytest.raises(FutureDateError):
        runner.record_entry('u', 'Running', tomorrow, duration=30)
    assert runner.list_entries('u') == []


def test_future_check_ignores_time_of_day(runner):
    saved = runner.record_entry('u', 'Running', '2024-06-15T23:59:00', duration=10)
    assert saved['date'] == '2024-06-15'


def test_no_profile_means_no_goal(service):
    with pytest.raises(NoGoalError):
        service.record_entry('nobody', 'Running', '2024-06-01', duration=30)


def test_no_goal_for_activity(runner):
    with pytest.raises(NoGoalError):
        runner.record_entry('u', 'Cycling', '2024-06-01', duration=30)


def test_no_goal_wins_over_bad_fields(runner):
    with pytest.raises(NoGoalError):
        runner.record_entry('u', 'Cycling', '2024-06-01', duration=-5)


def test_duplicate_same_day_rejected(runner):
    runner.record_entry('u', 'Running', '2024-06-01', duration=30)
    with pytest.raises(DuplicateEntryError):
        runner.record_entry('u', 'Running', '2024-06-01', duration=45)
    runner.record_entry('u', 'Running', '2024-06-02', duration=45)
    assert [e['date'] for e in runner.list_entries('u')] == ['2024-06-01', '2024-06-02']


def test_duplicate_detection_is_case_insensitive(runner):
    runner.record_entry('u', 'Running', '2024-06-01', duration=30)
    with pytest.raises(DuplicateEntryError):
        runner.record_entry('u', 'running', '2024-06-01T08:00:00', duration=10)


def test_goal_lookup_is_case_insensitive(runner):
    saved = runner.record_entry('u', ' RUNNING ', '2024-06-03', duration=20)
    assert saved['activity'] == 'RUNNING'
    has_goal, goal = runner.has_goal('u', 'running')
    assert has_goal
    assert goal['activity'] == 'Running'


def test_irrelevant_field_rejected(runner):
    with pytest.raises(ValidationError):
        runner.record_entry('u', 'Running', '2024-06-01', duration=30, steps=4000)


def test_unknown_activity_accepts_all_fields(service):
    service.upsert_goal('u', 'Rowing', duration=20)
    saved = service.record_entry('u', 'Rowing', '2024-06-01', duration=20, distance=3, steps=100)
    assert (saved['duration'], saved['distance'], saved['steps']) == (20, 3, 100)


@pytest.mark.parametrize('bad', [-1, 'abc', True])
def test_bad_numbers_rejected(runner, bad):
    with pytest.raises(ValidationError):
        runner.record_entry('u', 'Running', '2024-06-01', duration=bad)


def test_bad_date_rejected(runner):
    with pytest.raises(ValidationError):
        runner.record_entry('u', 'Running', 'yesterday', duration=30)


def test_numeric_strings_coerced(runner):
    saved = runner.record_entry('u', 'Running', '2024-06-01', duration='30', distance='4.5')
    assert saved['duration'] == 30
    assert saved['distance'] == 4.5


def test_upsert_replaces_goal(service):
    service.upsert_goal('u', 'Running', duration=30, distance=5)
    goal, created = service.upsert_goal('u', 'running', duration=45)
    assert created is False
    profile = service.get_profile('u')
    assert len(profile['goals']) == 1
    assert profile['goals'][0] == {'activity': 'running', 'duration': 45, 'distance': 0, 'steps': 0}
    assert goal == profile['goals'][0]


def test_upsert_creates_profile_with_body_fields(service):
    goal, created = service.upsert_goal('newbie', 'Yoga', duration=20, age=30, height=170, weight=65)
    assert created is True
    profile = service.get_profile('newbie')
    assert (profile['age'], profile['height'], profile['weight']) == (30, 170, 65)
    assert profile['activities'] == []


def test_upsert_keeps_profile_fields_when_omitted(service):
    service.upsert_goal('u', 'Yoga', weight=80)
    service.upsert_goal('u', 'Gym', duration=60)
    assert service.get_profile('u')['weight'] == 80


def test_upsert_validates_profile_ranges(service):
    with pytest.raises(ValidationError) as exc:
        service.upsert_goal('u', 'Yoga', age=500, weight=5)
    assert 'Age out of range' in exc.value.message
    assert 'Weight out of range' in exc.value.message
    with pytest.raises(NotFound):
        service.get_profile('u')


def test_upsert_requires_activity(service):
    with pytest.raises(ValidationError):
        service.upsert_goal('u', '   ')


def test_has_goal_without_profile(service):
    assert service.has_goal('ghost', 'Running') == (False, None)


def test_get_stats_range_and_calories(runner):
    runner.upsert_goal('u', 'Running', duration=30, weight=70)
    runner.record_entry('u', 'Running', '2024-06-01', duration=30, distance=5)
    runner.record_entry('u', 'Running', '2024-06-05', duration=30, distance=6)
    runner.record_entry('u', 'Running', '2024-06-12', duration=45, distance=8)
    stats = runner.get_stats('u', 'Running', '2024-06-01', '2024-06-05')
    assert stats == {
        'activity': 'Running',
        'startDate': '2024-06-01',
        'endDate': '2024-06-05',
        'totalDuration': 60,
        'totalDistance': 11,
        'totalSteps': 0,
        'totalCalories': 686,
    }


def test_get_stats_zeroed_for_unknown_user(service):
    stats = service.get_stats('ghost', 'Running', '2024-06-01', '2024-06-05')
    assert stats['totalDuration'] == 0
    assert stats['totalCalories'] == 0


def test_get_stats_rejects_inverted_range(runner):
    with pytest.raises(ValidationError):
        runner.get_stats('u', 'Running', '2024-06-05', '2024-06-01')


def test_dashboard_aggregates_selected_activity(service):
    service.upsert_goal('u', 'Skipping', duration=15, steps=1000, weight=60)
    service.upsert_goal('u', 'Yoga', duration=30)
    service.record_entry('u', 'Skipping', '2024-06-03', duration=15, steps=1200)
    service.record_entry('u', 'Skipping', '2024-06-04', duration=15, steps=800)
    service.record_entry('u', 'Yoga', '2024-06-04', duration=30)
    view = service.dashboard('u', 'skipping', 'weekly')
    assert [b.name for b in view['buckets']] == ['2024-06-03']
    assert view['buckets'][0].steps == 2000
    assert view['hasSteps'] is True
    assert view['goal']['activity'] == 'Skipping'
    # 8.0 * 60 * 0.5
    assert view['stats'].calories_burned == 240


def test_dashboard_requires_profile(service):
    with pytest.raises(NotFound):
        service.dashboard('ghost', 'Running')


def test_huge_integer_rejected_as_validation_error(runner):
    with pytest.raises(ValidationError):
        runner.record_entry('u', 'Running', '2024-06-01', duration=10**400)
    with pytest.raises(ValidationError):
        runner.upsert_goal('u', 'Running', duration=30, weight=10**400)
    assert runner.list_entries('u') == []
