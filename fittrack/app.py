import os
import logging
from typing import Optional
from flask import (
    Flask,
    jsonify,
    request,
    current_app,
    make_response,
)
from flask_wtf import CSRFProtect
from flask_wtf.csrf import generate_csrf, CSRFError

from fittrack.activities import describe_activities
from fittrack.charts import render_bucket_chart
from fittrack.errors import FitTrackError, ValidationError
from fittrack.service import FitnessService, DEFAULT_WEIGHT_KG
from fittrack.store import ProfileStore

# Cache a single SECRET_KEY value so all Gunicorn workers share it.
_GLOBAL_SECRET: Optional[str] = None

# Module-level logger (safe outside app context)
logger = logging.getLogger(__name__)


def _get_global_secret(test_config: Optional[dict], testing: bool) -> str:
    """Return a stable SECRET_KEY (env or test override; ephemeral only for tests).

    Production MUST supply FLASK_SECRET_KEY or SECRET_KEY to avoid per-worker divergence.
    """
    global _GLOBAL_SECRET
    if _GLOBAL_SECRET:
        return _GLOBAL_SECRET

    if test_config and test_config.get('SECRET_KEY'):
        _GLOBAL_SECRET = test_config['SECRET_KEY']
        return _GLOBAL_SECRET

    env_secret = os.getenv('FLASK_SECRET_KEY') or os.getenv('SECRET_KEY')
    if env_secret:
        _GLOBAL_SECRET = env_secret
        return _GLOBAL_SECRET

    import secrets
    if not testing:
        if os.getenv('FLASK_ENFORCE_SECRET') == '1':
            raise RuntimeError('SECRET_KEY environment variable required (FLASK_ENFORCE_SECRET=1).')
        logger.warning('No FLASK_SECRET_KEY provided; generating ephemeral secret (NOT recommended for multi-worker).')
    _GLOBAL_SECRET = secrets.token_hex(32)
    return _GLOBAL_SECRET


def _service() -> FitnessService:
    return current_app.extensions['fittrack']


def _json_body() -> dict:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValidationError('Request body must be a JSON object.')
    return body


def get_goal(username, activity):
    has_goal, goal = _service().has_goal(username, activity)
    if has_goal:
        return jsonify({'hasGoal': True, 'goal': goal})
    return jsonify({'hasGoal': False})


def get_profile(username):
    profile = _service().get_profile(username)
    return jsonify({
        'age': profile.get('age'),
        'height': profile.get('height'),
        'weight': profile.get('weight'),
        'username': profile['username'],
        'goals': profile.get('goals', []),
        'activities': profile.get('activities', []),
    })


def save_goal(username):
    body = _json_body()
    goal, created = _service().upsert_goal(
        username,
        body.get('activity'),
        duration=body.get('duration'),
        distance=body.get('distance'),
        steps=body.get('steps'),
        age=body.get('age'),
        height=body.get('height'),
        weight=body.get('weight'),
    )
    return jsonify({'message': 'Goal saved' if created else 'Goal updated', 'goal': goal})


def save_entry(username):
    body = _json_body()
    entry = _service().record_entry(
        username,
        body.get('activity'),
        body.get('date'),
        duration=body.get('duration'),
        distance=body.get('distance'),
        steps=body.get('steps'),
    )
    return jsonify({'message': 'Entry saved', 'entry': entry})


def list_workouts(username):
    return jsonify(_service().list_entries(username))


def get_stats(username, activity):
    stats = _service().get_stats(
        username,
        activity,
        request.args.get('startDate'),
        request.args.get('endDate'),
    )
    return jsonify(stats)


def dashboard(username, activity):
    frequency = request.args.get('frequency', 'monthly')
    view = _service().dashboard(username, activity, frequency)
    return jsonify({
        'activity': view['activity'],
        'frequency': view['frequency'],
        'buckets': [b.to_dict() for b in view['buckets']],
        'stats': view['stats'].to_dict(),
        'goal': view['goal'],
        'hasSteps': view['hasSteps'],
    })


def activity_chart(username, activity):
    frequency = request.args.get('frequency', 'monthly')
    metric = request.args.get('metric', 'duration')
    view = _service().dashboard(username, activity, frequency)
    png = render_bucket_chart(view['buckets'], metric, title=f'{activity} ({frequency})')
    resp = make_response(png)
    resp.headers['Content-Type'] = 'image/png'
    return resp


def list_activities():
    return jsonify(describe_activities())


def csrf_token():
    """Token for JSON clients; send it back in the X-CSRFToken header."""
    return jsonify({'csrfToken': generate_csrf()})


def healthz():
    """Lightweight health check endpoint for Kubernetes probes."""
    return jsonify({
        'status': 'ok',
        'csrf_enabled': bool(current_app.config.get('WTF_CSRF_ENABLED')),
    })


def handle_fittrack_error(e: FitTrackError):
    if e.status_code >= 500:
        current_app.logger.error('%s %s failed: %s', request.method, request.path, e.message)
    else:
        current_app.logger.info('%s %s rejected (%s): %s', request.method, request.path, type(e).__name__, e.message)
    return jsonify(e.to_dict()), e.status_code


def handle_csrf_error(e):
    current_app.logger.warning(
        'CSRF failure: %s | header=%s path=%s method=%s',
        e.description,
        'X-CSRFToken' in request.headers,
        request.path,
        request.method,
    )
    return jsonify({'error': 'Your session security token was missing or expired.', 'kind': 'CSRFError'}), 400


def secure_headers(resp):
    resp.headers.setdefault('X-Content-Type-Options', 'nosniff')
    resp.headers.setdefault('Cache-Control', 'no-store')
    resp.headers.setdefault('Pragma', 'no-cache')
    return resp


def register_routes(app: Flask) -> None:
    """Route table mirroring the /api/user/... endpoints."""
    app.add_url_rule('/api/user/goals/<username>/<activity>', 'get_goal', get_goal, methods=['GET'])
    app.add_url_rule('/api/user/goals/<username>', 'save_goal', save_goal, methods=['POST'])
    app.add_url_rule('/api/user/entries/<username>', 'save_entry', save_entry, methods=['POST'])
    app.add_url_rule('/api/user/workouts/<username>', 'list_workouts', list_workouts, methods=['GET'])
    app.add_url_rule('/api/user/profile/<username>', 'get_profile', get_profile, methods=['GET'])
    app.add_url_rule('/api/user/stats/<username>/<activity>', 'get_stats', get_stats, methods=['GET'])
    app.add_url_rule('/api/user/dashboard/<username>/<activity>', 'dashboard', dashboard, methods=['GET'])
    app.add_url_rule('/api/user/chart/<username>/<activity>.png', 'activity_chart', activity_chart, methods=['GET'])
    app.add_url_rule('/api/activities', 'list_activities', list_activities, methods=['GET'])
    app.add_url_rule('/api/csrf-token', 'csrf_token', csrf_token, methods=['GET'])
    app.add_url_rule('/healthz', 'healthz', healthz, methods=['GET'])


def create_app(test_config: Optional[dict] = None) -> Flask:
    """Application factory."""
    app = Flask(__name__)
    testing = bool(test_config and test_config.get('TESTING')) or bool(os.getenv('PYTEST_CURRENT_TEST'))
    app.config['SECRET_KEY'] = _get_global_secret(test_config, testing)  # NOSONAR env/ephemeral sourced + cached
    app.config.setdefault('WTF_CSRF_ENABLED', not testing)
    app.config.setdefault('DEFAULT_WEIGHT_KG', DEFAULT_WEIGHT_KG)

    # Data file configuration: allow env override (DATA_FILE) else default under package directory.
    default_data_path = os.path.join(os.path.dirname(__file__), 'data.json')
    env_data_path = os.getenv('DATA_FILE')
    app.config.setdefault('DATA_FILE', env_data_path if env_data_path else default_data_path)
    if test_config:
        app.config.update(test_config)

    app.logger.setLevel(os.getenv('LOG_LEVEL', 'INFO').upper())
    data_dir = os.path.dirname(app.config['DATA_FILE']) or '.'
    if os.path.isdir(data_dir) and not os.access(data_dir, os.W_OK):  # pragma: no cover (environment dependent)
        logger.warning(f"Data directory '{data_dir}' not writable for user; workout logs may fail to persist.")

    if app.config['WTF_CSRF_ENABLED']:
        CSRFProtect(app)

    store = ProfileStore(app.config['DATA_FILE'])
    app.extensions['fittrack'] = FitnessService(store, default_weight=app.config['DEFAULT_WEIGHT_KG'])

    register_routes(app)
    app.register_error_handler(FitTrackError, handle_fittrack_error)
    app.register_error_handler(CSRFError, handle_csrf_error)
    app.after_request(secure_headers)
    return app


_is_pytest = bool(os.getenv('PYTEST_CURRENT_TEST'))
if _is_pytest:
    # Ensure TESTING flag so ephemeral secret + CSRF disabled for predictable tests.
    app = create_app({'TESTING': True})
else:
    app = create_app()

if __name__ == "__main__":
    logging.basicConfig(level=os.getenv('LOG_LEVEL', 'INFO').upper())
    host = os.environ.get("FLASK_HOST", "127.0.0.1")
    port = int(os.environ.get("FLASK_PORT", 5000))
    debug = os.environ.get("FLASK_DEBUG", "false").lower() == "true"
    app.config['DEBUG'] = debug
    app.run(host=host, port=port, debug=debug)
