"""JSON file store of user profile documents.

The whole store is one JSON object keyed by username; each value is a
profile document::

    {"username": ..., "age": ..., "height": ..., "weight": ...,
     "goals": [...], "activities": [...]}

Every write rewrites the file through a temp file + ``os.replace`` so a crash
never leaves a half-written store behind. ``lock`` is re-entrant: callers that
need a check-then-write sequence hold it around both steps.
"""

import copy
import json
import logging
import os
from threading import RLock
from typing import Optional

from fittrack.activities import canonical_activity
from fittrack.errors import StoreError

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ('age', 'height', 'weight')


def new_profile(username: str, **fields) -> dict:
    profile = {'username': username, 'goals': [], 'activities': []}
    for key in PROFILE_FIELDS:
        profile[key] = fields.get(key)
    return profile


class ProfileStore:

    def __init__(self, path: str):
        self.path = path
        self.lock = RLock()

    def _load(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.error(f"Failed to read data file '{self.path}': {e}")
            raise StoreError('Stored data could not be read.') from e
        if not isinstance(data, dict):
            logger.error(f"Data file '{self.path}' does not hold a JSON object.")
            raise StoreError('Stored data could not be read.')
        return data

    def _save(self, data: dict) -> None:
        tmp_file = self.path + '.tmp'
        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(tmp_file, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_file, self.path)
        except OSError as e:
            logger.error(f"Failed to write data file '{self.path}': {e}")
            try:
                if os.path.exists(tmp_file):
                    os.remove(tmp_file)
            except OSError:
                pass
            raise StoreError('Failed to persist workout data (server filesystem issue).') from e

    def find_one(self, username: str) -> Optional[dict]:
        """Return a copy of the profile document for ``username`` or None."""
        with self.lock:
            doc = self._load().get(username)
            return copy.deepcopy(doc) if doc is not None else None

    def upsert_goal(self, username: str, goal: dict, profile_fields: Optional[dict] = None) -> tuple[dict, bool]:
        """Replace or append the goal for ``goal['activity']``.

        Creates the profile when missing. Profile fields whose value is None
        are left untouched. Returns ``(goal, created)``.
        """
        profile_fields = profile_fields or {}
        with self.lock:
            data = self._load()
            doc = data.get(username)
            if doc is None:
                doc = data[username] = new_profile(username, **profile_fields)
            else:
                for key, value in profile_fields.items():
                    if value is not None:
                        doc[key] = value
            key = canonical_activity(goal['activity'])
            goals = doc.setdefault('goals', [])
            for i, existing in enumerate(goals):
                if canonical_activity(existing.get('activity', '')) == key:
                    goals[i] = dict(goal)
                    created = False
                    break
            else:
                goals.append(dict(goal))
                created = True
            self._save(data)
        return dict(goal), created

    def append_entry(self, username: str, entry: dict) -> dict:
        """Append ``entry`` to an existing profile's activity list."""
        with self.lock:
            data = self._load()
            doc = data.get(username)
            if doc is None:
                raise KeyError(username)
            doc.setdefault('activities', []).append(dict(entry))
            self._save(data)
        return dict(entry)
