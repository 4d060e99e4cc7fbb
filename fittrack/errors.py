"""Error kinds surfaced to API callers as structured JSON results."""


class FitTrackError(Exception):
    """Base class; ``status_code`` is the HTTP status the API answers with."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {'error': self.message, 'kind': type(self).__name__}


class ValidationError(FitTrackError):
    pass


class NotFound(FitTrackError):
    status_code = 404


class FutureDateError(FitTrackError):
    pass


class NoGoalError(FitTrackError):
    pass


class DuplicateEntryError(FitTrackError):
    status_code = 409


class StoreError(FitTrackError):
    """Persistence failure (filesystem), not a caller mistake."""

    status_code = 500
