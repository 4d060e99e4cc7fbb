"""FitTrack: goal-gated workout logging and activity statistics."""

__version__ = '1.0.0'
