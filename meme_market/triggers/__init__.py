"""Per-cycle trigger sources: keyword detection over chat activity and the
random chaos roll."""

from .detector import detect, count_matches, KEYWORD_CLASSES, DEFAULT_WINDOW
from .chaos import random_chaos_event, CHAOS_EVENTS, DEFAULT_CHAOS_PROBABILITY

__all__ = [
    'detect', 'count_matches', 'KEYWORD_CLASSES', 'DEFAULT_WINDOW',
    'random_chaos_event', 'CHAOS_EVENTS', 'DEFAULT_CHAOS_PROBABILITY',
]
