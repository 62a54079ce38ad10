"""Global market events: the prioritized event table and the selector that
rolls it behind a cooldown and tracks frozen symbols and merged pairs."""

from .catalog import EVENT_TABLE, EVENTS_BY_TYPE, EVENT_TYPES, EventContext, EventSpec
from .selector import (
    GlobalEventSelector, UnknownEventError, DEFAULT_COOLDOWN_MS, MIN_FORCED_DURATION_MS, MAX_FORCED_DURATION_MS,
)

__all__ = [
    'EVENT_TABLE', 'EVENTS_BY_TYPE', 'EVENT_TYPES', 'EventContext', 'EventSpec',
    'GlobalEventSelector', 'UnknownEventError', 'DEFAULT_COOLDOWN_MS', 'MIN_FORCED_DURATION_MS',
    'MAX_FORCED_DURATION_MS',
]
