"""Price update engine and the isolated soft-resistance simulator."""

from .price_updater import compute_update, PriceUpdateEngine, UpdateResult, CycleInProgressError
from .resistance import resistance_zone, resistance_effects, resistance_step, simulate_resistance, ResistanceStep

__all__ = [
    'compute_update', 'PriceUpdateEngine', 'UpdateResult', 'CycleInProgressError',
    'resistance_zone', 'resistance_effects', 'resistance_step', 'simulate_resistance', 'ResistanceStep',
]
