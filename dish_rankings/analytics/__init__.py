"""
Recompute run history.

Responsibilities:
- Keep a record of every finished recompute run's summary.
- Report aggregate run health: durations, skip rates, repeatedly failing items.
"""
