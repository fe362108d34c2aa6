"""
Storage boundary for the ranking engine.

Responsibilities:
- Define the read contract the engine consumes and the write contract it produces.
- Provide an in-memory store with double-buffered, all-at-once publication.
- Load ranking and visit snapshots from CSV files and export computed results.
"""
