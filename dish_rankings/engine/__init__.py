"""
Ranking and scoring engine.

Responsibilities:
- Turn users' personal top-10 placements into a popularity-weighted ranking score.
- Turn raw visit events into a recency-windowed frequency score.
- Merge both into a combined score and sorted leaderboards.
- Derive the "local favorites" and "hidden gems" views.
"""
