"""Centipawn to win-rate conversion."""

import math

# Logistic slope fitted on rated online games (lichess accuracy model)
WINRATE_SLOPE = 0.00368208
CP_CLAMP = 1000
MATE_CP = 10000


def cp_to_winrate(cp: float) -> float:
    """Map a centipawn score to a win probability in [0, 1].

    The score is clamped to ±1000 so mate scores (±10000) saturate instead of
    collapsing to exactly 0 or 1.
    """
    clamped = max(-CP_CLAMP, min(CP_CLAMP, cp))
    return 1.0 / (1.0 + math.exp(-WINRATE_SLOPE * clamped))
