"""
FSRS algorithm and study-option constants.

This module contains static parameters for the spaced repetition scheduler
and the default study options. No runtime configuration - pure constants only.
"""
from typing import Tuple

# FSRS weights 'w', tuned for vocabulary and sentence learning. The scheduler
# reproduces these exactly; changing any of them changes every interval a
# user has ever been given.
DEFAULT_PARAMETERS: Tuple[float, ...] = (
    0.35,   # w[0]  initial stability, Forgot
    1.25,   # w[1]  initial stability, Hard
    3.5,    # w[2]  initial stability, Good
    18.0,   # w[3]  initial stability, Easy
    7.2,    # w[4]  initial difficulty offset
    0.55,   # w[5]  initial difficulty grade exponent
    1.5,    # w[6]  difficulty delta per grade
    0.005,  # w[7]  difficulty mean reversion
    1.6,    # w[8]  success stability scale (exp)
    0.12,   # w[9]  stability saturation
    1.05,   # w[10] retrievability saturation
    2.0,    # w[11] failure stability scale
    0.12,   # w[12] failure difficulty exponent
    0.32,   # w[13] failure stability exponent
    2.4,    # w[14] failure retrievability factor
    0.25,   # w[15] Hard penalty
    3.2,    # w[16] Easy bonus
    0.55,   # w[17]
    0.7,    # w[18]
)

# Forgetting curve shape: R(t) = (1 + FACTOR * t / S) ** DECAY
DECAY: float = -0.5
FACTOR: float = 19.0 / 81.0

# Target retrievability used to turn stability into an interval.
DEFAULT_DESIRED_RETENTION: float = 0.9

MIN_INTERVAL_DAYS: int = 1
DEFAULT_MAXIMUM_INTERVAL_DAYS: int = 36500

MIN_DIFFICULTY: float = 1.0
MAX_DIFFICULTY: float = 10.0

# Study option defaults
DEFAULT_NEW_CARDS_PER_DAY: int = 10
DEFAULT_CARDS_PER_ROUND: int = 10

# Seconds between attempts when persisting a review keeps failing.
DEFAULT_RETRY_DELAY_SECONDS: float = 2.0
