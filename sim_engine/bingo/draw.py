"""Draw Sequencer — the called-space order for one round."""
from __future__ import annotations

import logging
import random
from typing import Optional, Sequence

logger = logging.getLogger("bingo47.draw")


def generate_draw_order(all_spaces: Sequence, count: int,
                        rng: Optional[random.Random] = None) -> list:
    """Uniform random permutation prefix of all_spaces, no repeats.

    count is clamped into [0, len(all_spaces)] rather than rejected, so a
    large bonus-draw stack simply calls every space once.
    """
    rng = rng or random.Random()
    pool = list(dict.fromkeys(all_spaces))
    n = max(0, min(int(count), len(pool)))
    if n != count:
        logger.debug(f"Draw count {count} clamped to {n}")
    return rng.sample(pool, n)
