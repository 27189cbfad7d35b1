"""Per-turn ceiling on the number of generation calls."""

import logging

logger = logging.getLogger(__name__)


class CallBudget:
    """
    Counts generation calls made for one turn.

    The primary execution call is always made; optional calls (the database-relevance nudge and the
    narration retry) must :meth:`try_spend` first and are skipped once the ceiling is reached.
    """

    def __init__(self, limit: int) -> None:
        self.limit = limit
        self.used = 0

    @property
    def remaining(self) -> int:
        return max(self.limit - self.used, 0)

    def spend(self) -> None:
        """Record a call that must happen regardless of the ceiling."""
        self.used += 1

    def try_spend(self, purpose: str) -> bool:
        """Record an optional call if the ceiling allows it."""
        if self.used >= self.limit:
            logger.info("Skipping %s call: %d/%d generation calls used", purpose, self.used, self.limit)
            return False
        self.used += 1
        return True
