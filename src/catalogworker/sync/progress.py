"""
Progress persistence cadence.

Writing the run record after every variant would hammer the store on a
catalog of tens of thousands of variants. The cadence widens as the run
grows: every 100 variants up to 1,000, every 500 up to 10,000, then every
1,000.
"""

from typing import Optional, Sequence, Tuple

# (cumulative limit, interval); a None limit covers everything after
DEFAULT_TIERS: Tuple[Tuple[Optional[int], int], ...] = (
    (1000, 100),
    (10000, 500),
    (None, 1000),
)


class ProgressCadence:
    """Decides when the orchestrator should persist progress."""

    def __init__(self, tiers: Sequence[Tuple[Optional[int], int]] = DEFAULT_TIERS):
        if not tiers:
            raise ValueError("ProgressCadence needs at least one tier")
        self.tiers = tuple(tiers)

    def interval_for(self, processed: int) -> int:
        for limit, interval in self.tiers:
            if limit is None or processed <= limit:
                return interval
        return self.tiers[-1][1]

    def should_persist(self, processed: int, since_last: int) -> bool:
        """True once `since_last` variants have been processed at the current tier."""
        if processed <= 0 or since_last <= 0:
            return False
        return since_last >= self.interval_for(processed)
