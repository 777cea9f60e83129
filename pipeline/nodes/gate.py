import math
from typing import Optional, Tuple

from loguru import logger

from pipeline.state import LeadState

GATE_KEY_PREFIX = "social_media_"


class SubmissionGate:
    """Per-identifier cool-down between accepted submissions."""

    def __init__(self, store, window_seconds: int = 300):
        self.store = store
        self.window_seconds = window_seconds

    def _key(self, identifier: str) -> str:
        return f"{GATE_KEY_PREFIX}{identifier.strip().lower()}"

    def check(self, identifier: Optional[str], now: float) -> Tuple[bool, int]:
        """
        Decide whether a new submission is allowed.

        Args:
            identifier: Submitter email address
            now: Current time in epoch seconds

        Returns:
            Tuple of (allowed, seconds left before the next submission is allowed)
        """
        if not identifier:
            logger.warning("Empty identifier provided to submission gate, skipping check")
            return True, 0

        try:
            last = self.store.get(self._key(identifier))
        except Exception as e:
            logger.error(f"Submission gate check failed: {e}")
            # Fail open - allow processing to continue
            return True, 0

        if last is None:
            return True, 0

        elapsed = now - int(last) / 1000
        if elapsed > self.window_seconds:
            return True, 0
        return False, max(1, math.ceil(self.window_seconds - elapsed))

    def record(self, identifier: Optional[str], now: float) -> None:
        """Remember the time of an accepted submission."""
        if not identifier:
            return
        try:
            self.store.set(self._key(identifier), str(int(now * 1000)), ttl=self.window_seconds + 1)
        except Exception as e:
            logger.error(f"Failed to record submission time: {e}")


def gate(state: LeadState, ctx) -> LeadState:
    """Reject repeat submissions inside the cool-down window."""
    email = state.get("normalized", {}).get("email")
    allowed, retry_after = ctx.gate.check(email, state["submitted_at"])

    if not allowed:
        logger.warning(f"Rate limit active for {email}. Time remaining: {retry_after} seconds")
        state["outcome"] = "rate_limited"
        state["retry_after"] = retry_after
    return state
