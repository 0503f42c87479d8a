from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Dict, Optional

from shared.logging.logger import get_logger

log = get_logger("shared.quotas")


# ======================================================================
# Exceptions
# ======================================================================

class QuotaExceeded(RuntimeError):
    """Raised when a hard quota limit has been exceeded."""


class QuotaBufferWarning(RuntimeError):
    """
    Raised when usage enters the configured buffer zone.
    This is NOT fatal, but should surface as a warning.
    """


# ======================================================================
# Unit costs (YouTube Data API v3)
# ======================================================================

VIDEOS_LIST_COST = 1
CHANNELS_LIST_COST = 1
SEARCH_LIST_COST = 100


# ======================================================================
# Data Models
# ======================================================================

@dataclass
class DailyQuota:
    """
    Tracks cumulative usage for a single UTC day.
    """
    day: date
    used: int = 0

    def reset_if_new_day(self) -> None:
        today = datetime.now(timezone.utc).date()
        if self.day != today:
            self.day = today
            self.used = 0


@dataclass
class QuotaPolicy:
    """
    Declarative quota limits.
    """
    max_units: int
    buffer_units: int

    @property
    def hard_limit(self) -> int:
        return self.max_units

    @property
    def buffer_threshold(self) -> int:
        return max(0, self.max_units - self.buffer_units)


# ======================================================================
# Quota Tracker (ENFORCEMENT ONLY)
# ======================================================================

class QuotaTracker:
    """
    Runtime quota tracker for one API key.

    - Tracks cumulative usage
    - Enforces buffer + hard caps
    - Resets automatically on UTC day rollover
    """

    def __init__(
        self,
        *,
        platform: str,
        policy: QuotaPolicy,
    ):
        self.platform = platform
        self.policy = policy
        self.state = DailyQuota(
            day=datetime.now(timezone.utc).date(),
            used=0,
        )

    # --------------------------------------------------

    def consume(self, units: int) -> None:
        if units <= 0:
            return

        self.state.reset_if_new_day()
        projected = self.state.used + units

        if projected > self.policy.hard_limit:
            raise QuotaExceeded(
                f"Quota exceeded: {projected} / {self.policy.hard_limit}"
            )

        if (
            self.state.used < self.policy.buffer_threshold
            and projected >= self.policy.buffer_threshold
        ):
            self.state.used = projected
            raise QuotaBufferWarning(
                f"Quota buffer entered: {projected} / {self.policy.hard_limit}"
            )

        self.state.used = projected

    # --------------------------------------------------

    def snapshot(self) -> Dict[str, object]:
        self.state.reset_if_new_day()
        return {
            "platform": self.platform,
            "window": "daily",
            "used": self.state.used,
            "remaining": max(0, self.policy.hard_limit - self.state.used),
            "max": self.policy.hard_limit,
            "buffer": self.policy.buffer_units,
            "status": self.status(),
        }

    def status(self) -> str:
        if self.state.used >= self.policy.hard_limit:
            return "exhausted"
        if self.state.used >= self.policy.buffer_threshold:
            return "buffer"
        return "ok"


def charge(tracker: Optional[QuotaTracker], units: int, *, what: str) -> bool:
    """
    Consume units before a metered call.

    Returns False when the hard limit would be crossed (the call must be
    skipped). Entering the buffer zone is logged and the call proceeds.
    """
    if tracker is None:
        return True

    try:
        tracker.consume(units)
    except QuotaExceeded as e:
        log.warning(f"[{tracker.platform}] Skipping {what}: {e}")
        return False
    except QuotaBufferWarning as e:
        log.warning(f"[{tracker.platform}] {e}")

    return True


def build_youtube_quota(*, max_units: int, buffer_units: int) -> QuotaTracker:
    return QuotaTracker(
        platform="youtube",
        policy=QuotaPolicy(max_units=max_units, buffer_units=buffer_units),
    )
