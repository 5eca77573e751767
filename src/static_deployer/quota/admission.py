"""Quota and cooldown admission control.

Every function here is pure: it looks at a ``QuotaState`` and a point in time
and never mutates or persists anything. All times are integer seconds since
the epoch, the same unit as the persisted ``lastDeployTimestamp``.
"""

from __future__ import annotations

from typing import Optional

from static_deployer.core.models import AdmissionDecision, AdmissionOutcome, QuotaState

MAX_QUOTA = 50
COOLDOWN_SECONDS = 300
QUOTA_WINDOW_SECONDS = 24 * 60 * 60

STATUS_PROBE_NAME = "quota-check"


def is_status_probe(name: Optional[str]) -> bool:
    """Return True for sentinel names that only ask for quota status."""
    if name is None or not name.strip():
        return True
    return name == STATUS_PROBE_NAME


class AdmissionController:
    """Decides whether a deploy may proceed given the current counters."""

    def __init__(
        self,
        max_quota: int = MAX_QUOTA,
        cooldown_seconds: int = COOLDOWN_SECONDS,
        window_seconds: int = QUOTA_WINDOW_SECONDS,
    ):
        self.max_quota = max_quota
        self.cooldown_seconds = cooldown_seconds
        self.window_seconds = window_seconds

    def reset_due(self, state: QuotaState, now: int) -> bool:
        return now - state.lastDeployTimestamp > self.window_seconds

    def apply_lazy_reset(self, state: QuotaState, now: int) -> QuotaState:
        """Return ``state`` with the quota cleared if the window has lapsed.

        The last deploy timestamp is kept, so applying the reset again with
        the same ``now`` returns an equal state.
        """
        if self.reset_due(state, now) and state.quotaUsed != 0:
            return QuotaState(quotaUsed=0, lastDeployTimestamp=state.lastDeployTimestamp)
        return state

    def remaining_quota(self, state: QuotaState) -> int:
        return max(0, self.max_quota - state.quotaUsed)

    def cooldown_remaining(self, state: QuotaState, now: int) -> int:
        """Seconds until the next deploy is allowed; 0 if never deployed."""
        if state.lastDeployTimestamp <= 0:
            return 0
        elapsed = now - state.lastDeployTimestamp
        if elapsed >= self.cooldown_seconds:
            return 0
        # A clock that went backwards never extends the wait past a full cooldown.
        return min(self.cooldown_seconds, self.cooldown_seconds - elapsed)

    def evaluate(self, state: QuotaState, now: int, status_only: bool = False) -> AdmissionDecision:
        """Evaluate a request at ``now`` against ``state``.

        Args:
            state: Current persisted counters
            now: Current time in seconds since epoch
            status_only: The request is a status probe; report, never reject

        Returns:
            The admission decision with remaining quota and cooldown
        """
        effective = self.apply_lazy_reset(state, now)
        remaining = self.remaining_quota(effective)
        wait = self.cooldown_remaining(effective, now)

        if status_only:
            return AdmissionDecision(
                outcome=AdmissionOutcome.STATUS_ONLY,
                remaining_quota=remaining,
                remaining_seconds=wait,
                cooldown=wait > 0,
            )

        if effective.quotaUsed >= self.max_quota:
            return AdmissionDecision(
                outcome=AdmissionOutcome.REJECT_QUOTA,
                remaining_quota=0,
                cooldown=True,
            )

        if wait > 0:
            return AdmissionDecision(
                outcome=AdmissionOutcome.REJECT_COOLDOWN,
                remaining_quota=remaining,
                remaining_seconds=wait,
                cooldown=True,
            )

        return AdmissionDecision(outcome=AdmissionOutcome.ADMIT, remaining_quota=remaining)
