"""Core data models for the static site deployer."""

from enum import Enum
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class QuotaState(BaseModel):
    """Process-wide deploy counters, persisted after every mutation."""

    model_config = ConfigDict(frozen=True)

    quotaUsed: int = Field(0, ge=0, description="Successful deploys in the current window")
    lastDeployTimestamp: int = Field(0, ge=0, description="Seconds since epoch of the last deploy, 0 if never")

    def after_deploy(self, now: int) -> "QuotaState":
        """State after one more successful deploy at ``now``."""
        return QuotaState(quotaUsed=self.quotaUsed + 1, lastDeployTimestamp=now)


class AdmissionOutcome(str, Enum):
    """Admission decision kinds."""

    ADMIT = "admit"
    REJECT_QUOTA = "reject_quota"
    REJECT_COOLDOWN = "reject_cooldown"
    STATUS_ONLY = "status_only"


class AdmissionDecision(BaseModel):
    """Result of evaluating a request against the quota state."""

    outcome: AdmissionOutcome
    remaining_quota: int = Field(..., ge=0)
    remaining_seconds: int = Field(0, ge=0, description="Cooldown left; 0 when no cooldown is active")
    cooldown: bool = Field(False, description="Whether a cooldown or exhausted quota blocks deploys")

    @property
    def admitted(self) -> bool:
        return self.outcome == AdmissionOutcome.ADMIT

    @property
    def rejected(self) -> bool:
        return self.outcome in (AdmissionOutcome.REJECT_QUOTA, AdmissionOutcome.REJECT_COOLDOWN)


class StagedSite(BaseModel):
    """A fully staged static site ready to be published."""

    name: str = Field(..., description="Deployment name")
    path: Path = Field(..., description="Staging directory")
    entry_source: Optional[str] = Field(
        None,
        description="HTML file renamed to index.html, or None when index.html existed or was synthesized",
    )
    entry_synthesized: bool = Field(False, description="Whether the default index.html was generated")
    files: List[str] = Field(default_factory=list, description="Relative paths of staged files")
