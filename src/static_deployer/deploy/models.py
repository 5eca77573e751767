"""Models for deploy requests and their outcomes."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class DeployRequest(BaseModel):
    """Body of ``POST /api/deploy``."""

    name: Optional[str] = None
    fileData: Optional[str] = Field(None, description="Base64 encoded upload")
    fileName: Optional[str] = None


class DeployOutcome(str, Enum):
    SUCCESS = "success"
    STATUS = "status"
    REJECTED_QUOTA = "rejected_quota"
    REJECTED_COOLDOWN = "rejected_cooldown"
    MISSING_FILE = "missing_file"
    UPLOAD_TOO_LARGE = "upload_too_large"
    STAGING_FAILED = "staging_failed"


class DeployResult(BaseModel):
    """Transport-independent result of handling one deploy request."""

    outcome: DeployOutcome
    remaining_quota: Optional[int] = None
    remaining_seconds: Optional[int] = None
    cooldown: Optional[bool] = None
    url: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome in (DeployOutcome.SUCCESS, DeployOutcome.STATUS)
