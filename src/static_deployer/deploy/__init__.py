"""Deploy orchestration and publishing."""

from .models import DeployOutcome, DeployRequest, DeployResult
from .orchestrator import DeployOrchestrator
from .publisher import Publisher, StubPublisher

__all__ = [
    "DeployOrchestrator",
    "DeployOutcome",
    "DeployRequest",
    "DeployResult",
    "Publisher",
    "StubPublisher",
]
