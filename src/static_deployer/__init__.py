"""Static Deployer - quota-gated staging of uploaded static sites."""

__version__ = "0.1.0"

from static_deployer.core.config import Settings
from static_deployer.core.models import QuotaState

__all__ = ["Settings", "QuotaState", "__version__"]
