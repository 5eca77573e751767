"""Upload staging and cleanup."""

from .cleanup import CleanupScheduler
from .pipeline import StagingPipeline, build_deploy_config, render_default_entry

__all__ = [
    "CleanupScheduler",
    "StagingPipeline",
    "build_deploy_config",
    "render_default_entry",
]
