"""Publishing backends for staged sites."""

from __future__ import annotations

from typing import Protocol

import structlog

from static_deployer.core.models import StagedSite

logger = structlog.get_logger()


class Publisher(Protocol):
    async def publish(self, site: StagedSite) -> str:
        """Publish ``site`` and return its public URL."""
        ...


class StubPublisher:
    """Pretends to publish; the URL is derived from the deployment name.

    A real backend would upload ``site.path`` to the hosting provider's
    deployment API here.
    """

    def __init__(self, domain: str = "vercel.app"):
        self.domain = domain

    def url_for(self, name: str) -> str:
        return f"https://{name}.{self.domain}"

    async def publish(self, site: StagedSite) -> str:
        url = self.url_for(site.name)
        logger.info("Simulated publish", name=site.name, url=url, files=len(site.files))
        return url
