"""Durable storage for the quota counters."""

from __future__ import annotations

import json
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List

import aiofiles
import aiofiles.os
import structlog
from pydantic import ValidationError

from static_deployer.core.exceptions import StateLoadError, StateSaveError
from static_deployer.core.models import QuotaState

logger = structlog.get_logger()


class CounterStore(ABC):
    """Key-value blob store holding a single ``QuotaState`` record."""

    @abstractmethod
    async def load(self) -> QuotaState:
        """Load the persisted state, or defaults if nothing was saved yet.

        Raises:
            StateLoadError: If a record exists but cannot be read
        """

    @abstractmethod
    async def commit(self, state: QuotaState) -> None:
        """Persist ``state``, replacing the previous record.

        Raises:
            StateSaveError: If the record cannot be written
        """


class InMemoryCounterStore(CounterStore):
    """Non-durable store, keeps every committed state for inspection."""

    def __init__(self, initial: QuotaState | None = None):
        self.state = initial or QuotaState()
        self.commits: List[QuotaState] = []

    async def load(self) -> QuotaState:
        return self.state

    async def commit(self, state: QuotaState) -> None:
        self.state = state
        self.commits.append(state)


class JsonFileCounterStore(CounterStore):
    """Stores the counters as ``{"quotaUsed": .., "lastDeployTimestamp": ..}``."""

    # Key written by earlier releases of the deployer.
    LEGACY_TIMESTAMP_KEY = "lastDeployTime"

    def __init__(self, path: Path):
        self.path = Path(path)

    async def load(self) -> QuotaState:
        if not self.path.exists():
            logger.info("No quota file, starting with empty counters", path=str(self.path))
            return QuotaState()

        try:
            async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                raw = await f.read()
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("quota record must be a JSON object")
            if "lastDeployTimestamp" not in data and self.LEGACY_TIMESTAMP_KEY in data:
                data["lastDeployTimestamp"] = data[self.LEGACY_TIMESTAMP_KEY]
            state = QuotaState(
                quotaUsed=data.get("quotaUsed") or 0,
                lastDeployTimestamp=data.get("lastDeployTimestamp") or 0,
            )
        except (OSError, ValueError, ValidationError) as e:
            raise StateLoadError(f"Failed to load quota state from {self.path}: {e}") from e

        logger.info(
            "Quota state loaded",
            path=str(self.path),
            quota_used=state.quotaUsed,
            last_deploy=state.lastDeployTimestamp,
        )
        return state

    async def commit(self, state: QuotaState) -> None:
        tmp_file = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(tmp_file, "w", encoding="utf-8") as f:
                await f.write(json.dumps(state.model_dump()))
            await aiofiles.os.replace(tmp_file, self.path)
        except OSError as e:
            try:
                os.remove(tmp_file)
            except OSError:
                pass
            raise StateSaveError(f"Failed to save quota state to {self.path}: {e}") from e

        logger.debug(
            "Quota state saved",
            path=str(self.path),
            quota_used=state.quotaUsed,
            last_deploy=state.lastDeployTimestamp,
        )
