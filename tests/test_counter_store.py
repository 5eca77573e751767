import json
from pathlib import Path

import pytest

from static_deployer.core.exceptions import StateLoadError, StateSaveError
from static_deployer.core.models import QuotaState
from static_deployer.quota.store import InMemoryCounterStore, JsonFileCounterStore


@pytest.mark.asyncio
async def test_missing_file_loads_defaults(tmp_path: Path):
    store = JsonFileCounterStore(tmp_path / "quota.json")
    state = await store.load()
    assert state == QuotaState(quotaUsed=0, lastDeployTimestamp=0)
    assert not (tmp_path / "quota.json").exists()


@pytest.mark.asyncio
async def test_commit_writes_record_layout(tmp_path: Path):
    path = tmp_path / "nested" / "quota.json"
    store = JsonFileCounterStore(path)

    await store.commit(QuotaState(quotaUsed=1, lastDeployTimestamp=1000))

    assert json.loads(path.read_text()) == {"quotaUsed": 1, "lastDeployTimestamp": 1000}
    assert not path.with_suffix(".json.tmp").exists()
    assert await store.load() == QuotaState(quotaUsed=1, lastDeployTimestamp=1000)


@pytest.mark.asyncio
async def test_loads_legacy_timestamp_key(tmp_path: Path):
    path = tmp_path / "quota.json"
    path.write_text(json.dumps({"quotaUsed": 7, "lastDeployTime": 1700000000}))

    state = await JsonFileCounterStore(path).load()

    assert state.quotaUsed == 7
    assert state.lastDeployTimestamp == 1700000000


@pytest.mark.asyncio
async def test_missing_fields_default_to_zero(tmp_path: Path):
    path = tmp_path / "quota.json"
    path.write_text("{}")
    assert await JsonFileCounterStore(path).load() == QuotaState()


@pytest.mark.asyncio
@pytest.mark.parametrize("content", ["not json", "[1, 2]", '{"quotaUsed": -1}', '{"quotaUsed": "many"}'])
async def test_unreadable_record_raises(tmp_path: Path, content: str):
    path = tmp_path / "quota.json"
    path.write_text(content)
    with pytest.raises(StateLoadError):
        await JsonFileCounterStore(path).load()


@pytest.mark.asyncio
async def test_commit_failure_raises(tmp_path: Path):
    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory")
    store = JsonFileCounterStore(blocker / "quota.json")

    with pytest.raises(StateSaveError):
        await store.commit(QuotaState(quotaUsed=1, lastDeployTimestamp=1))


@pytest.mark.asyncio
async def test_in_memory_store_records_commits():
    store = InMemoryCounterStore(QuotaState(quotaUsed=2, lastDeployTimestamp=5))
    assert await store.load() == QuotaState(quotaUsed=2, lastDeployTimestamp=5)

    await store.commit(QuotaState(quotaUsed=3, lastDeployTimestamp=9))

    assert store.state == QuotaState(quotaUsed=3, lastDeployTimestamp=9)
    assert store.commits == [QuotaState(quotaUsed=3, lastDeployTimestamp=9)]
