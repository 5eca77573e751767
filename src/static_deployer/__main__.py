"""CLI entrypoints (serve, quota, reset-quota)."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
import time
from pathlib import Path

from static_deployer.core.config import Settings
from static_deployer.core.exceptions import PersistenceError
from static_deployer.core.models import QuotaState
from static_deployer.quota.admission import AdmissionController
from static_deployer.quota.store import JsonFileCounterStore


def _quota_report(settings: Settings, state: QuotaState, now: int) -> dict:
    controller = AdmissionController(
        max_quota=settings.max_quota,
        cooldown_seconds=settings.cooldown_seconds,
        window_seconds=settings.quota_window_seconds,
    )
    decision = controller.evaluate(state, now, status_only=True)
    return {
        "quotaUsed": state.quotaUsed,
        "lastDeployTimestamp": state.lastDeployTimestamp,
        "remainingQuota": decision.remaining_quota,
        "cooldown": decision.cooldown,
        "remainingSeconds": decision.remaining_seconds,
    }


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="static-deployer", description="Static site deployer")
    parser.add_argument("--quota-file", help="Override the quota file location")
    sub = parser.add_subparsers(dest="cmd")

    sub.add_parser("serve", help="Run the HTTP server")
    sub.add_parser("quota", help="Show persisted quota and cooldown status")
    sub.add_parser("reset-quota", help="Clear the persisted quota counters")

    args = parser.parse_args(argv)

    if args.cmd in (None, "serve"):
        from static_deployer.main import run
        run()
        return 0

    settings = Settings()
    store = JsonFileCounterStore(Path(args.quota_file or settings.quota_file))

    try:
        if args.cmd == "quota":
            state = asyncio.run(store.load())
            print(json.dumps(_quota_report(settings, state, int(time.time())), indent=2))
            return 0

        if args.cmd == "reset-quota":
            asyncio.run(store.commit(QuotaState()))
            print(f"Quota reset in {store.path}")
            return 0
    except PersistenceError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
