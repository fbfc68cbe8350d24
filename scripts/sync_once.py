#!/usr/bin/env python3
"""CLI script to run sync cycles against the configured CRM API.

Usage:
    uv run python scripts/sync_once.py
    uv run python scripts/sync_once.py --status
    uv run python scripts/sync_once.py --clear
    uv run python scripts/sync_once.py --retry-failed <operation-id>

Reads API_BASE_URL, API_TOKEN, REDIS_URL, STORAGE_NAMESPACE and the SYNC_*
settings from the environment or .env file. Prints the sync result (or
status) as JSON.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys

# Ensure project root is on sys.path so we can import src.leadsync
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

# Load .env from project root
load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))


async def run(args: argparse.Namespace) -> int:
    """Wire real adapters, run the requested action, print JSON."""
    from src.leadsync.clients.http import HttpApiClient
    from src.leadsync.config import get_settings
    from src.leadsync.core.logging import configure_structlog
    from src.leadsync.storage.redis import close_redis, get_redis_store
    from src.leadsync.sync.connectivity import HttpConnectivityProbe
    from src.leadsync.sync.engine import SyncEngine

    settings = get_settings()
    configure_structlog(settings)

    api_client = HttpApiClient.from_settings(settings)
    engine = SyncEngine(
        api_client=api_client,
        storage=get_redis_store(args.namespace),
        options=settings.sync_options(),
        connectivity=HttpConnectivityProbe(settings.get_probe_url()),
    )

    try:
        if args.clear:
            await engine.clear_sync_data()
            output = (await engine.get_sync_status()).model_dump(mode="json")
        elif args.status:
            output = (await engine.get_sync_status()).model_dump(mode="json")
        elif args.retry_failed:
            found = await engine.retry_failed_operation(args.retry_failed)
            await engine.join()
            output = {"requeued": found}
        else:
            result = await engine.sync()
            output = result.model_dump(mode="json")
    finally:
        await engine.close()
        await api_client.aclose()
        await close_redis()

    print(json.dumps(output, indent=2))
    return 0 if output.get("success", True) else 1


def main() -> None:
    parser = argparse.ArgumentParser(description="Run a CRM sync cycle")
    parser.add_argument("--namespace", default=None, help="Storage namespace override")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--status", action="store_true", help="Print sync status only")
    group.add_argument("--clear", action="store_true", help="Clear queue and watermark")
    group.add_argument("--retry-failed", metavar="OPERATION_ID", help="Requeue a failed operation")

    args = parser.parse_args()
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
