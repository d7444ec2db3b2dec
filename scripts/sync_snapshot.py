#!/usr/bin/env python3
"""
Fetch a remote collection once and print the mirrored snapshot.

Handy for checking what the Mirror service would see at startup without
running the service: the same sync engine, retry policy and decoder are
used, and transport failures are reported the same way.
"""

import argparse
import asyncio
import json
import os
from pathlib import Path
from typing import Dict, List, Optional

from shared.config import get_config
from shared.errors import ErrorRecord
from shared.logging import configure_logging
from service_mirror.app.adapters.http_client import CrudTransport
from service_mirror.app.models import encode_item
from service_mirror.app.sync.engine import SyncEngine


async def sync_once(
    *,
    remote_url: str,
    endpoint: str,
    params: Dict[str, str],
    append: bool,
    transport: Optional[CrudTransport] = None,
) -> dict:
    """Run one fetch_all and return a summary with the snapshot."""
    config = get_config("mirror-cli", 0, remote_base_url=remote_url, remote_endpoint=endpoint)
    failures: List[ErrorRecord] = []

    engine = SyncEngine.from_config(config, transport=transport, diagnostic_sink=failures.append)
    try:
        engine.fetch_all(params or None, append=append)
        await engine.drain()
    finally:
        await engine.aclose()

    snapshot = engine.current()
    return {
        "remote_url": remote_url,
        "endpoint": engine.endpoint,
        "count": len(snapshot),
        "items": [encode_item(item) for item in snapshot],
        "failures": [record.to_dict() for record in failures],
    }


def _parse_param(raw: str) -> tuple:
    if "=" not in raw:
        raise argparse.ArgumentTypeError(f"expected key=value, got {raw!r}")
    key, value = raw.split("=", 1)
    return key, value


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Fetch a remote collection and print the snapshot.")
    parser.add_argument("--remote-url", default=os.getenv("MIRROR_REMOTE_BASE_URL", "http://localhost:8080"), help="Backend base URL")
    parser.add_argument("--endpoint", default=os.getenv("MIRROR_REMOTE_ENDPOINT", "/items"), help="Collection path on the backend")
    parser.add_argument("--param", action="append", type=_parse_param, default=[], help="Extra query parameter as key=value (repeatable)")
    parser.add_argument("--append", action="store_true", help="Merge into the snapshot instead of replacing it")
    parser.add_argument("--log-level", default=os.getenv("MIRROR_LOG_LEVEL", "warning"), help="Log level")
    parser.add_argument("--output", type=Path, default=None, help="Optional path to write the JSON summary")
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    configure_logging("mirror-cli", args.log_level)

    summary = asyncio.run(sync_once(
        remote_url=args.remote_url,
        endpoint=args.endpoint,
        params=dict(args.param),
        append=args.append,
    ))

    rendered = json.dumps(summary, indent=2, default=str)
    output: Optional[Path] = args.output
    if output:
        output.write_text(rendered + "\n")
    print(rendered)
    return 1 if summary["failures"] else 0


if __name__ == "__main__":
    raise SystemExit(main())
