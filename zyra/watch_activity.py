"""Follow a user's activity stream from the terminal.

Run: python zyra/watch_activity.py --token <api-key> [--base-url http://localhost:8000]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

_zyra_dir = str(Path(__file__).resolve().parent)
if _zyra_dir not in sys.path:  # pragma: no cover
    sys.path.insert(0, _zyra_dir)

from config import settings
from logging_config import setup_logging
from schemas.activity import ActivityEvent, ConnectionState, ConnectionStatus
from services.activity_stream import ActivityStreamClient, ReconnectPolicy

logger = logging.getLogger("watch_activity")


def format_event(event: ActivityEvent) -> str:
    line = f"[{event.phase:<7}] {event.status:<8} {event.message}"
    if isinstance(event.progress, (int, float)):
        line += f" ({event.progress:g}%)"
    if event.detail:
        line += f" | {event.detail}"
    return line


async def watch(base_url: str, token: str, policy: ReconnectPolicy) -> int:
    """Stream until the client gives up. Returns a process exit code."""
    failed = asyncio.Event()

    def _on_event(event: ActivityEvent) -> None:
        logger.info("%s", format_event(event))

    def _on_state(state: ConnectionState) -> None:
        logger.info("Connection %s (retry %d)", state.status.value, state.retry_count)
        if state.status == ConnectionStatus.FAILED:
            failed.set()

    async with ActivityStreamClient(
        base_url,
        token,
        policy=policy,
        on_event=_on_event,
        on_state_change=_on_state,
    ):
        await failed.wait()

    logger.error("Unable to connect to activity stream at %s", base_url)
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Follow the ZYRA activity stream")
    parser.add_argument("--base-url", default=settings.PLATFORM_BASE_URL)
    parser.add_argument("--token", default=os.environ.get("ZYRA_API_KEY", ""))
    parser.add_argument(
        "--doubling",
        action="store_true",
        help="Use 2x backoff with 5 attempts instead of the configured policy",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if not args.token:
        print("An API key is required (--token or ZYRA_API_KEY)", file=sys.stderr)
        return 2

    setup_logging("Watch")
    policy = ReconnectPolicy.doubling() if args.doubling else ReconnectPolicy.from_settings()
    try:
        return asyncio.run(watch(args.base_url, args.token, policy))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
