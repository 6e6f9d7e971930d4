# src/atlas_os/cli/main.py

"""
CLI entrypoint.

    atlas-os                      HTTP server (+ background sweeper)
    atlas-os sweep                one background sweep, JSON summary on stdout
    atlas-os seed-agents FILE     bulk-import agents from a JSON file
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import signal
import sys

import uvicorn

from ..agents.bulk import import_agents, load_agent_file
from ..api.app import create_app
from ..config import get_settings
from ..logging_setup import setup_logging
from ..tasks.processor import TaskProcessor
from ..tasks.task_scheduler import run_task_scheduler
from .bootstrap import create_initial_state

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="atlas-os", description="Atlas OS backend")
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("serve", help="run the HTTP server (default)")
    sub.add_parser("sweep", help="run one background sweep and exit")
    seed = sub.add_parser("seed-agents", help="bulk-import agents from a JSON file")
    seed.add_argument("file")
    return parser


async def _serve(state) -> None:
    settings = state.settings
    config = uvicorn.Config(
        create_app(state),
        host=settings.http_host,
        port=settings.http_port,
        log_config=None,
    )
    server = uvicorn.Server(config)

    sweeper: asyncio.Task | None = None
    if settings.scheduler_enabled:
        processor = TaskProcessor.from_settings(settings, state.tasks, state.notifications, state.llm)
        sweeper = asyncio.create_task(
            run_task_scheduler(processor, interval_seconds=settings.sweep_interval_seconds)
        )
        logger.info("Background sweeper started (every %.0fs)", settings.sweep_interval_seconds)

    loop = asyncio.get_running_loop()

    def _handle_signal(signum) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        server.should_exit = True

    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            # not available on every platform
            loop.add_signal_handler(sig, _handle_signal, sig)

    try:
        await server.serve()
    finally:
        if sweeper is not None:
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.data_dir, console_level=console_level)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    logger.info("Starting %s (%s)...", settings.app_name, args.command or "serve")
    state = create_initial_state(settings=settings)

    if args.command == "sweep":
        processor = TaskProcessor.from_settings(settings, state.tasks, state.notifications, state.llm)
        print(json.dumps(processor.background_sweep().to_dict(), ensure_ascii=False, indent=2))
        return 0

    if args.command == "seed-agents":
        try:
            records = load_agent_file(args.file)
        except (OSError, ValueError) as e:
            logger.error("Cannot read %s: %s", args.file, e)
            return 1
        report = import_agents(state.agents, records)
        print(json.dumps(report.to_dict(), ensure_ascii=False, indent=2))
        return 0 if report.imported or not records else 1

    asyncio.run(_serve(state))
    logger.info("Bye.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
