# src/mongo_queue/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds the storage, then runs one command:
- enqueue KEY [--data JSON]  add a task for a key this process can run, and run it while waiting
- stop-all                   mark every unfinished task as stopped
- serve                      requeue interrupted tasks, then keep executing until SIGINT/SIGTERM

Only keys with a registered action are accepted; tasks for other keys belong to the
worker that serves them.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import signal
import sys

from ..config import get_settings
from ..logging_setup import level_from_name, setup_logging
from .bootstrap import AppState, close_app_state, create_app_state

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mongo-queue", description="MongoDB backed task queue.")
    sub = parser.add_subparsers(dest="command", required=True)

    p_enqueue = sub.add_parser("enqueue", help="Enqueue a new task.")
    p_enqueue.add_argument("key", help="Task key.")
    p_enqueue.add_argument("--data", default=None, help="JSON object with the task data.")
    p_enqueue.add_argument(
        "--wait",
        type=float,
        default=1.0,
        help="Seconds to keep running so the first attempt can finish (default: 1).",
    )

    sub.add_parser("stop-all", help="Mark every unfinished task as stopped.")
    sub.add_parser("serve", help="Requeue, then keep executing tasks until interrupted.")
    return parser


def parse_data(raw: str | None) -> dict | None:
    if raw is None:
        return None
    value = json.loads(raw)
    if not isinstance(value, dict):
        raise ValueError("--data must be a JSON object")
    return value


async def _serve(state: AppState) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Some platforms (Windows) do not support signal handlers in the loop.
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    contexts = await state.queue.start()
    logger.info("Serving; %d tasks requeued. Press Ctrl+C to stop.", len(contexts))
    await stop.wait()
    logger.info("Signal received, shutting down...")


async def run(args: argparse.Namespace, state: AppState | None = None) -> int:
    if state is None:
        state = create_app_state(settings=get_settings())
    try:
        if args.command == "enqueue":
            ctx = await state.queue.enqueue(args.key, parse_data(args.data))
            print(ctx.id)
            await asyncio.sleep(max(0.0, args.wait))
        elif args.command == "stop-all":
            modified = await state.storage.stop_all_enqueued_tasks()
            print(modified)
        elif args.command == "serve":
            await _serve(state)
    finally:
        await close_app_state(state)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(console_level=level_from_name(settings.log_level), log_file=settings.log_file)

    try:
        return asyncio.run(run(args))
    except KeyError as exc:
        logger.error("%s", exc.args[0] if exc.args else exc)
        return 2
    except ValueError as exc:
        logger.error("%s", exc)
        return 2


if __name__ == "__main__":
    sys.exit(main())
