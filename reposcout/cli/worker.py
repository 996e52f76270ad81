"""Queue worker process for the discovery pipeline.

Runs queue consumers outside the API server so search and analysis scale
independently of request handling.  Any number of workers can share the
same SQLite store and queue files; each delivery is processed by one
worker at a time, and unacknowledged deliveries reappear after the
visibility timeout.

Usage::

    python -m reposcout.cli.worker                   # run until SIGINT/SIGTERM
    python -m reposcout.cli.worker --once            # sweep + drain one batch, exit
    python -m reposcout.cli.worker --batch-size 20 --concurrency 8
    python -m reposcout.cli.worker --sweep-interval 0   # disable the stale sweep

Logs go to stderr.  ``--once`` prints a one-line summary to stdout.
"""

from __future__ import annotations

import argparse
import asyncio
import copy
import signal
import sys
from typing import Any

from reposcout.utils.errors import RepoScoutError
from reposcout.utils.logging import get_logger

_DEFAULT_SWEEP_INTERVAL = 60.0


async def _sweep_loop(
    dispatcher: Any,
    stop_event: asyncio.Event,
    interval: float,
    older_than_seconds: float,
) -> None:
    """Re-enqueue stale pending tasks every *interval* seconds until stopped."""
    logger = get_logger(__name__)
    while not stop_event.is_set():
        try:
            await dispatcher.sweep_stale(older_than_seconds)
        except RepoScoutError as exc:
            logger.error("sweep_failed", error=str(exc), error_type=type(exc).__name__)
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops; Ctrl+C still raises KeyboardInterrupt.
            pass


async def _run(args: argparse.Namespace) -> int:
    """Build the pipeline, then drain once or loop until signalled."""
    # Deferred import: reposcout.main loads settings and builds the app.
    from reposcout.main import build_pipeline, config
    from reposcout.main import settings as app_settings
    from reposcout.utils.logging import configure_logging

    configure_logging(
        log_level=app_settings.log_level,
        json_output=(app_settings.app_env == "production"),
        stream=sys.stderr,
    )
    logger = get_logger(__name__)

    worker_config: dict[str, Any] = copy.deepcopy(config)
    if args.batch_size is not None:
        worker_config["queue"]["batch_size"] = args.batch_size
    if args.concurrency is not None:
        worker_config["queue"]["consumer_concurrency"] = args.concurrency

    components = build_pipeline(custom_config=worker_config)
    await components["store"].initialize()
    await components["queue"].initialize()

    consumer = components["consumer"]
    dispatcher = components["dispatcher"]
    queue_cfg = worker_config["queue"]
    stale_after = float(queue_cfg["stale_task_seconds"])

    try:
        if args.once:
            swept = await dispatcher.sweep_stale(stale_after) if args.sweep_interval > 0 else 0
            received = await consumer.drain_once()
            print(f"swept={swept} received={received}")
            return 0

        stop_event = asyncio.Event()
        _install_signal_handlers(stop_event)
        logger.info(
            "worker_started",
            batch_size=queue_cfg["batch_size"],
            consumer_concurrency=queue_cfg["consumer_concurrency"],
            sweep_interval=args.sweep_interval,
        )

        tasks = [
            asyncio.create_task(
                consumer.run(stop_event, poll_interval=float(queue_cfg["poll_interval"]))
            )
        ]
        if args.sweep_interval > 0:
            tasks.append(
                asyncio.create_task(
                    _sweep_loop(dispatcher, stop_event, args.sweep_interval, stale_after)
                )
            )
        await asyncio.gather(*tasks)
        logger.info("worker_stopped")
        return 0
    finally:
        await components["http_client"].aclose()


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the worker CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m reposcout.cli.worker",
        description=(
            "Consume search tasks from the RepoScout work queue: search GitHub, "
            "score candidates, and report completion to their sessions."
        ),
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Sweep stale tasks, process a single batch, and exit.",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Messages received per batch (default: queue.batch_size).",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Deliveries processed concurrently (default: queue.consumer_concurrency).",
    )
    parser.add_argument(
        "--sweep-interval",
        type=float,
        default=_DEFAULT_SWEEP_INTERVAL,
        help="Seconds between stale-task sweeps; 0 disables sweeping.",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the worker."""
    args = _build_parser().parse_args(argv)
    try:
        exit_code = asyncio.run(_run(args))
    except KeyboardInterrupt:
        exit_code = 130
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
