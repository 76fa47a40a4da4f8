"""
app.py

Responsibility: Process entry point. Parses flags, resolves settings,
configures logging, loads cluster credentials, then runs the sync loop in a
background task until SIGINT/SIGTERM, waiting for the in-flight tick to
finish before exiting.
Does NOT: contain DNS diffing, Kubernetes queries, or config merging logic.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from collections.abc import Sequence
from importlib.metadata import PackageNotFoundError, version

import httpx

from config import Settings, build_arg_parser, load_settings
from dependencies import create_kubernetes_service, create_scheduler
from exceptions import ConfigLoadError, KubernetesError
from logger import configure_logging
from services.kubernetes_service import KubernetesService

logger = logging.getLogger(__name__)

APP_NAME = "kube-dns-sync"


def get_version() -> str:
    try:
        return version(APP_NAME)
    except PackageNotFoundError:
        return "dev"


# ---------------------------------------------------------------------------
# Async runtime
# ---------------------------------------------------------------------------


async def run(settings: Settings, kubernetes_service: KubernetesService, once: bool = False) -> bool:
    """
    Runs the sync loop until a termination signal arrives.

    The loop runs as a background task; this coroutine waits for SIGINT or
    SIGTERM, sets the shared stop event, then waits for the loop's
    completion event so no tick is abandoned halfway.

    Args:
        settings: Resolved settings.
        kubernetes_service: Connected cluster client.
        once: Run a single tick and return instead of looping.

    Returns:
        False if a single tick (once=True) had a failing target, or if the
        loop stopped without a termination signal; True otherwise.
    """
    async with httpx.AsyncClient() as http_client:
        scheduler = create_scheduler(settings, kubernetes_service, http_client)

        if once:
            results = await scheduler.run_once()
            return all(results.values())

        stop_event = asyncio.Event()
        finished_event = asyncio.Event()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_event.set)

        task = asyncio.create_task(scheduler.run(stop_event, finished_event))
        stop_waiter = asyncio.create_task(stop_event.wait())
        try:
            # The loop task only ends on its own if it crashed.
            await asyncio.wait({task, stop_waiter}, return_when=asyncio.FIRST_COMPLETED)
            if stop_event.is_set():
                logger.info("Termination signal received — finishing current sync pass.")
                await finished_event.wait()

            try:
                await task
            except Exception:
                logger.exception("Sync loop terminated unexpectedly.")
                return False
            if not stop_event.is_set():
                logger.error("Sync loop exited without a termination signal.")
                return False
            return True
        finally:
            stop_waiter.cancel()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def main(argv: Sequence[str] | None = None) -> int:
    """
    Runs the application and returns the process exit code.

    Returns:
        0 on orderly shutdown or --version, 1 on fatal startup errors, when
        a --once pass had a failing target, or when the loop crashed.
    """
    args = vars(build_arg_parser().parse_args(argv))

    if args.get("version"):
        print(f"{APP_NAME} {get_version()}")
        return 0

    # Plain logfmt/JSON output until the configured format is known.
    configure_logging()

    try:
        settings = load_settings(args)
    except ConfigLoadError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 1

    try:
        configure_logging(settings.log_format, settings.log_level)
    except ValueError as exc:
        logger.error("%s", exc)
        return 1

    try:
        kubernetes_service = create_kubernetes_service(settings)
    except KubernetesError as exc:
        logger.error("Failed to create Kubernetes client: %s", exc)
        return 1

    logger.info(
        "%s %s started — provider=%s targets=%s interval=%ss config=%s",
        APP_NAME,
        get_version(),
        settings.provider,
        ",".join(t.hostname for t in settings.targets),
        f"{settings.interval:g}",
        settings.config_path or "-",
    )

    ok = asyncio.run(run(settings, kubernetes_service, once=bool(args.get("once"))))
    logger.info("Exiting.")
    return 0 if ok else 1


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
