"""
Secure Origin CLI
=================

    secure-origin sidecar     run the loopback authorization sidecar
    secure-origin rotate      run one rotation now
    secure-origin schedule    bootstrap, then rotate on the configured interval
    secure-origin generate    print a fresh secret

All settings come from SECURE_ORIGIN_* environment variables.
"""

import argparse
import asyncio
import sys
from typing import List, Optional, Tuple

import structlog

from .config import Settings
from .edge import HttpEdgeInjector
from .errors import SecureOriginError
from .gate import SidecarClient
from .logging import configure_logging
from .rotation import RotationCoordinator, RotationScheduler, generate_secret
from .sidecar import SidecarServer, build_sidecar_app
from .store import VaultSecretStore

logger = structlog.get_logger(__name__)


def _build_coordinator(settings: Settings) -> Tuple[RotationCoordinator, Optional[SidecarClient]]:
    store = VaultSecretStore.from_settings(settings)
    edge = HttpEdgeInjector.from_settings(settings)
    coordinator = RotationCoordinator(
        store,
        edge,
        settings.require_header_name(),
        grace_duration=settings.grace_duration,
        secret_length=settings.secret_length,
        # Remote sidecars only learn the pending value on their next refresh
        acceptance_delay=settings.refresh_interval,
    )
    sidecar = None
    if settings.caller_token:
        sidecar = SidecarClient.from_settings(settings)
        coordinator.add_invalidator(sidecar.invalidate)
    return coordinator, sidecar


async def _close(coordinator: RotationCoordinator, sidecar: Optional[SidecarClient]) -> None:
    try:
        await coordinator.edge.aclose()
    finally:
        if sidecar is not None:
            await sidecar.aclose()


async def _run_sidecar(settings: Settings) -> None:
    store = VaultSecretStore.from_settings(settings)
    app = build_sidecar_app(settings, store)
    await SidecarServer(app, settings.sidecar_host, settings.sidecar_port).serve()


async def _run_rotation(settings: Settings) -> None:
    coordinator, sidecar = _build_coordinator(settings)
    try:
        await coordinator.bootstrap()
        result = await coordinator.rotate()
    finally:
        await _close(coordinator, sidecar)
    logger.info("rotation_finished", version=result.version, resumed=result.resumed)


async def _run_schedule(settings: Settings) -> None:
    coordinator, sidecar = _build_coordinator(settings)
    scheduler = RotationScheduler(
        coordinator,
        interval=settings.rotation_interval,
        rotate_on_start=settings.rotate_on_start,
    )
    try:
        await scheduler.run()
    finally:
        await _close(coordinator, sidecar)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="secure-origin", description=__doc__.split("\n")[1])
    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("sidecar", help="Run the loopback authorization sidecar")
    commands.add_parser("rotate", help="Run one rotation now")
    commands.add_parser("schedule", help="Rotate on the configured interval")
    generate = commands.add_parser("generate", help="Print a fresh secret")
    generate.add_argument("--length", type=int, default=64)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "generate":
        print(generate_secret(args.length))
        return 0

    try:
        settings = Settings.from_env()
    except SecureOriginError as e:
        print(f"secure-origin: {e.message}", file=sys.stderr)
        return 2

    configure_logging(
        service_name=f"secure-origin-{args.command}",
        level=settings.log_level,
        json_output=settings.log_json,
    )

    runners = {
        "sidecar": _run_sidecar,
        "rotate": _run_rotation,
        "schedule": _run_schedule,
    }
    try:
        asyncio.run(runners[args.command](settings))
    except KeyboardInterrupt:
        return 130
    except SecureOriginError as e:
        logger.error("command_failed", command=args.command, reason=e.reason, error=e.message)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
