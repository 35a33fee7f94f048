"""Main entry point for the TADA agent."""

from __future__ import annotations

import argparse
import asyncio
import functools
import signal
import sys
from collections.abc import Sequence

from aiohttp import web

from tada import __version__
from tada.config import Settings, get_settings
from tada.docker.client import DockerClient
from tada.install import DEFAULT_UNIT_DIR, InstallError, ServiceSpec, install_service
from tada.logging import get_logger, setup_logging
from tada.schema import Config
from tada.server import create_app
from tada.store import ConfigError, ConfigStore


DOCKER_PING_TIMEOUT = 5.0


async def reinit_docker(config: Config, timeout: float = DOCKER_PING_TIMEOUT) -> None:
    """Re-check the Docker socket whenever a config snapshot is published.

    The check is bounded by *timeout* so a hung daemon cannot hold up startup
    or a reload; Docker requests themselves still run without a timeout.
    """
    if config.docker is None:
        return
    sock = config.docker.sock
    try:
        await asyncio.wait_for(DockerClient(sock).ping(), timeout)
    except TimeoutError:
        get_logger("tada.main").warning("docker_ping_timed_out", sock=sock, timeout=timeout)


async def serve(config_path: str, host: str, port: int, settings: Settings) -> None:
    """Load config, start the HTTP server, and run until SIGINT/SIGTERM."""
    log = get_logger("tada.main")

    store = ConfigStore(
        config_path,
        on_change=functools.partial(reinit_docker, timeout=settings.docker_ping_timeout),
        poll_interval=settings.poll_interval,
        debounce_seconds=settings.debounce_seconds,
    )
    await store.start()

    runner = web.AppRunner(create_app(store))
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    log.info("tada_started", version=__version__, url=f"http://{host}:{port}", config=config_path)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    try:
        await stop.wait()
        log.info("shutdown_requested")
    finally:
        await runner.cleanup()
        await store.stop()
        log.info("tada_stopped")


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tada", description="TADA! a tiny deploy agent")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config", default=settings.config_path, help="Config file (TOML or JSON)"
    )
    parser.add_argument("--host", default=settings.host, help="Bind address")
    parser.add_argument("--port", type=int, default=settings.port, help="HTTP port")
    parser.add_argument("--log-level", default=None, help="Override TADA_LOG_LEVEL")

    sub = parser.add_subparsers(dest="command")
    install = sub.add_parser("install-service", help="Install a systemd unit for the agent")
    install.add_argument("--name", default="tada", help="Service name (default: tada)")
    install.add_argument("--port", dest="service_port", type=int, default=4000)
    install.add_argument("--user", default="", help="User to run as (default: $USER)")
    install.add_argument("--config", dest="service_config", default="", help="Config file path")
    install.add_argument("--unit-dir", default=DEFAULT_UNIT_DIR, help="systemd unit directory")
    install.add_argument("--skip-start", action="store_true", help="Enable but do not start")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    settings = get_settings()
    args = build_parser(settings).parse_args(argv)
    setup_logging(args.log_level)
    log = get_logger("tada.main")

    if args.command == "install-service":
        spec = ServiceSpec(
            name=args.name,
            port=args.service_port,
            user=args.user,
            config_path=args.service_config,
        )
        try:
            unit_path = install_service(spec, unit_dir=args.unit_dir, start=not args.skip_start)
        except InstallError as exc:
            log.error("service_install_failed", error=str(exc))
            return 1
        log.info("service_installed", unit=str(unit_path), service=spec.name)
        return 0

    try:
        asyncio.run(serve(args.config, args.host, args.port, settings))
    except ConfigError as exc:
        log.error("config_load_failed", error=str(exc))
        return 1
    except KeyboardInterrupt:
        log.info("shutdown_requested")
    return 0


def run() -> None:
    """Run the application."""
    sys.exit(main())


if __name__ == "__main__":
    run()
