"""CLI entry point for the dostr bridge.

Runs the bridge until SIGINT/SIGTERM. The single required flag selects the
network path for every relay connection and upstream fetch. Required
settings come from the environment; optional tuning from a YAML file.

Examples:
    ```bash
    dostr --clearnet
    dostr --tor --config config/dostr.yaml --log-level DEBUG
    python -m dostr --clearnet
    ```
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Any

from dostr.core.exceptions import ConfigurationError, RegistryError
from dostr.core.logger import Logger, StructuredFormatter
from dostr.core.metrics import MetricsServer
from dostr.core.yaml import load_yaml
from dostr.models.constants import TransportKind
from dostr.services.bridge import Bridge, BridgeConfig


DEFAULT_CONFIG = Path("config") / "dostr.yaml"

logger = Logger("cli")


async def run_bridge(bridge: Bridge) -> int:
    """Run *bridge* with a metrics server until a shutdown signal arrives.

    Returns:
        Exit code: 0 for a clean shutdown, 1 for failure.
    """
    metrics_config = bridge.config.metrics
    metrics_server = MetricsServer(metrics_config)
    await metrics_server.start()

    if metrics_config.enabled:
        logger.info(
            "metrics_server_started",
            host=metrics_config.host,
            port=metrics_config.port,
            path=metrics_config.path,
        )

    def handle_signal(sig: signal.Signals) -> None:
        logger.info("shutdown_signal", signal=sig.name)
        bridge.request_shutdown()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal, sig)

    try:
        async with bridge:
            await bridge.run_forever()
        return 0
    except Exception as e:  # Intentionally broad: CLI error boundary
        logger.error("bridge_failed", error=str(e))
        return 1
    finally:
        await metrics_server.stop()
        if metrics_config.enabled:
            logger.info("metrics_server_stopped")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments; exits with status 2 on a usage error."""
    parser = argparse.ArgumentParser(
        prog="dostr",
        description="Bridge chat channels and feeds to Nostr relays",
    )

    network = parser.add_mutually_exclusive_group(required=True)
    network.add_argument(
        "--clearnet",
        dest="transport",
        action="store_const",
        const=TransportKind.DIRECT,
        help="Connect to relays and sources directly",
    )
    network.add_argument(
        "--tor",
        dest="transport",
        action="store_const",
        const=TransportKind.PROXIED,
        help="Route all traffic through the local Tor SOCKS5 proxy",
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG,
        help=f"Optional YAML with tuning settings (default: {DEFAULT_CONFIG})",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Log level (default: INFO)",
    )

    return parser.parse_args(argv)


def setup_logging(level: str) -> None:
    """Install a ``StructuredFormatter`` on the root handler.

    Unifies ``Logger`` output from the services with the plain
    ``logging.getLogger()`` records of the transport and adapters.
    """
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level))


def _load_yaml_dict(path: Path) -> dict[str, Any]:
    """Load a YAML file as a dict, returning ``{}`` if the file does not exist."""
    if not path.exists():
        logger.debug("config_not_found", path=str(path))
        return {}
    return load_yaml(str(path))


def load_config(path: Path) -> BridgeConfig:
    """Build the bridge configuration from the environment and *path*.

    Raises:
        ConfigurationError: If a required variable is missing, any setting
            is invalid, or *path* exists but cannot be read.
    """
    try:
        overrides = _load_yaml_dict(path)
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"cannot read {path}: {e}") from e
    return BridgeConfig.from_env(overrides=overrides)


async def main(argv: list[str] | None = None) -> int:
    """Main entry point: parse args, load configuration, run the bridge."""
    args = parse_args(argv)
    setup_logging(args.log_level)

    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        logger.error("configuration_error", error=str(e))
        return 1

    try:
        bridge = Bridge.create(config, args.transport)
    except (RegistryError, OSError) as e:
        logger.error("registry_error", error=str(e))
        return 1

    logger.info(
        "bridge_starting",
        transport=args.transport,
        relays=len(config.relays),
        sources=bridge.registry.count(),
    )
    try:
        return await run_bridge(bridge)
    except KeyboardInterrupt:
        logger.info("interrupted")
        return 130


def cli() -> None:
    """Synchronous entry point for console_scripts."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
