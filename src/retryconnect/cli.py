"""CLI interface for retryconnect"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import click
import yaml
from pydantic import ValidationError

from retryconnect.domain.config import RetryConfig
from retryconnect.infrastructure.config.config_manager import (
    ConfigManager,
    ConfigurationError,
    format_validation_error,
)
from retryconnect.infrastructure.interceptor import wrap_connect
from retryconnect.infrastructure.registry import ProviderRegistry, static_provider
from retryconnect.infrastructure.tcp import TARGET as TCP_TARGET
from retryconnect.infrastructure.tcp import open_tcp_connection

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration"""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )
    logging.getLogger().setLevel(level)


def _die(message: str, verbose: bool = False, exc: Optional[Exception] = None) -> None:
    """Exit with a user-friendly error message"""
    if exc is not None:
        logger.error(message, exc_info=verbose)
    else:
        logger.error(message)
    raise click.ClickException(message)


def _load_config_manager(ctx: click.Context) -> ConfigManager:
    verbose = ctx.obj.get("verbose", False)
    try:
        return ConfigManager(config_path=ctx.obj.get("config_path"))
    except ConfigurationError as e:
        _die(str(e), verbose=verbose, exc=e)


def build_retry_config(base: RetryConfig, overrides: Dict[str, Any]) -> RetryConfig:
    """Apply CLI overrides to a retry configuration

    Args:
        base: Configuration loaded from file and environment
        overrides: Option values; None means "not given"

    Returns:
        Validated retry configuration

    Raises:
        ConfigurationError: If the combined values are invalid
    """
    values = base.model_dump()
    values.update({key: value for key, value in overrides.items() if value is not None})
    try:
        return RetryConfig(**values)
    except ValidationError as e:
        raise ConfigurationError(
            "Invalid retry options:\n" + format_validation_error(e)
        ) from e


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.option(
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Path to .retry-connect.yml config file",
)
@click.pass_context
def cli(ctx, verbose: bool, config: Path):
    """retryconnect - retry connects with exponential backoff"""
    ctx.ensure_object(dict)
    setup_logging(verbose)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose


@cli.command()
@click.argument("host", type=str)
@click.argument("port", type=click.IntRange(1, 65535))
@click.option("--timeout", type=float, default=5.0, show_default=True, help="Timeout per attempt in seconds")
@click.option("--total-delay", type=float, help="Total seconds to spend retrying. Overrides config.")
@click.option("--start-delay", type=float, help="Delay before the first retry. Overrides config.")
@click.option("--max-delay", type=float, help="Cap on a single delay. Overrides config.")
@click.option("--backoff-factor", type=float, help="Delay multiplier per retry. Overrides config.")
@click.option(
    "--retry-verbose",
    type=click.IntRange(0, 4),
    help="Retry logging detail (0-4). Overrides config and RETRYCONNECT_VERBOSE.",
)
@click.pass_context
def tcp(
    ctx,
    host: str,
    port: int,
    timeout: float,
    total_delay: Optional[float],
    start_delay: Optional[float],
    max_delay: Optional[float],
    backoff_factor: Optional[float],
    retry_verbose: Optional[int],
):
    """Connect to a TCP endpoint, retrying until it accepts or the budget runs out.

    HOST: Host name or address

    PORT: TCP port
    """
    verbose = ctx.obj.get("verbose", False)
    config_manager = _load_config_manager(ctx)

    try:
        retry_config = build_retry_config(
            config_manager.get_retry_config(TCP_TARGET),
            {
                "total_delay": total_delay,
                "start_delay": start_delay,
                "max_delay": max_delay,
                "backoff_factor": backoff_factor,
                "verbose": retry_verbose,
            },
        )
    except ConfigurationError as e:
        _die(str(e), verbose=verbose, exc=e)

    registry_verbose = config_manager.get_verbose() if retry_verbose is None else retry_verbose
    registry = ProviderRegistry(verbose=registry_verbose)
    registry.register(TCP_TARGET, static_provider(retry_config))
    connect = wrap_connect(open_tcp_connection, registry, TCP_TARGET, retry_on=(OSError,))

    logger.info(f"Connecting to {host}:{port} (retrying for up to {retry_config.total_delay}s)")
    try:
        sock = connect(host, port, timeout)
    except OSError as e:
        _die(f"Could not connect to {host}:{port}: {e}", verbose=verbose, exc=e)

    with sock:
        click.echo(f"Connected to {host}:{port}")


@cli.command()
@click.pass_context
def config(ctx):
    """Print the effective configuration as YAML."""
    config_manager = _load_config_manager(ctx)
    click.echo(yaml.safe_dump(config_manager.config.model_dump(), sort_keys=False), nl=False)


def main():
    """Main entry point"""
    cli(obj={})


if __name__ == "__main__":
    main()
