#!/usr/bin/env python3
"""
run_probe.py - CLI entrypoint for checking an RPC provider setup.

Usage:
    python run_probe.py --config config/rpc.example.yaml
    python run_probe.py --chain-id 137 --provider alchemy --api-key KEY \
        --fallback https://polygon-rpc.com
    licensekit-probe --chain-id 1 --provider custom --url http://localhost:8545
"""

import asyncio
import sys
from typing import Any, Optional

import click

from chains.providers import RPCProvider
from config import RPCProviderConfig, load_settings, validate_config
from core.exceptions import ConfigurationError, LicenseKitError
from core.logging import get_logger, set_global_context, setup_logging
from monitoring.metrics import InMemoryMetrics, MetricNames

logger = get_logger("licensekit.probe")


def build_settings(
    config_path: Optional[str],
    chain_id: Optional[int],
    provider: Optional[str],
    api_key: Optional[str],
    url: Optional[str],
    fallbacks: tuple[str, ...],
    retries: Optional[int],
    timeout_ms: Optional[int],
) -> dict[str, Any]:
    """File + environment settings with command-line options on top."""
    settings = load_settings(config_path)
    rpc = settings["rpc"]

    if provider:
        rpc.pop("provider_kind", None)
        rpc.pop("provider_name", None)
        rpc["provider"] = provider
    if api_key:
        rpc["api_key"] = api_key
    if url:
        rpc["custom_url"] = url
    if fallbacks:
        rpc["fallback_urls"] = list(fallbacks)
    if retries is not None:
        rpc["retry_attempts"] = retries
    if timeout_ms is not None:
        rpc["timeout_ms"] = timeout_ms
    if chain_id is not None:
        settings["chain_id"] = chain_id

    return settings


async def probe(
    config: RPCProviderConfig,
    chain_id: int,
    metrics: InMemoryMetrics,
) -> dict[str, Any]:
    """Initialize a provider and read block number and chain id."""
    provider = RPCProvider(config, chain_id, metrics=metrics)
    try:
        await provider.initialize()
        block_number = await provider.get_block_number()
        node_chain_id = await provider.get_chain_id()
        return {
            "block_number": block_number,
            "node_chain_id": node_chain_id,
            "endpoints": provider.get_stats_summary(),
        }
    finally:
        await provider.close()


@click.command()
@click.option(
    "--config",
    "-c",
    "config_path",
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=str),
    help="YAML config file (rpc: section + chain_id)",
)
@click.option("--chain-id", type=int, default=None, help="Target chain ID")
@click.option(
    "--provider",
    "-p",
    default=None,
    help="Named provider (alchemy, infura) or 'custom'",
)
@click.option("--api-key", default=None, help="API key for a named provider")
@click.option("--url", default=None, help="Node URL for a custom provider")
@click.option(
    "--fallback",
    "-f",
    "fallbacks",
    multiple=True,
    help="Fallback node URL (repeatable, tried in order)",
)
@click.option("--retries", type=int, default=None, help="Attempts per endpoint")
@click.option("--timeout-ms", type=int, default=None, help="Per-attempt timeout")
@click.option(
    "--log-level",
    "-l",
    default="WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Log level",
)
@click.option(
    "--json-logs/--no-json-logs",
    default=False,
    help="Use JSON log format",
)
def main(
    config_path: Optional[str],
    chain_id: Optional[int],
    provider: Optional[str],
    api_key: Optional[str],
    url: Optional[str],
    fallbacks: tuple[str, ...],
    retries: Optional[int],
    timeout_ms: Optional[int],
    log_level: str,
    json_logs: bool,
) -> None:
    """
    licensekit RPC probe.

    Connects through the configured endpoints exactly like a game client
    would and reports what it saw.
    """
    setup_logging(level=log_level, json_output=json_logs)
    set_global_context(service="licensekit-probe", version="0.1.0")

    try:
        settings = build_settings(
            config_path, chain_id, provider, api_key, url, fallbacks, retries, timeout_ms
        )
    except ConfigurationError as e:
        click.echo(f"config error: {e.message}", err=True)
        sys.exit(2)
    errors = validate_config(settings)
    if errors:
        for error in errors:
            click.echo(f"config error: {error}", err=True)
        sys.exit(2)

    metrics = InMemoryMetrics()
    try:
        config = RPCProviderConfig.from_dict(settings["rpc"])
        result = asyncio.run(probe(config, settings["chain_id"], metrics))
    except LicenseKitError as e:
        logger.error(
            f"Probe failed: {e.message}",
            extra={"context": e.to_dict()},
        )
        click.echo(f"FAILED: {e}", err=True)
        sys.exit(1)

    click.echo("=" * 60)
    click.echo("RPC PROBE")
    click.echo("=" * 60)
    click.echo(f"Chain ID (configured): {settings['chain_id']}")
    click.echo(f"Chain ID (node): {result['node_chain_id']}")
    click.echo(f"Block number: {result['block_number']}")
    for endpoint_url, stats in result["endpoints"].items():
        click.echo(
            f"  {endpoint_url}: requests={stats['total_requests']} "
            f"success_rate={stats['success_rate']} "
            f"avg_latency_ms={stats['avg_latency_ms']}"
        )
    click.echo(f"Failovers: {metrics.count(MetricNames.FAILOVERS)}")
    if result["node_chain_id"] != settings["chain_id"]:
        click.echo("WARNING: node chain ID does not match configuration", err=True)
    click.echo("=" * 60)


if __name__ == "__main__":
    main()
