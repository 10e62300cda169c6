"""
feeshare/cli.py

Administrative command line for the fee-sharing engine.

Run with: feeshare --help  (or python -m feeshare)

Configuration comes from FEESHARE_* environment variables; see
feeshare.config.FeeShareConfig.from_env.
"""

import json
import logging
import sys
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import click
import trio

from .assets import AssetStore, AuditLog, InMemoryAssetStore, JsonAssetStore, JsonlAuditLog, NullAuditLog
from .blockchain.buyback import BuybackService
from .blockchain.fee_sharing import FeeSharingService
from .blockchain.tx_sender import TransactionSender
from .config import ConfigError, FeeShareConfig
from .metrics import EngineMetrics
from .rpc.client import ChainClient, lamports_to_sol
from .scheduler import DistributionScheduler

logger = logging.getLogger("feeshare.cli")


@dataclass
class Engine:
    """Wired services sharing one chain client and one sender."""
    config: FeeShareConfig
    chain: ChainClient
    fee_sharing: FeeSharingService
    buyback: BuybackService
    scheduler: DistributionScheduler
    metrics: EngineMetrics


def build_engine(config: FeeShareConfig) -> Engine:
    chain = ChainClient(config.rpc_url)
    sender = TransactionSender(
        chain, max_retries=config.max_retries, retry_delay=config.retry_delay_seconds
    )

    audit: AuditLog = JsonlAuditLog(config.audit_log_path) if config.audit_log_path else NullAuditLog()
    assets: AssetStore = JsonAssetStore(config.assets_file) if config.assets_file else InMemoryAssetStore()
    metrics = EngineMetrics()

    fee_sharing = FeeSharingService(chain, config, sender=sender, audit=audit)
    buyback = BuybackService(chain, config, sender=sender, audit=audit)
    scheduler = DistributionScheduler(
        assets, fee_sharing, buyback, config=config, audit=audit, metrics=metrics
    )
    return Engine(config, chain, fee_sharing, buyback, scheduler, metrics)


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def _run_with_engine(ctx: click.Context, fn: Callable[[Engine], Awaitable[Any]]) -> Any:
    """Build the engine from context config, run fn under trio, close the client."""
    config: FeeShareConfig = ctx.obj["config"]

    async def main():
        engine = build_engine(config)
        async with engine.chain:
            return await fn(engine)

    return trio.run(main)


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="INFO",
    show_default=True,
    help="Logging verbosity",
)
@click.option("--rpc-url", default=None, help="Override FEESHARE_RPC_URL")
@click.pass_context
def cli(ctx: click.Context, log_level: str, rpc_url: str):
    """Fee-sharing distribution and buyback engine."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    try:
        config = FeeShareConfig.from_env()
        if rpc_url:
            config.rpc_url = rpc_url
        config.validate()
    except ConfigError as e:
        raise click.ClickException(str(e))

    ctx.ensure_object(dict)
    ctx.obj["config"] = config


@cli.command()
@click.pass_context
def run(ctx: click.Context):
    """Run the distribution scheduler until interrupted."""
    config: FeeShareConfig = ctx.obj["config"]
    if not config.assets_file:
        raise click.ClickException("FEESHARE_ASSETS_FILE is required for the scheduler")

    async def serve(engine: Engine):
        async with trio.open_nursery() as nursery:
            await engine.scheduler.start(nursery)

    try:
        _run_with_engine(ctx, serve)
    except KeyboardInterrupt:
        logger.info("Interrupted, scheduler stopped")


@cli.command("auto-distribute")
@click.pass_context
def auto_distribute(ctx: click.Context):
    """Run one distribution batch now and print the result."""
    async def batch(engine: Engine):
        return await engine.scheduler.trigger_manual_run()

    result = _run_with_engine(ctx, batch)
    _echo_json(result.to_dict())
    if result.errors:
        sys.exit(1)


@cli.command()
@click.argument("mint")
@click.pass_context
def status(ctx: click.Context, mint: str):
    """Show fee-sharing status for MINT."""
    async def fee_status(engine: Engine):
        return await engine.fee_sharing.get_fee_status(mint)

    fee_status_result = _run_with_engine(ctx, fee_status)
    data = fee_status_result.to_dict()
    data["vault_balance_sol"] = lamports_to_sol(fee_status_result.vault_balance_lamports)
    _echo_json(data)


@cli.command()
@click.argument("mint")
@click.argument("agent_address")
@click.pass_context
def setup(ctx: click.Context, mint: str, agent_address: str):
    """Create the sharing config for MINT with AGENT_ADDRESS as agent."""
    async def do_setup(engine: Engine):
        return await engine.fee_sharing.setup_fee_sharing(mint, agent_address)

    result = _run_with_engine(ctx, do_setup)
    _echo_json(result.to_dict())
    if not result.success:
        if result.recoverable:
            click.echo("Config exists; finish with: feeshare update-shares MINT AGENT_ADDRESS", err=True)
        sys.exit(1)


@cli.command("update-shares")
@click.argument("mint")
@click.argument("agent_address")
@click.pass_context
def update_shares(ctx: click.Context, mint: str, agent_address: str):
    """Install the agent/treasury split on an existing sharing config."""
    async def do_update(engine: Engine):
        return await engine.fee_sharing.update_shareholders(mint, agent_address)

    result = _run_with_engine(ctx, do_update)
    _echo_json(result.to_dict())
    if not result.success:
        sys.exit(1)


@cli.command()
@click.argument("mint")
@click.pass_context
def distribute(ctx: click.Context, mint: str):
    """Distribute accumulated creator fees for MINT."""
    async def do_distribute(engine: Engine):
        return await engine.fee_sharing.distribute_creator_fees(mint)

    result = _run_with_engine(ctx, do_distribute)
    _echo_json(result.to_dict())
    if not result.success:
        sys.exit(1)


@cli.command()
@click.argument("mint")
@click.argument("lamports", type=click.IntRange(min=1))
@click.pass_context
def buyback(ctx: click.Context, mint: str, lamports: int):
    """Buy MINT with LAMPORTS and burn the tokens received."""
    async def do_buyback(engine: Engine):
        return await engine.buyback.execute_buyback(mint, lamports)

    result = _run_with_engine(ctx, do_buyback)
    _echo_json(result.to_dict())
    if not result.success:
        if result.needs_manual_burn:
            quantity = "Unknown quantity of" if result.tokens_bought is None else result.tokens_bought
            click.echo(
                f"{quantity} tokens bought in {result.buy_tx_signature} were not burned",
                err=True,
            )
        sys.exit(1)


@cli.command()
@click.argument("mint")
@click.pass_context
def shareholders(ctx: click.Context, mint: str):
    """List the on-chain shareholders of MINT."""
    async def fetch(engine: Engine):
        return await engine.fee_sharing.fetch_current_shareholders(mint)

    holders = _run_with_engine(ctx, fetch)
    _echo_json([h.to_dict() for h in holders])


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
