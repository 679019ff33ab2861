"""kitestream CLI."""

import logging
from pathlib import Path

import click

from kitestream.app import TickerApp
from kitestream.constants import LOG_FORMAT, Mode
from kitestream.data.tick_decoder import decode_frame
from kitestream.errors import DecodeError


@click.group()
def cli():
    """kitestream Command Line Interface."""
    pass


@cli.command()
@click.option(
    "--config",
    type=click.Path(exists=True),
    default="config/config.yaml",
    help="Path to configuration file",
)
@click.option("--token", "tokens", type=int, multiple=True, help="Instrument token (repeatable)")
@click.option(
    "--mode",
    type=click.Choice([m.value for m in Mode]),
    default=None,
    help="Override streaming mode",
)
def stream(config, tokens, mode):
    """Connect and log ticks and order updates until Ctrl-C."""
    try:
        app = TickerApp(config_path=config, tokens=list(tokens) or None, mode=mode)
        app.run()
    except KeyboardInterrupt:
        pass
    except Exception as e:
        click.echo(f"Fatal error: {e}", err=True)
        raise SystemExit(1)


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--hex", "is_hex", is_flag=True, help="File contains a hex dump instead of raw bytes")
def decode(path, is_hex):
    """Decode a captured binary frame and print its ticks."""
    logging.basicConfig(level=logging.WARNING, format=LOG_FORMAT)

    raw = Path(path).read_bytes()
    if is_hex:
        raw = bytes.fromhex(raw.decode("ascii").strip())

    try:
        frame = decode_frame(raw)
    except DecodeError as e:
        click.echo(f"Malformed frame: {e}", err=True)
        raise SystemExit(1)

    if frame.heartbeat:
        click.echo("Heartbeat (no packets)")
        return

    for tick in frame.ticks:
        click.echo(f"{tick.instrument_token} [{tick.mode.value}] ltp={tick.last_price}")
        if tick.ohlc:
            o = tick.ohlc
            click.echo(f"  ohlc={o.open}/{o.high}/{o.low}/{o.close} change={tick.change}")
        if tick.depth:
            for buy, sell in zip(tick.depth.buy, tick.depth.sell):
                click.echo(
                    f"  {buy.quantity:>8} {buy.price:>12} ({buy.orders:>3}) | "
                    f"{sell.price:<12} {sell.quantity:<8} ({sell.orders})"
                )
    for error in frame.errors:
        click.echo(f"Skipped packet: {error}", err=True)


if __name__ == "__main__":
    cli()
