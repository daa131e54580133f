from __future__ import annotations

import signal
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

import typer

from cli.client import StatusClient
from cli.config import CLIConfig, load_config
from cli.render import render_point, render_stats
from logging_config import configure_logging
from services.decoder import DecodeError, ReportDecoder
from services.relay import CancellationToken, RelayService, RelayStartupError
from settings import SettingsError, load_settings


@dataclass
class CLIState:
    config: CLIConfig


app = typer.Typer(
    help="Relay WeatherFlow Tempest UDP broadcasts to InfluxDB.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1, message="CLI state is uninitialized.")
    return state


def _flag(value: bool) -> Optional[bool]:
    # Unset flags must not override environment settings.
    return True if value else None


@contextmanager
def _cancel_on_signals(token: CancellationToken) -> Iterator[None]:
    def handler(signum: int, _frame: object) -> None:
        token.cancel(f"received {signal.Signals(signum).name}")

    previous = {
        signum: signal.signal(signum, handler)
        for signum in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        yield
    finally:
        for signum, original in previous.items():
            signal.signal(signum, original)


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Relay status API base URL (defaults to RELAY_API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for the status API.",
    ),
) -> None:
    """Entry point for the CLI."""
    ctx.obj = CLIState(config=load_config(base_url=base_url, timeout=timeout))


@app.command("listen")
def listen_command(
    listen_address: Optional[str] = typer.Option(
        None, "--listen-address", help="Address to listen for UDP broadcasts."
    ),
    influx_url: Optional[str] = typer.Option(
        None, "--influx-url", help="InfluxDB base URL (without /api/v2/write)."
    ),
    influx_api_path: Optional[str] = typer.Option(
        None, "--influx-api-path", help="InfluxDB API path (default: /api/v2/write)."
    ),
    influx_org: Optional[str] = typer.Option(None, "--influx-org", help="InfluxDB organization name."),
    influx_token: Optional[str] = typer.Option(
        None, "--influx-token", help="Authentication token for InfluxDB."
    ),
    influx_bucket: Optional[str] = typer.Option(None, "--influx-bucket", help="InfluxDB bucket name."),
    influx_bucket_rapid_wind: Optional[str] = typer.Option(
        None, "--influx-bucket-rapid-wind", help="InfluxDB bucket name for rapid wind reports."
    ),
    buffer: Optional[int] = typer.Option(None, "--buffer", help="Max buffer size for the socket io."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging."),
    debug: bool = typer.Option(False, "--debug", "-d", help="Debug logging."),
    raw_udp: bool = typer.Option(False, "--raw-udp", help="Show raw UDP packet data in hex format."),
    noop: bool = typer.Option(False, "--noop", "-n", help="Don't post to InfluxDB."),
    rapid_wind: bool = typer.Option(False, "--rapid-wind", help="Send rapid wind reports."),
) -> None:
    """Receive station broadcasts and forward them until interrupted."""
    settings = load_settings(
        listen_address=listen_address,
        influx_url=influx_url,
        influx_api_path=influx_api_path,
        influx_org=influx_org,
        influx_token=influx_token,
        influx_bucket=influx_bucket,
        influx_bucket_rapid_wind=influx_bucket_rapid_wind,
        buffer_size=buffer,
        verbose=_flag(verbose),
        debug=_flag(debug),
        raw_udp=_flag(raw_udp),
        noop=_flag(noop),
        rapid_wind=_flag(rapid_wind),
    )
    try:
        settings.validate()
    except SettingsError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc

    configure_logging(settings.effective_log_level)

    try:
        relay = RelayService(settings)
    except RelayStartupError as exc:
        typer.secho(f"Could not start relay: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc

    token = CancellationToken()
    with _cancel_on_signals(token):
        reason = relay.run(token)
    typer.echo(f"Relay stopped: {reason}")


@app.command("decode")
def decode_command(
    source: str = typer.Argument(..., help="Path to a JSON report, or '-' to read stdin."),
    rapid_wind: bool = typer.Option(False, "--rapid-wind", help="Decode rapid wind reports."),
    bucket: Optional[str] = typer.Option(None, "--bucket", help="Destination bucket to report."),
) -> None:
    """Decode one station report and print its line protocol record."""
    if source == "-":
        payload = typer.get_binary_stream("stdin").read()
    else:
        path = Path(source)
        if not path.is_file():
            raise typer.BadParameter(f"File {path} does not exist.")
        payload = path.read_bytes()

    settings = load_settings(influx_bucket=bucket, rapid_wind=_flag(rapid_wind))
    try:
        point = ReportDecoder(settings).decode(payload.strip(), remote_addr=source)
    except DecodeError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    render_point(point)


@app.command("stats")
def stats_command(ctx: typer.Context) -> None:
    """Fetch relay counters from a running status API."""
    state = _get_state(ctx)
    client = StatusClient(state.config)
    ctx.call_on_close(client.close)
    render_stats(client.get_stats())
