from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

import typer

from models.points import DataPoint

_COUNTER_KEYS = (
    "packets_received",
    "read_errors",
    "reports_ignored",
    "decode_errors",
    "points_delivered",
    "delivery_failures",
    "deliveries_skipped",
    "faults",
    "in_flight",
)


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_stats(payload: Dict[str, Any]) -> None:
    echo_heading("Relay")
    echo_key_values(
        [
            ("listen_address", payload.get("listen_address")),
            ("running", payload.get("running")),
            ("noop", payload.get("noop")),
            ("rapid_wind", payload.get("rapid_wind")),
        ]
    )
    if payload.get("stop_reason"):
        typer.echo(f"stop_reason: {payload['stop_reason']}")

    typer.echo()
    echo_heading("Counters")
    echo_key_values((key, payload.get(key, 0)) for key in _COUNTER_KEYS)


def render_point(point: Optional[DataPoint]) -> None:
    if point is None or not point.is_deliverable:
        typer.echo("No point produced for this report.")
        return
    echo_key_values([("bucket", point.bucket)])
    typer.echo(point.marshal())
