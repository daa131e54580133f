"""Generic time-series data point and its line protocol serialization."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict


def _escape_key(value: str) -> str:
    return value.replace(",", r"\,").replace("=", r"\=").replace(" ", r"\ ")


def _escape_measurement(value: str) -> str:
    return value.replace(",", r"\,").replace(" ", r"\ ")


@dataclass(slots=True)
class DataPoint:
    """One measurement headed for the time-series database.

    Field values are already formatted by the decoder, so marshalling is
    pure string assembly.
    """

    name: str = ""
    bucket: str = ""
    tags: Dict[str, str] = field(default_factory=dict)
    fields: Dict[str, str] = field(default_factory=dict)
    timestamp: int = 0

    @property
    def is_deliverable(self) -> bool:
        return self.timestamp != 0 and bool(self.fields)

    def marshal(self) -> str:
        """Render ``name,tag=v field=v,field=v timestamp`` with sorted keys."""
        series = _escape_measurement(self.name)
        for key in sorted(self.tags):
            value = self.tags[key]
            # Line protocol has no empty tag values.
            if not value:
                continue
            series += f",{_escape_key(key)}={_escape_key(value)}"
        field_set = ",".join(
            f"{_escape_key(key)}={self.fields[key]}" for key in sorted(self.fields)
        )
        return f"{series} {field_set} {self.timestamp}"
