"""Pydantic wire shapes for station reports received over UDP."""

from __future__ import annotations

import json
from enum import Enum
from typing import Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field


class ReportType(str, Enum):
    """Report kinds a station broadcasts."""

    obs_st = "obs_st"
    rapid_wind = "rapid_wind"
    hub_status = "hub_status"
    evt_precip = "evt_precip"
    evt_strike = "evt_strike"


def _fill_nulls(values: List[Optional[float]]) -> List[float]:
    return [0.0 if value is None else value for value in values]


class StationReport(BaseModel):
    """Envelope shared by every report; unknown keys are ignored.

    Non-finite numbers (``1e999``, ``NaN``, ``Infinity``) fail validation.
    """

    model_config = ConfigDict(extra="ignore", allow_inf_nan=False)

    type: str = ""
    serial_number: str = ""
    hub_sn: str = ""


class ObservationReport(StationReport):
    obs: List[List[Optional[float]]] = Field(default_factory=list)

    @property
    def values(self) -> List[float]:
        if not self.obs:
            return []
        return _fill_nulls(self.obs[0])


class RapidWindReport(StationReport):
    ob: List[Optional[float]] = Field(default_factory=list)

    @property
    def values(self) -> List[float]:
        return _fill_nulls(self.ob)


_REPORT_MODELS: Dict[str, Type[StationReport]] = {
    ReportType.obs_st.value: ObservationReport,
    ReportType.rapid_wind.value: RapidWindReport,
}


def parse_report(payload: bytes) -> StationReport:
    """Validate the envelope, then the variant registered for its ``type``.

    Raises ``ValueError`` for anything that is not a well-formed report.
    """
    data = json.loads(payload)
    envelope = StationReport.model_validate(data)
    model = _REPORT_MODELS.get(envelope.type)
    if model is None:
        return envelope
    return model.model_validate(data)
