"""Unit tests for data point serialization."""

from __future__ import annotations

from models.points import DataPoint


def test_new_point_is_empty() -> None:
    point = DataPoint()

    assert point.name == ""
    assert point.tags == {}
    assert point.fields == {}
    assert point.timestamp == 0
    assert point.is_deliverable is False


def test_marshal_sorts_fields_by_key() -> None:
    point = DataPoint(
        name="weather",
        tags={"station": "ST-00000512"},
        fields={"wind_avg": "1.20", "battery": "2.60", "temp": "22.50"},
        timestamp=1500000000,
    )

    assert point.marshal() == (
        "weather,station=ST-00000512 battery=2.60,temp=22.50,wind_avg=1.20 1500000000"
    )


def test_marshal_is_independent_of_insertion_order() -> None:
    first = DataPoint(name="weather", timestamp=10)
    first.tags.update({"station": "ST-1", "hub": "HB-1"})
    first.fields.update({"a": "1", "b": "2", "c": "3"})

    second = DataPoint(name="weather", timestamp=10)
    second.tags.update({"hub": "HB-1", "station": "ST-1"})
    second.fields.update({"c": "3", "a": "1", "b": "2"})

    assert first.marshal() == second.marshal()
    assert first.marshal() == "weather,hub=HB-1,station=ST-1 a=1,b=2,c=3 10"


def test_marshal_escapes_tag_values_and_skips_empty_tags() -> None:
    point = DataPoint(
        name="weather",
        tags={"station": "back yard", "hub": ""},
        fields={"temp": "1.00"},
        timestamp=5,
    )

    assert point.marshal() == r"weather,station=back\ yard temp=1.00 5"


def test_deliverable_requires_timestamp_and_fields() -> None:
    assert DataPoint(fields={"temp": "1.00"}, timestamp=0).is_deliverable is False
    assert DataPoint(timestamp=1).is_deliverable is False
    assert DataPoint(fields={"temp": "1.00"}, timestamp=1).is_deliverable is True
