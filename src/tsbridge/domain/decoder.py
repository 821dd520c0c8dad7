"""
Decode raw Flux rows into bucket records.

Each bucket is bound to its own decode and validate function. A row that
cannot be turned into a valid record decodes to None and is skipped by the
caller.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping

from tsbridge.core.logging import get_logger
from tsbridge.domain.buckets import Bucket
from tsbridge.domain.registry import DEFAULT_HOST, DEFAULT_WINDOW, coerce
from tsbridge.schemas.records import (
    AggregatedSensorRecord,
    BaseRecord,
    CostRecord,
    SensorRecord,
    SystemMetricsRecord,
)

logger = get_logger(__name__)

# Columns added by the Flux engine that are neither tags nor data
RESERVED_COLUMNS = frozenset({"result", "table"})

SENSOR_ATTRIBUTE_TAGS = ("entity_id", "friendly_name", "device_class", "unit_of_measurement")

WINDOW_PATTERN = re.compile(r"^(\d+)([mhd])$")
WINDOW_UNITS = {"m": "minutes", "h": "hours", "d": "days"}


@dataclass(frozen=True)
class RawRow:
    """One row as returned by the store: a single field value plus its tags."""

    measurement: str | None
    timestamp: datetime | None
    field_name: str | None
    field_value: Any
    tags: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_values(cls, values: Mapping[str, Any]) -> "RawRow":
        """Build a row from a Flux record's column map."""
        return cls(
            measurement=values.get("_measurement"),
            timestamp=values.get("_time"),
            field_name=values.get("_field"),
            field_value=values.get("_value"),
            tags=extract_tags(values),
        )


def extract_tags(values: Mapping[str, Any]) -> dict[str, str]:
    """Keep user columns: drop `_`-prefixed and engine columns and null values."""
    return {
        key: str(value)
        for key, value in values.items()
        if not key.startswith("_") and key not in RESERVED_COLUMNS and value is not None
    }


def estimate_window_end(window_start: datetime, window: str | None) -> datetime:
    """
    Window end from a `window` tag such as 30m, 1h or 1d.

    Anything unparsable or out of range counts as a 30 minute window.
    """
    try:
        return window_start + parse_window(window)
    except OverflowError:
        return window_start + parse_window(DEFAULT_WINDOW)


def parse_window(window: str | None) -> timedelta:
    match = WINDOW_PATTERN.match((window or "").strip())
    if not match:
        match = WINDOW_PATTERN.match(DEFAULT_WINDOW)
    amount, unit = match.groups()
    try:
        return timedelta(**{WINDOW_UNITS[unit]: int(amount)})
    except OverflowError:
        return parse_window(DEFAULT_WINDOW)


def _normalize_time(value: Any) -> datetime | None:
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _fields(row: RawRow, bucket: Bucket) -> dict[str, Any]:
    # Rows built from a bare column map carry the field as _field/_value
    name = row.field_name if row.field_name is not None else row.tags.get("_field")
    value = row.field_value if row.field_value is not None else row.tags.get("_value")
    if name is None or value is None:
        return {}
    return {name: coerce(name, value, bucket).value}


def _tags(row: RawRow) -> dict[str, str]:
    return extract_tags(row.tags)


def _sensor_attributes(tags: Mapping[str, str]) -> dict[str, str | None]:
    return {name: tags.get(name) for name in SENSOR_ATTRIBUTE_TAGS}


# =============================================================================
# Per-bucket decoders
# =============================================================================

def _decode_system_metrics(row: RawRow) -> SystemMetricsRecord:
    tags = _tags(row)
    return SystemMetricsRecord(
        measurement=row.measurement,
        timestamp=_normalize_time(row.timestamp),
        host=tags.get("host") or tags.get("hostname") or DEFAULT_HOST,
        fields=_fields(row, Bucket.SYSTEM_METRICS),
        tags=tags,
    )


def _decode_sensor(row: RawRow) -> SensorRecord:
    tags = _tags(row)
    return SensorRecord(
        measurement=row.measurement,
        timestamp=_normalize_time(row.timestamp),
        fields=_fields(row, Bucket.SENSOR_DATA),
        tags=tags,
        **_sensor_attributes(tags),
    )


def _decode_aggregated(row: RawRow) -> AggregatedSensorRecord:
    tags = _tags(row)
    window_start = _normalize_time(row.timestamp)
    window = tags.get("window")
    return AggregatedSensorRecord(
        measurement=row.measurement,
        window=window,
        window_start=window_start,
        window_end=estimate_window_end(window_start, window) if window_start else None,
        fields=_fields(row, Bucket.SENSOR_DATA_AGGREGATED),
        tags=tags,
        **_sensor_attributes(tags),
    )


def _decode_cost(row: RawRow) -> CostRecord:
    tags = _tags(row)
    timestamp = _normalize_time(row.timestamp)
    return CostRecord(
        measurement=row.measurement,
        timestamp=timestamp,
        cost_date=timestamp.date() if timestamp else None,
        cost_type=tags.get("cost_type"),
        category=tags.get("category"),
        description=tags.get("description"),
        fields=_fields(row, Bucket.COSTS),
        tags=tags,
    )


# =============================================================================
# Validation
# =============================================================================

def _has_core(record: BaseRecord) -> bool:
    return bool(record.measurement and record.measurement.strip()) and bool(record.fields)


def _validate_timestamped(record: BaseRecord) -> bool:
    return _has_core(record) and getattr(record, "timestamp", None) is not None


def _validate_aggregated(record: BaseRecord) -> bool:
    return (
        _has_core(record)
        and getattr(record, "window_start", None) is not None
        and getattr(record, "window_end", None) is not None
    )


@dataclass(frozen=True)
class BucketCodec:
    decode: Callable[[RawRow], BaseRecord]
    validate: Callable[[BaseRecord], bool]
    record_type: type[BaseRecord]


CODECS: dict[Bucket, BucketCodec] = {
    Bucket.SYSTEM_METRICS: BucketCodec(_decode_system_metrics, _validate_timestamped, SystemMetricsRecord),
    Bucket.SENSOR_DATA: BucketCodec(_decode_sensor, _validate_timestamped, SensorRecord),
    Bucket.SENSOR_DATA_AGGREGATED: BucketCodec(
        _decode_aggregated, _validate_aggregated, AggregatedSensorRecord
    ),
    Bucket.COSTS: BucketCodec(_decode_cost, _validate_timestamped, CostRecord),
}


def validate(record: BaseRecord | None, bucket: Bucket) -> bool:
    """Structural check: measurement, timestamp or window bounds, non-empty fields."""
    codec = CODECS[bucket]
    if not isinstance(record, codec.record_type):
        return False
    return codec.validate(record)


def decode(row: RawRow, bucket: Bucket) -> BaseRecord | None:
    """
    Decode one row for a bucket.

    Returns:
        The record, or None when the row lacks a measurement, a timestamp
        or a field/value pair.
    """
    if not row.measurement or _normalize_time(row.timestamp) is None:
        logger.debug(
            "Skipping row without measurement or timestamp",
            extra={"bucket": bucket.bucket_name, "measurement": row.measurement},
        )
        return None

    codec = CODECS[bucket]
    try:
        record = codec.decode(row)
    except Exception as e:
        logger.debug(
            "Skipping undecodable row",
            extra={"bucket": bucket.bucket_name, "measurement": row.measurement, "error": str(e)},
        )
        return None

    if not codec.validate(record):
        logger.debug(
            "Skipping invalid record",
            extra={"bucket": bucket.bucket_name, "measurement": row.measurement, "field": row.field_name},
        )
        return None
    return record
