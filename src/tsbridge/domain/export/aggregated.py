"""
Downsampled sensor exports (bucket sensor_data_30m).

Rows carry a `window` tag; the decoder turns each row's _time into the
window start and estimates the window end from that tag.
"""

from datetime import datetime

from tsbridge.core.errors import ErrorCode, InvalidArgument
from tsbridge.domain.buckets import Bucket
from tsbridge.domain.export.sensors import (
    build_humidity_query,
    build_power_query,
    build_temperature_query,
)
from tsbridge.domain.export.template import BucketExporter, ExportStrategy
from tsbridge.domain.registry import (
    AGGREGATED_MEASUREMENTS,
    DEFAULT_WINDOW,
    ENERGY_AGGREGATED_FIELDS,
    ENERGY_DEVICE_CLASS_PATTERN,
    HUMIDITY_AGGREGATED_FIELDS,
    HUMIDITY_MEASUREMENT,
    POWER_MEASUREMENT,
    STATISTIC_FIELDS,
    SUPPORTED_WINDOWS,
    TEMPERATURE_AGGREGATED_FIELDS,
    TEMPERATURE_DEVICE_CLASS_PATTERN,
    TEMPERATURE_MEASUREMENT,
)
from tsbridge.infra.influx.queries import FluxQueryBuilder
from tsbridge.schemas.records import BaseRecord

BUCKET = Bucket.SENSOR_DATA_AGGREGATED
WINDOWED_MEASUREMENTS = ("sensor_aggregated", "sensor_mean")
STATS_MEASUREMENT = "sensor_stats"


def validate_window(window: str) -> str:
    """
    Raises:
        InvalidArgument: If the window is not one the downsampling task produces
    """
    if window not in SUPPORTED_WINDOWS:
        raise InvalidArgument(
            code=ErrorCode.INVALID_DURATION,
            message=f"Unsupported window {window!r}, expected one of {', '.join(SUPPORTED_WINDOWS)}",
            details={"window": window},
        )
    return window


def _aggregated(
    start: datetime | None = None,
    end: datetime | None = None,
    measurements: tuple[str, ...] = AGGREGATED_MEASUREMENTS,
) -> FluxQueryBuilder:
    builder = FluxQueryBuilder.from_bucket(BUCKET).measurements(*measurements)
    if start is not None and end is not None:
        builder.time_range(start, end)
    return builder


def _windowed(start: datetime | None = None, end: datetime | None = None) -> FluxQueryBuilder:
    """Mean measurements of the default downsampling window."""
    return _aggregated(start, end, WINDOWED_MEASUREMENTS).tag("window", DEFAULT_WINDOW)


def build_aggregated_query(start: datetime, end: datetime) -> str:
    return _aggregated(start, end).sort("desc").build()


def build_humidity_aggregated_query(start: datetime, end: datetime) -> str:
    return build_humidity_query(start, end, bucket=BUCKET)


def build_temperature_aggregated_query(start: datetime, end: datetime) -> str:
    return build_temperature_query(start, end, bucket=BUCKET)


def build_power_aggregated_query(start: datetime, end: datetime) -> str:
    return build_power_query(start, end, bucket=BUCKET)


SENSOR_DATA_AGGREGATED = ExportStrategy(
    name="sensor_data_aggregated",
    bucket=BUCKET,
    build_query=build_aggregated_query,
    description="Sensor data aggregated to 30 minute windows",
)

HUMIDITY_AGGREGATED = ExportStrategy(
    name="humidity_aggregated",
    bucket=BUCKET,
    build_query=build_humidity_aggregated_query,
    accept=lambda record: record.measurement == HUMIDITY_MEASUREMENT,
    description="Humidity, 30 minute aggregates",
)

TEMPERATURE_AGGREGATED = ExportStrategy(
    name="temperature_aggregated",
    bucket=BUCKET,
    build_query=build_temperature_aggregated_query,
    accept=lambda record: record.measurement == TEMPERATURE_MEASUREMENT,
    description="Temperature, 30 minute aggregates",
)

POWER_AGGREGATED = ExportStrategy(
    name="power_aggregated",
    bucket=BUCKET,
    build_query=build_power_aggregated_query,
    accept=lambda record: record.measurement == POWER_MEASUREMENT,
    description="Power, 30 minute aggregates",
)


# =============================================================================
# Variant queries
# =============================================================================

def build_humidity_stats_query(start: datetime, end: datetime) -> str:
    return (
        _windowed(start, end)
        .fields(*HUMIDITY_AGGREGATED_FIELDS)
        .tag("device_class", "humidity")
        .sort("desc")
        .build()
    )


def build_temperature_stats_query(start: datetime, end: datetime) -> str:
    return (
        _windowed(start, end)
        .fields(*TEMPERATURE_AGGREGATED_FIELDS)
        .tag_regex("device_class", TEMPERATURE_DEVICE_CLASS_PATTERN)
        .sort("desc")
        .build()
    )


def build_energy_stats_query(start: datetime, end: datetime) -> str:
    return (
        _windowed(start, end)
        .fields(*ENERGY_AGGREGATED_FIELDS)
        .tag_regex("device_class", ENERGY_DEVICE_CLASS_PATTERN)
        .sort("desc")
        .build()
    )


def build_statistical_query(start: datetime, end: datetime) -> str:
    """Only the mean/min/max/stddev/variance fields of sensor_stats."""
    return (
        _aggregated(start, end, (STATS_MEASUREMENT,))
        .fields(*STATISTIC_FIELDS)
        .tag("window", DEFAULT_WINDOW)
        .sort("desc")
        .build()
    )


def build_window_query(window: str, start: datetime, end: datetime) -> str:
    return _aggregated(start, end).tag("window", validate_window(window)).sort("desc").build()


def build_location_query(location: str, start: datetime, end: datetime) -> str:
    return _windowed(start, end).tag("location", location).sort("desc").build()


def build_entity_query(entity_id: str, start: datetime, end: datetime) -> str:
    return _windowed(start, end).tag("entity_id", entity_id).sort("desc").build()


def build_last_24h_query() -> str:
    return _windowed().relative_range("24h").sort("desc").build()


def build_last_7_days_query() -> str:
    return _windowed().relative_range("7d").sort("desc").build()


# =============================================================================
# Variant exports
# =============================================================================

def export_humidity_stats(exporter: BucketExporter, start=None, end=None) -> list[BaseRecord]:
    return exporter.export_variant(
        BUCKET, "humidity_stats", build_humidity_stats_query, start=start, end=end
    )


def export_temperature_stats(exporter: BucketExporter, start=None, end=None) -> list[BaseRecord]:
    return exporter.export_variant(
        BUCKET, "temperature_stats", build_temperature_stats_query, start=start, end=end
    )


def export_energy_stats(exporter: BucketExporter, start=None, end=None) -> list[BaseRecord]:
    return exporter.export_variant(BUCKET, "energy_stats", build_energy_stats_query, start=start, end=end)


def export_statistical(exporter: BucketExporter, start=None, end=None) -> list[BaseRecord]:
    return exporter.export_variant(BUCKET, "statistical", build_statistical_query, start=start, end=end)


def export_by_window(exporter: BucketExporter, window: str, start=None, end=None) -> list[BaseRecord]:
    return exporter.export_variant(BUCKET, "window", build_window_query, window, start=start, end=end)


def export_by_location(exporter: BucketExporter, location: str, start=None, end=None) -> list[BaseRecord]:
    return exporter.export_variant(BUCKET, "location", build_location_query, location, start=start, end=end)


def export_by_entity(exporter: BucketExporter, entity_id: str, start=None, end=None) -> list[BaseRecord]:
    return exporter.export_variant(BUCKET, "entity", build_entity_query, entity_id, start=start, end=end)


def export_last_24h(exporter: BucketExporter) -> list[BaseRecord]:
    return exporter.export_query(BUCKET, build_last_24h_query(), name="last_24h")


def export_last_7_days(exporter: BucketExporter) -> list[BaseRecord]:
    return exporter.export_query(BUCKET, build_last_7_days_query(), name="last_7_days")
