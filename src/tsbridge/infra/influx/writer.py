"""
Generic record writer.

A value object is written according to a WriteSchema that names the
measurement and which attributes are tags, values and the timestamp.
Schema and value are checked before any call reaches the store.
"""

import time
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Mapping

from influxdb_client import Point, WritePrecision

from tsbridge.core.config import Settings, get_settings
from tsbridge.core.errors import ErrorCode, InfluxError, InvalidArgument
from tsbridge.core.logging import get_logger
from tsbridge.core.telemetry import INFLUX_WRITE_COUNT, INFLUX_WRITE_LATENCY

logger = get_logger(__name__)

PRECISIONS = {
    "ns": WritePrecision.NS,
    "us": WritePrecision.US,
    "ms": WritePrecision.MS,
    "s": WritePrecision.S,
}


@dataclass(frozen=True)
class WriteSchema:
    """Shape of a value object as stored: measurement, tag, value and time attributes."""

    measurement: str
    tag_fields: tuple[str, ...] = ()
    value_fields: tuple[str, ...] = ()
    timestamp_field: str | None = None

    def validate(self) -> None:
        """
        Raises:
            InvalidArgument: If the measurement is blank or no value field is declared
        """
        if not self.measurement or not self.measurement.strip():
            raise InvalidArgument(
                code=ErrorCode.INVALID_WRITE_SCHEMA,
                message="Write schema must declare a measurement name",
                details={"measurement": self.measurement},
            )
        if not self.value_fields:
            raise InvalidArgument(
                code=ErrorCode.INVALID_WRITE_SCHEMA,
                message=f"Write schema for {self.measurement!r} declares no value fields",
                details={"measurement": self.measurement},
            )


@dataclass(frozen=True)
class WriteTarget:
    """Where records go: bucket, organization and timestamp precision."""

    bucket: str
    org: str
    precision: str = WritePrecision.NS

    @classmethod
    def create(cls, bucket: str, org: str, precision: str) -> "WriteTarget":
        if not bucket or not org:
            raise InvalidArgument(
                message="Write target needs a bucket and an organization",
                details={"bucket": bucket, "org": org},
            )
        return cls(bucket=bucket, org=org, precision=to_write_precision(precision))

    @classmethod
    def create_default(cls, bucket: str, org: str) -> "WriteTarget":
        return cls.create(bucket, org, WritePrecision.NS)

    @classmethod
    def for_cost_bucket(cls, settings: Settings | None = None) -> "WriteTarget":
        settings = settings or get_settings()
        return cls.create(settings.cost_write_bucket, settings.influx_org, settings.cost_write_precision)

    @classmethod
    def for_sensor_bucket(cls, settings: Settings | None = None) -> "WriteTarget":
        settings = settings or get_settings()
        return cls.create(settings.sensor_write_bucket, settings.influx_org, settings.sensor_write_precision)


def to_write_precision(precision: str) -> str:
    key = str(precision).strip().lower()
    if key not in PRECISIONS:
        raise InvalidArgument(
            message=f"Unsupported write precision: {precision!r}",
            details={"precision": precision},
        )
    return PRECISIONS[key]


def _read(value: Any, name: str) -> Any:
    if isinstance(value, Mapping):
        return value.get(name)
    return getattr(value, name, None)


def _normalize(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return float(value)
    return value


def _to_time(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    raise InvalidArgument(
        message=f"Timestamp must be a datetime or date, got {type(value).__name__}",
    )


class RecordWriter:
    """Writes schema-described value objects to one WriteTarget."""

    def __init__(self, write_api: Any, target: WriteTarget, max_retries: int = 3) -> None:
        self._write_api = write_api
        self._target = target
        self._max_retries = max(1, max_retries)

    @property
    def target(self) -> WriteTarget:
        return self._target

    def to_point(self, value: Any, schema: WriteSchema) -> Point:
        """
        Build a Point from a value object.

        Raises:
            InvalidArgument: If the value is None or carries no field values
        """
        if value is None:
            raise InvalidArgument(message="Cannot write a None value")

        point = Point(schema.measurement)
        for name in schema.tag_fields:
            tag = _read(value, name)
            if tag is not None:
                point.tag(name, str(_normalize(tag)))

        written = 0
        for name in schema.value_fields:
            field_value = _read(value, name)
            if field_value is not None:
                point.field(name, _normalize(field_value))
                written += 1
        if not written:
            raise InvalidArgument(
                message=f"Value for {schema.measurement!r} has no field values set",
                details={"value_fields": list(schema.value_fields)},
            )

        if schema.timestamp_field:
            timestamp = _to_time(_read(value, schema.timestamp_field))
            if timestamp is not None:
                point.time(timestamp, self._target.precision)
        return point

    def write(self, value: Any, schema: WriteSchema) -> None:
        """
        Write one value.

        Raises:
            InvalidArgument: Before any I/O, if schema or value are invalid
            InfluxError: If all retries fail
        """
        schema.validate()
        point = self.to_point(value, schema)
        self._write([point], schema.measurement)

    def write_batch(self, values: Iterable[Any], schema: WriteSchema) -> None:
        """
        Write several values in one store call.

        Every value is converted before the call; the call itself either
        succeeds or fails as a whole.
        """
        schema.validate()
        items = list(values or [])
        if not items:
            raise InvalidArgument(message="Cannot write an empty batch")
        points = [self.to_point(item, schema) for item in items]
        self._write(points, schema.measurement)

    def _write(self, points: list[Point], measurement: str) -> None:
        bucket = self._target.bucket
        start_time = time.time()
        last_error: Exception | None = None

        for attempt in range(self._max_retries):
            try:
                self._write_api.write(
                    bucket=bucket,
                    org=self._target.org,
                    record=points if len(points) > 1 else points[0],
                    write_precision=self._target.precision,
                )

                INFLUX_WRITE_LATENCY.labels(bucket=bucket).observe(time.time() - start_time)
                INFLUX_WRITE_COUNT.labels(bucket=bucket, status="success").inc()
                logger.debug(
                    "Records written to InfluxDB",
                    extra={"bucket": bucket, "measurement": measurement, "count": len(points)},
                )
                return

            except Exception as e:
                last_error = e
                logger.warning(
                    "InfluxDB write attempt failed",
                    extra={"attempt": attempt + 1, "max_retries": self._max_retries, "error": str(e)},
                )

                if attempt < self._max_retries - 1:
                    # Exponential backoff: 100ms, 200ms, 400ms
                    self._sleep(0.1 * (2**attempt))

        INFLUX_WRITE_COUNT.labels(bucket=bucket, status="failure").inc()

        raise InfluxError(
            code=ErrorCode.INFLUX_WRITE_FAILED,
            message=f"Failed to write {len(points)} {measurement!r} record(s) after {self._max_retries} attempts",
            details={"bucket": bucket, "last_error": str(last_error) if last_error else None},
        )

    def _sleep(self, seconds: float) -> None:
        time.sleep(seconds)
