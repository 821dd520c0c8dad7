"""
Write-back of costs and sensor readings into InfluxDB.

Value objects are plain pydantic models; the WriteSchema next to each one
says how it is laid out as a point.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable

from pydantic import BaseModel, ConfigDict, Field

from tsbridge.core.config import Settings, get_settings
from tsbridge.core.logging import get_logger
from tsbridge.infra.influx.writer import RecordWriter, WriteSchema, WriteTarget

logger = get_logger(__name__)


class CostType(str, Enum):
    DAILY = "daily"
    MONTHLY = "monthly"
    SALARY = "salary"


class CostEntry(BaseModel):
    """A booked cost: daily, monthly or salary."""

    model_config = ConfigDict(frozen=True)

    cost_type: CostType
    value: Decimal = Field(..., description="Amount in the account currency")
    time: datetime | date = Field(..., description="Booking time or day")
    description: str | None = None


class SensorReading(BaseModel):
    """One Home Assistant style reading; the unit is the measurement name."""

    model_config = ConfigDict(frozen=True)

    unit: str = Field(..., description="Unit of measurement, stored as measurement (%, °C, W)")
    entity_id: str
    friendly_name: str | None = None
    device_class: str | None = None
    value: float
    time: datetime


COST_SCHEMA = WriteSchema(
    measurement="costs",
    tag_fields=("cost_type", "description"),
    value_fields=("value",),
    timestamp_field="time",
)


def sensor_schema(unit: str) -> WriteSchema:
    return WriteSchema(
        measurement=unit,
        tag_fields=("entity_id", "friendly_name", "device_class"),
        value_fields=("value",),
        timestamp_field="time",
    )


class CostImporter:
    """Writes cost entries to the cost bucket."""

    def __init__(self, write_api, settings: Settings | None = None) -> None:
        settings = settings or get_settings()
        self.writer = RecordWriter(
            write_api,
            WriteTarget.for_cost_bucket(settings),
            max_retries=settings.write_max_retries,
        )

    def import_cost(self, entry: CostEntry) -> None:
        self.writer.write(entry, COST_SCHEMA)
        logger.info(
            "Cost imported",
            extra={"cost_type": entry.cost_type.value, "bucket": self.writer.target.bucket},
        )

    def import_costs(self, entries: Iterable[CostEntry]) -> int:
        """Write entries in one batch; returns how many were written."""
        entries = list(entries)
        self.writer.write_batch(entries, COST_SCHEMA)
        logger.info(
            "Costs imported",
            extra={"count": len(entries), "bucket": self.writer.target.bucket},
        )
        return len(entries)


class SensorDataWriter:
    """Writes sensor readings to the sensor bucket with second precision by default."""

    def __init__(self, write_api, settings: Settings | None = None) -> None:
        settings = settings or get_settings()
        self.writer = RecordWriter(
            write_api,
            WriteTarget.for_sensor_bucket(settings),
            max_retries=settings.write_max_retries,
        )

    def write_reading(self, reading: SensorReading) -> None:
        self.writer.write(reading, sensor_schema(reading.unit))

    def write_readings(self, readings: Iterable[SensorReading]) -> int:
        """
        Write readings grouped by unit, one batch per unit.

        Returns:
            Number of readings written
        """
        by_unit: dict[str, list[SensorReading]] = {}
        for reading in readings:
            by_unit.setdefault(reading.unit, []).append(reading)

        for unit, batch in by_unit.items():
            self.writer.write_batch(batch, sensor_schema(unit))

        total = sum(len(batch) for batch in by_unit.values())
        logger.debug("Sensor readings written", extra={"count": total, "units": list(by_unit)})
        return total
