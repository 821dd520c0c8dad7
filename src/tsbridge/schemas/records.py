"""
Decoded record models, one per bucket.

Records are immutable. The decoder guarantees a non-blank measurement, a
timestamp (or both window bounds) and at least one field before it hands a
record out.
"""

from datetime import date, datetime, timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from tsbridge.domain.registry import (
    HUMIDITY_MEASUREMENT,
    POWER_MEASUREMENT,
    TEMPERATURE_MEASUREMENT,
)


class BaseRecord(BaseModel):
    """Fields and tags shared by every bucket record."""

    model_config = ConfigDict(frozen=True)

    measurement: str = Field(..., description="Measurement name")
    fields: dict[str, Any] = Field(default_factory=dict, description="Field name to value")
    tags: dict[str, str] = Field(default_factory=dict, description="Tag key to value")

    def value(self, name: str, default: Any = None) -> Any:
        """Field value by name."""
        return self.fields.get(name, default)

    def numeric_value(self, name: str) -> float | None:
        value = self.fields.get(name)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return float(value)


class SystemMetricsRecord(BaseRecord):
    """Telegraf host metric (cpu, mem, disk, net, ...)."""

    timestamp: datetime = Field(..., description="Sample time (UTC)")
    host: str | None = Field(default=None, description="Reporting host")

    @property
    def cpu_usage(self) -> float | None:
        """Busy CPU percentage derived from usage_idle when present."""
        idle = self.numeric_value("usage_idle")
        if idle is None:
            return None
        return 100.0 - idle

    @property
    def memory_used_percent(self) -> float | None:
        if self.measurement != "mem":
            return None
        return self.numeric_value("used_percent")


class SensorRecord(BaseRecord):
    """Raw Home Assistant sensor reading."""

    timestamp: datetime = Field(..., description="Reading time (UTC)")
    entity_id: str | None = None
    friendly_name: str | None = None
    device_class: str | None = None
    unit_of_measurement: str | None = None

    @property
    def display_name(self) -> str:
        return self.friendly_name or self.entity_id or self.measurement

    def is_humidity_sensor(self) -> bool:
        return self.measurement == HUMIDITY_MEASUREMENT

    def is_temperature_sensor(self) -> bool:
        return self.measurement == TEMPERATURE_MEASUREMENT

    def is_power_sensor(self) -> bool:
        return self.measurement == POWER_MEASUREMENT


class AggregatedSensorRecord(BaseRecord):
    """Sensor statistics over one downsampling window."""

    entity_id: str | None = None
    friendly_name: str | None = None
    device_class: str | None = None
    unit_of_measurement: str | None = None
    window: str | None = Field(default=None, description="Window tag as stored, e.g. 30m")
    window_start: datetime = Field(..., description="Window start (UTC)")
    window_end: datetime = Field(..., description="Estimated window end (UTC)")

    @property
    def mean_value(self) -> float | None:
        for name in ("mean", "value"):
            value = self.numeric_value(name)
            if value is not None:
                return value
        return None

    @property
    def min_value(self) -> float | None:
        return self.numeric_value("min")

    @property
    def max_value(self) -> float | None:
        return self.numeric_value("max")

    @property
    def window_duration(self) -> timedelta:
        return self.window_end - self.window_start

    @property
    def center_timestamp(self) -> datetime:
        return self.window_start + self.window_duration / 2

    def is_humidity(self) -> bool:
        return self.device_class == "humidity" or self.measurement == HUMIDITY_MEASUREMENT

    def is_temperature(self) -> bool:
        return self.device_class == "temperature" or self.measurement == TEMPERATURE_MEASUREMENT

    def is_energy(self) -> bool:
        return self.device_class in ("power", "energy") or self.measurement == POWER_MEASUREMENT


class CostRecord(BaseRecord):
    """Cost or billing entry."""

    timestamp: datetime = Field(..., description="Booking time (UTC)")
    cost_date: date | None = Field(default=None, description="Calendar day of the booking")
    cost_type: str | None = None
    category: str | None = None
    description: str | None = None

    @property
    def primary_cost_value(self) -> float | None:
        """First numeric of value, amount, cost."""
        for name in ("value", "amount", "cost"):
            value = self.numeric_value(name)
            if value is not None:
                return value
        return None

    @property
    def currency(self) -> str | None:
        return self.tags.get("currency")

    @property
    def billing_period(self) -> str | None:
        return self.tags.get("billing_period")

    @property
    def provider(self) -> str | None:
        return self.tags.get("provider")

    @property
    def service(self) -> str | None:
        return self.tags.get("service")

    @property
    def account(self) -> str | None:
        return self.tags.get("account")

    def is_energy_cost(self) -> bool:
        return self._category_is("energy")

    def is_subscription_cost(self) -> bool:
        return self._category_is("subscription")

    def is_license_cost(self) -> bool:
        return self._category_is("license")

    def has_valid_monetary_value(self) -> bool:
        value = self.primary_cost_value
        return value is not None and value >= 0

    def formatted_description(self) -> str:
        parts = [self.description or self.cost_type or self.measurement]
        value = self.primary_cost_value
        if value is not None:
            parts.append(f"{value:.2f} {self.currency or ''}".rstrip())
        if self.provider:
            parts.append(f"({self.provider})")
        return " ".join(parts)

    def _category_is(self, category: str) -> bool:
        return (self.category or "").lower() == category
