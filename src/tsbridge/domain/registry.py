"""
Static catalogue of measurements, fields and tags per bucket, plus the
field-name based coercion rules applied when rows are decoded.

Everything here is built at import time and never mutated.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Callable

from tsbridge.domain.buckets import Bucket


class CoercionTarget(str, Enum):
    FLOAT = "float"
    INT = "int"


@dataclass(frozen=True)
class CoercionRule:
    """Field-name predicate paired with the type its values are parsed to."""

    name: str
    matches: Callable[[str], bool]
    target: CoercionTarget


@dataclass(frozen=True)
class Coercion:
    """
    Outcome of coercing one field value.

    `ok` is True when a rule matched and parsing succeeded; otherwise `value`
    is the untouched original.
    """

    value: Any
    original: Any
    ok: bool
    rule: str | None = None

    @classmethod
    def coerced(cls, value: Any, original: Any, rule: str) -> "Coercion":
        return cls(value=value, original=original, ok=True, rule=rule)

    @classmethod
    def kept(cls, original: Any, rule: str | None = None) -> "Coercion":
        return cls(value=original, original=original, ok=False, rule=rule)


@dataclass(frozen=True)
class BucketSchema:
    bucket: Bucket
    measurements: tuple[str, ...]
    fields: dict[str, tuple[str, ...]]
    tags: tuple[str, ...]
    rules: tuple[CoercionRule, ...] = field(default_factory=tuple)

    @property
    def all_fields(self) -> tuple[str, ...]:
        seen: dict[str, None] = {}
        for names in self.fields.values():
            for name in names:
                seen.setdefault(name, None)
        return tuple(seen)

    def field_group(self, group: str) -> tuple[str, ...]:
        return self.fields[group]

    def is_known_measurement(self, measurement: str) -> bool:
        return measurement in self.measurements

    def is_known_tag(self, tag: str) -> bool:
        return tag in self.tags


def _contains(*needles: str) -> Callable[[str], bool]:
    return lambda name: any(needle in name for needle in needles)


def _exact(*names: str) -> Callable[[str], bool]:
    allowed = frozenset(names)
    return lambda name: name in allowed


# =============================================================================
# System metrics (Telegraf)
# =============================================================================

SYSTEM_MEASUREMENTS = ("cpu", "mem", "system", "disk", "diskio", "net", "processes", "swap")

CPU_FIELDS = (
    "usage_user", "usage_system", "usage_idle", "usage_iowait",
    "usage_irq", "usage_softirq", "usage_steal", "usage_guest",
)
MEMORY_FIELDS = (
    "used_percent", "available_percent", "used", "free", "total",
    "available", "cached", "buffered",
)
DISK_FIELDS = (
    "used_percent", "used", "free", "total", "inodes_used", "inodes_free",
    "reads", "writes", "read_bytes", "write_bytes",
)
NETWORK_FIELDS = (
    "bytes_sent", "bytes_recv", "packets_sent", "packets_recv",
    "err_in", "err_out", "drop_in", "drop_out",
)
SYSTEM_FIELDS = ("load1", "load5", "load15", "n_cpus", "n_users", "uptime")
PROCESS_FIELDS = ("total", "running", "sleeping", "blocked", "zombies", "stopped", "total_threads")

SYSTEM_TAGS = ("host", "hostname", "cpu", "device", "interface", "path", "mode", "state")

DEFAULT_HOST = "home-server"

SYSTEM_RULES = (
    CoercionRule("percentage", _contains("percent", "usage"), CoercionTarget.FLOAT),
    CoercionRule(
        "counter",
        lambda name: "count" in name or "total" in name or name.startswith("n_"),
        CoercionTarget.INT,
    ),
    CoercionRule("load", _contains("load", "rate"), CoercionTarget.FLOAT),
)


# =============================================================================
# Sensor data (Home Assistant)
# =============================================================================

SENSOR_MEASUREMENTS = ("sensor", "binary_sensor", "climate", "energy", "power")

# Home Assistant writes the unit of measurement as the measurement name
HUMIDITY_MEASUREMENT = "%"
TEMPERATURE_MEASUREMENT = "°C"
POWER_MEASUREMENT = "W"
UNIT_MEASUREMENTS = (HUMIDITY_MEASUREMENT, TEMPERATURE_MEASUREMENT, POWER_MEASUREMENT)

SENSOR_VALUE_FIELDS = ("value", "state")
CLIMATE_FIELDS = ("temperature", "current_temperature", "humidity")
ENERGY_FIELDS = ("power", "energy", "current", "voltage")

SENSOR_TAGS = (
    "entity_id", "friendly_name", "device_class", "unit_of_measurement",
    "source", "device", "location",
)

ENERGY_DEVICE_CLASS_PATTERN = "(power|energy|current|voltage)"
TEMPERATURE_DEVICE_CLASS_PATTERN = "(temperature|thermal)"

SENSOR_RULES = (
    CoercionRule(
        "reading",
        lambda name: name in ("humidity", "value", "temperature", "current_temperature") or "percent" in name,
        CoercionTarget.FLOAT,
    ),
    CoercionRule("electrical", _exact(*ENERGY_FIELDS), CoercionTarget.FLOAT),
)


# =============================================================================
# Aggregated sensor data (30 minute downsampling task)
# =============================================================================

AGGREGATED_MEASUREMENTS = ("sensor_aggregated", "sensor_mean", "sensor_stats")
STATISTIC_FIELDS = ("mean", "min", "max", "stddev", "variance")
HUMIDITY_AGGREGATED_FIELDS = ("humidity_mean", "humidity_min", "humidity_max")
TEMPERATURE_AGGREGATED_FIELDS = ("temperature_mean", "temperature_min", "temperature_max")
ENERGY_AGGREGATED_FIELDS = ("power_mean", "energy_sum", "current_mean", "voltage_mean")
COUNTER_FIELDS = ("count", "sum")
AGGREGATED_TAGS = SENSOR_TAGS + ("window", "aggregation")

SUPPORTED_WINDOWS = ("1m", "5m", "15m", "30m", "1h", "6h", "12h", "1d")
DEFAULT_WINDOW = "30m"

AGGREGATED_RULES = (
    CoercionRule(
        "statistic",
        _contains("mean", "average", "min", "max", "stddev", "variance", "value"),
        CoercionTarget.FLOAT,
    ),
    CoercionRule("counter", _contains("count", "sum"), CoercionTarget.FLOAT),
)


# =============================================================================
# Costs
# =============================================================================

COST_MEASUREMENTS = ("costs", "expenses", "billing", "subscriptions", "licenses")
COST_FIELDS = (
    "value", "amount", "cost", "base_cost", "variable_cost", "fixed_cost",
    "tax", "rate", "price_per_unit",
)
COST_USAGE_FIELDS = ("usage", "consumption")
COST_TAGS = (
    "cost_type", "category", "currency", "billing_period", "provider",
    "service", "account", "description",
)
SUPPORTED_CURRENCIES = ("EUR", "USD", "GBP", "CHF")

COST_RULES = (
    CoercionRule(
        "monetary",
        _contains("cost", "amount", "value", "rate", "price", "tax"),
        CoercionTarget.FLOAT,
    ),
    CoercionRule("usage", _contains("usage", "consumption"), CoercionTarget.FLOAT),
)


SCHEMAS: dict[Bucket, BucketSchema] = {
    Bucket.SYSTEM_METRICS: BucketSchema(
        bucket=Bucket.SYSTEM_METRICS,
        measurements=SYSTEM_MEASUREMENTS,
        fields={
            "cpu": CPU_FIELDS,
            "memory": MEMORY_FIELDS,
            "disk": DISK_FIELDS,
            "network": NETWORK_FIELDS,
            "system": SYSTEM_FIELDS,
            "process": PROCESS_FIELDS,
        },
        tags=SYSTEM_TAGS,
        rules=SYSTEM_RULES,
    ),
    Bucket.SENSOR_DATA: BucketSchema(
        bucket=Bucket.SENSOR_DATA,
        measurements=SENSOR_MEASUREMENTS + UNIT_MEASUREMENTS,
        fields={
            "value": SENSOR_VALUE_FIELDS,
            "climate": CLIMATE_FIELDS,
            "energy": ENERGY_FIELDS,
        },
        tags=SENSOR_TAGS,
        rules=SENSOR_RULES,
    ),
    Bucket.SENSOR_DATA_AGGREGATED: BucketSchema(
        bucket=Bucket.SENSOR_DATA_AGGREGATED,
        measurements=AGGREGATED_MEASUREMENTS + UNIT_MEASUREMENTS,
        fields={
            "statistic": STATISTIC_FIELDS,
            "counter": COUNTER_FIELDS,
            "value": ("value",),
            "humidity": HUMIDITY_AGGREGATED_FIELDS,
            "temperature": TEMPERATURE_AGGREGATED_FIELDS,
            "energy": ENERGY_AGGREGATED_FIELDS,
        },
        tags=AGGREGATED_TAGS,
        rules=AGGREGATED_RULES,
    ),
    Bucket.COSTS: BucketSchema(
        bucket=Bucket.COSTS,
        measurements=COST_MEASUREMENTS,
        fields={"monetary": COST_FIELDS, "usage": COST_USAGE_FIELDS},
        tags=COST_TAGS,
        rules=COST_RULES,
    ),
}


def schema_for(bucket: Bucket) -> BucketSchema:
    return SCHEMAS[bucket]


def find_rule(field_name: str, bucket: Bucket) -> CoercionRule | None:
    """First rule of the bucket whose predicate matches the lower-cased field name."""
    name = field_name.lower()
    for rule in SCHEMAS[bucket].rules:
        if rule.matches(name):
            return rule
    return None


def coerce(field_name: str | None, value: Any, bucket: Bucket) -> Coercion:
    """
    Parse a field value to the type its name implies for this bucket.

    Never raises: when no rule matches or parsing fails the original value
    comes back with ok=False.
    """
    if field_name is None or value is None or isinstance(value, bool):
        return Coercion.kept(value)

    rule = find_rule(field_name, bucket)
    if rule is None:
        return Coercion.kept(value)

    parsed = _parse(value, rule.target)
    if parsed is None:
        return Coercion.kept(value, rule.name)
    return Coercion.coerced(parsed, value, rule.name)


def _parse(value: Any, target: CoercionTarget) -> float | int | None:
    if target is CoercionTarget.FLOAT:
        return _parse_float(value)
    return _parse_int(value)


def _parse_float(value: Any) -> float | None:
    if isinstance(value, (int, float, Decimal)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _parse_int(value: Any) -> int | None:
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None
