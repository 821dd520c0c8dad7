"""
Raw Home Assistant sensor exports (bucket sensor_data).

Home Assistant stores the unit as the measurement name, so humidity is "%",
temperature is "°C" and power is "W", each with a single "value" field.
"""

from datetime import datetime

from tsbridge.domain.buckets import Bucket
from tsbridge.domain.export.template import BucketExporter, ExportStrategy
from tsbridge.domain.registry import (
    CLIMATE_FIELDS,
    ENERGY_DEVICE_CLASS_PATTERN,
    HUMIDITY_MEASUREMENT,
    POWER_MEASUREMENT,
    SENSOR_MEASUREMENTS,
    TEMPERATURE_MEASUREMENT,
    UNIT_MEASUREMENTS,
)
from tsbridge.infra.influx.queries import FluxQueryBuilder, quote
from tsbridge.schemas.records import BaseRecord

UNKNOWN_LOCATION = "Unknown"

HUMIDITY_ROOMS = {
    "lumi_lumi_weather_humidity": "Bathroom",
    "lumi_lumi_weather_humidity_2": "Hallway",
    "lumi_lumi_weather_humidity_3": "Kitchen",
    "lumi_lumi_weather_humidity_4": "Bedroom",
    "lumi_lumi_weather_humidity_5": "Living room",
}

TEMPERATURE_ROOMS = {
    "temperature_sensor_1": "Living room",
    "temperature_sensor_2": "Bedroom",
    "temperature_sensor_3": "Kitchen",
    "temperature_sensor_4": "Bathroom",
    "temperature_sensor_5": "Hallway",
}

POWER_DEVICES = {
    "tasmota_energy_power": "Fridge",
    "tasmota_energy_power_2": "Server",
    "tasmota_energy_power_3": "Workstation",
    "tasmota_energy_power_4": "Washing machine",
}

XIAOMI_ENTITY_PATTERN = ".*xiaomi.*"
XIAOMI_NAME_PATTERN = ".*(Aqara|Xiaomi).*"
TASMOTA_ENTITY_PATTERN = ".*tasmota.*"
TASMOTA_NAME_PATTERN = ".*Tasmota.*"


def relabel_map(mapping: dict[str, str], default: str = UNKNOWN_LOCATION) -> str:
    """Flux map() body setting friendly_name from entity_id."""
    expression = quote(default)
    for entity_id, label in reversed(list(mapping.items())):
        expression = f"if r.entity_id == {quote(entity_id)} then {quote(label)} else {expression}"
    return f"(r) => ({{r with friendly_name: {expression}}})"


# =============================================================================
# Strategy queries
# =============================================================================

def build_sensor_data_query(start: datetime, end: datetime) -> str:
    return (
        FluxQueryBuilder.from_bucket(Bucket.SENSOR_DATA)
        .time_range(start, end)
        .measurements(*SENSOR_MEASUREMENTS)
        .sort("desc")
        .build()
    )


def _unit_query(
    measurement: str,
    start: datetime,
    end: datetime,
    bucket: Bucket = Bucket.SENSOR_DATA,
) -> FluxQueryBuilder:
    return (
        FluxQueryBuilder.from_bucket(bucket)
        .time_range(start, end)
        .measurement(measurement)
        .field("value")
    )


def build_humidity_query(start: datetime, end: datetime, bucket: Bucket = Bucket.SENSOR_DATA) -> str:
    return (
        _unit_query(HUMIDITY_MEASUREMENT, start, end, bucket)
        .tag_regex("device_class", "humidity")
        .map(relabel_map(HUMIDITY_ROOMS))
        .sort("desc")
        .build()
    )


def build_temperature_query(start: datetime, end: datetime, bucket: Bucket = Bucket.SENSOR_DATA) -> str:
    return (
        _unit_query(TEMPERATURE_MEASUREMENT, start, end, bucket)
        .tag("device_class", "temperature")
        .map(relabel_map(TEMPERATURE_ROOMS))
        .sort("desc")
        .build()
    )


def build_power_query(start: datetime, end: datetime, bucket: Bucket = Bucket.SENSOR_DATA) -> str:
    return (
        _unit_query(POWER_MEASUREMENT, start, end, bucket)
        .map(relabel_map(POWER_DEVICES))
        .sort("desc")
        .build()
    )


def _is_humidity(record: BaseRecord) -> bool:
    return record.measurement == HUMIDITY_MEASUREMENT


def _is_temperature(record: BaseRecord) -> bool:
    return record.measurement == TEMPERATURE_MEASUREMENT


def _is_power(record: BaseRecord) -> bool:
    return record.measurement == POWER_MEASUREMENT


SENSOR_DATA = ExportStrategy(
    name="sensor_data",
    bucket=Bucket.SENSOR_DATA,
    build_query=build_sensor_data_query,
    description="Home Assistant sensor data (all sensor measurements)",
)

HUMIDITY = ExportStrategy(
    name="humidity",
    bucket=Bucket.SENSOR_DATA,
    build_query=build_humidity_query,
    accept=_is_humidity,
    description="Humidity sensors (% from Home Assistant)",
)

TEMPERATURE = ExportStrategy(
    name="temperature",
    bucket=Bucket.SENSOR_DATA,
    build_query=build_temperature_query,
    accept=_is_temperature,
    description="Temperature sensors (°C from Home Assistant)",
)

POWER = ExportStrategy(
    name="power",
    bucket=Bucket.SENSOR_DATA,
    build_query=build_power_query,
    accept=_is_power,
    description="Power sensors (W from Tasmota plugs)",
)


# =============================================================================
# Variant queries
# =============================================================================

def build_humidity_sensors_query(start: datetime, end: datetime) -> str:
    """Any sensor-type measurement tagged device_class=humidity."""
    return (
        FluxQueryBuilder.from_bucket(Bucket.SENSOR_DATA)
        .time_range(start, end)
        .measurements("sensor", HUMIDITY_MEASUREMENT)
        .tag("device_class", "humidity")
        .sort("desc")
        .build()
    )


def build_energy_monitoring_query(start: datetime, end: datetime) -> str:
    return (
        FluxQueryBuilder.from_bucket(Bucket.SENSOR_DATA)
        .time_range(start, end)
        .measurements("sensor", "energy", "power", POWER_MEASUREMENT)
        .tag_regex("device_class", ENERGY_DEVICE_CLASS_PATTERN)
        .sort("desc")
        .build()
    )


def build_climate_temperature_query(start: datetime, end: datetime) -> str:
    return (
        FluxQueryBuilder.from_bucket(Bucket.SENSOR_DATA)
        .time_range(start, end)
        .measurement("climate")
        .fields(*CLIMATE_FIELDS[:2])
        .sort("desc")
        .build()
    )


def build_xiaomi_query(start: datetime, end: datetime) -> str:
    return (
        FluxQueryBuilder.from_bucket(Bucket.SENSOR_DATA)
        .time_range(start, end)
        .measurements(*SENSOR_MEASUREMENTS)
        .tag_regex("entity_id", XIAOMI_ENTITY_PATTERN)
        .tag_regex("friendly_name", XIAOMI_NAME_PATTERN)
        .sort("desc")
        .build()
    )


def build_tasmota_query(start: datetime, end: datetime) -> str:
    return (
        FluxQueryBuilder.from_bucket(Bucket.SENSOR_DATA)
        .time_range(start, end)
        .measurements(*SENSOR_MEASUREMENTS, POWER_MEASUREMENT)
        .tag_regex("entity_id", TASMOTA_ENTITY_PATTERN)
        .tag_regex("friendly_name", TASMOTA_NAME_PATTERN)
        .sort("desc")
        .build()
    )


def build_location_query(location: str, start: datetime, end: datetime) -> str:
    return (
        FluxQueryBuilder.from_bucket(Bucket.SENSOR_DATA)
        .time_range(start, end)
        .measurements(*SENSOR_MEASUREMENTS, *UNIT_MEASUREMENTS)
        .tag("location", location)
        .sort("desc")
        .build()
    )


def build_device_class_query(device_class: str, start: datetime, end: datetime) -> str:
    return (
        FluxQueryBuilder.from_bucket(Bucket.SENSOR_DATA)
        .time_range(start, end)
        .tag("device_class", device_class)
        .sort("desc")
        .build()
    )


def build_entity_query(entity_id: str, start: datetime, end: datetime) -> str:
    return (
        FluxQueryBuilder.from_bucket(Bucket.SENSOR_DATA)
        .time_range(start, end)
        .tag("entity_id", entity_id)
        .sort("desc")
        .build()
    )


# =============================================================================
# Variant exports
# =============================================================================

def export_humidity_sensors(exporter: BucketExporter, start=None, end=None) -> list[BaseRecord]:
    return exporter.export_variant(
        Bucket.SENSOR_DATA, "humidity_sensors", build_humidity_sensors_query, start=start, end=end
    )


def export_energy_monitoring(exporter: BucketExporter, start=None, end=None) -> list[BaseRecord]:
    return exporter.export_variant(
        Bucket.SENSOR_DATA, "energy_monitoring", build_energy_monitoring_query, start=start, end=end
    )


def export_climate_temperature(exporter: BucketExporter, start=None, end=None) -> list[BaseRecord]:
    return exporter.export_variant(
        Bucket.SENSOR_DATA, "climate", build_climate_temperature_query, start=start, end=end
    )


def export_xiaomi_sensors(exporter: BucketExporter, start=None, end=None) -> list[BaseRecord]:
    return exporter.export_variant(
        Bucket.SENSOR_DATA, "xiaomi", build_xiaomi_query, start=start, end=end
    )


def export_tasmota_devices(exporter: BucketExporter, start=None, end=None) -> list[BaseRecord]:
    return exporter.export_variant(
        Bucket.SENSOR_DATA, "tasmota", build_tasmota_query, start=start, end=end
    )


def export_by_location(exporter: BucketExporter, location: str, start=None, end=None) -> list[BaseRecord]:
    return exporter.export_variant(
        Bucket.SENSOR_DATA, "location", build_location_query, location, start=start, end=end
    )


def export_by_device_class(
    exporter: BucketExporter,
    device_class: str,
    start=None,
    end=None,
) -> list[BaseRecord]:
    return exporter.export_variant(
        Bucket.SENSOR_DATA, "device_class", build_device_class_query, device_class, start=start, end=end
    )


def export_by_entity(exporter: BucketExporter, entity_id: str, start=None, end=None) -> list[BaseRecord]:
    return exporter.export_variant(
        Bucket.SENSOR_DATA, "entity", build_entity_query, entity_id, start=start, end=end
    )
