"""
Telegraf host metrics exports (bucket system_metrics).
"""

from datetime import datetime

from tsbridge.core.errors import InvalidArgument
from tsbridge.domain.buckets import Bucket
from tsbridge.domain.export.template import BucketExporter, ExportStrategy
from tsbridge.domain.registry import DEFAULT_HOST, SCHEMAS, SYSTEM_MEASUREMENTS
from tsbridge.infra.influx.queries import FluxQueryBuilder
from tsbridge.schemas.records import BaseRecord

_SCHEMA = SCHEMAS[Bucket.SYSTEM_METRICS]


def build_system_metrics_query(start: datetime, end: datetime) -> str:
    return (
        FluxQueryBuilder.from_bucket(Bucket.SYSTEM_METRICS)
        .time_range(start, end)
        .measurements(*SYSTEM_MEASUREMENTS)
        .sort("desc")
        .build()
    )


SYSTEM_METRICS = ExportStrategy(
    name="system_metrics",
    bucket=Bucket.SYSTEM_METRICS,
    build_query=build_system_metrics_query,
    description="System metrics (Telegraf: cpu, memory, disk, network)",
)


def _host_query(
    measurements: tuple[str, ...],
    field_group: str,
    start: datetime,
    end: datetime,
    host: str = DEFAULT_HOST,
) -> str:
    return (
        FluxQueryBuilder.from_bucket(Bucket.SYSTEM_METRICS)
        .time_range(start, end)
        .measurements(*measurements)
        .fields(*_SCHEMA.field_group(field_group))
        .tag("host", host)
        .sort("desc")
        .build()
    )


def build_cpu_query(start: datetime, end: datetime, host: str = DEFAULT_HOST) -> str:
    return _host_query(("cpu",), "cpu", start, end, host)


def build_memory_query(start: datetime, end: datetime, host: str = DEFAULT_HOST) -> str:
    return _host_query(("mem",), "memory", start, end, host)


def build_disk_query(start: datetime, end: datetime, host: str = DEFAULT_HOST) -> str:
    return _host_query(("disk", "diskio"), "disk", start, end, host)


def build_network_query(start: datetime, end: datetime, host: str = DEFAULT_HOST) -> str:
    return _host_query(("net",), "network", start, end, host)


def build_system_load_query(start: datetime, end: datetime, host: str = DEFAULT_HOST) -> str:
    return _host_query(("system",), "system", start, end, host)


def build_process_query(start: datetime, end: datetime, host: str = DEFAULT_HOST) -> str:
    return _host_query(("processes",), "process", start, end, host)


_VARIANTS = {
    "cpu": build_cpu_query,
    "memory": build_memory_query,
    "disk": build_disk_query,
    "network": build_network_query,
    "system": build_system_load_query,
    "process": build_process_query,
}


def export_metric_group(
    exporter: BucketExporter,
    group: str,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[BaseRecord]:
    """
    Export one metric group (cpu, memory, disk, network, system, process)
    for the configured host.
    """
    if group not in _VARIANTS:
        raise InvalidArgument(
            message=f"Unknown metric group: {group!r}",
            details={"group": group, "known": list(_VARIANTS)},
        )
    build = _VARIANTS[group]
    host = exporter.settings.system_metrics_host
    return exporter.export_variant(
        Bucket.SYSTEM_METRICS,
        f"system_metrics_{group}",
        lambda s, e: build(s, e, host),
        start=start,
        end=end,
    )


def export_cpu_metrics(exporter: BucketExporter, start=None, end=None) -> list[BaseRecord]:
    return export_metric_group(exporter, "cpu", start, end)


def export_memory_metrics(exporter: BucketExporter, start=None, end=None) -> list[BaseRecord]:
    return export_metric_group(exporter, "memory", start, end)


def export_disk_metrics(exporter: BucketExporter, start=None, end=None) -> list[BaseRecord]:
    return export_metric_group(exporter, "disk", start, end)


def export_network_metrics(exporter: BucketExporter, start=None, end=None) -> list[BaseRecord]:
    return export_metric_group(exporter, "network", start, end)


def export_system_load(exporter: BucketExporter, start=None, end=None) -> list[BaseRecord]:
    return export_metric_group(exporter, "system", start, end)


def export_process_metrics(exporter: BucketExporter, start=None, end=None) -> list[BaseRecord]:
    return export_metric_group(exporter, "process", start, end)
