# InfluxDB infrastructure exports
from tsbridge.infra.influx.client import (
    InfluxClient,
    get_influx_client,
    init_influx_client,
    close_influx_client,
)
from tsbridge.infra.influx.queries import (
    FluxQueryBuilder,
    query_from,
    validate_duration,
    format_flux_time,
)
from tsbridge.infra.influx.writer import (
    RecordWriter,
    WriteSchema,
    WriteTarget,
)

__all__ = [
    "InfluxClient",
    "get_influx_client",
    "init_influx_client",
    "close_influx_client",
    "FluxQueryBuilder",
    "query_from",
    "validate_duration",
    "format_flux_time",
    "RecordWriter",
    "WriteSchema",
    "WriteTarget",
]
