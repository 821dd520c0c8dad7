"""
Generic bucket export.

One export is a single pass: check configuration, resolve the time window,
render the strategy's query, run it, decode every row and drop the rows
that do not decode to a valid record.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from tsbridge.core.config import Settings, get_settings, validate_export_settings
from tsbridge.core.errors import ConfigurationError, ErrorCode, ExportFailure
from tsbridge.core.logging import get_logger
from tsbridge.core.telemetry import EXPORT_ROWS, EXPORT_RUNS
from tsbridge.domain.buckets import Bucket
from tsbridge.domain.decoder import RawRow, decode
from tsbridge.infra.influx.client import InfluxClient
from tsbridge.schemas.records import BaseRecord

logger = get_logger(__name__)

DEFAULT_LOOKBACK = timedelta(hours=24)

QueryFactory = Callable[[datetime, datetime], str]
RecordFilter = Callable[[BaseRecord], bool]


@dataclass(frozen=True)
class ExportStrategy:
    """
    Everything bucket specific about an export.

    Attributes:
        name: Short identifier used in logs and metrics
        bucket: Bucket category; selects the decoder
        build_query: Renders the Flux query for a [start, end) window
        accept: Optional post-decode filter, e.g. humidity sensors only
        description: Human readable label
    """

    name: str
    bucket: Bucket
    build_query: QueryFactory
    accept: RecordFilter | None = None
    description: str = ""

    @property
    def bucket_name(self) -> str:
        return self.bucket.bucket_name


def check_configuration(settings: Settings) -> None:
    """
    Raises:
        ConfigurationError: If url, token or org are missing or exports are disabled
    """
    problems = validate_export_settings(settings)
    if not problems:
        return
    code = ErrorCode.CONFIG_MISSING_VALUE
    if problems == ["INFLUX_EXPORT_ENABLED is false"]:
        code = ErrorCode.CONFIG_EXPORT_DISABLED
    raise ConfigurationError(
        code=code,
        message="; ".join(problems),
        details={"problems": problems},
    )


def resolve_window(
    start: datetime | None = None,
    end: datetime | None = None,
    now: datetime | None = None,
) -> tuple[datetime, datetime]:
    """Caller bounds are kept as given; missing ones default to (now - 24h, now)."""
    now = now or datetime.now(timezone.utc)
    return (
        start if start is not None else now - DEFAULT_LOOKBACK,
        end if end is not None else now,
    )


def _execute(client: InfluxClient, bucket: Bucket, query: str, name: str) -> list[RawRow]:
    try:
        return client.query(query, query_type=name)
    except Exception as e:
        EXPORT_RUNS.labels(bucket=bucket.bucket_name, status="failure").inc()
        logger.error(
            "Export query failed",
            extra={"bucket": bucket.bucket_name, "export": name, "error": str(e)},
        )
        raise ExportFailure(bucket=bucket.bucket_name, details={"error": str(e)}) from e


def _decode_rows(
    rows: list[RawRow],
    bucket: Bucket,
    name: str,
    accept: RecordFilter | None = None,
) -> list[BaseRecord]:
    records = []
    for row in rows:
        record = decode(row, bucket)
        if record is None:
            continue
        if accept is not None and not accept(record):
            continue
        records.append(record)

    dropped = len(rows) - len(records)
    EXPORT_ROWS.labels(bucket=bucket.bucket_name, status="decoded").inc(len(records))
    if dropped:
        EXPORT_ROWS.labels(bucket=bucket.bucket_name, status="dropped").inc(dropped)
    EXPORT_RUNS.labels(bucket=bucket.bucket_name, status="success").inc()

    logger.info(
        "Export finished",
        extra={"bucket": bucket.bucket_name, "export": name, "count": len(records), "dropped": dropped},
    )
    return records


def export_bucket(
    strategy: ExportStrategy,
    client: InfluxClient,
    settings: Settings | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[BaseRecord]:
    """
    Export one bucket through a strategy.

    Returns:
        Decoded records in store order; undecodable rows are left out

    Raises:
        ConfigurationError: Before any query, if the configuration is incomplete
        ExportFailure: If the query cannot be executed
    """
    settings = settings or get_settings()
    logger.info("Starting export", extra={"bucket": strategy.bucket_name, "export": strategy.name})

    check_configuration(settings)
    start, end = resolve_window(start, end)

    query = strategy.build_query(start, end)
    rows = _execute(client, strategy.bucket, query, strategy.name)
    return _decode_rows(rows, strategy.bucket, strategy.name, strategy.accept)


def export_query(
    bucket: Bucket,
    query: str,
    client: InfluxClient,
    settings: Settings | None = None,
    name: str = "custom",
    accept: RecordFilter | None = None,
) -> list[BaseRecord]:
    """Run an already rendered query for a bucket and decode the result."""
    settings = settings or get_settings()
    check_configuration(settings)
    rows = _execute(client, bucket, query, name)
    return _decode_rows(rows, bucket, name, accept)


class BucketExporter:
    """Binds a client and settings for repeated exports."""

    def __init__(self, client: InfluxClient, settings: Settings | None = None) -> None:
        self.client = client
        self.settings = settings or get_settings()

    def export(
        self,
        strategy: ExportStrategy,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[BaseRecord]:
        return export_bucket(strategy, self.client, self.settings, start, end)

    def export_query(
        self,
        bucket: Bucket,
        query: str,
        name: str = "custom",
        accept: RecordFilter | None = None,
    ) -> list[BaseRecord]:
        return export_query(bucket, query, self.client, self.settings, name=name, accept=accept)

    def export_variant(
        self,
        bucket: Bucket,
        name: str,
        build: Callable[..., str],
        *args: object,
        start: datetime | None = None,
        end: datetime | None = None,
        accept: RecordFilter | None = None,
    ) -> list[BaseRecord]:
        """Render `build(*args, start, end)` over the resolved window and export it."""
        start, end = resolve_window(start, end)
        return self.export_query(bucket, build(*args, start, end), name=name, accept=accept)
