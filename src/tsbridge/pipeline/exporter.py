"""
Multi-bucket export to NDJSON files.

Targets are exported one after another. A target that fails is logged and
skipped; the remaining targets still run.
"""

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Iterable

from tsbridge.core.config import Settings, get_settings
from tsbridge.core.errors import AppError, ExportFailure, InvalidArgument
from tsbridge.core.logging import export_target_scope, get_logger
from tsbridge.core.telemetry import EXPORT_FILES_WRITTEN
from tsbridge.domain.export import aggregated, costs, sensors, system_metrics
from tsbridge.domain.export.template import ExportStrategy, export_bucket
from tsbridge.infra.influx.client import InfluxClient
from tsbridge.pipeline.file_sink import ExportFileWriter, create_file_path

logger = get_logger(__name__)


class ExportTarget(Enum):
    """What can be exported to a file, with the file name prefix it gets."""

    TEMPERATURE = ("temperature", sensors.TEMPERATURE)
    HUMIDITY = ("humidity", sensors.HUMIDITY)
    POWER = ("power", sensors.POWER)
    TEMPERATURE_AGGREGATED = ("temperature_aggregated", aggregated.TEMPERATURE_AGGREGATED)
    HUMIDITY_AGGREGATED = ("humidity_aggregated", aggregated.HUMIDITY_AGGREGATED)
    POWER_AGGREGATED = ("power_aggregated", aggregated.POWER_AGGREGATED)
    SYSTEM_METRICS = ("system_metrics", system_metrics.SYSTEM_METRICS)
    SENSOR_DATA = ("sensor_data", sensors.SENSOR_DATA)
    SENSOR_DATA_AGGREGATED = ("sensor_data_aggregated", aggregated.SENSOR_DATA_AGGREGATED)
    COSTS = ("costs", costs.COSTS)

    def __init__(self, prefix: str, strategy: ExportStrategy) -> None:
        self.prefix = prefix
        self.strategy = strategy

    @property
    def bucket_name(self) -> str:
        return self.strategy.bucket_name

    @property
    def description(self) -> str:
        return self.strategy.description

    @classmethod
    def from_name(cls, name: str) -> "ExportTarget":
        key = name.strip().upper().replace("-", "_")
        try:
            return cls[key]
        except KeyError:
            raise InvalidArgument(
                message=f"Unknown export target: {name!r}",
                details={"target": name, "known": [target.name.lower() for target in cls]},
            ) from None


class InfluxExporter:
    """Exports targets to timestamped NDJSON files in the export folder."""

    def __init__(
        self,
        client: InfluxClient,
        settings: Settings | None = None,
        file_writer: ExportFileWriter | None = None,
    ) -> None:
        self.client = client
        self.settings = settings or get_settings()
        self.file_writer = file_writer or ExportFileWriter()

    def export_target(
        self,
        target: ExportTarget,
        start: datetime | None = None,
        end: datetime | None = None,
        timestamp: datetime | None = None,
    ) -> Path:
        """
        Export one target and write its file.

        Raises:
            AppError: ConfigurationError, ExportFailure or FileWriteError
        """
        records = export_bucket(target.strategy, self.client, self.settings, start, end)
        path = create_file_path(
            self.settings.export_folder,
            target.prefix,
            timestamp or datetime.now(timezone.utc),
        )
        self.file_writer.write_file(path, records)
        EXPORT_FILES_WRITTEN.labels(target=target.name.lower()).inc()
        return path

    def _export_isolated(
        self,
        target: ExportTarget,
        start: datetime | None,
        end: datetime | None,
        timestamp: datetime,
    ) -> Path:
        try:
            with export_target_scope(target.name.lower()):
                return self.export_target(target, start, end, timestamp)
        except AppError:
            raise
        except Exception as e:
            raise ExportFailure(
                bucket=target.bucket_name,
                message=f"Unexpected error exporting {target.name.lower()}: {e}",
                details={"target": target.name, "error_type": type(e).__name__},
            ) from e

    def export_selected(
        self,
        targets: Iterable[ExportTarget],
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Path]:
        """
        Export each target independently.

        Returns:
            Paths of the files that were written; failed targets are missing
        """
        targets = list(targets)
        timestamp = datetime.now(timezone.utc)
        written: list[Path] = []

        for target in targets:
            try:
                written.append(self._export_isolated(target, start, end, timestamp))
            except AppError as e:
                logger.error(
                    "Export target failed, continuing with remaining targets",
                    extra={
                        "target": target.name,
                        "bucket": target.bucket_name,
                        "error_code": e.code.value,
                        "error": e.message,
                    },
                )

        logger.info(
            "Multi-bucket export finished",
            extra={"requested": len(targets), "written": len(written)},
        )
        return written

    def export_all(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Path]:
        return self.export_selected(list(ExportTarget), start, end)
