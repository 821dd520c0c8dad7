"""
Export selected buckets to NDJSON files.

Usage:
    python -m tsbridge.tools.export_buckets --target humidity --target power \
        --start 2024-01-01T00:00:00Z --end 2024-01-02T00:00:00Z

Environment:
    INFLUX_URL, INFLUX_TOKEN, INFLUX_ORG, INFLUX_EXPORT_ENABLED, EXPORT_FOLDER
"""

import argparse
import json
import sys
import uuid
from datetime import datetime, timezone

from tsbridge.core.config import get_settings
from tsbridge.core.errors import AppError, error_response
from tsbridge.core.logging import export_run_id_ctx, get_logger, setup_logging
from tsbridge.infra.influx.client import close_influx_client, init_influx_client
from tsbridge.pipeline.exporter import ExportTarget, InfluxExporter

logger = get_logger(__name__)


def parse_time(value: str) -> datetime:
    """ISO8601 timestamp; a trailing Z and naive values mean UTC."""
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid ISO8601 timestamp: {value}") from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_target(value: str) -> ExportTarget:
    try:
        return ExportTarget.from_name(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Export InfluxDB buckets to NDJSON files")
    parser.add_argument(
        "--target",
        dest="targets",
        action="append",
        type=parse_target,
        help="Target to export, repeatable (default: all). One of: "
        + ", ".join(target.name.lower() for target in ExportTarget),
    )
    parser.add_argument("--start", type=parse_time, default=None, help="Window start (default: now - 24h)")
    parser.add_argument("--end", type=parse_time, default=None, help="Window end (default: now)")
    parser.add_argument("--folder", default=None, help="Output folder (default: EXPORT_FOLDER)")
    parser.add_argument("--log-level", default=None, help="Log level (default: LOG_LEVEL)")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    if args.folder:
        settings = settings.model_copy(update={"export_folder": args.folder})

    setup_logging(args.log_level or settings.log_level)
    run_id = uuid.uuid4().hex[:12]
    export_run_id_ctx.set(run_id)

    targets = args.targets or list(ExportTarget)
    client = init_influx_client()
    try:
        exporter = InfluxExporter(client, settings)
        written = exporter.export_selected(targets, args.start, args.end)
    except AppError as e:
        print(json.dumps(error_response(e, run_id)), file=sys.stderr)
        return 2
    finally:
        close_influx_client()

    for path in written:
        print(path)
    if not written:
        logger.error("No export files written", extra={"targets": [t.name for t in targets]})
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
