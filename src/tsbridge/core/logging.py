"""
JSON logging for export runs.

Every record carries the run id of the CLI invocation and, while a target is
being exported, the target name. Influx tokens never reach the output: keys
that look like credentials are masked, and ``Token <secret>`` fragments inside
free-text values (client error messages echo request headers) are scrubbed.
"""

import logging
import re
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator, TextIO

from pythonjsonlogger import jsonlogger

export_run_id_ctx: ContextVar[str | None] = ContextVar("export_run_id", default=None)
export_target_ctx: ContextVar[str | None] = ContextVar("export_target", default=None)

REDACTED = "[REDACTED]"
CREDENTIAL_KEYS = ("token", "password", "secret", "authorization", "api_key", "credential", "auth")
INLINE_TOKEN_PATTERN = re.compile(r"\b(Token|Bearer) [^\s,'\"]+")

# Third-party loggers that log every HTTP round trip
CHATTY_LOGGERS = ("influxdb_client", "urllib3", "reactivex")


@contextmanager
def export_target_scope(target: str) -> Iterator[None]:
    """Tag every record logged inside the block with ``target``."""
    token = export_target_ctx.set(target)
    try:
        yield
    finally:
        export_target_ctx.reset(token)


class ExportRunIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = export_run_id_ctx.get()  # type: ignore[attr-defined]
        if not hasattr(record, "target"):
            record.target = export_target_ctx.get()  # type: ignore[attr-defined]
        return True


def _is_credential(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in CREDENTIAL_KEYS)


class SafeJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter with masking and size limits.

    Rendered Flux queries and row batches can be large; strings are cut at
    MAX_STRING_LENGTH and sequences longer than MAX_ARRAY_LENGTH collapse to
    an item count.
    """

    MAX_ARRAY_LENGTH = 10
    MAX_STRING_LENGTH = 500

    def process_log_record(self, log_record: dict[str, Any]) -> dict[str, Any]:
        # Fields named in fmt but absent from the LogRecord arrive as None
        if not log_record.get("timestamp"):
            log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        if not log_record.get("level"):
            log_record["level"] = log_record.get("levelname") or "INFO"
        if not log_record.get("logger"):
            log_record["logger"] = log_record.get("name") or "root"
        return self._sanitize_mapping(log_record)

    def _sanitize_mapping(self, mapping: dict[str, Any]) -> dict[str, Any]:
        for key, value in list(mapping.items()):
            if isinstance(key, str) and _is_credential(key):
                mapping[key] = REDACTED
            else:
                mapping[key] = self._sanitize_value(value)
        return mapping

    def _sanitize_value(self, value: Any) -> Any:
        if isinstance(value, dict):
            return self._sanitize_mapping(value)
        if isinstance(value, (list, tuple)):
            if len(value) > self.MAX_ARRAY_LENGTH:
                return f"[{len(value)} items, truncated]"
            return [self._sanitize_value(item) for item in value]
        if isinstance(value, str):
            value = INLINE_TOKEN_PATTERN.sub(lambda m: f"{m.group(1)} {REDACTED}", value)
            if len(value) > self.MAX_STRING_LENGTH:
                return value[: self.MAX_STRING_LENGTH] + "...[truncated]"
        return value


def setup_logging(level: str = "INFO", stream: TextIO | None = None) -> None:
    """
    Route all logging through one JSON handler.

    Args:
        level: Log level name, case-insensitive
        stream: Destination, stdout when omitted
    """
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(SafeJsonFormatter(fmt="%(timestamp)s %(level)s %(name)s %(message)s"))
    handler.addFilter(ExportRunIdFilter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper()))

    for name in CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
