# Bucket export strategies
from tsbridge.domain.export.template import (
    BucketExporter,
    ExportStrategy,
    export_bucket,
    export_query,
    resolve_window,
)

__all__ = [
    "BucketExporter",
    "ExportStrategy",
    "export_bucket",
    "export_query",
    "resolve_window",
]
