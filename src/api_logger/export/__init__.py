from api_logger.export.serializer import (
    ExportSerializer,
    format_body,
    generate_summary,
    simplify_url,
    suggest_filename,
)
from api_logger.export.sink import DirectoryExportSink, ExportSink

__all__ = [
    "DirectoryExportSink",
    "ExportSerializer",
    "ExportSink",
    "format_body",
    "generate_summary",
    "simplify_url",
    "suggest_filename",
]
