from api_logger.capture.normalizer import (
    MAX_BODY_SIZE,
    REDACTED,
    TRUNCATION_MARKER,
    CallData,
    TransactionKind,
    apply_admission_policy,
    classify_transaction,
    normalize_transaction,
    redact_headers,
)
from api_logger.capture.source import CaptureController, HarArchive, HarReplayCapture, ReplayResult, load_har

__all__ = [
    "MAX_BODY_SIZE",
    "REDACTED",
    "TRUNCATION_MARKER",
    "CallData",
    "CaptureController",
    "HarArchive",
    "HarReplayCapture",
    "ReplayResult",
    "TransactionKind",
    "apply_admission_policy",
    "classify_transaction",
    "load_har",
    "normalize_transaction",
    "redact_headers",
]
