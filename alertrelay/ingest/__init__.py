"""Ingestion — webhook format detection, normalisation and severity mapping."""

from alertrelay.ingest.exceptions import IngestError, ValidationError
from alertrelay.ingest.normalizer import (
    NormalizeResult,
    build_alert_input,
    detect_format,
    normalize,
)
from alertrelay.ingest.severity import map_severity
from alertrelay.ingest.validation import validate_canonical

__all__ = [
    "IngestError",
    "NormalizeResult",
    "ValidationError",
    "build_alert_input",
    "detect_format",
    "map_severity",
    "normalize",
    "validate_canonical",
]
