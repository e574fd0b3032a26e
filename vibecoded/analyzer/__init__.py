"""Analyzer modules: evidence collection, signal aggregation, scanning."""

from .detector import DetectionResult, RepositoryDetector
from .evidence import EvidenceSet
from .vulnerabilities import (
    ScanResult,
    ScannerError,
    TrivyScanner,
    build_target_url,
    extract_vulnerability_details,
)

__all__ = [
    "DetectionResult",
    "RepositoryDetector",
    "EvidenceSet",
    "ScanResult",
    "ScannerError",
    "TrivyScanner",
    "build_target_url",
    "extract_vulnerability_details",
]
