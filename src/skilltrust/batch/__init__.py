"""Batch scanning: target expansion, concurrent runs, binary checks, summaries."""

from skilltrust.batch.binary import find_executable_binaries
from skilltrust.batch.runner import (
    BatchResult,
    ScanFailure,
    ScanTargetReport,
    scan_target,
    scan_targets_batch,
)
from skilltrust.batch.summary import BatchSummary, summarize_batch
from skilltrust.batch.targets import expand_scan_targets

__all__ = [
    "BatchResult",
    "BatchSummary",
    "ScanFailure",
    "ScanTargetReport",
    "expand_scan_targets",
    "find_executable_binaries",
    "scan_target",
    "scan_targets_batch",
    "summarize_batch",
]
