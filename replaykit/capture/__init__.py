"""
Capture package for replaykit.
Builds locator bundles and labels, and turns interaction notifications into steps.
"""

from .labels import LabelDetectionEngine, sanitize_label, humanize_identifier
from .bundle import BundleBuilder, BundleReport
from .recorder import CaptureSession, Debouncer, Throttler

__all__ = [
    "LabelDetectionEngine",
    "sanitize_label",
    "humanize_identifier",
    "BundleBuilder",
    "BundleReport",
    "CaptureSession",
    "Debouncer",
    "Throttler",
]
