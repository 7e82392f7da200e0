"""
Services module for DDI mining.
"""

from ddi_mining.services.normalization_service import (
    NormalizationReport,
    NormalizationResult,
    NormalizationService,
    QuarantinedEntry,
    RejectionReason,
    ValidationResult,
)

__all__ = [
    "NormalizationReport",
    "NormalizationResult",
    "NormalizationService",
    "QuarantinedEntry",
    "RejectionReason",
    "ValidationResult",
]
