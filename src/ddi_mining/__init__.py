"""
DDI Mining

Mines drug-drug interaction evidence from clinical-trial registries, drug
labels and the biomedical literature, and merges it into one canonical record
per drug pair.

Features:
- Concurrent multi-source extraction (ClinicalTrials.gov, openFDA, PubMed)
- TTL cache with single-flight fetches per (drug, source)
- Normalization and merge keyed by an order-independent pair key
- Background jobs with polled progress and partial-failure tolerance
- JSON / CSV / TSV export
"""

__version__ = "1.0.0"

from ddi_mining.exceptions import (
    CapacityError,
    ConfigError,
    MiningCancelledError,
    MiningError,
    ParseError,
    TransportError,
    ValidationError,
)
from ddi_mining.factory import create_orchestrator
from ddi_mining.models import EvidenceLevel, EvidenceSource, NormalizedEvidence, RawEvidenceEntry, Severity
from ddi_mining.orchestrator import DDIMiningOrchestrator

__all__ = [
    "CapacityError",
    "ConfigError",
    "DDIMiningOrchestrator",
    "EvidenceLevel",
    "EvidenceSource",
    "MiningCancelledError",
    "MiningError",
    "NormalizedEvidence",
    "ParseError",
    "RawEvidenceEntry",
    "Severity",
    "TransportError",
    "ValidationError",
    "create_orchestrator",
    "__version__",
]
