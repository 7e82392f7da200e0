"""
Extractors module for DDI mining.

One extractor per evidence source, all producing RawEvidenceEntry records.
"""

from ddi_mining.extractors.base import BaseExtractor, ExtractionOptions
from ddi_mining.extractors.clinical_trials_extractor import ClinicalTrialsExtractor
from ddi_mining.extractors.publication_extractor import PublicationExtractor
from ddi_mining.extractors.regulatory_label_extractor import RegulatoryLabelExtractor

__all__ = [
    "BaseExtractor",
    "ExtractionOptions",
    "ClinicalTrialsExtractor",
    "PublicationExtractor",
    "RegulatoryLabelExtractor",
]
