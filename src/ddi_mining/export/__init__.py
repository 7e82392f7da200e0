"""
Export module for DDI mining results.
"""

from ddi_mining.export.exporter import CSV_COLUMNS, SUPPORTED_FORMATS, EvidenceExporter

__all__ = [
    "CSV_COLUMNS",
    "SUPPORTED_FORMATS",
    "EvidenceExporter",
]
