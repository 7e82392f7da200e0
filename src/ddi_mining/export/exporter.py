"""
Evidence Exporter

Serializes normalized evidence to JSON, CSV or TSV. Text formats rely on the
csv module's quoting so delimiters, quotes and newlines inside fields survive
a round trip. JSON output is bounded by a byte limit; when records have to be
dropped the payload says so with ``truncated: true``.
"""

import csv
import io
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Sequence

from ddi_mining.models import NormalizedEvidence

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = ("json", "csv", "tsv")

CSV_COLUMNS = [
    "drug_pair_key",
    "drug_a",
    "drug_b",
    "severity",
    "evidence_level",
    "effect",
    "management",
    "mechanism_tags",
    "source_types",
    "citations",
    "citation_urls",
    "first_seen_at",
    "last_updated_at",
    "merged_from_count",
]

LIST_SEPARATOR = "|"


class DateTimeEncoder(json.JSONEncoder):
    """Custom JSON encoder for datetime objects."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, datetime):
            return obj.isoformat()
        return super().default(obj)


def evidence_to_row(record: NormalizedEvidence) -> Dict[str, Any]:
    """Flatten one record into CSV columns."""
    return {
        "drug_pair_key": record.drug_pair_key,
        "drug_a": record.drug_a,
        "drug_b": record.drug_b,
        "severity": record.severity.value,
        "evidence_level": record.evidence_level.value,
        "effect": record.effect,
        "management": record.management,
        "mechanism_tags": LIST_SEPARATOR.join(record.mechanism_tags),
        "source_types": LIST_SEPARATOR.join(s.value for s in record.source_types),
        "citations": LIST_SEPARATOR.join(f"{c.type.value}:{c.id}" for c in record.source_citations),
        "citation_urls": LIST_SEPARATOR.join(c.url or "" for c in record.source_citations),
        "first_seen_at": record.first_seen_at.isoformat(),
        "last_updated_at": record.last_updated_at.isoformat(),
        "merged_from_count": record.merged_from_count,
    }


class EvidenceExporter:
    """Render normalized evidence in the supported export formats."""

    def __init__(self, max_json_bytes: int = 10 * 1024 * 1024):
        """
        Args:
            max_json_bytes: Upper bound on the encoded JSON payload
        """
        self.max_json_bytes = max_json_bytes

    def export(self, records: Sequence[NormalizedEvidence], fmt: str = "json") -> bytes:
        """
        Encode records as UTF-8 bytes.

        Raises:
            ValueError: For unsupported formats
        """
        fmt = (fmt or "").lower()
        if fmt == "json":
            return self._to_json(records)
        if fmt == "csv":
            return self._to_delimited(records, delimiter=",")
        if fmt == "tsv":
            return self._to_delimited(records, delimiter="\t")
        raise ValueError(f"Unsupported export format: {fmt!r} (expected one of {', '.join(SUPPORTED_FORMATS)})")

    def export_to_file(self, records: Sequence[NormalizedEvidence], output_path: str, fmt: str = "json") -> str:
        """
        Export records to a file.

        Returns:
            Path to created file
        """
        payload = self.export(records, fmt)
        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(payload)
        logger.info(f"Exported {len(records)} records to {path}")
        return str(path)

    def _to_delimited(self, records: Sequence[NormalizedEvidence], delimiter: str) -> bytes:
        buffer = io.StringIO()
        writer = csv.DictWriter(
            buffer,
            fieldnames=CSV_COLUMNS,
            delimiter=delimiter,
            quoting=csv.QUOTE_MINIMAL,
            lineterminator="\n",
        )
        writer.writeheader()
        for record in records:
            writer.writerow(evidence_to_row(record))
        return buffer.getvalue().encode("utf-8")

    def _json_payload(self, evidence: List[Dict], total: int, generated_at: str) -> bytes:
        data = {
            "generated_at": generated_at,
            "total_records": total,
            "exported_records": len(evidence),
            "truncated": len(evidence) < total,
            "evidence": evidence,
        }
        return json.dumps(data, indent=2, cls=DateTimeEncoder, ensure_ascii=False).encode("utf-8")

    def _to_json(self, records: Sequence[NormalizedEvidence]) -> bytes:
        evidence = [record.to_dict() for record in records]
        generated_at = datetime.now().isoformat()

        payload = self._json_payload(evidence, len(evidence), generated_at)
        if len(payload) <= self.max_json_bytes:
            return payload

        # Largest prefix whose encoding fits the limit
        low, high = 0, len(evidence)
        while low < high:
            mid = (low + high + 1) // 2
            if len(self._json_payload(evidence[:mid], len(evidence), generated_at)) <= self.max_json_bytes:
                low = mid
            else:
                high = mid - 1

        logger.warning(
            f"JSON export truncated to {low} of {len(evidence)} records "
            f"(limit {self.max_json_bytes} bytes)"
        )
        return self._json_payload(evidence[:low], len(evidence), generated_at)
