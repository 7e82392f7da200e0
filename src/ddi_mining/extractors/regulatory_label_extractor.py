"""
Regulatory Label Extractor

Mines interaction evidence from FDA structured product labels via openFDA.
Evidence strength follows the label section the statement appears in.
"""

import logging
import threading
from datetime import datetime
from typing import Dict, List, Optional

from ddi_mining.exceptions import ParseError
from ddi_mining.extractors.base import BaseExtractor, ExtractionOptions, first_text
from ddi_mining.models import EvidenceSource, RawEvidenceEntry

logger = logging.getLogger(__name__)

DAILYMED_URL = "https://dailymed.nlm.nih.gov/dailymed/drugInfo.cfm?setid={set_id}"

# Label sections scanned, most authoritative first
LABEL_SECTIONS = [
    "boxed_warning",
    "contraindications",
    "drug_interactions",
    "warnings_and_cautions",
    "warnings",
    "precautions",
    "clinical_pharmacology",
    "pharmacokinetics",
]

# Sections where every partner mention is treated as an interaction statement
DEDICATED_SECTIONS = {"drug_interactions", "contraindications", "boxed_warning"}


class RegulatoryLabelExtractor(BaseExtractor):
    """Evidence from FDA drug labels."""

    source = EvidenceSource.REGULATORY

    def fetch_records(
        self,
        drug_name: str,
        options: ExtractionOptions,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[Dict]:
        return self.client.search_drug_labels(
            drug_name,
            limit=options.max_regulatory_labels,
            cancel_event=cancel_event,
        )

    def parse_record(self, drug_name: str, label: Dict) -> List[RawEvidenceEntry]:
        """
        Parse one label document.

        Raises:
            ParseError: If the label has no set_id/id
        """
        if not isinstance(label, dict):
            raise ParseError(f"Label is not an object: {type(label).__name__}")

        set_id = label.get("set_id") or label.get("id")
        if not set_id:
            raise ParseError("Label missing set_id")

        openfda = label.get("openfda") or {}
        names = openfda.get("brand_name") or openfda.get("generic_name") or []
        title = f"{names[0]} label" if isinstance(names, list) and names else f"Label {set_id}"
        url = DAILYMED_URL.format(set_id=set_id)
        extracted_at = datetime.now()

        entries: List[RawEvidenceEntry] = []
        for section in LABEL_SECTIONS:
            text = first_text(label.get(section))
            if not text:
                continue

            for fragment in self.parser.split_sentences(text):
                if section not in DEDICATED_SECTIONS and not self.parser.mentions_interaction(fragment):
                    continue

                severity = self._severity(section, fragment)
                entries.extend(self._entries_for_fragment(
                    drug_name,
                    fragment,
                    source_id=str(set_id),
                    url=url,
                    title=title,
                    evidence_level=self._evidence_level(section, severity),
                    confidence=self._confidence(section, fragment),
                    severity_override=severity,
                    extracted_at=extracted_at,
                ))

        return entries

    def _severity(self, section: str, fragment: str) -> Optional[str]:
        if section in ("contraindications", "boxed_warning"):
            return "major"
        return self.parser.detect_severity(fragment)

    @staticmethod
    def _evidence_level(section: str, severity: Optional[str]) -> str:
        if section in ("contraindications", "boxed_warning"):
            return "A"
        if section == "drug_interactions":
            return "A" if severity in ("major", "contraindicated") else "B"
        if section in ("warnings_and_cautions", "warnings", "precautions"):
            return "B"
        return "C"

    def _confidence(self, section: str, fragment: str) -> float:
        score = 70.0
        if section in DEDICATED_SECTIONS:
            score += 15
        if self.parser.find_enzymes(fragment):
            score += 10
        return min(score, 100.0)
