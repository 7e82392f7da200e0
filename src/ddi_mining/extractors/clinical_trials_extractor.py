"""
Clinical Trial Extractor

Mines interaction evidence from ClinicalTrials.gov study records. The richest
signal is the exclusion criteria, where trials list prohibited concomitant
medications and enzyme inhibitors/inducers.
"""

import logging
import threading
from datetime import datetime
from typing import Dict, List, Optional

from ddi_mining.exceptions import ParseError
from ddi_mining.extractors.base import BaseExtractor, ExtractionOptions
from ddi_mining.models import EvidenceSource, RawEvidenceEntry

logger = logging.getLogger(__name__)

STUDY_URL = "https://clinicaltrials.gov/study/{nct_id}"


class ClinicalTrialsExtractor(BaseExtractor):
    """Evidence from interventional trial protocols."""

    source = EvidenceSource.CLINICAL_TRIAL

    def fetch_records(
        self,
        drug_name: str,
        options: ExtractionOptions,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[Dict]:
        return self.client.search_trials(
            drug_name,
            include_completed=options.include_completed_trials,
            limit=options.max_clinical_trials,
            cancel_event=cancel_event,
        )

    def parse_record(self, drug_name: str, study: Dict) -> List[RawEvidenceEntry]:
        """
        Parse one study record.

        Raises:
            ParseError: If the study has no protocol section or NCT ID
        """
        if not isinstance(study, dict):
            raise ParseError(f"Study record is not an object: {type(study).__name__}")

        protocol = study.get("protocolSection")
        if not isinstance(protocol, dict):
            raise ParseError("Study record missing protocolSection")

        id_module = protocol.get("identificationModule") or {}
        nct_id = id_module.get("nctId")
        if not nct_id:
            raise ParseError("Study record missing nctId")

        title = id_module.get("briefTitle") or id_module.get("officialTitle")
        url = STUDY_URL.format(nct_id=nct_id)
        extracted_at = datetime.now()

        criteria = (protocol.get("eligibilityModule") or {}).get("eligibilityCriteria") or ""
        if not isinstance(criteria, str):
            raise ParseError(f"{nct_id}: eligibilityCriteria is not text")

        inclusion, exclusion = self.parser.split_criteria(criteria)
        description_module = protocol.get("descriptionModule") or {}
        description = " ".join(
            part for part in (description_module.get("briefSummary"), description_module.get("detailedDescription"))
            if isinstance(part, str)
        )

        entries: List[RawEvidenceEntry] = []
        sections = [("exclusion", exclusion), ("inclusion", inclusion), ("description", description)]
        for section, text in sections:
            for fragment in self.parser.split_sentences(text):
                if not self.parser.mentions_interaction(fragment):
                    continue
                severity = self.parser.detect_severity(fragment)
                entries.extend(self._entries_for_fragment(
                    drug_name,
                    fragment,
                    source_id=nct_id,
                    url=url,
                    title=title,
                    evidence_level=self._evidence_level(section, severity),
                    confidence=self._confidence(section, fragment, severity),
                    severity_override="major" if section == "exclusion" and severity is None else None,
                    extracted_at=extracted_at,
                ))

        return entries

    @staticmethod
    def _evidence_level(section: str, severity: Optional[str]) -> str:
        """Exclusions of contraindicated combinations are the strongest trial signal."""
        if section == "exclusion":
            return "A" if severity == "contraindicated" else "B"
        return "C"

    def _confidence(self, section: str, fragment: str, severity: Optional[str]) -> float:
        score = 50.0
        if section == "exclusion":
            score += 20
        if self.parser.find_enzymes(fragment):
            score += 15
        if severity:
            score += 10
        return min(score, 100.0)
