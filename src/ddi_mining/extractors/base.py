"""
Extractor contract shared by every evidence source.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from ddi_mining.exceptions import MiningCancelledError, ParseError
from ddi_mining.models import EvidenceSource, RawEvidenceEntry
from ddi_mining.parsers.interaction_text import InteractionTextParser, excerpt as clip_excerpt
from ddi_mining.vocabulary import DrugVocabulary

logger = logging.getLogger(__name__)


@dataclass
class ExtractionOptions:
    """Per-call limits handed to extractors."""
    max_clinical_trials: int = 50
    max_regulatory_labels: int = 20
    max_publications: int = 100
    publication_year_range: int = 10
    include_completed_trials: bool = True

    @classmethod
    def from_config(cls, mining) -> "ExtractionOptions":
        return cls(
            max_clinical_trials=mining.max_clinical_trials_per_drug,
            max_regulatory_labels=mining.max_regulatory_labels_per_drug,
            max_publications=mining.max_publications_per_drug,
            publication_year_range=mining.publication_year_range,
            include_completed_trials=mining.include_completed_trials,
        )


class BaseExtractor(ABC):
    """
    Fetches source records for a drug and parses them into raw entries.

    Subclasses implement ``fetch_records`` (one network round trip per call,
    errors raised) and ``parse_record`` (pure; raises ParseError for a record
    that cannot be read, which is then skipped).
    """

    source: EvidenceSource

    def __init__(self, client, parser: Optional[InteractionTextParser] = None):
        self.client = client
        self.parser = parser or InteractionTextParser(DrugVocabulary().lexicon)

    def extract(
        self,
        drug_name: str,
        options: Optional[ExtractionOptions] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[RawEvidenceEntry]:
        """
        Extract raw interaction evidence for one drug.

        Returns:
            Raw entries, possibly empty

        Raises:
            TransportError: Source unreachable after retries
            ParseError: The payload as a whole could not be read
            MiningCancelledError: The job was stopped mid-extraction
        """
        options = options or ExtractionOptions()
        records = self.fetch_records(drug_name, options, cancel_event)

        entries: List[RawEvidenceEntry] = []
        skipped = 0
        for record in records:
            if cancel_event is not None and cancel_event.is_set():
                raise MiningCancelledError(f"{self.source.value} extraction for '{drug_name}' cancelled")
            try:
                entries.extend(self.parse_record(drug_name, record))
            except ParseError as e:
                skipped += 1
                logger.warning(f"[{self.source.value}] Skipping malformed record for '{drug_name}': {e}")

        logger.info(
            f"[{self.source.value}] {drug_name}: {len(entries)} raw entries "
            f"from {len(records)} records ({skipped} skipped)"
        )
        return entries

    @abstractmethod
    def fetch_records(
        self,
        drug_name: str,
        options: ExtractionOptions,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[Any]:
        """Fetch raw source records."""
        pass

    @abstractmethod
    def parse_record(self, drug_name: str, record: Any) -> List[RawEvidenceEntry]:
        """Parse one source record into raw entries."""
        pass

    def _entries_for_fragment(
        self,
        drug_name: str,
        fragment: str,
        source_id: str,
        url: Optional[str],
        title: Optional[str],
        evidence_level: Optional[str],
        confidence: float,
        severity_override: Optional[str] = None,
        extracted_at: Optional[datetime] = None,
    ) -> List[RawEvidenceEntry]:
        """One raw entry per partner drug mentioned in an interaction fragment."""
        signal = self.parser.analyze(fragment, drug_name)
        stamp = extracted_at or datetime.now()
        return [
            RawEvidenceEntry(
                source=self.source,
                drug_a=drug_name,
                drug_b=partner,
                source_id=source_id,
                excerpt=clip_excerpt(fragment),
                extracted_at=stamp,
                confidence_hint=confidence,
                severity=severity_override or signal.severity,
                evidence_level=evidence_level,
                effect=signal.effect,
                management=signal.management,
                mechanism_tags=list(signal.mechanism_tags),
                url=url,
                title=title,
            )
            for partner in signal.partners
        ]

    def health_check(self) -> bool:
        return self.client.health_check()

    def get_status(self) -> Dict:
        status = {"source": self.source.value}
        if hasattr(self.client, "get_status"):
            status.update(self.client.get_status())
        return status


def first_text(values: Iterable[Any]) -> str:
    """Join a list-valued label field into one string."""
    if isinstance(values, str):
        return values
    return "\n\n".join(str(v) for v in (values or []) if v)
