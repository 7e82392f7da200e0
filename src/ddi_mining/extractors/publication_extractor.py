"""
Publication Extractor

Mines interaction evidence from PubMed abstracts. Evidence strength follows
the study design declared in the publication types and abstract text.
"""

import logging
import threading
from datetime import datetime
from typing import List, Optional
from xml.etree import ElementTree as ET

from ddi_mining.exceptions import ParseError
from ddi_mining.extractors.base import BaseExtractor, ExtractionOptions
from ddi_mining.models import EvidenceSource, RawEvidenceEntry

logger = logging.getLogger(__name__)

PUBMED_URL = "https://pubmed.ncbi.nlm.nih.gov/{pmid}/"

HIGH_IMPACT_JOURNALS = [
    "nature", "science", "new england journal of medicine", "lancet", "jama",
    "bmj", "journal of clinical oncology", "cancer cell", "annals of oncology",
]

STUDY_TYPE_LEVELS = {
    "randomized_controlled_trial": "A",
    "pharmacokinetic": "A",
    "observational": "B",
    "in_vitro": "C",
    "case_report": "C",
}


def build_query(drug_name: str, year_range: int, today: Optional[datetime] = None) -> str:
    """PubMed query restricted to interaction literature in the year window."""
    end_year = (today or datetime.now()).year
    start_year = end_year - year_range
    clean = drug_name.replace('"', '').strip()
    return (
        f'("{clean}"[tiab] OR "{clean}"[mesh]) AND '
        f'("drug interactions"[mesh] OR "drug interaction"[tiab] OR "drug-drug interaction"[tiab] '
        f'OR "pharmacokinetic interaction"[tiab] OR coadministration[tiab]) AND '
        f'("{start_year}"[pdat] : "{end_year}"[pdat])'
    )


def classify_study(publication_types: List[str], text: str) -> Optional[str]:
    """Map publication types / abstract wording onto a study type."""
    types = " ".join(publication_types).lower()
    lower = text.lower()

    if "randomized controlled trial" in types or ("randomized" in lower and "trial" in lower):
        return "randomized_controlled_trial"
    if "case reports" in types or "case report" in lower:
        return "case_report"
    if "in vitro" in lower or "microsomes" in lower or "hepatocytes" in lower:
        return "in_vitro"
    if "pharmacokinetic" in lower or "auc" in lower or "cmax" in lower:
        return "pharmacokinetic"
    if "observational study" in types or "cohort" in lower or "retrospective" in lower:
        return "observational"
    return None


class PublicationExtractor(BaseExtractor):
    """Evidence from PubMed abstracts."""

    source = EvidenceSource.PUBLICATION

    def fetch_records(
        self,
        drug_name: str,
        options: ExtractionOptions,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[ET.Element]:
        query = build_query(drug_name, options.publication_year_range)
        pmids = self.client.search(query, max_results=options.max_publications, cancel_event=cancel_event)
        if not pmids:
            return []
        return self.client.fetch_articles(pmids, cancel_event=cancel_event)

    def parse_record(self, drug_name: str, article: ET.Element) -> List[RawEvidenceEntry]:
        """
        Parse one PubmedArticle element.

        Raises:
            ParseError: If the article has no PMID or no Article block
        """
        pmid = (article.findtext(".//MedlineCitation/PMID") or article.findtext(".//PMID") or "").strip()
        if not pmid:
            raise ParseError("Article missing PMID")

        article_data = article.find(".//MedlineCitation/Article")
        if article_data is None:
            raise ParseError(f"PMID {pmid}: missing Article element")

        title_elem = article_data.find("ArticleTitle")
        title = "".join(title_elem.itertext()).strip() if title_elem is not None else ""
        abstract = " ".join(
            "".join(node.itertext()).strip()
            for node in article_data.findall(".//Abstract/AbstractText")
        )
        journal = (article_data.findtext(".//Journal/Title") or "").strip()
        publication_types = [
            (node.text or "").strip() for node in article_data.findall(".//PublicationTypeList/PublicationType")
        ]

        study_type = classify_study(publication_types, f"{title} {abstract}")
        level = self._evidence_level(study_type, journal)
        url = PUBMED_URL.format(pmid=pmid)
        extracted_at = datetime.now()

        entries: List[RawEvidenceEntry] = []
        for fragment in [title] + self.parser.split_sentences(abstract):
            if not fragment or not self.parser.mentions_interaction(fragment):
                continue
            entries.extend(self._entries_for_fragment(
                drug_name,
                fragment,
                source_id=pmid,
                url=url,
                title=title or None,
                evidence_level=level,
                confidence=self._confidence(study_type, fragment),
                extracted_at=extracted_at,
            ))

        return entries

    @staticmethod
    def _evidence_level(study_type: Optional[str], journal: str) -> str:
        level = STUDY_TYPE_LEVELS.get(study_type, "B")
        if study_type == "observational" and any(j in journal.lower() for j in HIGH_IMPACT_JOURNALS):
            return "A"
        return level

    def _confidence(self, study_type: Optional[str], fragment: str) -> float:
        score = 55.0
        if study_type in ("randomized_controlled_trial", "pharmacokinetic"):
            score += 20
        elif study_type == "observational":
            score += 10
        if self.parser.find_enzymes(fragment):
            score += 10
        return min(score, 100.0)
