"""
Tests for the three source extractors using mocked API clients.
"""

import threading
from datetime import datetime
from unittest.mock import MagicMock
from xml.etree import ElementTree as ET

import pytest

from ddi_mining.exceptions import MiningCancelledError, TransportError
from ddi_mining.extractors import (
    ClinicalTrialsExtractor,
    ExtractionOptions,
    PublicationExtractor,
    RegulatoryLabelExtractor,
)
from ddi_mining.extractors.publication_extractor import build_query, classify_study
from ddi_mining.models import EvidenceSource
from ddi_mining.parsers.interaction_text import InteractionTextParser


@pytest.fixture
def parser():
    return InteractionTextParser(["ketoconazole", "rifampin", "warfarin", "imatinib"])


def _study(nct_id="NCT01234567", criteria=None):
    return {
        "protocolSection": {
            "identificationModule": {"nctId": nct_id, "briefTitle": "Imatinib in GIST"},
            "eligibilityModule": {
                "eligibilityCriteria": criteria if criteria is not None else (
                    "Inclusion Criteria:\n\n"
                    "- Histologically confirmed disease\n\n"
                    "Exclusion Criteria:\n\n"
                    "- Concomitant use of strong CYP3A4 inhibitors such as ketoconazole is prohibited\n"
                    "- Concurrent warfarin therapy requiring INR monitoring"
                ),
            },
        }
    }


PUBMED_ARTICLE = """
<PubmedArticle>
  <MedlineCitation>
    <PMID>12345</PMID>
    <Article>
      <Journal><Title>Journal of Clinical Oncology</Title></Journal>
      <ArticleTitle>Effect of ketoconazole on imatinib pharmacokinetics</ArticleTitle>
      <Abstract>
        <AbstractText>Coadministration of ketoconazole increased imatinib AUC by 40% in healthy volunteers.</AbstractText>
      </Abstract>
      <PublicationTypeList><PublicationType>Journal Article</PublicationType></PublicationTypeList>
    </Article>
  </MedlineCitation>
</PubmedArticle>
"""


class TestClinicalTrialsExtractor:

    def test_exclusion_criteria_yield_entries(self, parser):
        client = MagicMock()
        client.search_trials.return_value = [_study()]
        extractor = ClinicalTrialsExtractor(client, parser)

        entries = extractor.extract("imatinib", ExtractionOptions(max_clinical_trials=5, include_completed_trials=False))

        client.search_trials.assert_called_once_with(
            "imatinib", include_completed=False, limit=5, cancel_event=None,
        )
        by_partner = {e.drug_b: e for e in entries}
        assert set(by_partner) == {"ketoconazole", "warfarin"}

        keto = by_partner["ketoconazole"]
        assert keto.source == EvidenceSource.CLINICAL_TRIAL
        assert keto.source_id == "NCT01234567"
        assert keto.evidence_level == "A"
        assert keto.severity == "contraindicated"
        assert "cyp3a4" in keto.mechanism_tags
        assert keto.url == "https://clinicaltrials.gov/study/NCT01234567"

        warfarin = by_partner["warfarin"]
        assert warfarin.evidence_level == "B"
        assert warfarin.severity == "moderate"

    def test_malformed_records_are_skipped(self, parser):
        client = MagicMock()
        client.search_trials.return_value = [
            "not a study",
            {"protocolSection": {"identificationModule": {}}},
            _study(),
        ]

        entries = ClinicalTrialsExtractor(client, parser).extract("imatinib")

        assert len(entries) == 2

    def test_study_without_interaction_text(self, parser):
        client = MagicMock()
        client.search_trials.return_value = [_study(criteria="Adequate organ function required")]

        assert ClinicalTrialsExtractor(client, parser).extract("imatinib") == []

    def test_transport_errors_propagate(self, parser):
        client = MagicMock()
        client.search_trials.side_effect = TransportError("registry down")

        with pytest.raises(TransportError):
            ClinicalTrialsExtractor(client, parser).extract("imatinib")

    def test_cancelled_mid_extraction(self, parser):
        client = MagicMock()
        client.search_trials.return_value = [_study()]
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(MiningCancelledError):
            ClinicalTrialsExtractor(client, parser).extract("imatinib", cancel_event=cancel)


class TestRegulatoryLabelExtractor:

    def _label(self, **sections):
        label = {"set_id": "abc-123", "openfda": {"brand_name": ["Gleevec"]}}
        label.update(sections)
        return label

    def test_sections_drive_evidence_level(self, parser):
        client = MagicMock()
        client.search_drug_labels.return_value = [self._label(
            contraindications=["Coadministration with rifampin is contraindicated."],
            drug_interactions=["Ketoconazole increases imatinib exposure; monitor patients closely for toxicity."],
        )]
        extractor = RegulatoryLabelExtractor(client, parser)

        entries = extractor.extract("imatinib", ExtractionOptions(max_regulatory_labels=3))

        client.search_drug_labels.assert_called_once_with("imatinib", limit=3, cancel_event=None)
        by_partner = {e.drug_b: e for e in entries}

        rifampin = by_partner["rifampin"]
        assert rifampin.evidence_level == "A"
        assert rifampin.severity == "major"
        assert rifampin.title == "Gleevec label"
        assert rifampin.url.endswith("setid=abc-123")

        keto = by_partner["ketoconazole"]
        assert keto.evidence_level == "B"
        assert keto.severity == "moderate"
        assert "exposure" in keto.effect
        assert "monitor" in keto.management

    def test_general_sections_need_interaction_wording(self, parser):
        client = MagicMock()
        client.search_drug_labels.return_value = [self._label(
            warnings=["Warfarin patients were enrolled in earlier studies of this product."],
        )]

        assert RegulatoryLabelExtractor(client, parser).extract("imatinib") == []

    def test_label_without_set_id_skipped(self, parser):
        client = MagicMock()
        client.search_drug_labels.return_value = [
            {"contraindications": ["Coadministration with rifampin is contraindicated."]},
        ]

        assert RegulatoryLabelExtractor(client, parser).extract("imatinib") == []

    def test_no_labels(self, parser):
        client = MagicMock()
        client.search_drug_labels.return_value = []

        assert RegulatoryLabelExtractor(client, parser).extract("imatinib") == []


class TestPublicationExtractor:

    def test_article_yields_entry(self, parser):
        client = MagicMock()
        client.search.return_value = ["12345"]
        client.fetch_articles.return_value = [ET.fromstring(PUBMED_ARTICLE)]

        entries = PublicationExtractor(client, parser).extract("imatinib", ExtractionOptions(max_publications=7))

        assert client.search.call_args.kwargs["max_results"] == 7
        assert len(entries) == 1
        entry = entries[0]
        assert entry.source == EvidenceSource.PUBLICATION
        assert entry.drug_b == "ketoconazole"
        assert entry.source_id == "12345"
        assert entry.evidence_level == "A"
        assert "AUC" in entry.effect
        assert entry.url == "https://pubmed.ncbi.nlm.nih.gov/12345/"

    def test_no_pmids_skips_fetch(self, parser):
        client = MagicMock()
        client.search.return_value = []

        assert PublicationExtractor(client, parser).extract("imatinib") == []
        client.fetch_articles.assert_not_called()

    def test_article_without_pmid_skipped(self, parser):
        client = MagicMock()
        client.search.return_value = ["1"]
        client.fetch_articles.return_value = [ET.fromstring("<PubmedArticle><MedlineCitation/></PubmedArticle>")]

        assert PublicationExtractor(client, parser).extract("imatinib") == []

    def test_build_query_year_window(self):
        query = build_query('imatinib"', 10, today=datetime(2024, 6, 1))

        assert '"imatinib"[tiab]' in query
        assert '("2014"[pdat] : "2024"[pdat])' in query

    @pytest.mark.parametrize("types, text, expected", [
        (["Randomized Controlled Trial"], "", "randomized_controlled_trial"),
        (["Case Reports"], "", "case_report"),
        ([], "studied in human liver microsomes", "in_vitro"),
        ([], "AUC increased twofold", "pharmacokinetic"),
        ([], "a retrospective cohort", "observational"),
        ([], "a narrative review", None),
    ])
    def test_classify_study(self, types, text, expected):
        assert classify_study(types, text) == expected


class TestHealthCheck:

    def test_delegates_to_client(self, parser):
        client = MagicMock()
        client.health_check.return_value = False

        assert RegulatoryLabelExtractor(client, parser).health_check() is False
