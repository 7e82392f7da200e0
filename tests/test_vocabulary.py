"""
Tests for the drug vocabulary, the orchestrator factory and the CLI helpers.
"""

import json
from unittest.mock import MagicMock

import pytest

from ddi_mining.config import Config
from ddi_mining.factory import create_orchestrator, create_vocabulary
from ddi_mining.main import export, read_drug_csv, run_health_check
from ddi_mining.models import EvidenceSource
from ddi_mining.vocabulary import ONCOLOGY_DRUGS, DrugVocabulary


class TestDrugVocabulary:

    def test_default_drugs_are_canonical_and_unique(self):
        vocabulary = DrugVocabulary()

        assert len(vocabulary.drugs) == len(set(vocabulary.drugs))
        assert "doxorubicin" in vocabulary.drugs
        assert len(vocabulary.drugs) <= len(ONCOLOGY_DRUGS)

    def test_custom_list_deduplicates(self):
        vocabulary = DrugVocabulary(drugs=["Cisplatin", "cisplatin injection", "", "MTX"])

        assert vocabulary.drugs == ["cisplatin", "methotrexate"]

    def test_lexicon_is_longest_first(self):
        lexicon = DrugVocabulary(drugs=["cisplatin"]).lexicon

        assert lexicon == sorted(lexicon, key=lambda n: (-len(n), n))
        assert "cisplatin" in lexicon

    def test_is_known(self):
        vocabulary = DrugVocabulary(drugs=["cisplatin"])

        assert vocabulary.is_known("Cisplatin Injection")
        assert not vocabulary.is_known("  ")

    def test_resolve_matches_contained_terms(self):
        vocabulary = DrugVocabulary(
            drugs=["doxorubicin"],
            indication_map={"Breast Cancer": ["doxorubicin", "paclitaxel"], "lymphoma": ["doxorubicin"]},
        )

        assert vocabulary.resolve(["metastatic breast cancer", "Hodgkin lymphoma"]) == ["doxorubicin", "paclitaxel"]
        assert vocabulary.resolve(["glioma"]) == []

    def test_from_csv(self, tmp_path):
        path = tmp_path / "drugs.csv"
        path.write_text("Name,class\nImatinib,TKI\n,empty\nDasatinib,TKI\n", encoding="utf-8")

        assert DrugVocabulary.from_csv(str(path)).drugs == ["imatinib", "dasatinib"]

    def test_from_csv_without_name_column(self, tmp_path):
        path = tmp_path / "drugs.csv"
        path.write_text("compound\nimatinib\n", encoding="utf-8")

        with pytest.raises(ValueError):
            DrugVocabulary.from_csv(str(path))


class TestFactory:

    def test_create_orchestrator_wires_every_source(self):
        orchestrator = create_orchestrator(Config())
        try:
            assert set(orchestrator.extractors) == set(EvidenceSource)
            assert orchestrator.get_config()["available_sources"] == [s.value for s in EvidenceSource]
        finally:
            orchestrator.shutdown()

    def test_session_limiter_reaches_clients(self):
        config = Config()
        config.mining.session_call_budget = 25

        orchestrator = create_orchestrator(config)
        try:
            limiters = {id(e.client.global_limiter) for e in orchestrator.extractors.values()}
            assert limiters == {id(orchestrator.global_limiter)}
            assert orchestrator.global_limiter.remaining_budget() == 25
        finally:
            orchestrator.shutdown()

    def test_create_vocabulary_from_csv(self, tmp_path):
        path = tmp_path / "drugs.csv"
        path.write_text("drug_name\nimatinib\n", encoding="utf-8")

        vocabulary = create_vocabulary(Config(vocabulary_csv=str(path)))

        assert vocabulary.drugs == ["imatinib"]


class TestCliHelpers:

    def test_read_drug_csv(self, tmp_path):
        path = tmp_path / "drugs.csv"
        path.write_text("drug_name,note\ncisplatin,a\n  ,b\npaclitaxel,c\n", encoding="utf-8")

        assert read_drug_csv(str(path)) == ["cisplatin", "paclitaxel"]

    def test_read_drug_csv_missing_column(self, tmp_path):
        path = tmp_path / "drugs.csv"
        path.write_text("name\ncisplatin\n", encoding="utf-8")

        with pytest.raises(ValueError):
            read_drug_csv(str(path))

    def test_read_drug_csv_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_drug_csv(str(tmp_path / "nope.csv"))

    def test_health_check_exit_code(self):
        orchestrator = MagicMock()
        orchestrator.health_check.return_value = {"clinical_trial": True, "regulatory": False}

        assert run_health_check(orchestrator) == 1

        orchestrator.health_check.return_value = {"clinical_trial": True}
        assert run_health_check(orchestrator) == 0

    def test_export_to_file(self, tmp_path):
        orchestrator = MagicMock()
        orchestrator.export_results.return_value = json.dumps({"evidence": []}).encode("utf-8")
        target = tmp_path / "out" / "ddi.json"

        export(orchestrator, "json", str(target))

        orchestrator.export_results.assert_called_once_with("json")
        assert json.loads(target.read_text(encoding="utf-8")) == {"evidence": []}
