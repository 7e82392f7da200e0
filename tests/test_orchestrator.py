"""
Tests for DDIMiningOrchestrator.

Covers:
- Warm-cache idempotence (no extra extractor calls)
- Partial failure and timeouts at the (drug, source) boundary
- Batch capacity rejection before any job exists
- Merge of evidence across sources
- Cache invalidation, reset, background jobs and stop
- Runtime configuration updates and diagnostics
"""

import csv
import io
import json
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import pytest

from conftest import FakeExtractor, make_entry, total_calls
from ddi_mining.config import Config
from ddi_mining.exceptions import CapacityError, ConfigError, MiningCancelledError, TransportError
from ddi_mining.models import (
    DrugStatus,
    EvidenceLevel,
    EvidenceSource,
    JobAcknowledgment,
    JobStatus,
    Severity,
)
from ddi_mining.orchestrator import DDIMiningOrchestrator
from ddi_mining.processors.progress_tracker import ProgressTracker


class StopOnceExtractor(FakeExtractor):
    """First call blocks until its job is stopped; later calls succeed."""

    def extract(self, drug_name, options=None, cancel_event=None):
        with self._lock:
            self.calls += 1
            first = self.calls == 1
        self.started.set()
        if first:
            cancel_event.wait(5)
            raise MiningCancelledError(f"{self.source.value} cancelled")
        return [make_entry(self.source, drug_name, "warfarin", "set-1", evidence_level="A")]


class SlowCheckTracker(ProgressTracker):
    """Pauses inside has_job so a reset can arrive mid-write."""

    def __init__(self):
        super().__init__()
        self.checking = threading.Event()

    def has_job(self, job_id: str) -> bool:
        present = super().has_job(job_id)
        self.checking.set()
        time.sleep(0.3)
        return present


@pytest.fixture
def build(config, vocabulary):
    """Build an orchestrator around custom extractors and shut it down afterwards."""
    created = []

    def _build(extractors, **kwargs):
        orch = DDIMiningOrchestrator(extractors=extractors, config=config, vocabulary=vocabulary, **kwargs)
        created.append(orch)
        return orch

    yield _build
    for orch in created:
        orch.shutdown()


class TestMineSingleDrug:

    def test_returns_merged_records(self, orchestrator):
        records = orchestrator.mine_single_drug("Doxorubicin")

        assert len(records) == 1
        record = records[0]
        assert record.drug_pair_key == "doxorubicin__warfarin"
        assert record.merged_from_count == 3
        assert record.evidence_level == EvidenceLevel.A
        assert {c.type for c in record.source_citations} == set(EvidenceSource)

    def test_warm_cache_is_idempotent_with_no_extra_calls(self, orchestrator, fake_extractors):
        first = orchestrator.mine_single_drug("doxorubicin")
        calls_after_first = total_calls(fake_extractors)

        second = orchestrator.mine_single_drug("doxorubicin")

        assert calls_after_first == 3
        assert total_calls(fake_extractors) == calls_after_first
        assert first == second

        progress = orchestrator.get_progress()
        assert progress["cache_hits"] == {s.value: 1 for s in EvidenceSource}

    def test_abbreviation_uses_canonical_name(self, orchestrator, fake_extractors):
        orchestrator.mine_single_drug("ADR")

        assert fake_extractors[EvidenceSource.REGULATORY].drugs_seen == ["doxorubicin"]

    def test_empty_name_rejected(self, orchestrator):
        with pytest.raises(ValueError):
            orchestrator.mine_single_drug("   ")

    def test_invalid_options_rejected(self, orchestrator, fake_extractors):
        with pytest.raises(ConfigError):
            orchestrator.mine_single_drug("doxorubicin", options={"max_concurrent_drugs": 0})
        with pytest.raises(ConfigError):
            orchestrator.mine_single_drug("doxorubicin", options={"no_such_option": 1})
        assert total_calls(fake_extractors) == 0


class TestPartialFailure:

    def test_one_failing_source_gives_partial_job(self, build):
        extractors = {s: FakeExtractor(s) for s in EvidenceSource}
        extractors[EvidenceSource.PUBLICATION] = FakeExtractor(
            EvidenceSource.PUBLICATION, error=TransportError("PubMed unreachable", source="PubMed")
        )
        orch = build(extractors)

        job = orch.mine_multiple_drugs(["doxorubicin"])

        assert job.status == JobStatus.PARTIAL
        drug_result = job.drug_results["doxorubicin"]
        assert drug_result.status == DrugStatus.PARTIAL
        assert "publication" in drug_result.source_errors
        assert drug_result.evidence_count == 1
        assert any("PubMed unreachable" in error for error in job.errors)

        results = orch.get_results()
        assert len(results) == 1
        assert EvidenceSource.PUBLICATION not in results[0].source_types

    def test_single_drug_result_non_empty_when_one_source_fails(self, build):
        extractors = {s: FakeExtractor(s) for s in EvidenceSource}
        extractors[EvidenceSource.REGULATORY] = FakeExtractor(
            EvidenceSource.REGULATORY, error=TransportError("HTTP 503", status_code=503)
        )
        orch = build(extractors)

        records = orch.mine_single_drug("doxorubicin")

        assert records
        assert orch.get_progress()["state"] == "partial"

    def test_all_sources_failing_fails_job(self, build):
        extractors = {
            s: FakeExtractor(s, error=TransportError(f"{s.value} down")) for s in EvidenceSource
        }
        orch = build(extractors)

        job = orch.mine_multiple_drugs(["doxorubicin", "cisplatin"])

        assert job.status == JobStatus.FAILED
        assert sorted(orch.get_progress(job.job_id)["failed_drugs"]) == ["cisplatin", "doxorubicin"]
        assert orch.get_results() == []

    def test_failed_source_is_not_cached(self, build):
        failing = FakeExtractor(EvidenceSource.PUBLICATION, error=TransportError("down"))
        extractors = {s: FakeExtractor(s) for s in EvidenceSource}
        extractors[EvidenceSource.PUBLICATION] = failing
        orch = build(extractors)

        orch.mine_single_drug("doxorubicin")
        orch.mine_single_drug("doxorubicin")

        assert failing.calls == 2
        assert extractors[EvidenceSource.REGULATORY].calls == 1

    def test_slow_source_times_out_without_failing_drug(self, build):
        extractors = {s: FakeExtractor(s) for s in EvidenceSource}
        extractors[EvidenceSource.PUBLICATION] = FakeExtractor(EvidenceSource.PUBLICATION, delay=2.5)
        orch = build(extractors)

        job = orch.mine_multiple_drugs(["doxorubicin"], options={"extractor_timeout_seconds": 1})

        drug_result = job.drug_results["doxorubicin"]
        assert drug_result.status == DrugStatus.PARTIAL
        assert "timed out" in drug_result.source_errors["publication"]
        assert job.status == JobStatus.PARTIAL


class TestCapacity:

    def test_batch_over_limit_rejected_without_job(self, orchestrator, fake_extractors):
        names = [f"drug{i}" for i in range(51)]

        with pytest.raises(CapacityError):
            orchestrator.mine_multiple_drugs(names)

        progress = orchestrator.get_progress()
        assert progress["state"] == "not_started"
        assert progress["total_drugs"] == 0
        assert orchestrator.list_jobs() == []
        assert total_calls(fake_extractors) == 0

    def test_batch_at_limit_accepted(self, orchestrator):
        names = [f"drug{i}" for i in range(50)]

        job = orchestrator.mine_multiple_drugs(names)

        assert job.status == JobStatus.COMPLETED
        assert orchestrator.get_progress()["processed_count"] == 50

    def test_lowered_batch_size_applies(self, orchestrator):
        orchestrator.update_config({"max_batch_size": 2})

        with pytest.raises(CapacityError):
            orchestrator.mine_multiple_drugs(["doxorubicin", "cisplatin", "paclitaxel"])

    def test_exhausted_session_budget_rejected(self, build, config):
        config.mining.session_call_budget = 1
        extractors = {s: FakeExtractor(s) for s in EvidenceSource}
        orch = build(extractors)

        assert orch.global_limiter is not None
        assert extractors[EvidenceSource.REGULATORY].client.global_limiter is orch.global_limiter
        assert orch.global_limiter.acquire(timeout=1)

        with pytest.raises(CapacityError):
            orch.mine_single_drug("doxorubicin")
        assert total_calls(extractors) == 0

    def test_duplicate_names_collapse(self, orchestrator):
        job = orchestrator.mine_multiple_drugs(["Doxorubicin", "doxorubicin ", "ADR", "cisplatin"])

        assert job.drugs == ["doxorubicin", "cisplatin"]

    def test_empty_batch_rejected(self, orchestrator):
        with pytest.raises(ValueError):
            orchestrator.mine_multiple_drugs([])


class TestMerging:

    def test_trial_and_label_evidence_merge(self, build):
        trial = make_entry(
            EvidenceSource.CLINICAL_TRIAL, "doxorubicin", "trastuzumab", "NCT00000001",
            evidence_level="B", effect="cardiotoxicity",
        )
        label = make_entry(
            EvidenceSource.REGULATORY, "Trastuzumab", "doxorubicin", "set-123",
            evidence_level="A", severity="major", effect="cardiotoxicity",
        )
        extractors = {
            EvidenceSource.CLINICAL_TRIAL: FakeExtractor(
                EvidenceSource.CLINICAL_TRIAL, entries_by_drug={"doxorubicin": [trial]}),
            EvidenceSource.REGULATORY: FakeExtractor(
                EvidenceSource.REGULATORY, entries_by_drug={"doxorubicin": [label]}),
            EvidenceSource.PUBLICATION: FakeExtractor(EvidenceSource.PUBLICATION, entries_by_drug={}),
        }
        orch = build(extractors)

        records = orch.mine_single_drug("doxorubicin")

        assert len(records) == 1
        record = records[0]
        assert record.drug_pair_key == "doxorubicin__trastuzumab"
        assert record.merged_from_count == 2
        assert record.evidence_level == EvidenceLevel.A
        assert record.severity == Severity.MAJOR
        assert record.effect == "cardiotoxicity"
        assert [c.type for c in record.source_citations] == [
            EvidenceSource.REGULATORY, EvidenceSource.CLINICAL_TRIAL,
        ]

    def test_results_merge_across_drugs(self, orchestrator):
        orchestrator.mine_multiple_drugs(["doxorubicin", "cisplatin"])

        keys = [r.drug_pair_key for r in orchestrator.get_results()]
        assert keys == ["cisplatin__warfarin", "doxorubicin__warfarin"]

    def test_remining_replaces_drug_results(self, orchestrator):
        orchestrator.mine_single_drug("doxorubicin")
        orchestrator.mine_single_drug("doxorubicin")

        results = orchestrator.get_results()
        assert len(results) == 1
        assert results[0].merged_from_count == 3


class TestCacheInvalidation:

    def test_clear_caches_forces_fresh_calls(self, orchestrator, fake_extractors):
        orchestrator.mine_single_drug("doxorubicin")
        orchestrator.mine_single_drug("doxorubicin")
        assert total_calls(fake_extractors) == 3
        assert orchestrator.get_cache_stats()["hits"] == 3

        removed = orchestrator.clear_caches()
        orchestrator.mine_single_drug("doxorubicin")

        assert removed == 3
        assert total_calls(fake_extractors) == 6
        assert orchestrator.get_progress()["cache_hits"] == {s.value: 0 for s in EvidenceSource}

    def test_reset_keeps_cache(self, orchestrator, fake_extractors):
        orchestrator.mine_single_drug("doxorubicin")

        orchestrator.reset()

        assert orchestrator.get_results() == []
        assert orchestrator.get_progress()["state"] == "not_started"
        assert orchestrator.get_cache_stats()["size"] == 3

        orchestrator.mine_single_drug("doxorubicin")
        assert total_calls(fake_extractors) == 3

    def test_reset_during_result_write_leaves_no_results(self, build, fake_extractors):
        tracker = SlowCheckTracker()
        orch = build(fake_extractors, tracker=tracker)

        with ThreadPoolExecutor(max_workers=1) as pool:
            mining = pool.submit(orch.mine_single_drug, "doxorubicin")
            assert tracker.checking.wait(5)
            orch.reset()
            mining.result(timeout=10)

        assert orch.get_results() == []
        assert orch.get_progress()["state"] == "not_started"


class TestBackgroundJobs:

    def test_background_job_acknowledged_and_completes(self, orchestrator):
        ack = orchestrator.mine_multiple_drugs(["doxorubicin", "cisplatin"], background=True)

        assert isinstance(ack, JobAcknowledgment)
        assert ack.status == "accepted"
        assert ack.drug_count == 2

        job = orchestrator.wait_for_job(ack.job_id, timeout=10)

        assert job.status == JobStatus.COMPLETED
        progress = orchestrator.get_progress(ack.job_id)
        assert progress["processed_count"] == 2
        assert progress["estimated_remaining_ms"] == 0
        assert any(j["job_id"] == ack.job_id and j["background"] for j in orchestrator.list_jobs())

    def test_stop_cancels_running_job(self, build):
        extractors = {
            s: FakeExtractor(s, block_until_cancelled=True) for s in EvidenceSource
        }
        orch = build(extractors)

        ack = orch.mine_multiple_drugs(["doxorubicin"], background=True)
        assert extractors[EvidenceSource.CLINICAL_TRIAL].started.wait(5)

        assert orch.stop() == 1
        job = orch.wait_for_job(ack.job_id, timeout=10)

        assert job.status == JobStatus.FAILED
        assert job.drug_results["doxorubicin"].source_errors["clinical_trial"] == "cancelled"
        assert "Job stopped before completion" in job.errors

    def test_stopping_one_job_spares_a_job_sharing_its_fetch(self, build):
        regulatory = StopOnceExtractor(EvidenceSource.REGULATORY)
        extractors = {
            EvidenceSource.CLINICAL_TRIAL: FakeExtractor(EvidenceSource.CLINICAL_TRIAL),
            EvidenceSource.REGULATORY: regulatory,
            EvidenceSource.PUBLICATION: FakeExtractor(EvidenceSource.PUBLICATION),
        }
        orch = build(extractors)

        ack_a = orch.mine_multiple_drugs(["doxorubicin"], background=True)
        assert regulatory.started.wait(5)
        # Only the regulatory fetch is left in flight for job A
        while orch.get_cache_stats()["size"] < 2:
            time.sleep(0.01)

        ack_b = orch.mine_multiple_drugs(["doxorubicin"], background=True)
        while orch.get_cache_stats()["coalesced"] < 1:
            time.sleep(0.01)

        assert orch.stop(ack_a.job_id) == 1
        job_a = orch.wait_for_job(ack_a.job_id, timeout=10)
        job_b = orch.wait_for_job(ack_b.job_id, timeout=10)

        assert job_a.drug_results["doxorubicin"].source_errors["regulatory"] == "cancelled"
        assert "regulatory" not in job_b.drug_results["doxorubicin"].source_errors
        assert job_b.status == JobStatus.COMPLETED
        assert regulatory.calls == 2

    def test_wait_for_unknown_job(self, orchestrator):
        assert orchestrator.wait_for_job("missing") is None

    def test_all_known_drugs_ignores_batch_cap(self, orchestrator, vocabulary):
        orchestrator.update_config({"max_batch_size": 1})

        job = orchestrator.mine_all_known_drugs()

        assert job.drugs == vocabulary.drugs
        assert job.status == JobStatus.COMPLETED

    def test_mine_by_indications(self, orchestrator):
        job = orchestrator.mine_by_indications(["Metastatic breast cancer"])

        assert job.drugs == ["doxorubicin", "paclitaxel"]

    def test_unknown_indication_rejected(self, orchestrator):
        with pytest.raises(ValueError):
            orchestrator.mine_by_indications(["unheard-of syndrome"])


class TestConfiguration:

    def test_out_of_range_update_rejected_and_not_applied(self, orchestrator):
        with pytest.raises(ConfigError):
            orchestrator.update_config({"max_concurrent_drugs": 0})

        assert orchestrator.get_config()["max_concurrent_drugs"] == 3

    def test_unknown_key_rejected(self, orchestrator):
        with pytest.raises(ConfigError):
            orchestrator.update_config({"max_widgets": 4})

    def test_update_applies_to_services(self, orchestrator):
        config = orchestrator.update_config({
            "cache_ttl_seconds": 60,
            "export_max_bytes": 4096,
            "source_precedence": ["publication", "clinical_trial", "regulatory"],
        })

        assert config["cache_ttl_seconds"] == 60
        assert orchestrator.cache.default_ttl == 60
        assert orchestrator.exporter.max_json_bytes == 4096
        assert orchestrator.normalizer.source_precedence[0] == EvidenceSource.PUBLICATION

    def test_default_config_updates_stay_per_orchestrator(self, fake_extractors, vocabulary):
        shared = Config()
        with patch("ddi_mining.orchestrator.get_config", return_value=shared):
            first = DDIMiningOrchestrator(extractors=fake_extractors, vocabulary=vocabulary)
            second = DDIMiningOrchestrator(extractors=fake_extractors, vocabulary=vocabulary)
        try:
            first.update_config({"max_batch_size": 2})

            assert first.get_config()["max_batch_size"] == 2
            assert second.get_config()["max_batch_size"] == 50
            assert shared.mining.max_batch_size == 50
        finally:
            first.shutdown()
            second.shutdown()

    def test_disabling_source_skips_extractor(self, orchestrator, fake_extractors):
        orchestrator.update_config({"enable_publications": False})

        job = orchestrator.mine_multiple_drugs(["doxorubicin"])

        assert fake_extractors[EvidenceSource.PUBLICATION].calls == 0
        assert job.status == JobStatus.COMPLETED

    def test_validate_config_raises_on_invalid(self, orchestrator):
        errors, warnings = orchestrator.validate_config()
        assert errors == []

        orchestrator.config.mining.max_concurrent_drugs = 99
        with pytest.raises(ConfigError):
            orchestrator.validate_config()


class TestReportsAndExport:

    def test_reports_cover_extraction_and_normalization(self, build):
        extractors = {s: FakeExtractor(s) for s in EvidenceSource}
        extractors[EvidenceSource.PUBLICATION] = FakeExtractor(
            EvidenceSource.PUBLICATION, error=TransportError("down"))
        orch = build(extractors)
        orch.mine_multiple_drugs(["doxorubicin", "cisplatin"])

        reports = orch.get_reports()

        extraction = reports["extraction"]
        assert extraction["source_failures"] == {"publication": 2}
        assert extraction["drugs_with_evidence"] == ["cisplatin", "doxorubicin"]
        assert extraction["per_source_counts"]["regulatory"] == 2
        assert reports["normalization"]["entries_in"] == 4
        assert reports["normalization"]["entries_out"] == 2
        assert reports["normalization"]["merged"] == 2

    def test_reports_empty_before_any_job(self, orchestrator):
        assert orchestrator.get_reports()["job_id"] is None

    def test_csv_and_json_exports_agree(self, orchestrator):
        orchestrator.mine_multiple_drugs(["doxorubicin", "cisplatin"])

        payload = json.loads(orchestrator.export_results("json"))
        rows = list(csv.DictReader(io.StringIO(orchestrator.export_results("csv").decode("utf-8"))))

        from_json = {
            (e["drug_pair_key"], e["evidence_level"], len(e["source_citations"]))
            for e in payload["evidence"]
        }
        from_csv = {
            (r["drug_pair_key"], r["evidence_level"], len(r["citations"].split("|")))
            for r in rows
        }
        assert from_json == from_csv
        assert payload["truncated"] is False

    def test_export_with_no_results(self, orchestrator):
        payload = json.loads(orchestrator.export_results("json"))

        assert payload["evidence"] == []
        assert payload["total_records"] == 0

    def test_unsupported_format(self, orchestrator):
        with pytest.raises(ValueError):
            orchestrator.export_results("xml")


class TestDiagnostics:

    def test_test_extractor_bypasses_cache(self, orchestrator, fake_extractors):
        first = orchestrator.test_extractor("regulatory", "Doxorubicin")
        orchestrator.test_extractor(EvidenceSource.REGULATORY, "doxorubicin")

        assert first["success"] is True
        assert first["entry_count"] == 1
        assert first["sample"][0]["drug_b"] == "warfarin"
        assert fake_extractors[EvidenceSource.REGULATORY].calls == 2
        assert orchestrator.get_cache_stats()["size"] == 0

    def test_test_extractor_reports_failure(self, build):
        extractors = {s: FakeExtractor(s) for s in EvidenceSource}
        extractors[EvidenceSource.CLINICAL_TRIAL] = FakeExtractor(
            EvidenceSource.CLINICAL_TRIAL, error=TransportError("HTTP 500", status_code=500))
        orch = build(extractors)

        report = orch.test_extractor("clinical_trial", "doxorubicin")

        assert report["success"] is False
        assert "HTTP 500" in report["error"]

    def test_test_extractor_unknown_source(self, orchestrator):
        with pytest.raises(ValueError):
            orchestrator.test_extractor("tweets", "doxorubicin")

    def test_health_check(self, build):
        extractors = {s: FakeExtractor(s) for s in EvidenceSource}
        extractors[EvidenceSource.PUBLICATION] = FakeExtractor(
            EvidenceSource.PUBLICATION, error=TransportError("down"))
        orch = build(extractors)

        assert orch.health_check() == {
            "clinical_trial": True,
            "regulatory": True,
            "publication": False,
        }

    def test_validate_evidence(self, orchestrator):
        records = orchestrator.mine_single_drug("doxorubicin")
        bad = records[0].to_dict()
        bad["drug_pair_key"] = "warfarin__doxorubicin"

        result = orchestrator.validate_evidence([records[0], bad])

        assert len(result.valid) == 1
        assert len(result.invalid) == 1
        assert result.invalid[0].reason_code.value == "MALFORMED_PAIR_KEY"

    def test_known_drugs(self, orchestrator, vocabulary):
        assert orchestrator.get_known_drugs() == vocabulary.drugs
