"""
DDI Mining Orchestrator

Top-level coordinator for evidence mining. For every drug it fans out to the
enabled extractors through the cache, normalizes the union of raw entries and
records progress. Multi-drug jobs run on a bounded worker pool, either inline
or in the background with the job's future kept in the job table.

The orchestrator is constructed by its owner (see ``ddi_mining.factory``);
there is no module-level instance.
"""

import copy
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed, wait
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union
from uuid import uuid4

from ddi_mining.config import Config, MiningConfig, check_mining_config, get_config, validate_config
from ddi_mining.exceptions import CapacityError, ConfigError, MiningCancelledError, MiningError
from ddi_mining.export.exporter import EvidenceExporter
from ddi_mining.extractors.base import BaseExtractor, ExtractionOptions
from ddi_mining.models import (
    DrugResult,
    DrugStatus,
    EvidenceSource,
    JobAcknowledgment,
    JobStatus,
    MiningJob,
    NormalizedEvidence,
    RawEvidenceEntry,
)
from ddi_mining.processors.progress_tracker import ProgressTracker
from ddi_mining.services.normalization_service import (
    NormalizationReport,
    NormalizationService,
    ValidationResult,
)
from ddi_mining.utils.cache import EvidenceCache
from ddi_mining.utils.logger import log_drug_result, log_job_end, log_job_start
from ddi_mining.utils.pair_key import canonical_drug_name
from ddi_mining.utils.rate_limiter import RateLimiter
from ddi_mining.vocabulary import DrugVocabulary, IndicationResolver

logger = logging.getLogger(__name__)

# Window cap used when only a session budget is configured
UNBOUNDED_RATE = 1_000_000

MiningOptions = Optional[Dict[str, Any]]


class DDIMiningOrchestrator:
    """
    Coordinates extractors, cache, normalization and progress tracking.

    Usage:
        orchestrator = create_orchestrator()
        records = orchestrator.mine_single_drug("doxorubicin")
        ack = orchestrator.mine_multiple_drugs(["cisplatin", "paclitaxel"], background=True)
        orchestrator.wait_for_job(ack.job_id)
        payload = orchestrator.export_results("csv")
    """

    def __init__(
        self,
        extractors: Dict[EvidenceSource, BaseExtractor],
        config: Optional[Config] = None,
        cache: Optional[EvidenceCache] = None,
        normalizer: Optional[NormalizationService] = None,
        tracker: Optional[ProgressTracker] = None,
        exporter: Optional[EvidenceExporter] = None,
        vocabulary: Optional[DrugVocabulary] = None,
        indication_resolver: Optional[IndicationResolver] = None,
        global_limiter: Optional[RateLimiter] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            extractors: One extractor per evidence source
            config: Configuration, copied per orchestrator (default: loaded from environment)
            cache: Raw evidence cache
            normalizer: Normalization service
            tracker: Progress tracker
            exporter: Evidence exporter
            vocabulary: Curated drug vocabulary
            indication_resolver: Indication -> drugs lookup (default: vocabulary map)
            global_limiter: Session-wide limiter shared by every API client

        Raises:
            ConfigError: If the mining configuration is out of range
        """
        self.config = copy.deepcopy(config or get_config())
        errors, _ = check_mining_config(self.config.mining)
        if errors:
            raise ConfigError("Invalid mining configuration: " + "; ".join(errors))

        self.extractors = {EvidenceSource(source): extractor for source, extractor in extractors.items()}
        mining = self.config.mining

        self.cache = cache or EvidenceCache(default_ttl=mining.cache_ttl_seconds)
        self.normalizer = normalizer or NormalizationService(mining.source_precedence)
        self.normalizer.source_precedence = mining.source_precedence
        self.tracker = tracker or ProgressTracker()
        self.exporter = exporter or EvidenceExporter(max_json_bytes=mining.export_max_bytes)
        self.vocabulary = vocabulary or DrugVocabulary()
        self.indication_resolver = indication_resolver or self.vocabulary

        self.global_limiter = global_limiter
        if global_limiter is not None:
            self._attach_global_limiter(global_limiter)
        else:
            self._apply_global_limit(mining)

        self._state_lock = threading.Lock()
        self._config_lock = threading.Lock()
        self._results_by_drug: Dict[str, List[NormalizedEvidence]] = {}
        self._normalization_reports: Dict[str, NormalizationReport] = {}
        self._cancel_events: Dict[str, threading.Event] = {}
        self._job_futures: Dict[str, Future] = {}
        self._job_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="ddi-job")

        logger.info(
            f"DDI mining orchestrator ready (sources: "
            f"{', '.join(s.value for s in self.extractors) or 'none'})"
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()
        return False

    # ------------------------------------------------------------------
    # Mining operations
    # ------------------------------------------------------------------

    def mine_single_drug(self, name: str, options: MiningOptions = None) -> List[NormalizedEvidence]:
        """
        Mine one drug synchronously.

        Args:
            name: Drug name
            options: Per-call overrides of MiningConfig fields

        Returns:
            Normalized evidence for that drug (empty when every source failed
            or nothing was found)

        Raises:
            ValueError: If the name is empty
            ConfigError: If the overrides are invalid
            CapacityError: If the session call budget is exhausted
        """
        mining = self._effective_config(options)
        self._check_rate_budget()
        drugs = self._clean_names([name])

        job = self._create_job(drugs)
        records = self._run_job(job.job_id, drugs, mining, self._cancel_events[job.job_id])
        return list(records.get(drugs[0], []))

    def mine_multiple_drugs(
        self,
        names: Iterable[str],
        options: MiningOptions = None,
        background: bool = False,
    ) -> Union[MiningJob, JobAcknowledgment]:
        """
        Mine a batch of drugs on the worker pool.

        Args:
            names: Drug names (at most ``max_batch_size``)
            options: Per-call overrides of MiningConfig fields
            background: Return an acknowledgment immediately

        Returns:
            Finished MiningJob, or JobAcknowledgment when background=True

        Raises:
            CapacityError: Batch too large or call budget exhausted; no job is created
            ValueError: If no usable drug names remain
            ConfigError: If the overrides are invalid
        """
        if isinstance(names, str):
            names = [names]
        names = list(names)

        mining = self._effective_config(options)
        if len(names) > mining.max_batch_size:
            raise CapacityError(
                f"Batch of {len(names)} drugs exceeds max_batch_size ({mining.max_batch_size})"
            )
        self._check_rate_budget()

        drugs = self._clean_names(names)
        return self._launch(drugs, mining, background)

    def mine_all_known_drugs(
        self,
        options: MiningOptions = None,
        background: bool = False,
    ) -> Union[MiningJob, JobAcknowledgment]:
        """Mine every drug in the curated vocabulary as one job."""
        mining = self._effective_config(options)
        self._check_rate_budget()

        drugs = self._clean_names(self.vocabulary.drugs)
        logger.info(f"Mining all {len(drugs)} known drugs")
        return self._launch(drugs, mining, background)

    def mine_by_indications(
        self,
        indications: Iterable[str],
        options: MiningOptions = None,
        background: bool = False,
    ) -> Union[MiningJob, JobAcknowledgment]:
        """
        Expand indications to drugs, then mine them as a batch.

        Raises:
            ValueError: If no drug is associated with the indications
        """
        if isinstance(indications, str):
            indications = [indications]
        indications = [i for i in indications if i and i.strip()]

        drugs = self.indication_resolver.resolve(indications)
        if not drugs:
            raise ValueError(f"No drugs found for indications: {', '.join(indications) or '(none)'}")

        logger.info(f"Indications {indications} resolved to {len(drugs)} drugs")
        return self.mine_multiple_drugs(drugs, options=options, background=background)

    # ------------------------------------------------------------------
    # Job execution
    # ------------------------------------------------------------------

    def _launch(
        self,
        drugs: List[str],
        mining: MiningConfig,
        background: bool,
    ) -> Union[MiningJob, JobAcknowledgment]:
        job = self._create_job(drugs)
        cancel_event = self._cancel_events[job.job_id]

        if not background:
            self._run_job(job.job_id, drugs, mining, cancel_event)
            return self.tracker.get_job(job.job_id)

        future = self._job_executor.submit(self._run_job, job.job_id, drugs, mining, cancel_event)
        with self._state_lock:
            self._job_futures[job.job_id] = future
        future.add_done_callback(lambda f, job_id=job.job_id: self._on_job_done(job_id, f))

        return JobAcknowledgment(
            job_id=job.job_id,
            drug_count=len(drugs),
            message=f"Mining {len(drugs)} drug(s) in the background; poll get_progress('{job.job_id}')",
        )

    def _create_job(self, drugs: List[str]) -> MiningJob:
        job = MiningJob(job_id=str(uuid4()), drugs=list(drugs))
        self.tracker.register_job(job)
        with self._state_lock:
            self._cancel_events[job.job_id] = threading.Event()
            self._normalization_reports[job.job_id] = NormalizationReport()
        return job

    def _run_job(
        self,
        job_id: str,
        drugs: List[str],
        mining: MiningConfig,
        cancel_event: threading.Event,
    ) -> Dict[str, List[NormalizedEvidence]]:
        """Mine every drug of a job; never raises."""
        records_by_drug: Dict[str, List[NormalizedEvidence]] = {}
        workers = max(1, min(mining.max_concurrent_drugs, len(drugs)))
        options = ExtractionOptions.from_config(mining)

        self.tracker.start_job(job_id, workers)
        log_job_start(job_id, len(drugs), workers, logger)

        try:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ddi-drug") as pool:
                futures = {
                    pool.submit(self._mine_drug, job_id, drug, mining, options, cancel_event): drug
                    for drug in drugs
                }
                for future in as_completed(futures):
                    result, records = future.result()
                    records_by_drug[result.drug_name] = records
                    self.tracker.drug_finished(job_id, result)

            if cancel_event.is_set():
                self.tracker.add_error(job_id, "Job stopped before completion")
            status = self.tracker.finish_job(job_id)
        except Exception as e:
            logger.exception(f"Job {job_id} crashed: {e}")
            self.tracker.fail_job(job_id, f"Job crashed: {e}")
            status = JobStatus.FAILED
        finally:
            with self._state_lock:
                self._cancel_events.pop(job_id, None)

        log_job_end(job_id, status.value if status else "unknown", self.tracker.snapshot(job_id), logger)
        return records_by_drug

    def _on_job_done(self, job_id: str, future: Future):
        if future.cancelled():
            self.tracker.fail_job(job_id, "Job cancelled before it started")
            return
        error = future.exception()
        if error is not None:
            logger.error(f"Background job {job_id} failed: {error}")
            self.tracker.fail_job(job_id, f"Job crashed: {error}")

    def _mine_drug(
        self,
        job_id: str,
        drug: str,
        mining: MiningConfig,
        options: ExtractionOptions,
        cancel_event: threading.Event,
    ) -> Tuple[DrugResult, List[NormalizedEvidence]]:
        """Mine one drug; exceptions stop here and mark the drug failed."""
        started = time.monotonic()
        result = DrugResult(drug_name=drug)

        if cancel_event.is_set():
            result.status = DrugStatus.FAILED
            self.tracker.add_error(job_id, f"{drug}: cancelled before start")
            return result, []

        self.tracker.drug_started(job_id, drug)
        records: List[NormalizedEvidence] = []

        try:
            raw_entries = self._fan_out(job_id, drug, mining, options, cancel_event, result)

            attempted = len(result.source_counts) + len(result.source_errors)
            if attempted == 0:
                result.status = DrugStatus.FAILED
                self.tracker.add_error(job_id, f"{drug}: no extractor enabled")
            elif not result.source_errors:
                result.status = DrugStatus.COMPLETED
            elif result.source_counts:
                result.status = DrugStatus.PARTIAL
            else:
                result.status = DrugStatus.FAILED

            if result.status != DrugStatus.FAILED:
                normalization = self.normalizer.normalize(raw_entries)
                records = normalization.records
                result.evidence_count = len(records)
                self._store_results(job_id, drug, records, normalization.report)

        except Exception as e:
            logger.exception(f"Unexpected error mining '{drug}': {e}")
            result.status = DrugStatus.FAILED
            self.tracker.add_error(job_id, f"{drug}: {e}")

        result.duration_seconds = time.monotonic() - started
        errors = "; ".join(f"{s}: {m}" for s, m in result.source_errors.items()) or None
        log_drug_result(drug, result.status.value, result.evidence_count, errors, logger)
        return result, records

    def _fan_out(
        self,
        job_id: str,
        drug: str,
        mining: MiningConfig,
        options: ExtractionOptions,
        cancel_event: threading.Event,
        result: DrugResult,
    ) -> List[RawEvidenceEntry]:
        """
        Query every enabled source concurrently and collect what succeeds.

        Per-source outcomes are written into ``result``; raw entries come back
        in enabled-source order.
        """
        sources = [s for s in mining.enabled_sources if s in self.extractors]
        if not sources:
            return []

        timeout = mining.extractor_timeout_seconds
        pool = ThreadPoolExecutor(max_workers=len(sources), thread_name_prefix="ddi-source")
        try:
            futures = {
                source: pool.submit(self._fetch_source, source, drug, mining, options, cancel_event)
                for source in sources
            }
            _, not_done = wait(futures.values(), timeout=timeout)
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        raw_entries: List[RawEvidenceEntry] = []
        for source, future in futures.items():
            key = source.value
            if future in not_done:
                result.source_errors[key] = f"timed out after {timeout:g}s"
                logger.warning(f"[{key}] {drug}: extractor timed out after {timeout:g}s")
                continue
            try:
                entries, cache_hit = future.result()
            except MiningCancelledError:
                result.source_errors[key] = "cancelled"
                continue
            except MiningError as e:
                result.source_errors[key] = str(e)
                logger.warning(f"[{key}] {drug}: {e}")
                continue
            except Exception as e:
                result.source_errors[key] = f"unexpected error: {e}"
                logger.exception(f"[{key}] {drug}: unexpected extractor error")
                continue

            result.source_counts[key] = len(entries)
            if cache_hit:
                result.cache_hits.append(key)
            self.tracker.record_source(job_id, source, len(entries), cache_hit)
            raw_entries.extend(entries)

        return raw_entries

    def _fetch_source(
        self,
        source: EvidenceSource,
        drug: str,
        mining: MiningConfig,
        options: ExtractionOptions,
        cancel_event: threading.Event,
    ) -> Tuple[List[RawEvidenceEntry], bool]:
        extractor = self.extractors[source]
        return self.cache.get_or_fetch(
            drug,
            source,
            lambda: extractor.extract(drug, options, cancel_event),
            ttl=mining.cache_ttl_seconds,
        )

    def _store_results(
        self,
        job_id: str,
        drug: str,
        records: List[NormalizedEvidence],
        report: NormalizationReport,
    ):
        """Replace the drug's slot in the result table unless the job was reset away."""
        with self._state_lock:
            # reset() clears the tracker under this lock too
            if not self.tracker.has_job(job_id):
                return
            self._results_by_drug[drug] = list(records)
            job_report = self._normalization_reports.setdefault(job_id, NormalizationReport())
            job_report.absorb(report)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_progress(self, job_id: Optional[str] = None) -> Dict:
        """Progress snapshot of a job (latest when omitted)."""
        return self.tracker.snapshot(job_id)

    def get_cache_stats(self) -> Dict:
        return self.cache.get_stats()

    def get_results(self) -> List[NormalizedEvidence]:
        """Session result table, merged across drugs and sorted by pair key."""
        with self._state_lock:
            records = [r for drug_records in self._results_by_drug.values() for r in drug_records]
        merged = self.normalizer.merge_records(records)
        return sorted(merged, key=lambda r: r.drug_pair_key)

    def get_reports(self, job_id: Optional[str] = None) -> Dict:
        """
        Extraction and normalization report for a job (latest when omitted).

        Returns:
            Dict with ``job_id``, ``extraction`` and ``normalization`` sections,
            or an empty report when no job has run
        """
        job_id = job_id or self.tracker.latest_job_id
        job = self.tracker.get_job(job_id) if job_id else None
        if job is None:
            return {"job_id": None, "extraction": {}, "normalization": NormalizationReport().to_dict()}

        snapshot = self.tracker.snapshot(job_id)
        source_failures: Dict[str, int] = {}
        for drug_result in job.drug_results.values():
            for source in drug_result.source_errors:
                source_failures[source] = source_failures.get(source, 0) + 1

        extraction = {
            "status": job.status.value,
            "total_drugs": len(job.drugs),
            "processed_count": job.processed_count,
            "drugs_with_evidence": sorted(
                name for name, r in job.drug_results.items() if r.evidence_count > 0
            ),
            "drugs_without_evidence": sorted(
                name for name, r in job.drug_results.items()
                if r.evidence_count == 0 and r.status in (DrugStatus.COMPLETED, DrugStatus.PARTIAL)
            ),
            "failed_drugs": snapshot["failed_drugs"],
            "per_source_counts": snapshot["per_source_counts"],
            "cache_hits": snapshot["cache_hits"],
            "source_failures": source_failures,
            "errors": list(job.errors),
        }

        with self._state_lock:
            report = self._normalization_reports.get(job_id, NormalizationReport())
            normalization = report.to_dict()

        return {"job_id": job_id, "extraction": extraction, "normalization": normalization}

    def get_job(self, job_id: str) -> Optional[MiningJob]:
        return self.tracker.get_job(job_id)

    def list_jobs(self) -> List[Dict]:
        jobs = self.tracker.list_jobs()
        with self._state_lock:
            futures = dict(self._job_futures)
        for job in jobs:
            future = futures.get(job["job_id"])
            job["background"] = future is not None
        return jobs

    def export_results(self, fmt: str = "json") -> bytes:
        """
        Export the session result table.

        Raises:
            ValueError: For unsupported formats
        """
        records = self.get_results()
        logger.info(f"Exporting {len(records)} records as {fmt}")
        return self.exporter.export(records, fmt)

    def get_known_drugs(self) -> List[str]:
        return self.vocabulary.drugs

    def get_config(self) -> Dict:
        with self._config_lock:
            data = self.config.mining.to_dict()
        data["available_sources"] = [s.value for s in self.extractors]
        return data

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def stop(self, job_id: Optional[str] = None) -> int:
        """
        Signal running jobs (or one job) to stop.

        Drugs not yet started are marked failed; in-flight extractor calls see
        the cancellation before their next request.

        Returns:
            Number of jobs signalled
        """
        with self._state_lock:
            if job_id is not None:
                events = [self._cancel_events[job_id]] if job_id in self._cancel_events else []
            else:
                events = list(self._cancel_events.values())
        for event in events:
            event.set()
        if events:
            logger.info(f"Stop requested for {len(events)} job(s)")
        return len(events)

    def reset(self):
        """Stop running jobs and clear results, reports and progress. The cache is kept."""
        self.stop()
        with self._state_lock:
            self._results_by_drug.clear()
            self._normalization_reports.clear()
            self._job_futures.clear()
            self.tracker.reset()
        logger.info("Orchestrator state reset")

    def clear_caches(self) -> int:
        """Drop every cached extractor result. Returns the number of entries removed."""
        removed = self.cache.clear()
        logger.info(f"Cleared {removed} cache entries")
        return removed

    def update_config(self, changes: Dict[str, Any]) -> Dict:
        """
        Change mining settings at runtime. Jobs already running keep theirs.

        Raises:
            ConfigError: On unknown keys or out-of-range values; nothing is applied
        """
        with self._config_lock:
            updated = self.config.mining.with_overrides(changes)
            errors, warnings = check_mining_config(updated)
            if errors:
                raise ConfigError("Invalid configuration update: " + "; ".join(errors))
            for warning in warnings:
                logger.warning(warning)

            self.normalizer.source_precedence = updated.source_precedence
            self.exporter.max_json_bytes = updated.export_max_bytes
            self.cache.default_ttl = updated.cache_ttl_seconds
            if (updated.global_rate_limit_per_minute, updated.session_call_budget) != (
                self.config.mining.global_rate_limit_per_minute,
                self.config.mining.session_call_budget,
            ):
                self._apply_global_limit(updated)
            self.config.mining = updated

        logger.info(f"Configuration updated: {', '.join(sorted(changes))}")
        return self.get_config()

    def validate_config(self) -> Tuple[List[str], List[str]]:
        """
        Validate the full configuration.

        Raises:
            ConfigError: If any value is invalid
        """
        with self._config_lock:
            return validate_config(self.config, strict=True)

    def wait_for_job(self, job_id: str, timeout: Optional[float] = None) -> Optional[MiningJob]:
        """
        Block until a background job finishes.

        Returns:
            The job, or None if unknown

        Raises:
            TimeoutError: If the job is still running after ``timeout`` seconds
        """
        with self._state_lock:
            future = self._job_futures.get(job_id)
        if future is not None:
            done, _ = wait([future], timeout=timeout)
            if not done:
                raise TimeoutError(f"Job {job_id} still running after {timeout}s")
        return self.tracker.get_job(job_id)

    def shutdown(self, wait_for_jobs: bool = True):
        """Stop jobs, release the job pool and close API sessions."""
        self.stop()
        self._job_executor.shutdown(wait=wait_for_jobs)
        for extractor in self.extractors.values():
            client = getattr(extractor, "client", None)
            if client is not None and hasattr(client, "close"):
                client.close()
        logger.info("Orchestrator shut down")

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def test_extractor(self, source: Union[str, EvidenceSource], drug: str, options: MiningOptions = None) -> Dict:
        """
        Run one extractor for one drug, bypassing the cache.

        Raises:
            ValueError: Unknown source or empty drug name
        """
        source = EvidenceSource(source)
        if source not in self.extractors:
            raise ValueError(f"No extractor configured for source: {source.value}")
        drug = canonical_drug_name(drug)
        options = ExtractionOptions.from_config(self._effective_config(options))

        started = time.monotonic()
        report = {"source": source.value, "drug": drug, "success": False, "entry_count": 0,
                  "sample": [], "error": None}
        try:
            entries = self.extractors[source].extract(drug, options)
            report["success"] = True
            report["entry_count"] = len(entries)
            report["sample"] = [
                {
                    "drug_a": e.drug_a,
                    "drug_b": e.drug_b,
                    "source_id": e.source_id,
                    "severity": e.severity,
                    "evidence_level": e.evidence_level,
                    "excerpt": e.excerpt[:200],
                }
                for e in entries[:3]
            ]
        except MiningError as e:
            report["error"] = str(e)
            logger.warning(f"Extractor diagnostic failed for {source.value}/{drug}: {e}")

        report["duration_ms"] = int((time.monotonic() - started) * 1000)
        return report

    def validate_evidence(self, entries: Iterable[Any]) -> ValidationResult:
        return self.normalizer.validate(entries)

    def health_check(self) -> Dict[str, bool]:
        """Reachability of each source."""
        results = {}
        for source, extractor in self.extractors.items():
            try:
                results[source.value] = bool(extractor.health_check())
            except Exception as e:
                logger.warning(f"Health check failed for {source.value}: {e}")
                results[source.value] = False
        return results

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _effective_config(self, options: MiningOptions) -> MiningConfig:
        """Current mining config with per-call overrides applied and checked."""
        with self._config_lock:
            mining = self.config.mining.with_overrides(options)
        if options:
            errors, _ = check_mining_config(mining)
            if errors:
                raise ConfigError("Invalid mining options: " + "; ".join(errors))
        return mining

    @staticmethod
    def _clean_names(names: Iterable[str]) -> List[str]:
        """Canonical, de-duplicated drug names in input order."""
        drugs: List[str] = []
        for name in names:
            if not name or not str(name).strip():
                continue
            canonical = canonical_drug_name(str(name))
            if canonical not in drugs:
                drugs.append(canonical)
        if not drugs:
            raise ValueError("No drug names provided")
        return drugs

    def _check_rate_budget(self):
        limiter = self.global_limiter
        if limiter is not None and limiter.remaining_budget() == 0:
            raise CapacityError(f"Session call budget of {limiter.budget} calls is exhausted")

    def _apply_global_limit(self, mining: MiningConfig):
        """Create, adjust or drop the session limiter to match the config."""
        rate = mining.global_rate_limit_per_minute
        budget = mining.session_call_budget

        if rate is None and budget is None:
            limiter = None
        elif self.global_limiter is None:
            limiter = RateLimiter(requests_per_minute=rate or UNBOUNDED_RATE, budget=budget, name="session")
        else:
            limiter = self.global_limiter
            limiter.requests_per_minute = rate or UNBOUNDED_RATE
            limiter.budget = budget

        self.global_limiter = limiter
        self._attach_global_limiter(limiter)

    def _attach_global_limiter(self, limiter: Optional[RateLimiter]):
        for extractor in self.extractors.values():
            client = getattr(extractor, "client", None)
            if client is not None:
                client.global_limiter = limiter
