"""
Progress Tracker

Thread-safe record of job and per-drug state. Workers push updates; callers
poll ``snapshot``. The tracker owns the MiningJob objects for the session.
"""

import copy
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from ddi_mining.models import DrugResult, DrugStatus, EvidenceSource, JobStatus, MiningJob

logger = logging.getLogger(__name__)

NOT_STARTED = "not_started"


@dataclass
class _JobClock:
    workers: int
    started: float
    finished: Optional[float] = None
    drug_durations: List[float] = field(default_factory=list)
    per_source_counts: Dict[str, int] = field(default_factory=dict)
    cache_hits: Dict[str, int] = field(default_factory=dict)
    running_drugs: List[str] = field(default_factory=list)


class ProgressTracker:
    """Per-job and per-drug progress for the mining session."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._jobs: Dict[str, MiningJob] = {}
        self._clocks: Dict[str, _JobClock] = {}
        self._latest_job_id: Optional[str] = None

    def register_job(self, job: MiningJob):
        """Track a new job in PENDING state."""
        with self._lock:
            job.status = JobStatus.PENDING
            for drug in job.drugs:
                job.drug_results.setdefault(drug, DrugResult(drug_name=drug))
            self._jobs[job.job_id] = job
            self._clocks[job.job_id] = _JobClock(
                workers=1,
                started=self._clock(),
                per_source_counts={s.value: 0 for s in EvidenceSource},
                cache_hits={s.value: 0 for s in EvidenceSource},
            )
            self._latest_job_id = job.job_id

    def start_job(self, job_id: str, workers: int = 1):
        """Move a registered job to RUNNING."""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return
            job.status = JobStatus.RUNNING
            job.started_at = datetime.now()
            job_clock = self._clocks[job_id]
            job_clock.workers = max(1, workers)
            job_clock.started = self._clock()

    def has_job(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._jobs

    def drug_started(self, job_id: str, drug: str):
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return
            job.drug_results.setdefault(drug, DrugResult(drug_name=drug)).status = DrugStatus.RUNNING
            self._clocks[job_id].running_drugs.append(drug)

    def record_source(self, job_id: str, source: EvidenceSource, entry_count: int, cache_hit: bool):
        """Count raw entries obtained from one source."""
        with self._lock:
            job_clock = self._clocks.get(job_id)
            if job_clock is None:
                return
            key = EvidenceSource(source).value
            job_clock.per_source_counts[key] = job_clock.per_source_counts.get(key, 0) + entry_count
            if cache_hit:
                job_clock.cache_hits[key] = job_clock.cache_hits.get(key, 0) + 1

    def drug_finished(self, job_id: str, result: DrugResult):
        """Store a drug's final result; processed_count only ever grows."""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return
            previous = job.drug_results.get(result.drug_name)
            if previous is not None and previous.status in (DrugStatus.COMPLETED, DrugStatus.PARTIAL, DrugStatus.FAILED):
                return
            job.drug_results[result.drug_name] = result
            job_clock = self._clocks[job_id]
            job_clock.drug_durations.append(result.duration_seconds)
            if result.drug_name in job_clock.running_drugs:
                job_clock.running_drugs.remove(result.drug_name)
            for source, message in result.source_errors.items():
                job.errors.append(f"{result.drug_name} [{source}]: {message}")

    def add_error(self, job_id: str, message: str):
        with self._lock:
            job = self._jobs.get(job_id)
            if job is not None:
                job.errors.append(message)

    def finish_job(self, job_id: str) -> Optional[JobStatus]:
        """
        Derive and store the terminal status.

        completed: every drug completed
        failed: no drug produced evidence from any source
        partial: anything in between
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None

            statuses = [job.drug_results.get(d, DrugResult(drug_name=d)).status for d in job.drugs]
            if statuses and all(s == DrugStatus.COMPLETED for s in statuses):
                job.status = JobStatus.COMPLETED
            elif not any(s in (DrugStatus.COMPLETED, DrugStatus.PARTIAL) for s in statuses):
                job.status = JobStatus.FAILED
            else:
                job.status = JobStatus.PARTIAL

            job.completed_at = datetime.now()
            self._clocks[job_id].finished = self._clock()
            self._clocks[job_id].running_drugs.clear()
            return job.status

    def fail_job(self, job_id: str, message: str):
        """Mark a job FAILED after an unexpected crash of its runner."""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return
            job.errors.append(message)
            job.status = JobStatus.FAILED
            job.completed_at = datetime.now()
            self._clocks[job_id].finished = self._clock()

    def get_job(self, job_id: str) -> Optional[MiningJob]:
        """Copy of a job, safe to read while workers keep running."""
        with self._lock:
            job = self._jobs.get(job_id)
            return copy.deepcopy(job) if job is not None else None

    def list_jobs(self) -> List[Dict]:
        with self._lock:
            return [job.to_dict() for job in self._jobs.values()]

    @property
    def latest_job_id(self) -> Optional[str]:
        with self._lock:
            return self._latest_job_id

    def snapshot(self, job_id: Optional[str] = None) -> Dict:
        """Progress view of a job (latest job when omitted)."""
        with self._lock:
            job_id = job_id or self._latest_job_id
            job = self._jobs.get(job_id) if job_id else None
            if job is None:
                return {
                    "job_id": None,
                    "state": NOT_STARTED,
                    "total_drugs": 0,
                    "processed_count": 0,
                    "failed_drugs": [],
                    "per_source_counts": {s.value: 0 for s in EvidenceSource},
                    "cache_hits": {s.value: 0 for s in EvidenceSource},
                    "elapsed_ms": 0,
                    "estimated_remaining_ms": None,
                    "current_drugs": [],
                    "errors": [],
                }

            job_clock = self._clocks[job_id]
            end = job_clock.finished if job_clock.finished is not None else self._clock()
            elapsed = end - job_clock.started
            processed = job.processed_count
            remaining = len(job.drugs) - processed

            estimate = None
            if job_clock.finished is not None:
                estimate = 0
            elif job_clock.drug_durations:
                average = sum(job_clock.drug_durations) / len(job_clock.drug_durations)
                estimate = int(average * remaining / job_clock.workers * 1000)

            return {
                "job_id": job.job_id,
                "state": job.status.value,
                "total_drugs": len(job.drugs),
                "processed_count": processed,
                "failed_drugs": [
                    name for name, r in job.drug_results.items() if r.status == DrugStatus.FAILED
                ],
                "partial_drugs": [
                    name for name, r in job.drug_results.items() if r.status == DrugStatus.PARTIAL
                ],
                "per_source_counts": dict(job_clock.per_source_counts),
                "cache_hits": dict(job_clock.cache_hits),
                "elapsed_ms": int(elapsed * 1000),
                "estimated_remaining_ms": estimate,
                "current_drugs": list(job_clock.running_drugs),
                "errors": list(job.errors),
                "started_at": job.started_at.isoformat() if job.started_at else None,
                "completed_at": job.completed_at.isoformat() if job.completed_at else None,
            }

    def reset(self):
        with self._lock:
            self._jobs.clear()
            self._clocks.clear()
            self._latest_job_id = None
        logger.info("Progress tracker reset")
