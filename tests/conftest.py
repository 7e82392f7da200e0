"""
Shared fixtures: fake extractors with call counters and a wired orchestrator.
"""

import threading
import time
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional
from unittest.mock import MagicMock

import pytest

from ddi_mining.config import Config
from ddi_mining.exceptions import MiningCancelledError
from ddi_mining.models import EvidenceSource, RawEvidenceEntry
from ddi_mining.orchestrator import DDIMiningOrchestrator
from ddi_mining.processors.progress_tracker import ProgressTracker
from ddi_mining.utils.cache import EvidenceCache
from ddi_mining.vocabulary import DrugVocabulary

FIXED_TIME = datetime(2024, 1, 15, 12, 0, 0)

DEFAULT_LEVELS = {
    EvidenceSource.CLINICAL_TRIAL: "B",
    EvidenceSource.REGULATORY: "A",
    EvidenceSource.PUBLICATION: "C",
}


def make_entry(
    source: EvidenceSource,
    drug_a: str,
    drug_b: str,
    source_id: str,
    evidence_level: Optional[str] = "B",
    severity: Optional[str] = "moderate",
    effect: Optional[str] = None,
    mechanism_tags: Optional[List[str]] = None,
    extracted_at: datetime = FIXED_TIME,
) -> RawEvidenceEntry:
    return RawEvidenceEntry(
        source=source,
        drug_a=drug_a,
        drug_b=drug_b,
        source_id=source_id,
        excerpt=f"{drug_a} with {drug_b}",
        extracted_at=extracted_at,
        severity=severity,
        evidence_level=evidence_level,
        effect=effect,
        mechanism_tags=list(mechanism_tags or []),
        url=f"https://example.org/{source.value}/{source_id}",
    )


class FakeExtractor:
    """Stands in for a real extractor; counts calls and can fail or block."""

    def __init__(
        self,
        source: EvidenceSource,
        entries_by_drug: Optional[Dict[str, List[RawEvidenceEntry]]] = None,
        error: Optional[Exception] = None,
        delay: float = 0.0,
        block_until_cancelled: bool = False,
    ):
        self.source = source
        self.client = MagicMock()
        self.entries_by_drug = entries_by_drug
        self.error = error
        self.delay = delay
        self.block_until_cancelled = block_until_cancelled
        self.calls = 0
        self.drugs_seen: List[str] = []
        self.started = threading.Event()
        self._lock = threading.Lock()

    def extract(self, drug_name, options=None, cancel_event=None):
        with self._lock:
            self.calls += 1
            self.drugs_seen.append(drug_name)
        self.started.set()

        if self.block_until_cancelled and cancel_event is not None:
            cancel_event.wait(5)
            raise MiningCancelledError(f"{self.source.value} cancelled")
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error

        if self.entries_by_drug is not None:
            return [replace(e) for e in self.entries_by_drug.get(drug_name, [])]
        return [
            make_entry(
                self.source,
                drug_name,
                "warfarin",
                source_id=f"{self.source.value}-{drug_name}",
                evidence_level=DEFAULT_LEVELS[self.source],
                effect=f"{self.source.value} effect",
            )
        ]

    def health_check(self) -> bool:
        return self.error is None


@pytest.fixture
def config():
    return Config()


@pytest.fixture
def fake_extractors():
    return {source: FakeExtractor(source) for source in EvidenceSource}


@pytest.fixture
def vocabulary():
    return DrugVocabulary(
        drugs=["doxorubicin", "cisplatin", "paclitaxel"],
        indication_map={"breast cancer": ["doxorubicin", "paclitaxel"]},
    )


@pytest.fixture
def orchestrator(fake_extractors, config, vocabulary):
    orch = DDIMiningOrchestrator(
        extractors=fake_extractors,
        config=config,
        cache=EvidenceCache(default_ttl=config.mining.cache_ttl_seconds),
        tracker=ProgressTracker(),
        vocabulary=vocabulary,
    )
    yield orch
    orch.shutdown(wait_for_jobs=True)


def total_calls(extractors) -> int:
    return sum(e.calls for e in extractors.values())
